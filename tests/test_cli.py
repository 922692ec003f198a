from pathlib import Path

from typer.testing import CliRunner

from tracker_engine.cli import app
from tracker_engine.core.io.load_snapshot import load_snapshot
from tracker_engine.core.validate.validate_snapshot import validate_snapshot

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"
BASIC = str(EXAMPLES / "basic-snapshot.yaml")

runner = CliRunner()


def test_cli_validate_success():
    r = runner.invoke(app, ["validate", BASIC])
    assert r.exit_code == 0
    assert "OK: 8 items" in r.stdout


def test_cli_validate_invalid_snapshot():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "invalid-snapshot.yaml")])
    assert r.exit_code == 2
    assert "E_DUPLICATE_ID" in r.output
    assert "E_INVALID_INSTANT" in r.output


def test_cli_validate_missing_file():
    r = runner.invoke(app, ["validate", "examples/nope.yaml"])
    assert r.exit_code == 1
    assert "E_FILE_NOT_FOUND" in r.output


def test_cli_verbose_flag():
    r = runner.invoke(app, ["--verbose", "validate", BASIC])
    assert r.exit_code == 0


def test_cli_list_table():
    r = runner.invoke(app, ["list", BASIC, "--project", "p1"], env={"COLUMNS": "200"})
    assert r.exit_code == 0
    assert "Launch" in r.stdout


def test_cli_list_scope_is_required_and_exclusive():
    r = runner.invoke(app, ["list", BASIC])
    assert r.exit_code == 2
    assert "E_INVALID_SCOPE" in r.output

    r = runner.invoke(app, ["list", BASIC, "--project", "p1", "--user", "u1"])
    assert r.exit_code == 2
    assert "E_INVALID_SCOPE" in r.output


def test_cli_list_rejects_bad_now_and_format():
    r = runner.invoke(app, ["list", BASIC, "--project", "p1", "--now", "yesterday"])
    assert r.exit_code == 2
    assert "E_INVALID_INSTANT" in r.output

    r = runner.invoke(app, ["list", BASIC, "--project", "p1", "--format", "xml"])
    assert r.exit_code == 2
    assert "E_LIST_UNKNOWN_FORMAT" in r.output


def test_cli_blocked_text():
    r = runner.invoke(app, ["blocked", BASIC, "--project", "p1"])
    assert r.exit_code == 0
    assert "T4: violated FS +0m after T2" in r.stdout
    assert "T3: 1 predecessor(s) not done" in r.stdout
    assert "T3: Unresolved blockers" in r.stdout


def test_cli_blocked_nothing_for_other_project():
    r = runner.invoke(app, ["blocked", BASIC, "--project", "p2"])
    assert r.exit_code == 0
    assert "OK: nothing blocked" in r.stdout


def test_cli_window_rejects_inverted_window():
    r = runner.invoke(
        app,
        ["window", BASIC, "--project", "p1", "--start", "2026-03-03T00:00:00Z", "--end", "2026-03-02T00:00:00Z"],
    )
    assert r.exit_code == 2
    assert "E_INVALID_WINDOW" in r.output


def test_cli_integrity_text():
    r = runner.invoke(app, ["integrity", BASIC, "--project", "p1"])
    assert r.exit_code == 0

    r = runner.invoke(app, ["integrity", str(EXAMPLES / "integrity-defects.yaml"), "--project", "p1"])
    assert r.exit_code == 2
    assert "parent cycle:" in r.stdout


def test_cli_dep_add_dry_run_and_write(tmp_path: Path):
    r = runner.invoke(app, ["dep-add", BASIC, "T5", "T3", "--lag=-15"])
    assert r.exit_code == 0
    assert "T5->T3 (FS -15m) can be added" in r.stdout

    out = tmp_path / "out.yaml"
    r = runner.invoke(app, ["dep-add", BASIC, "T5", "T3", "--type", "SS", "--out", str(out)])
    assert r.exit_code == 0
    snap, errors = validate_snapshot(load_snapshot(str(out)))
    assert errors == []
    [edge] = [e for e in snap.dependencies if e.id == "T5->T3"]
    assert edge.type == "SS"


def test_cli_dep_add_rejects_cycle():
    r = runner.invoke(app, ["dep-add", BASIC, "T1", "T4"])
    assert r.exit_code == 2
    assert "E_DEPENDENCY_CYCLE" in r.output


def test_cli_dep_add_rejects_bad_type():
    r = runner.invoke(app, ["dep-add", BASIC, "T5", "T3", "--type", "XX"])
    assert r.exit_code == 2
    assert "E_INVALID_DEPENDENCY_TYPE" in r.output


def test_cli_missing_config_file():
    r = runner.invoke(app, ["due", BASIC, "--project", "p1", "--config", "examples/nope.yaml"])
    assert r.exit_code == 1
    assert "E_CONFIG_FILE_NOT_FOUND" in r.output
