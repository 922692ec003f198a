import json
from pathlib import Path

from typer.testing import CliRunner

from tracker_engine.cli import app

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"
BASIC = str(EXAMPLES / "basic-snapshot.yaml")
WINDOW = ["--start", "2026-03-02T00:00:00Z", "--end", "2026-03-03T00:00:00Z"]

runner = CliRunner()


def test_cli_validate_json_success():
    r = runner.invoke(app, ["validate", BASIC, "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["command"] == "validate"
    assert payload["ok"] is True
    assert payload["error_count"] == 0
    assert payload["data"]["item_count"] == 8
    assert payload["data"]["dependency_count"] == 3


def test_cli_validate_json_failure_contains_codes():
    r = runner.invoke(app, ["validate", str(EXAMPLES / "invalid-snapshot.yaml"), "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    codes = {e["code"] for e in payload["errors"]}
    assert {"E_REQUIRED_FIELD", "E_INVALID_ENUM", "E_DUPLICATE_ID"} <= codes
    assert all(e["source"] == "validate" for e in payload["errors"])


def test_cli_validate_json_load_failure():
    r = runner.invoke(app, ["validate", "examples/nope.yaml", "--format", "json"])
    assert r.exit_code == 1
    payload = json.loads(r.stdout)
    assert payload["errors"][0]["code"] == "E_FILE_NOT_FOUND"
    assert payload["errors"][0]["source"] == "load"


def test_cli_list_json():
    r = runner.invoke(app, ["list", BASIC, "--user", "u1", "--format", "json"])
    assert r.exit_code == 0
    items = json.loads(r.stdout)["data"]["items"]
    assert [i["id"] for i in items] == ["Q1", "T1", "T2", "T4"]
    t2 = items[2]
    assert t2["schedule_start_at"] == "2026-03-02T11:30:00+00:00"
    assert t2["blocked_by"][0]["reason"] == "FS +30m"


def test_cli_item_json():
    r = runner.invoke(app, ["item", BASIC, "M1"])
    assert r.exit_code == 0
    item = json.loads(r.stdout)["data"]["item"]
    assert item["rollup_estimate_minutes"] == 50
    assert item["primary_block_id"] is None

    r = runner.invoke(app, ["item", BASIC, "nope"])
    assert r.exit_code == 2
    assert "E_ITEM_NOT_FOUND" in r.output


def test_cli_window_json_with_config():
    r = runner.invoke(app, ["window", BASIC, "--project", "p1", *WINDOW])
    assert r.exit_code == 0
    data = json.loads(r.stdout)["data"]
    assert [b["block_id"] for b in data["scheduled"]] == ["b1", "b2", "b3"]
    assert [i["item_id"] for i in data["ready_unscheduled"]] == ["T5"]

    r = runner.invoke(
        app,
        ["window", BASIC, "--project", "p1", *WINDOW, "--config", str(EXAMPLES / "engine-config.yaml")],
    )
    assert r.exit_code == 0
    assert len(json.loads(r.stdout)["data"]["ready_unscheduled"]) == 1


def test_cli_calendar_json():
    r = runner.invoke(app, ["calendar", BASIC, "--user", "u1", *WINDOW])
    assert r.exit_code == 0
    data = json.loads(r.stdout)["data"]
    assert [b["block_id"] for b in data["blocks"]] == ["b1", "b2", "b3"]
    assert [i["item_id"] for i in data["items"]] == ["T1"]


def test_cli_blocked_json():
    r = runner.invoke(app, ["blocked", BASIC, "--project", "p1", "--format", "json"])
    assert r.exit_code == 0
    data = json.loads(r.stdout)["data"]
    assert [row["item_id"] for row in data["scheduled_but_blocked"]] == ["T4"]


def test_cli_due_json():
    r = runner.invoke(app, ["due", BASIC, "--project", "p1"])
    assert r.exit_code == 0
    data = json.loads(r.stdout)["data"]
    assert [row["item_id"] for row in data["overdue"]] == ["T4"]
    assert [row["item_id"] for row in data["due_soon"]] == ["T2", "T5", "T3"]

    r = runner.invoke(app, ["due", BASIC, "--project", "p1", "--config", str(EXAMPLES / "engine-config.yaml")])
    assert [row["item_id"] for row in json.loads(r.stdout)["data"]["due_soon"]] == ["T2"]


def test_cli_integrity_json():
    r = runner.invoke(app, ["integrity", str(EXAMPLES / "integrity-defects.yaml"), "--project", "p1", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["data"]["counts"]["orphan_blocks"] == 1


def test_cli_apply_ops(tmp_path: Path):
    out = tmp_path / "after.yaml"
    r = runner.invoke(app, ["apply-ops", BASIC, str(EXAMPLES / "ops-basic.yaml"), "--out", str(out)])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    results = payload["data"]["results"]
    assert [x["ok"] for x in results] == [True, False, True, True, False]
    assert results[1]["error"]["code"] == "E_DEPENDENCY_CYCLE"
    assert results[3]["result"] == {"removed": 1}
    assert results[4]["error"]["code"] == "E_UNKNOWN_OP"

    deps = {d["id"]: d for d in payload["data"]["dependencies"]}
    assert set(deps) == {"T2->T1", "T4->T2", "T5->T3"}
    assert deps["T2->T1"]["lag_minutes"] == 45
    assert out.exists()
