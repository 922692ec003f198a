from pathlib import Path

import pytest

from tracker_engine.core.config.engine_config import (
    DEFAULT_CONFIG,
    ConfigError,
    load_and_merge,
    load_config_file,
    merged_config,
)

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def test_defaults():
    cfg = load_and_merge(None)
    assert cfg.execution_window_limit == DEFAULT_CONFIG["execution_window_limit"]
    assert cfg.due_soon_days == 7
    assert cfg.terminal_statuses == ("done", "canceled")


def test_file_overrides_merge_onto_defaults():
    cfg = load_and_merge(str(EXAMPLES / "engine-config.yaml"))
    assert cfg.execution_window_limit == 1
    assert cfg.due_soon_days == 2
    assert cfg.ready_statuses == ("ready",)
    assert cfg.blocked_horizon_days == 7


def test_empty_file_means_no_overrides(tmp_path: Path):
    p = tmp_path / "c.yaml"
    p.write_text("", encoding="utf-8")
    assert load_config_file(p) == {}
    assert merged_config(load_config_file(p)) == merged_config()


@pytest.mark.parametrize(
    "content, needle",
    [
        ("due_soon: 3\n", "unknown setting 'due_soon'"),
        ("due_soon_days: -1\n", "non-negative integer"),
        ("due_soon_days: true\n", "non-negative integer"),
        ("ready_statuses: ready\n", "list of non-empty strings"),
        ("- 1\n", "must be a mapping"),
    ],
)
def test_bad_config_is_rejected(tmp_path: Path, content, needle):
    p = tmp_path / "c.yaml"
    p.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError) as exc:
        load_config_file(p)
    assert needle in str(exc.value)


def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_and_merge(str(tmp_path / "nope.yaml"))
