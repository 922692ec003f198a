from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG: dict[str, Any] = {
    # execution window: how many ready-but-unscheduled items to suggest
    "execution_window_limit": 12,
    # due/overdue view look-ahead
    "due_soon_days": 7,
    # blocked view: how far ahead a blocked item's block is flagged
    "blocked_horizon_days": 7,
    "ready_statuses": ["ready", "in_progress", "review"],
    "terminal_statuses": ["done", "canceled"],
}

_INT_KEYS = ("execution_window_limit", "due_soon_days", "blocked_horizon_days")
_LIST_KEYS = ("ready_statuses", "terminal_statuses")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    execution_window_limit: int
    due_soon_days: int
    blocked_horizon_days: int
    ready_statuses: tuple[str, ...]
    terminal_statuses: tuple[str, ...]


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load engine overrides from a YAML file.

    Format:
      execution_window_limit: 20
      ready_statuses: [ready, in_progress]

    Unknown keys are rejected so typos do not silently fall back to defaults.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("config file must be a mapping of setting -> value")

    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k not in DEFAULT_CONFIG:
            raise ConfigError(f"unknown setting '{k}' (choose from: {', '.join(sorted(DEFAULT_CONFIG))})")
        if k in _INT_KEYS:
            if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                raise ConfigError(f"setting '{k}' must be a non-negative integer")
            out[k] = v
        elif k in _LIST_KEYS:
            if not isinstance(v, list) or any(not isinstance(x, str) or not x.strip() for x in v):
                raise ConfigError(f"setting '{k}' must be a list of non-empty strings")
            out[k] = [x.strip() for x in v]
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> EngineConfig:
    merged = dict(DEFAULT_CONFIG)
    if overrides:
        merged.update(overrides)
    return EngineConfig(
        execution_window_limit=merged["execution_window_limit"],
        due_soon_days=merged["due_soon_days"],
        blocked_horizon_days=merged["blocked_horizon_days"],
        ready_statuses=tuple(merged["ready_statuses"]),
        terminal_statuses=tuple(merged["terminal_statuses"]),
    )


def load_and_merge(config_file: str | None) -> EngineConfig:
    if not config_file:
        return merged_config()
    return merged_config(load_config_file(config_file))
