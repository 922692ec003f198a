from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from tracker_engine.core.model import Snapshot


def to_jsonable(value: Any) -> Any:
    """Render engine output for JSON/YAML: instants become ISO-8601 strings."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    out: dict[str, Any] = {"schema_version": snapshot.schema_version}
    if snapshot.now is not None:
        out["now"] = snapshot.now
    for key in (
        "items",
        "dependencies",
        "scheduled_blocks",
        "time_entries",
        "blockers",
        "project_members",
        "users",
    ):
        out[key] = [asdict(r) for r in getattr(snapshot, key)]
    return to_jsonable(out)


def dump_snapshot_yaml(snapshot: Snapshot, path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(
        yaml.safe_dump(snapshot_to_dict(snapshot), sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
