from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from tracker_engine.core.errors import SnapshotLoadError


logger = logging.getLogger(__name__)

SNAPSHOT_COLLECTIONS: tuple[str, ...] = (
    "items",
    "dependencies",
    "scheduled_blocks",
    "time_entries",
    "blockers",
    "project_members",
    "users",
)


def load_snapshot(path: str) -> dict[str, Any]:
    """Load a YAML/JSON snapshot file.

    Returns a dict with schema_version, optional now, and the record
    collections. Does not coerce types; the validator owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise SnapshotLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:  # pragma: no cover
        raise SnapshotLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise SnapshotLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except SnapshotLoadError:
        raise
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise SnapshotLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise SnapshotLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    normalized: dict[str, Any] = {"schema_version": data.get("schema_version")}
    if "now" in data:
        normalized["now"] = data.get("now")
    for key in SNAPSHOT_COLLECTIONS:
        # Absent collections are empty; present-but-malformed ones go to the validator.
        normalized[key] = data.get(key, [])

    normalized["__file__"] = str(p)
    logger.debug("loaded %s (%d items)", p, len(normalized["items"] or []))
    return normalized


def load_ops(path: str) -> list[Any]:
    """Load a batch of dependency ops: either a list, or a mapping with an ``ops`` list."""
    p = Path(path)
    if not p.exists():
        raise SnapshotLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SnapshotLoadError(code="E_YAML_PARSE", message=str(e), file=str(p)) from e

    if isinstance(data, dict):
        data = data.get("ops")
    if not isinstance(data, list):
        raise SnapshotLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="ops file must be a list of ops or a mapping with an 'ops' list",
            file=str(p),
        )
    return data
