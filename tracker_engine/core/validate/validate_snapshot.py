from __future__ import annotations

from collections import Counter
from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Optional, Union, cast

from tracker_engine.core.errors import SnapshotValidationError
from tracker_engine.core.graph.mutations import edge_id_for
from tracker_engine.core.model import (
    Blocker,
    DependencyEdge,
    ProjectMember,
    ScheduledBlock,
    Snapshot,
    TimeEntry,
    User,
    WorkItem,
)
from tracker_engine.core.schedule.interval_math import DEPENDENCY_TYPES


ITEM_TYPES: tuple[str, ...] = ("project", "milestone", "task", "subtask")
ITEM_STATUSES: tuple[str, ...] = ("backlog", "ready", "in_progress", "blocked", "review", "done", "canceled")
ESTIMATE_MODES: tuple[str, ...] = ("manual", "rollup")

# kind is "id" | "str" | "int" | "minutes" | "instant" or a tuple of allowed values
Kind = Union[str, tuple[str, ...]]
# (field, kind, required, default)
FieldSpec = tuple[str, Kind, bool, Any]

ITEM_FIELDS: list[FieldSpec] = [
    ("id", "id", True, None),
    ("project_id", "id", True, None),
    ("type", ITEM_TYPES, True, None),
    ("title", "str", True, None),
    ("status", ITEM_STATUSES, True, None),
    ("parent_id", "id", False, None),
    ("priority", "int", False, 0),
    ("sequence_rank", "int", False, 0),
    ("due_at", "instant", False, None),
    ("estimate_minutes", "minutes", False, 0),
    ("estimate_mode", ESTIMATE_MODES, False, "manual"),
    ("assignee_user_id", "id", False, None),
    ("archived_at", "instant", False, None),
    ("completed_at", "instant", False, None),
    ("health", "str", False, "unknown"),
    ("notes", "str", False, None),
]

DEPENDENCY_FIELDS: list[FieldSpec] = [
    ("id", "id", False, None),
    ("item_id", "id", True, None),
    ("depends_on_id", "id", True, None),
    ("type", DEPENDENCY_TYPES, False, "FS"),
    ("lag_minutes", "int", False, 0),
]

BLOCK_FIELDS: list[FieldSpec] = [
    ("id", "id", True, None),
    ("item_id", "id", True, None),
    ("start_at", "instant", True, None),
    ("duration_minutes", "int", True, None),
]

TIME_ENTRY_FIELDS: list[FieldSpec] = [
    ("id", "id", True, None),
    ("item_id", "id", True, None),
    ("duration_minutes", "int", True, None),
]

BLOCKER_FIELDS: list[FieldSpec] = [
    ("id", "id", True, None),
    ("item_id", "id", True, None),
    ("kind", "str", False, "general"),
    ("text", "str", False, ""),
    ("created_at", "instant", False, None),
    ("resolved_at", "instant", False, None),
]

MEMBER_FIELDS: list[FieldSpec] = [
    ("project_id", "id", True, None),
    ("user_id", "id", True, None),
    ("role", ("owner", "editor", "viewer"), False, "editor"),
]

USER_FIELDS: list[FieldSpec] = [
    ("id", "id", True, None),
    ("name", "str", False, None),
]


class _FieldError(ValueError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def validate_snapshot(raw: dict[str, Any]) -> tuple[Optional[Snapshot], list[SnapshotValidationError]]:
    """Validate a loaded snapshot and build typed records.

    Returns (snapshot, errors). Snapshot is None when errors exist.
    Referential problems (orphans, cycles) are not errors here; the
    integrity report surfaces them.
    """

    file = cast(Optional[str], raw.get("__file__"))
    errors: list[SnapshotValidationError] = []

    schema_version = raw.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        errors.append(
            SnapshotValidationError(
                code="E_REQUIRED_FIELD",
                message="schema_version is required and must be a non-empty string",
                file=file,
                path="schema_version",
            )
        )

    now: Optional[datetime] = None
    if raw.get("now") is not None:
        try:
            now = parse_instant(raw["now"])
        except _FieldError as e:
            errors.append(SnapshotValidationError(code=e.code, message=f"now {e.message}", file=file, path="now"))

    items = _parse_collection(raw, "items", ITEM_FIELDS, file, errors)
    dependencies = _parse_collection(raw, "dependencies", DEPENDENCY_FIELDS, file, errors)
    blocks = _parse_collection(raw, "scheduled_blocks", BLOCK_FIELDS, file, errors)
    entries = _parse_collection(raw, "time_entries", TIME_ENTRY_FIELDS, file, errors)
    blockers = _parse_collection(raw, "blockers", BLOCKER_FIELDS, file, errors)
    members = _parse_collection(raw, "project_members", MEMBER_FIELDS, file, errors)
    users = _parse_collection(raw, "users", USER_FIELDS, file, errors)

    for _, r in dependencies:
        if r["id"] is None:
            r["id"] = edge_id_for(r["item_id"], r["depends_on_id"])

    for key, records in (("items", items), ("dependencies", dependencies), ("scheduled_blocks", blocks)):
        counts = Counter(r["id"] for _, r in records)
        for i, r in records:
            if counts[r["id"]] > 1:
                errors.append(
                    SnapshotValidationError(
                        code="E_DUPLICATE_ID",
                        message=f"duplicate id: {r['id']} (count={counts[r['id']]})",
                        file=file,
                        path=f"{key}[{i}].id",
                    )
                )

    if errors:
        return None, _sorted(errors)

    edges = [DependencyEdge(**r) for _, r in dependencies]

    snapshot = Snapshot(
        schema_version=cast(str, schema_version),
        items=[WorkItem(**r) for _, r in items],
        dependencies=edges,
        scheduled_blocks=[ScheduledBlock(**r) for _, r in blocks],
        time_entries=[TimeEntry(**r) for _, r in entries],
        blockers=[Blocker(**r) for _, r in blockers],
        project_members=[ProjectMember(**r) for _, r in members],
        users=[User(**r) for _, r in users],
        now=now,
    )
    return snapshot, []


def summarize_snapshot(snapshot: Snapshot) -> str:
    counts = Counter([item.type for item in snapshot.items])
    ordered_types = list(ITEM_TYPES)
    parts = [f"{t}={counts.get(t, 0)}" for t in ordered_types]
    projects = sorted({item.project_id for item in snapshot.items})
    return (
        f"OK: {len(snapshot.items)} items ("
        + ", ".join(parts)
        + f")\nDependencies: {len(snapshot.dependencies)}, blocks: {len(snapshot.scheduled_blocks)}"
        + "\nProjects: "
        + ", ".join(projects)
    )


def parse_instant(value: Any) -> datetime:
    """datetime, date or ISO-8601 string -> aware datetime (naive means UTC)."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise _FieldError("E_INVALID_INSTANT", f"is not an ISO-8601 instant: {value!r}") from e
    else:
        raise _FieldError("E_INVALID_INSTANT", "must be an ISO-8601 instant")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_collection(
    raw: dict[str, Any],
    key: str,
    fields: list[FieldSpec],
    file: Optional[str],
    errors: list[SnapshotValidationError],
) -> list[tuple[int, dict[str, Any]]]:
    records = raw.get(key)
    if records is None:
        return []
    if not isinstance(records, list):
        errors.append(
            SnapshotValidationError(
                code="E_INVALID_TYPE",
                message=f"{key} must be an array",
                file=file,
                path=key,
            )
        )
        return []

    out: list[tuple[int, dict[str, Any]]] = []
    for i, rec in enumerate(records):
        rec_path = f"{key}[{i}]"
        if not isinstance(rec, dict):
            errors.append(
                SnapshotValidationError(
                    code="E_INVALID_TYPE",
                    message="record must be an object",
                    file=file,
                    path=rec_path,
                )
            )
            continue
        parsed = _parse_record(rec, fields, rec_path, file, errors)
        if parsed is not None:
            out.append((i, parsed))
    return out


def _parse_record(
    rec: dict[str, Any],
    fields: list[FieldSpec],
    rec_path: str,
    file: Optional[str],
    errors: list[SnapshotValidationError],
) -> Optional[dict[str, Any]]:
    out: dict[str, Any] = {}
    ok = True
    for name, kind, required, default in fields:
        value = rec.get(name)
        if value is None:
            if required:
                errors.append(
                    SnapshotValidationError(
                        code="E_REQUIRED_FIELD",
                        message=f"{name} is required",
                        file=file,
                        path=f"{rec_path}.{name}",
                    )
                )
                ok = False
            else:
                out[name] = default
            continue
        try:
            out[name] = _coerce(kind, value)
        except _FieldError as e:
            errors.append(
                SnapshotValidationError(
                    code=e.code,
                    message=f"{name} {e.message}",
                    file=file,
                    path=f"{rec_path}.{name}",
                )
            )
            ok = False
    return out if ok else None


def _coerce(kind: Kind, value: Any) -> Any:
    if isinstance(kind, tuple):
        if value not in kind:
            raise _FieldError("E_INVALID_ENUM", f"must be one of {list(kind)}")
        return value
    if kind == "id":
        if not isinstance(value, str) or not value.strip():
            raise _FieldError("E_INVALID_TYPE", "must be a non-empty string")
        return value.strip()
    if kind == "str":
        if not isinstance(value, str):
            raise _FieldError("E_INVALID_TYPE", "must be a string")
        return value
    if kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise _FieldError("E_INVALID_TYPE", "must be an integer")
        return value
    if kind == "minutes":
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise _FieldError("E_INVALID_TYPE", "must be a non-negative integer")
        return value
    if kind == "instant":
        return parse_instant(value)
    raise AssertionError(f"unknown field kind: {kind}")


def _sorted(errors: Iterable[SnapshotValidationError]) -> list[SnapshotValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
