"""Shared read pipeline: summarize -> project -> roll up.

Every read view builds a ScopeState through here, so each dependency edge and
each rollup is computed one way only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from tracker_engine.core.config.engine_config import EngineConfig
from tracker_engine.core.errors import QueryError
from tracker_engine.core.model import (
    DependencyEdge,
    LeafMetrics,
    RollupAggregate,
    Scope,
    ScheduleSummary,
    ScheduleWindow,
    Snapshot,
    WorkItem,
)
from tracker_engine.core.project.projector import (
    DependencyProjections,
    is_item_blocked,
    project_dependencies,
    unmet_dependency_counts,
)
from tracker_engine.core.rollup.rollup import compute_rollups
from tracker_engine.core.schedule.summarize import summarize_blocks, windows_from


logger = logging.getLogger(__name__)

SCOPE_KINDS: tuple[str, ...] = ("project", "user")


@dataclass(frozen=True)
class ScopeState:
    items: list[WorkItem]
    items_by_id: dict[str, WorkItem]  # whole snapshot, for counterpart lookups
    edges: list[DependencyEdge]
    summaries: dict[str, ScheduleSummary]
    windows: dict[str, ScheduleWindow]
    projections: DependencyProjections
    active_blockers: dict[str, int]
    blocker_totals: dict[str, int]
    unmet: dict[str, int]
    actuals: dict[str, int]
    blocked: dict[str, bool]
    overdue: dict[str, bool]
    rollups: dict[str, RollupAggregate]
    now: datetime


def require_scope(kind: Any, scope_id: Any) -> Scope:
    if kind not in SCOPE_KINDS:
        raise QueryError(
            code="E_INVALID_SCOPE",
            message=f"scope kind must be one of: {', '.join(SCOPE_KINDS)}",
            path="scope.kind",
        )
    if not isinstance(scope_id, str) or not scope_id.strip():
        raise QueryError(code="E_INVALID_SCOPE", message="scope id is required", path="scope.id")
    return Scope(kind=kind, id=scope_id.strip())


def require_window(start: Optional[datetime], end: Optional[datetime]) -> tuple[datetime, datetime]:
    if start is None or end is None:
        raise QueryError(
            code="E_INVALID_WINDOW",
            message="window start and end are required",
            path="window",
        )
    if start >= end:
        raise QueryError(
            code="E_INVALID_WINDOW",
            message="window start must be before window end",
            path="window",
        )
    return start, end


def resolve_now(snapshot: Snapshot, now: Optional[datetime]) -> datetime:
    if now is not None:
        return now
    if snapshot.now is not None:
        return snapshot.now
    return datetime.now(timezone.utc)


def select_items(
    snapshot: Snapshot,
    scope: Scope,
    *,
    include_archived: bool = False,
    include_completed: bool = True,
    terminal_statuses: Iterable[str] = ("done", "canceled"),
) -> list[WorkItem]:
    terminal = set(terminal_statuses)
    out: list[WorkItem] = []
    for item in snapshot.items:
        if not scope.contains(item):
            continue
        if not include_archived and item.archived_at is not None:
            continue
        if not include_completed and item.status in terminal:
            continue
        out.append(item)
    return out


def is_overdue(item: WorkItem, now: datetime, terminal_statuses: Iterable[str]) -> bool:
    return item.due_at is not None and item.due_at < now and item.status not in set(terminal_statuses)


def build_scope_state(
    snapshot: Snapshot,
    items: list[WorkItem],
    now: datetime,
    config: EngineConfig,
) -> ScopeState:
    ids = {item.id for item in items}
    items_by_id = snapshot.items_by_id()

    # Windows come from every block in the snapshot so an edge to an
    # out-of-scope item still sees that item's real schedule.
    summaries = summarize_blocks(snapshot.scheduled_blocks)
    windows = windows_from(summaries)

    edges = [e for e in snapshot.dependencies if e.item_id in ids or e.depends_on_id in ids]
    projections = project_dependencies(snapshot.items, edges, windows)
    unmet = unmet_dependency_counts(snapshot.items, [e for e in edges if e.item_id in ids])

    active_blockers: dict[str, int] = {}
    blocker_totals: dict[str, int] = {}
    for b in snapshot.blockers:
        if b.item_id not in ids:
            continue
        blocker_totals[b.item_id] = blocker_totals.get(b.item_id, 0) + 1
        if b.resolved_at is None:
            active_blockers[b.item_id] = active_blockers.get(b.item_id, 0) + 1

    actuals: dict[str, int] = {}
    for t in snapshot.time_entries:
        if t.item_id in ids:
            actuals[t.item_id] = actuals.get(t.item_id, 0) + t.duration_minutes

    blocked: dict[str, bool] = {}
    overdue: dict[str, bool] = {}
    leaves: dict[str, LeafMetrics] = {}
    for item in items:
        blocked[item.id] = is_item_blocked(item, active_blockers.get(item.id, 0), unmet.get(item.id, 0))
        overdue[item.id] = is_overdue(item, now, config.terminal_statuses)
        leaves[item.id] = LeafMetrics(
            window=windows.get(item.id, ScheduleWindow()),
            estimate_minutes=item.estimate_minutes,
            actual_minutes=actuals.get(item.id, 0),
            blocked=blocked[item.id],
            overdue=overdue[item.id],
        )

    rollups = compute_rollups(items, leaves)
    logger.debug("scope state: %d items, %d edges", len(items), len(edges))

    return ScopeState(
        items=items,
        items_by_id=items_by_id,
        edges=edges,
        summaries=summaries,
        windows=windows,
        projections=projections,
        active_blockers=active_blockers,
        blocker_totals=blocker_totals,
        unmet=unmet,
        actuals=actuals,
        blocked=blocked,
        overdue=overdue,
        rollups=rollups,
        now=now,
    )


def compute_depths(items: Iterable[WorkItem]) -> dict[str, int]:
    """Depth below the nearest ancestor present in ``items``. Loops count as roots."""
    parent = {item.id: item.parent_id for item in items}
    depths: dict[str, int] = {}
    for start in parent:
        chain: list[str] = []
        seen: set[str] = set()
        cur: Optional[str] = start
        while cur is not None and cur in parent and cur not in depths and cur not in seen:
            seen.add(cur)
            chain.append(cur)
            cur = parent[cur]
        base = depths[cur] + 1 if cur is not None and cur in depths else 0
        for offset, nid in enumerate(reversed(chain)):
            depths[nid] = base + offset
    return depths
