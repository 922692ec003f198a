from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from tracker_engine.core.config.engine_config import EngineConfig, merged_config
from tracker_engine.core.errors import QueryError
from tracker_engine.core.model import Scope, Snapshot, WorkItem
from tracker_engine.core.schedule.interval_math import compute_slack_minutes
from tracker_engine.core.schedule.summarize import summary_for
from tracker_engine.core.views.pipeline import (
    ScopeState,
    build_scope_state,
    compute_depths,
    resolve_now,
    select_items,
)


logger = logging.getLogger(__name__)


def list_view(
    snapshot: Snapshot,
    scope: Scope,
    *,
    now: Optional[datetime] = None,
    include_archived: bool = False,
    include_completed: bool = True,
    config: Optional[EngineConfig] = None,
) -> list[dict[str, Any]]:
    """Items in scope, each annotated with schedule, dependency, blocked and rollup fields.

    Ordered by sequence_rank, then due date (undated last), then title.
    """
    cfg = config or merged_config()
    items = select_items(
        snapshot,
        scope,
        include_archived=include_archived,
        include_completed=include_completed,
        terminal_statuses=cfg.terminal_statuses,
    )
    if not items:
        return []

    state = build_scope_state(snapshot, items, resolve_now(snapshot, now), cfg)
    depths = compute_depths(items)
    users = {u.id: u.name for u in snapshot.users}

    ordered = sorted(items, key=_list_order)
    return [item_record(item, state, depth=depths.get(item.id, 0), users=users) for item in ordered]


def item_details(
    snapshot: Snapshot,
    item_id: Any,
    *,
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> Optional[dict[str, Any]]:
    """One item's record, computed within its whole project. None if the id is unknown."""
    if not isinstance(item_id, str) or not item_id.strip():
        raise QueryError(code="E_REQUIRED_FIELD", message="item_id is required", path="item_id")

    item = snapshot.items_by_id().get(item_id.strip())
    if item is None:
        return None

    cfg = config or merged_config()
    scope = Scope(kind="project", id=item.project_id)
    items = select_items(snapshot, scope, include_archived=True, terminal_statuses=cfg.terminal_statuses)
    state = build_scope_state(snapshot, items, resolve_now(snapshot, now), cfg)
    users = {u.id: u.name for u in snapshot.users}

    record = item_record(item, state, depth=compute_depths(items).get(item.id, 0), users=users)
    summary = summary_for(state.summaries, item.id)
    record["primary_block_id"] = summary.blocks[0].block_id if summary.blocks else None
    record["blockers"] = [
        {
            "blocker_id": b.id,
            "kind": b.kind,
            "text": b.text,
            "created_at": b.created_at,
            "cleared_at": b.resolved_at,
        }
        for b in snapshot.blockers
        if b.item_id == item.id
    ]
    return record


def item_record(
    item: WorkItem,
    state: ScopeState,
    *,
    depth: int = 0,
    users: Optional[dict[str, Optional[str]]] = None,
) -> dict[str, Any]:
    summary = summary_for(state.summaries, item.id)
    rollup = state.rollups[item.id]
    projections = state.projections
    active = state.active_blockers.get(item.id, 0)
    unmet = state.unmet.get(item.id, 0)
    assignee_name = (users or {}).get(item.assignee_user_id) if item.assignee_user_id else None

    return {
        "id": item.id,
        "project_id": item.project_id,
        "type": item.type,
        "title": item.title,
        "parent_id": item.parent_id,
        "depth": depth,
        "status": item.status,
        "priority": item.priority,
        "sort_order": item.sequence_rank,
        "due_at": item.due_at,
        "archived_at": item.archived_at,
        "completed_on": item.completed_at,
        "estimate_mode": item.estimate_mode,
        "estimate_minutes": item.estimate_minutes,
        "health": item.health,
        "notes": item.notes,
        "assignee_id": item.assignee_user_id,
        "assignee_name": assignee_name,
        "schedule": {
            "has_blocks": summary.count > 0,
            "scheduled_minutes_total": summary.total_minutes,
            "schedule_start_at": summary.start,
            "schedule_end_at": summary.end,
        },
        "schedule_start_at": summary.start,
        "schedule_end_at": summary.end,
        "scheduled_blocks": [
            {
                "block_id": b.block_id,
                "start_at": b.start_at,
                "duration_minutes": b.duration_minutes,
                "end_at": b.end_at,
            }
            for b in summary.blocks
        ],
        "depends_on": [e.depends_on_id for e in state.edges if e.item_id == item.id],
        "blocked": {
            "is_blocked": state.blocked[item.id],
            "blocked_by_deps": unmet > 0,
            "blocked_by_blockers": active > 0,
            "active_blocker_count": active,
            "unmet_dependency_count": unmet,
            "schedule_violation_count": projections.schedule_violation_count(item.id),
        },
        "blockers_count": state.blocker_totals.get(item.id, 0),
        "blocked_by": [e.to_dict() for e in projections.blocked_by_for(item.id)],
        "blocking": [e.to_dict() for e in projections.blocking_for(item.id)],
        "slack_minutes": compute_slack_minutes(item.due_at, summary.end),
        "is_overdue": state.overdue[item.id],
        "actual_minutes": state.actuals.get(item.id, 0),
        "rollup_estimate_minutes": rollup.estimate_total,
        "rollup_actual_minutes": rollup.actual_total,
        "rollup_remaining_minutes": rollup.remaining,
        "rollup_start_at": rollup.start,
        "rollup_end_at": rollup.end,
        "rollup_blocked_count": rollup.blocked_count,
        "rollup_overdue_count": rollup.overdue_count,
    }


def _list_order(item: WorkItem) -> tuple:
    return (
        item.sequence_rank,
        item.due_at is None,
        item.due_at.timestamp() if item.due_at is not None else 0.0,
        item.title,
    )
