from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from tracker_engine.core.config.engine_config import EngineConfig, merged_config
from tracker_engine.core.model import BlockPlacement, Scope, Snapshot, WorkItem
from tracker_engine.core.schedule.interval_math import compute_slack_minutes
from tracker_engine.core.schedule.summarize import summarize_blocks, summary_for
from tracker_engine.core.views.pipeline import (
    ScopeState,
    build_scope_state,
    require_window,
    resolve_now,
    select_items,
)


def execution_window(
    snapshot: Snapshot,
    scope: Scope,
    window_start: Optional[datetime],
    window_end: Optional[datetime],
    *,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> dict[str, Any]:
    """What is placed inside the window, and what is ready but not placed yet."""
    start, end = require_window(window_start, window_end)
    cfg = config or merged_config()
    max_items = max(1, cfg.execution_window_limit if limit is None else limit)

    items = select_items(snapshot, scope, terminal_statuses=cfg.terminal_statuses)
    state = build_scope_state(snapshot, items, resolve_now(snapshot, now), cfg)

    in_window = [(b, state.items_by_id[b.item_id]) for b in _overlapping(state, items, start, end)]
    scheduled = [_block_row(b, item) for b, item in in_window]
    scheduled.sort(key=lambda r: (r["start_at"], r["title"]))

    placed = {b.item_id for b, _ in in_window}
    schedule_blocked = state.projections.schedule_blocked_ids()
    ready = [
        item
        for item in items
        if item.status in cfg.ready_statuses
        and item.status not in cfg.terminal_statuses
        and state.active_blockers.get(item.id, 0) == 0
        and item.id not in schedule_blocked
        and item.id not in placed
    ]
    ready.sort(key=lambda item: _ready_order(item, state))

    return {
        "window_start": start,
        "window_end": end,
        "scheduled": scheduled,
        "ready_unscheduled": [_ready_row(item, state) for item in ready[:max_items]],
    }


def calendar_view(
    snapshot: Snapshot,
    scope: Scope,
    window_start: Optional[datetime],
    window_end: Optional[datetime],
    *,
    include_archived: bool = False,
    config: Optional[EngineConfig] = None,
) -> dict[str, Any]:
    start, end = require_window(window_start, window_end)
    cfg = config or merged_config()
    items = select_items(
        snapshot, scope, include_archived=include_archived, terminal_statuses=cfg.terminal_statuses
    )
    by_id = {item.id: item for item in items}

    blocks = [
        _block_row(b, by_id[b.item_id])
        for b in _overlapping_blocks(snapshot, by_id, start, end)
    ]
    blocks.sort(key=lambda r: (r["start_at"], r["title"]))

    due_items = [
        {
            "item_id": item.id,
            "title": item.title,
            "status": item.status,
            "project_id": item.project_id,
            "assignee_user_id": item.assignee_user_id,
            "due_at": item.due_at,
        }
        for item in items
        if item.due_at is not None and start <= item.due_at <= end
    ]
    due_items.sort(key=lambda r: (r["due_at"], r["title"]))
    return {"blocks": blocks, "items": due_items}


def _overlapping(state: ScopeState, items: list[WorkItem], start: datetime, end: datetime) -> list[BlockPlacement]:
    out: list[BlockPlacement] = []
    for item in items:
        for b in summary_for(state.summaries, item.id).blocks:
            if b.end_at > start and b.start_at < end:
                out.append(b)
    return out


def _overlapping_blocks(
    snapshot: Snapshot, by_id: dict[str, WorkItem], start: datetime, end: datetime
) -> list[BlockPlacement]:
    summaries = summarize_blocks(b for b in snapshot.scheduled_blocks if b.item_id in by_id)
    return [
        b
        for s in summaries.values()
        for b in s.blocks
        if b.end_at > start and b.start_at < end
    ]


def _block_row(block: BlockPlacement, item: WorkItem) -> dict[str, Any]:
    return {
        "block_id": block.block_id,
        "item_id": block.item_id,
        "start_at": block.start_at,
        "duration_minutes": block.duration_minutes,
        "end_at": block.end_at,
        "title": item.title,
        "status": item.status,
        "project_id": item.project_id,
        "assignee_user_id": item.assignee_user_id,
        "due_at": item.due_at,
    }


def _slack(item: WorkItem, state: ScopeState) -> Optional[int]:
    return compute_slack_minutes(item.due_at, summary_for(state.summaries, item.id).end)


def _ready_order(item: WorkItem, state: ScopeState) -> tuple:
    slack = _slack(item, state)
    return (
        item.due_at is None,
        item.due_at.timestamp() if item.due_at is not None else 0.0,
        slack is None,
        slack if slack is not None else 0,
        -item.priority,
        item.sequence_rank,
        item.title,
    )


def _ready_row(item: WorkItem, state: ScopeState) -> dict[str, Any]:
    return {
        "item_id": item.id,
        "title": item.title,
        "status": item.status,
        "priority": item.priority,
        "due_at": item.due_at,
        "estimate_minutes": item.estimate_minutes,
        "slack_minutes": _slack(item, state),
    }
