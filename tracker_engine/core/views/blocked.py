from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Optional

from tracker_engine.core.config.engine_config import EngineConfig, merged_config
from tracker_engine.core.model import Scope, Snapshot
from tracker_engine.core.schedule.summarize import summary_for
from tracker_engine.core.views.pipeline import build_scope_state, resolve_now, select_items


UNRESOLVED_BLOCKERS = "Unresolved blockers"
DEPENDENCY_NOT_SATISFIED = "Dependency not satisfied"


def blocked_view(
    snapshot: Snapshot,
    scope: Scope,
    *,
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> dict[str, Any]:
    """Everything that is blocked, grouped by why.

    ``blocked_by_dependencies`` is schedule-based (one row per violated edge),
    ``blocked_by_unmet_dependencies`` is status-based (predecessor not done).
    """
    cfg = config or merged_config()
    items = select_items(snapshot, scope, terminal_statuses=cfg.terminal_statuses)
    at = resolve_now(snapshot, now)
    state = build_scope_state(snapshot, items, at, cfg)

    by_dependencies: list[dict[str, Any]] = []
    by_unmet: list[dict[str, Any]] = []
    by_blockers: list[dict[str, Any]] = []
    for item in items:
        for edge in state.projections.blocked_by_for(item.id):
            if edge.status == "violated":
                by_dependencies.append(
                    {
                        "item_id": item.id,
                        "title": item.title,
                        "depends_on_id": edge.item_id,
                        "depends_on_title": edge.title,
                        "reason": edge.reason,
                        "status": edge.status,
                    }
                )
        unmet = state.unmet.get(item.id, 0)
        if unmet:
            by_unmet.append({"item_id": item.id, "title": item.title, "unmet_dependency_count": unmet})
        if state.active_blockers.get(item.id, 0):
            by_blockers.append({"item_id": item.id, "title": item.title, "reason": UNRESOLVED_BLOCKERS})

    horizon = at + timedelta(days=cfg.blocked_horizon_days)
    schedule_blocked = state.projections.schedule_blocked_ids()
    scheduled_but_blocked: list[dict[str, Any]] = []
    for item in items:
        has_blockers = state.active_blockers.get(item.id, 0) > 0
        if not has_blockers and item.id not in schedule_blocked:
            continue
        for b in summary_for(state.summaries, item.id).blocks:
            if b.start_at < at or b.start_at > horizon:
                continue
            scheduled_but_blocked.append(
                {
                    "item_id": item.id,
                    "title": item.title,
                    "block_id": b.block_id,
                    "start_at": b.start_at,
                    "duration_minutes": b.duration_minutes,
                    "reason": UNRESOLVED_BLOCKERS if has_blockers else DEPENDENCY_NOT_SATISFIED,
                }
            )
    scheduled_but_blocked.sort(key=lambda r: (r["start_at"], r["title"]))

    return {
        "blocked_by_dependencies": by_dependencies,
        "blocked_by_unmet_dependencies": by_unmet,
        "blocked_by_blockers": by_blockers,
        "scheduled_but_blocked": scheduled_but_blocked,
    }


def due_overdue(
    snapshot: Snapshot,
    scope: Scope,
    *,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> dict[str, Any]:
    cfg = config or merged_config()
    at = resolve_now(snapshot, now)
    cutoff = at + timedelta(days=cfg.due_soon_days if days is None else days)
    items = select_items(snapshot, scope, include_completed=False, terminal_statuses=cfg.terminal_statuses)

    overdue: list[dict[str, Any]] = []
    due_soon: list[dict[str, Any]] = []
    for item in sorted((i for i in items if i.due_at is not None), key=lambda i: (i.due_at, i.title)):
        assert item.due_at is not None
        row = {
            "item_id": item.id,
            "title": item.title,
            "due_at": item.due_at,
            "days_until_due": math.ceil((item.due_at - at).total_seconds() / 86400),
        }
        if item.due_at < at:
            overdue.append(row)
        elif item.due_at <= cutoff:
            due_soon.append(row)

    return {"overdue": overdue, "due_soon": due_soon}
