"""Bottom-up aggregation over the parent/child item tree."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from tracker_engine.core.model import LeafMetrics, RollupAggregate, WorkItem


logger = logging.getLogger(__name__)

EMPTY_LEAF = LeafMetrics()


def compute_rollups(
    items: Iterable[WorkItem], leaf_metrics: dict[str, LeafMetrics]
) -> dict[str, RollupAggregate]:
    """Return one aggregate per item.

    Post-order walk with memoization, so every item is folded exactly once.
    A parent_id loop does not hang the walk: the child that points back at an
    ancestor still being folded is skipped for that ancestor.
    """
    items = list(items)
    by_id = {item.id: item for item in items}

    children: dict[str, list[str]] = {}
    for item in items:
        if item.parent_id is not None and item.parent_id in by_id:
            children.setdefault(item.parent_id, []).append(item.id)

    memo: dict[str, RollupAggregate] = {}
    in_progress: set[str] = set()

    for item in items:
        if item.id in memo:
            continue
        stack: list[tuple[str, bool]] = [(item.id, False)]
        while stack:
            nid, expanded = stack.pop()
            if nid in memo:
                continue
            if expanded:
                kids = [memo[c] for c in children.get(nid, []) if c in memo]
                memo[nid] = _fold(by_id[nid], leaf_metrics.get(nid, EMPTY_LEAF), kids)
                in_progress.discard(nid)
                continue

            in_progress.add(nid)
            stack.append((nid, True))
            for child in children.get(nid, []):
                if child in in_progress:
                    logger.warning("parent_id loop at %s -> %s; skipping", child, nid)
                    continue
                if child not in memo:
                    stack.append((child, False))

    return memo


def _fold(item: WorkItem, own: LeafMetrics, kids: list[RollupAggregate]) -> RollupAggregate:
    if item.estimate_mode == "rollup":
        estimate = sum(k.estimate_total for k in kids)
    else:
        # manual estimates stand in for the whole subtree
        estimate = own.estimate_minutes

    return RollupAggregate(
        start=_pick(min, [own.window.start] + [k.start for k in kids]),
        end=_pick(max, [own.window.end] + [k.end for k in kids]),
        estimate_total=estimate,
        actual_total=own.actual_minutes + sum(k.actual_total for k in kids),
        blocked_count=int(own.blocked) + sum(k.blocked_count for k in kids),
        overdue_count=int(own.overdue) + sum(k.overdue_count for k in kids),
    )


def _pick(fn: Callable[[list[datetime]], datetime], values: list[Optional[datetime]]) -> Optional[datetime]:
    present = [v for v in values if v is not None]
    return fn(present) if present else None
