"""Per-edge dependency status and per-item blocked_by / blocking projections.

Two notions of "blocked by a dependency" live side by side here and are not
reconciled:

- schedule-based: an incoming edge evaluates to ``violated`` against both
  endpoints' schedule windows;
- status-based: an incoming edge's predecessor is not ``done`` yet, whatever
  the schedule says.

They can disagree (a done predecessor whose block still overlaps, or a
satisfied schedule whose predecessor is still open). Callers pick which one to
show.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from tracker_engine.core.model import (
    DependencyEdge,
    DependencyProjection,
    DependencyStatus,
    ScheduleWindow,
    WorkItem,
)
from tracker_engine.core.schedule.interval_math import evaluate_with_reason


UNKNOWN_WINDOW = ScheduleWindow()


@dataclass(frozen=True)
class EdgeView:
    """One dependency seen from one of its endpoints.

    ``item_id``/``title``/``item_status`` describe the counterpart: the
    predecessor in ``blocked_by`` lists, the successor in ``blocking`` lists.
    """

    edge_id: str
    item_id: str
    title: str
    item_status: Optional[str]
    type: str
    lag_minutes: int
    status: DependencyStatus
    reason: str

    def to_dict(self) -> dict:
        return {
            "edge_id": self.edge_id,
            "item_id": self.item_id,
            "title": self.title,
            "item_status": self.item_status,
            "type": self.type,
            "lag_minutes": self.lag_minutes,
            "status": self.status,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DependencyProjections:
    by_edge: dict[str, DependencyProjection] = field(default_factory=dict)
    blocked_by: dict[str, list[EdgeView]] = field(default_factory=dict)
    blocking: dict[str, list[EdgeView]] = field(default_factory=dict)

    def blocked_by_for(self, item_id: str) -> list[EdgeView]:
        return self.blocked_by.get(item_id, [])

    def blocking_for(self, item_id: str) -> list[EdgeView]:
        return self.blocking.get(item_id, [])

    def schedule_violation_count(self, item_id: str) -> int:
        return sum(1 for e in self.blocked_by_for(item_id) if e.status == "violated")

    def schedule_blocked_ids(self) -> set[str]:
        return {nid for nid in self.blocked_by if self.schedule_violation_count(nid) > 0}


def project_edge(edge: DependencyEdge, windows: dict[str, ScheduleWindow]) -> DependencyProjection:
    return evaluate_with_reason(
        windows.get(edge.depends_on_id, UNKNOWN_WINDOW),
        windows.get(edge.item_id, UNKNOWN_WINDOW),
        edge.type,
        edge.lag_minutes,
    )


def project_dependencies(
    items: Iterable[WorkItem],
    edges: Iterable[DependencyEdge],
    windows: dict[str, ScheduleWindow],
) -> DependencyProjections:
    by_id = {item.id: item for item in items}
    by_edge: dict[str, DependencyProjection] = {}
    blocked_by: dict[str, list[EdgeView]] = {}
    blocking: dict[str, list[EdgeView]] = {}

    for edge in edges:
        proj = project_edge(edge, windows)
        by_edge[edge.id] = proj

        predecessor = by_id.get(edge.depends_on_id)
        successor = by_id.get(edge.item_id)

        blocked_by.setdefault(edge.item_id, []).append(
            _edge_view(edge, proj, edge.depends_on_id, predecessor)
        )
        blocking.setdefault(edge.depends_on_id, []).append(
            _edge_view(edge, proj, edge.item_id, successor)
        )

    return DependencyProjections(by_edge=by_edge, blocked_by=blocked_by, blocking=blocking)


def unmet_dependency_counts(
    items: Iterable[WorkItem], edges: Iterable[DependencyEdge]
) -> dict[str, int]:
    """Status-based signal: incoming edges whose predecessor is not done.

    A predecessor missing from ``items`` counts as unmet.
    """
    by_id = {item.id: item for item in items}
    counts: dict[str, int] = {}
    for edge in edges:
        predecessor = by_id.get(edge.depends_on_id)
        if predecessor is None or predecessor.status != "done":
            counts[edge.item_id] = counts.get(edge.item_id, 0) + 1
    return counts


def is_item_blocked(item: WorkItem, active_blockers: int, unmet_dependencies: int) -> bool:
    return item.status == "blocked" or active_blockers > 0 or unmet_dependencies > 0


def _edge_view(
    edge: DependencyEdge,
    proj: DependencyProjection,
    counterpart_id: str,
    counterpart: Optional[WorkItem],
) -> EdgeView:
    return EdgeView(
        edge_id=edge.id,
        item_id=counterpart_id,
        title=counterpart.title if counterpart else counterpart_id,
        item_status=counterpart.status if counterpart else None,
        type=edge.type,
        lag_minutes=edge.lag_minutes,
        status=proj.status,
        reason=proj.reason,
    )
