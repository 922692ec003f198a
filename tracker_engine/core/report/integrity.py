from __future__ import annotations

import logging
from typing import Any

from tracker_engine.core.graph.graph_guard import build_dependency_graph, find_all_cycles, find_parent_cycles
from tracker_engine.core.model import Scope, Snapshot


logger = logging.getLogger(__name__)


# Structural defects reported (never repaired):
# - invalid_block_durations: blocks with duration_minutes <= 0
# - orphan_blocks: blocks whose item is gone
# - orphan_dependencies: edges with a missing endpoint
# - dependency_cycles: loops in the scope's precedence graph
# - assignees_not_members: assignee is not a member of the item's project
# - parent_cycles: loops in parent_id chains (not rejected anywhere else)


def integrity_report(snapshot: Snapshot, scope: Scope) -> dict[str, Any]:
    items = [item for item in snapshot.items if scope.contains(item)]
    scoped_ids = {item.id for item in items}
    all_ids = {item.id for item in snapshot.items}

    invalid_block_durations = [
        {"id": b.id, "item_id": b.item_id, "duration_minutes": b.duration_minutes}
        for b in snapshot.scheduled_blocks
        if b.duration_minutes <= 0
    ]
    orphan_blocks = [
        {"id": b.id, "item_id": b.item_id}
        for b in snapshot.scheduled_blocks
        if b.item_id not in all_ids
    ]
    orphan_dependencies = [
        {"id": e.id, "item_id": e.item_id, "depends_on_id": e.depends_on_id}
        for e in snapshot.dependencies
        if e.item_id not in all_ids or e.depends_on_id not in all_ids
    ]

    graph = build_dependency_graph(e for e in snapshot.dependencies if e.item_id in scoped_ids)
    dependency_cycles = find_all_cycles(graph)

    members = {(m.project_id, m.user_id) for m in snapshot.project_members}
    assignees_not_members = [
        {"id": item.id, "project_id": item.project_id, "assignee_user_id": item.assignee_user_id}
        for item in items
        if item.assignee_user_id is not None and (item.project_id, item.assignee_user_id) not in members
    ]

    parent_cycles = [c for c in find_parent_cycles(snapshot.items) if scoped_ids.intersection(c)]

    counts = {
        "items": len(items),
        "archived_items": sum(1 for item in items if item.archived_at is not None),
        "invalid_block_durations": len(invalid_block_durations),
        "orphan_blocks": len(orphan_blocks),
        "orphan_dependencies": len(orphan_dependencies),
        "dependency_cycles": len(dependency_cycles),
        "assignees_not_members": len(assignees_not_members),
        "parent_cycles": len(parent_cycles),
    }
    logger.debug("integrity %s:%s %s", scope.kind, scope.id, counts)

    return {
        "scope": {"kind": scope.kind, "id": scope.id},
        "counts": counts,
        "invalid_block_durations": invalid_block_durations,
        "orphan_blocks": orphan_blocks,
        "orphan_dependencies": orphan_dependencies,
        "dependency_cycles": dependency_cycles,
        "assignees_not_members": assignees_not_members,
        "parent_cycles": parent_cycles,
    }


def is_clean(report: dict[str, Any]) -> bool:
    counts = report["counts"]
    return all(v == 0 for k, v in counts.items() if k not in ("items", "archived_items"))
