from __future__ import annotations

import logging
from typing import Iterable, Iterator

from tracker_engine.core.model import DependencyEdge, WorkItem


logger = logging.getLogger(__name__)


# Precedence graph rules:
# - adjacency is item_id -> [depends_on_id, ...] and is rebuilt on every call
# - the graph is always restricted to one project's edges
# - a proposed edge is rejected when its predecessor already reaches its successor


def build_dependency_graph(edges: Iterable[DependencyEdge]) -> dict[str, list[str]]:
    graph: dict[str, list[str]] = {}
    for edge in edges:
        graph.setdefault(edge.item_id, []).append(edge.depends_on_id)
    return graph


def project_edges(
    edges: Iterable[DependencyEdge], items: Iterable[WorkItem], project_id: str
) -> list[DependencyEdge]:
    """Edges whose successor belongs to the project."""
    ids = {item.id for item in items if item.project_id == project_id}
    return [e for e in edges if e.item_id in ids]


def would_create_cycle(graph: dict[str, list[str]], item_id: str, depends_on_id: str) -> bool:
    """Would `item_id depends on depends_on_id` close a loop?

    True when the proposed predecessor already (transitively) depends on the
    proposed successor. `graph` is not modified.
    """
    if item_id == depends_on_id:
        return True

    trial = {k: list(v) for k, v in graph.items()}
    trial.setdefault(item_id, []).append(depends_on_id)

    stack: list[str] = [depends_on_id]
    seen: set[str] = set()
    while stack:
        cur = stack.pop()
        if cur == item_id:
            logger.debug("cycle: %s already reaches %s", depends_on_id, item_id)
            return True
        if cur in seen:
            continue
        seen.add(cur)
        for nxt in trial.get(cur, []):
            if nxt not in seen:
                stack.append(nxt)
    return False


def find_all_cycles(graph: dict[str, list[str]]) -> list[list[str]]:
    """Enumerate cycles met by a full depth-first walk.

    Each cycle is the slice of the active path from the revisited node to the
    node that pointed back at it. Walk order follows the graph's key order.
    """
    visited: set[str] = set()
    on_path: set[str] = set()
    cycles: list[list[str]] = []

    for root in list(graph.keys()):
        if root in visited:
            continue
        visited.add(root)
        on_path.add(root)
        path: list[str] = [root]
        stack: list[Iterator[str]] = [iter(graph.get(root, []))]

        while stack:
            descended = False
            for nxt in stack[-1]:
                if nxt in on_path:
                    cycles.append(path[path.index(nxt) :])
                elif nxt not in visited:
                    visited.add(nxt)
                    on_path.add(nxt)
                    path.append(nxt)
                    stack.append(iter(graph.get(nxt, [])))
                    descended = True
                    break
            if not descended:
                stack.pop()
                on_path.discard(path.pop())

    return cycles


def find_parent_cycles(items: Iterable[WorkItem]) -> list[list[str]]:
    """Loops in parent_id chains. Reported only; reparenting is not guarded."""
    parent: dict[str, str | None] = {item.id: item.parent_id for item in items}

    ON_WALK, DONE = 1, 2
    state: dict[str, int] = {}
    cycles: list[list[str]] = []

    for start in parent:
        if start in state:
            continue
        walk: list[str] = []
        cur: str | None = start
        while cur is not None and cur in parent and cur not in state:
            state[cur] = ON_WALK
            walk.append(cur)
            cur = parent[cur]
        if cur is not None and state.get(cur) == ON_WALK:
            cycles.append(walk[walk.index(cur) :])
        for nid in walk:
            state[nid] = DONE

    return cycles
