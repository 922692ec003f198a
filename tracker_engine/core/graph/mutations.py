from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from tracker_engine.core.errors import DependencyError
from tracker_engine.core.graph.graph_guard import build_dependency_graph, project_edges, would_create_cycle
from tracker_engine.core.model import DependencyEdge, Snapshot
from tracker_engine.core.schedule.interval_math import DEPENDENCY_TYPES


logger = logging.getLogger(__name__)


# Rejections, checked in this order before anything is written:
# - E_REQUIRED_FIELD: item_id / depends_on_id missing
# - E_SELF_DEPENDENCY: an item cannot depend on itself
# - E_INVALID_DEPENDENCY_TYPE / E_INVALID_LAG: malformed edge attributes
# - E_ITEM_NOT_FOUND: either endpoint missing from the snapshot
# - E_CROSS_PROJECT: endpoints in different projects
# - E_ARCHIVED_ITEM: either endpoint archived
# - E_DEPENDENCY_CYCLE: the predecessor already depends on the successor


def edge_id_for(item_id: str, depends_on_id: str) -> str:
    return f"{item_id}->{depends_on_id}"


def add_dependency(
    snapshot: Snapshot,
    item_id: Any,
    depends_on_id: Any,
    type: Any = "FS",
    lag_minutes: Any = 0,
) -> tuple[Snapshot, DependencyEdge]:
    """Insert (or upsert) `item_id depends on depends_on_id`.

    Returns the new snapshot and the stored edge. The input snapshot is left
    untouched, so a rejected call has no partial effect.
    """
    succ_id = _require_id(item_id, "item_id")
    pred_id = _require_id(depends_on_id, "depends_on_id")
    if succ_id == pred_id:
        raise DependencyError(
            code="E_SELF_DEPENDENCY",
            message="dependency cannot point to itself",
            path="depends_on_id",
        )
    dep_type = _check_type(type)
    lag = _check_lag(lag_minutes)

    by_id = snapshot.items_by_id()
    successor = by_id.get(succ_id)
    predecessor = by_id.get(pred_id)
    for nid, found, path in ((succ_id, successor, "item_id"), (pred_id, predecessor, "depends_on_id")):
        if found is None:
            raise DependencyError(code="E_ITEM_NOT_FOUND", message=f"item not found: {nid}", path=path)
    assert successor is not None and predecessor is not None

    if successor.project_id != predecessor.project_id:
        raise DependencyError(
            code="E_CROSS_PROJECT",
            message="dependencies must be within the same project",
            path="depends_on_id",
        )
    if successor.archived_at is not None or predecessor.archived_at is not None:
        raise DependencyError(
            code="E_ARCHIVED_ITEM",
            message="cannot depend on archived item",
            path="depends_on_id",
        )

    graph = build_dependency_graph(
        project_edges(snapshot.dependencies, snapshot.items, successor.project_id)
    )
    if would_create_cycle(graph, succ_id, pred_id):
        logger.warning("rejected %s: dependency cycle", edge_id_for(succ_id, pred_id))
        raise DependencyError(
            code="E_DEPENDENCY_CYCLE",
            message="dependency cycle detected",
            path="depends_on_id",
        )

    edges: list[DependencyEdge] = []
    stored: Optional[DependencyEdge] = None
    for e in snapshot.dependencies:
        if e.item_id == succ_id and e.depends_on_id == pred_id:
            stored = replace(e, type=dep_type, lag_minutes=lag)
            edges.append(stored)
        else:
            edges.append(e)
    if stored is None:
        stored = DependencyEdge(
            id=edge_id_for(succ_id, pred_id),
            item_id=succ_id,
            depends_on_id=pred_id,
            type=dep_type,
            lag_minutes=lag,
        )
        edges.append(stored)

    logger.info("stored dependency %s (%s)", stored.id, stored.type)
    return replace(snapshot, dependencies=edges), stored


def update_dependency(
    snapshot: Snapshot,
    dependency_id: Any,
    type: Any = None,
    lag_minutes: Any = None,
) -> tuple[Snapshot, DependencyEdge]:
    dep_id = _require_id(dependency_id, "dependency_id")
    index = next((i for i, e in enumerate(snapshot.dependencies) if e.id == dep_id), None)
    if index is None:
        raise DependencyError(
            code="E_DEPENDENCY_NOT_FOUND",
            message=f"dependency not found: {dep_id}",
            path="dependency_id",
        )

    updated = snapshot.dependencies[index]
    if type is not None:
        updated = replace(updated, type=_check_type(type))
    if lag_minutes is not None:
        updated = replace(updated, lag_minutes=_check_lag(lag_minutes))

    edges = list(snapshot.dependencies)
    edges[index] = updated
    return replace(snapshot, dependencies=edges), updated


def remove_dependency(
    snapshot: Snapshot,
    dependency_id: Any = None,
    item_id: Any = None,
    depends_on_id: Any = None,
) -> tuple[Snapshot, int]:
    """Delete by edge id, or by endpoint pair. Returns the number of edges removed."""
    if _is_id(dependency_id):
        dep_id = str(dependency_id).strip()
        if not any(e.id == dep_id for e in snapshot.dependencies):
            raise DependencyError(
                code="E_DEPENDENCY_NOT_FOUND",
                message=f"dependency not found: {dep_id}",
                path="dependency_id",
            )
        edges = [e for e in snapshot.dependencies if e.id != dep_id]
    elif _is_id(item_id) and _is_id(depends_on_id):
        succ_id, pred_id = str(item_id).strip(), str(depends_on_id).strip()
        edges = [
            e
            for e in snapshot.dependencies
            if not (e.item_id == succ_id and e.depends_on_id == pred_id)
        ]
    else:
        raise DependencyError(
            code="E_REQUIRED_FIELD",
            message="dependency identifiers are required",
            path="dependency_id",
        )

    removed = len(snapshot.dependencies) - len(edges)
    return replace(snapshot, dependencies=edges), removed


@dataclass(frozen=True)
class OpResult:
    op_name: str
    ok: bool
    result: Optional[dict[str, Any]] = None
    error: Optional[DependencyError] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"op": self.op_name, "ok": self.ok}
        if self.ok:
            out["result"] = self.result
        else:
            assert self.error is not None
            out["error"] = {"code": self.error.code, "message": self.error.message}
        return out


@dataclass(frozen=True)
class BatchResult:
    snapshot: Snapshot
    results: list[OpResult]

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)


def apply_dependency_ops(snapshot: Snapshot, ops: list[dict[str, Any]]) -> BatchResult:
    """Apply ops serially. A rejected op is recorded and skipped; later ops still run."""
    current = snapshot
    results: list[OpResult] = []

    for i, op in enumerate(ops):
        op_name: Any = None
        args: Any = {}
        if isinstance(op, dict):
            op_name = op.get("op")
            args = op.get("args") or {}
        name = op_name if isinstance(op_name, str) else f"ops[{i}]"
        try:
            if not isinstance(args, dict):
                raise DependencyError(code="E_INVALID_TYPE", message="args must be an object", path=f"ops[{i}].args")
            current, result = _apply_one(current, op_name, args, i)
        except DependencyError as e:
            results.append(OpResult(op_name=name, ok=False, error=e))
            continue
        results.append(OpResult(op_name=name, ok=True, result=result))

    return BatchResult(snapshot=current, results=results)


def _apply_one(
    snapshot: Snapshot, op_name: Any, args: dict[str, Any], index: int
) -> tuple[Snapshot, dict[str, Any]]:
    if op_name == "dependency.add":
        snap, edge = add_dependency(
            snapshot,
            args.get("item_id"),
            args.get("depends_on_id"),
            type=args.get("type", "FS"),
            lag_minutes=args.get("lag_minutes", 0),
        )
        return snap, edge_to_dict(edge)
    if op_name == "dependency.update":
        snap, edge = update_dependency(
            snapshot,
            args.get("dependency_id"),
            type=args.get("type"),
            lag_minutes=args.get("lag_minutes"),
        )
        return snap, edge_to_dict(edge)
    if op_name == "dependency.remove":
        snap, removed = remove_dependency(
            snapshot,
            dependency_id=args.get("dependency_id"),
            item_id=args.get("item_id"),
            depends_on_id=args.get("depends_on_id"),
        )
        return snap, {"removed": removed}
    raise DependencyError(
        code="E_UNKNOWN_OP",
        message=f"unknown op: {op_name} (choose one of: dependency.add, dependency.update, dependency.remove)",
        path=f"ops[{index}].op",
    )


def edge_to_dict(edge: DependencyEdge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "item_id": edge.item_id,
        "depends_on_id": edge.depends_on_id,
        "type": edge.type,
        "lag_minutes": edge.lag_minutes,
    }


def _is_id(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


def _require_id(v: Any, path: str) -> str:
    if not _is_id(v):
        raise DependencyError(code="E_REQUIRED_FIELD", message=f"{path} is required", path=path)
    return str(v).strip()


def _check_type(v: Any) -> Any:
    if v not in DEPENDENCY_TYPES:
        raise DependencyError(
            code="E_INVALID_DEPENDENCY_TYPE",
            message=f"invalid dependency type: {v} (choose one of: {', '.join(DEPENDENCY_TYPES)})",
            path="type",
        )
    return v


def _check_lag(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise DependencyError(code="E_INVALID_LAG", message="lag_minutes must be an integer", path="lag_minutes")
    return v
