import random

from tracker_engine.core.graph.graph_guard import (
    build_dependency_graph,
    find_all_cycles,
    find_parent_cycles,
    project_edges,
    would_create_cycle,
)
from tracker_engine.core.model import DependencyEdge, WorkItem


def edge(succ, pred):
    return DependencyEdge(id=f"{succ}->{pred}", item_id=succ, depends_on_id=pred)


def item(nid, project="p1", parent=None):
    return WorkItem(id=nid, project_id=project, type="task", title=nid, status="ready", parent_id=parent)


def diamond():
    # B and C depend on A; D depends on B and C
    return build_dependency_graph([edge("B", "A"), edge("C", "A"), edge("D", "B"), edge("D", "C")])


def test_self_loop_always_rejected():
    assert would_create_cycle({}, "A", "A") is True
    assert would_create_cycle(diamond(), "D", "D") is True


def test_diamond_rejects_back_edges():
    g = diamond()
    # A depends on D: D already reaches A through B
    assert would_create_cycle(g, "A", "D") is True
    # B depends on D: D already reaches B
    assert would_create_cycle(g, "B", "D") is True


def test_diamond_accepts_redundant_edge():
    assert would_create_cycle(diamond(), "D", "A") is False


def test_guard_does_not_mutate_graph():
    g = diamond()
    before = {k: list(v) for k, v in g.items()}
    would_create_cycle(g, "A", "D")
    would_create_cycle(g, "D", "A")
    assert g == before


def test_symmetry_after_insert():
    g = build_dependency_graph([edge("X", "Y")])
    assert would_create_cycle(g, "Y", "X") is True


def test_serial_checked_insertions_stay_acyclic():
    rng = random.Random(7)
    nodes = [f"n{i}" for i in range(12)]
    edges = []
    for _ in range(200):
        succ, pred = rng.choice(nodes), rng.choice(nodes)
        graph = build_dependency_graph(edges)
        if not would_create_cycle(graph, succ, pred):
            edges.append(edge(succ, pred))
    assert edges
    assert find_all_cycles(build_dependency_graph(edges)) == []


def test_find_all_cycles_reports_loop():
    g = build_dependency_graph([edge("A", "B"), edge("B", "C"), edge("C", "A"), edge("D", "A")])
    cycles = find_all_cycles(g)
    assert len(cycles) == 1
    assert sorted(cycles[0]) == ["A", "B", "C"]


def test_project_edges_keeps_successors_in_project():
    items = [item("A"), item("B"), item("X", project="p2")]
    edges = [edge("A", "B"), edge("X", "A")]
    assert [e.id for e in project_edges(edges, items, "p1")] == ["A->B"]


def test_parent_cycles_found_and_trees_ignored():
    items = [item("R"), item("K", parent="R"), item("C1", parent="C2"), item("C2", parent="C1")]
    cycles = find_parent_cycles(items)
    assert len(cycles) == 1
    assert sorted(cycles[0]) == ["C1", "C2"]
