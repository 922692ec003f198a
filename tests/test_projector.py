from datetime import datetime, timedelta, timezone

from tracker_engine.core.model import DependencyEdge, ScheduleWindow, WorkItem
from tracker_engine.core.project.projector import (
    is_item_blocked,
    project_dependencies,
    unmet_dependency_counts,
)

T0 = datetime(2026, 3, 2, tzinfo=timezone.utc)


def at(minutes):
    return T0 + timedelta(minutes=minutes)


def item(nid, status="ready"):
    return WorkItem(id=nid, project_id="p1", type="task", title=f"Title {nid}", status=status)


def edge(succ, pred, type="FS", lag=0):
    return DependencyEdge(id=f"{succ}->{pred}", item_id=succ, depends_on_id=pred, type=type, lag_minutes=lag)


def test_blocked_by_and_blocking_carry_counterpart():
    items = [item("A", status="done"), item("B")]
    windows = {
        "A": ScheduleWindow(start=at(0), end=at(60)),
        "B": ScheduleWindow(start=at(30), end=at(90)),
    }
    proj = project_dependencies(items, [edge("B", "A", lag=0)], windows)

    [incoming] = proj.blocked_by_for("B")
    assert incoming.item_id == "A"
    assert incoming.title == "Title A"
    assert incoming.item_status == "done"
    assert incoming.status == "violated"
    assert incoming.reason == "FS +0m"

    [outgoing] = proj.blocking_for("A")
    assert outgoing.item_id == "B"
    assert outgoing.item_status == "ready"
    assert outgoing.status == "violated"

    assert proj.by_edge["B->A"].status == "violated"
    assert proj.schedule_violation_count("B") == 1
    assert proj.schedule_blocked_ids() == {"B"}


def test_missing_window_projects_unknown():
    items = [item("A"), item("B")]
    proj = project_dependencies(items, [edge("B", "A")], {"B": ScheduleWindow(start=at(0), end=at(10))})
    [incoming] = proj.blocked_by_for("B")
    assert incoming.status == "unknown"
    assert incoming.reason == "Missing schedule data"
    assert proj.schedule_blocked_ids() == set()


def test_missing_counterpart_falls_back_to_id():
    proj = project_dependencies([item("B")], [edge("B", "GONE")], {})
    [incoming] = proj.blocked_by_for("B")
    assert incoming.title == "GONE"
    assert incoming.item_status is None


def test_two_blocked_signals_can_disagree():
    # predecessor done, but its block ends after the successor starts
    items = [item("A", status="done"), item("B")]
    windows = {
        "A": ScheduleWindow(start=at(0), end=at(120)),
        "B": ScheduleWindow(start=at(60), end=at(90)),
    }
    edges = [edge("B", "A")]
    assert project_dependencies(items, edges, windows).schedule_violation_count("B") == 1
    assert unmet_dependency_counts(items, edges) == {}

    # predecessor still open, but the schedule is consistent
    items = [item("A", status="in_progress"), item("B")]
    windows["B"] = ScheduleWindow(start=at(200), end=at(260))
    assert project_dependencies(items, edges, windows).schedule_violation_count("B") == 0
    assert unmet_dependency_counts(items, edges) == {"B": 1}


def test_missing_predecessor_counts_as_unmet():
    assert unmet_dependency_counts([item("B")], [edge("B", "GONE")]) == {"B": 1}


def test_is_item_blocked_flags():
    assert is_item_blocked(item("A", status="blocked"), 0, 0) is True
    assert is_item_blocked(item("A"), 1, 0) is True
    assert is_item_blocked(item("A"), 0, 2) is True
    assert is_item_blocked(item("A"), 0, 0) is False


def test_projection_is_idempotent():
    items = [item("A"), item("B"), item("C")]
    windows = {
        "A": ScheduleWindow(start=at(0), end=at(60)),
        "B": ScheduleWindow(start=at(90), end=at(120)),
    }
    edges = [edge("B", "A", lag=30), edge("C", "B", type="SS")]
    first = project_dependencies(items, edges, windows)
    second = project_dependencies(items, edges, windows)
    assert first == second
    assert repr(first) == repr(second)
