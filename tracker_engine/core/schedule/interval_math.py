"""Precedence math between schedule windows.

Every read view goes through these functions, so a dependency edge reports the
same status in the list view, the blocked view and the execution window.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from tracker_engine.core.model import DependencyProjection, DependencyStatus, ScheduleWindow


DEPENDENCY_TYPES: tuple[str, ...] = ("FS", "SS", "FF", "SF")

MISSING_SCHEDULE_REASON = "Missing schedule data"


def derive_end(start: Optional[datetime], duration_minutes: Optional[int]) -> Optional[datetime]:
    if start is None or duration_minutes is None:
        return None
    return start + timedelta(minutes=duration_minutes)


def compute_slack_minutes(due_at: Optional[datetime], planned_end: Optional[datetime]) -> Optional[int]:
    """Minutes between the due date and the planned end; negative means late."""
    if due_at is None or planned_end is None:
        return None
    # halves round up, so -1.5 -> -1 and 2.5 -> 3
    return math.floor((due_at - planned_end).total_seconds() / 60 + 0.5)


def evaluate_dependency(
    predecessor: ScheduleWindow,
    successor: ScheduleWindow,
    type: str,
    lag_minutes: int,
) -> DependencyStatus:
    lag = timedelta(minutes=lag_minutes)

    # (predecessor bound, successor bound) compared by each mode.
    if type == "FS":
        pred, succ = predecessor.end, successor.start
    elif type == "SS":
        pred, succ = predecessor.start, successor.start
    elif type == "FF":
        pred, succ = predecessor.end, successor.end
    elif type == "SF":
        pred, succ = predecessor.start, successor.end
    else:
        return "unknown"

    if pred is None or succ is None:
        return "unknown"
    return "satisfied" if succ >= pred + lag else "violated"


def dependency_label(type: str, lag_minutes: int) -> str:
    return f"{type} {lag_minutes:+d}m"


def evaluate_with_reason(
    predecessor: ScheduleWindow,
    successor: ScheduleWindow,
    type: str,
    lag_minutes: int,
) -> DependencyProjection:
    status = evaluate_dependency(predecessor, successor, type, lag_minutes)
    if status == "unknown":
        return DependencyProjection(status=status, reason=MISSING_SCHEDULE_REASON)
    return DependencyProjection(status=status, reason=dependency_label(type, lag_minutes))
