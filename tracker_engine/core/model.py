from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional


ItemType = Literal["project", "milestone", "task", "subtask"]
ItemStatus = Literal["backlog", "ready", "in_progress", "blocked", "review", "done", "canceled"]
EstimateMode = Literal["manual", "rollup"]
DependencyType = Literal["FS", "SS", "FF", "SF"]
DependencyStatus = Literal["satisfied", "violated", "unknown"]
ScopeKind = Literal["project", "user"]


@dataclass(frozen=True)
class WorkItem:
    id: str
    project_id: str
    type: ItemType
    title: str
    status: ItemStatus

    parent_id: Optional[str] = None
    priority: int = 0
    sequence_rank: int = 0
    due_at: Optional[datetime] = None
    estimate_minutes: int = 0
    estimate_mode: EstimateMode = "manual"
    assignee_user_id: Optional[str] = None
    archived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    health: str = "unknown"
    notes: Optional[str] = None


@dataclass(frozen=True)
class DependencyEdge:
    id: str
    item_id: str  # successor
    depends_on_id: str  # predecessor
    type: DependencyType = "FS"
    lag_minutes: int = 0


@dataclass(frozen=True)
class ScheduledBlock:
    id: str
    item_id: str
    start_at: datetime
    duration_minutes: int


@dataclass(frozen=True)
class TimeEntry:
    id: str
    item_id: str
    duration_minutes: int


@dataclass(frozen=True)
class Blocker:
    id: str
    item_id: str
    kind: str = "general"
    text: str = ""
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectMember:
    project_id: str
    user_id: str
    role: str = "editor"


@dataclass(frozen=True)
class User:
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time copy of everything the engine reads from storage."""

    schema_version: str
    items: list[WorkItem] = field(default_factory=list)
    dependencies: list[DependencyEdge] = field(default_factory=list)
    scheduled_blocks: list[ScheduledBlock] = field(default_factory=list)
    time_entries: list[TimeEntry] = field(default_factory=list)
    blockers: list[Blocker] = field(default_factory=list)
    project_members: list[ProjectMember] = field(default_factory=list)
    users: list[User] = field(default_factory=list)
    now: Optional[datetime] = None

    def items_by_id(self) -> dict[str, WorkItem]:
        return {item.id: item for item in self.items}


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    id: str

    def contains(self, item: WorkItem) -> bool:
        if self.kind == "project":
            return item.project_id == self.id
        return item.assignee_user_id == self.id


@dataclass(frozen=True)
class ScheduleWindow:
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class BlockPlacement:
    block_id: str
    item_id: str
    start_at: datetime
    duration_minutes: int
    end_at: datetime


@dataclass(frozen=True)
class ScheduleSummary:
    count: int
    total_minutes: int
    start: Optional[datetime]
    end: Optional[datetime]
    blocks: list[BlockPlacement] = field(default_factory=list)

    @property
    def window(self) -> ScheduleWindow:
        return ScheduleWindow(start=self.start, end=self.end)


@dataclass(frozen=True)
class DependencyProjection:
    status: DependencyStatus
    reason: str


@dataclass(frozen=True)
class LeafMetrics:
    """An item's own contribution to the rollup, before descendants are folded in."""

    window: ScheduleWindow = ScheduleWindow()
    estimate_minutes: int = 0
    actual_minutes: int = 0
    blocked: bool = False
    overdue: bool = False


@dataclass(frozen=True)
class RollupAggregate:
    start: Optional[datetime]
    end: Optional[datetime]
    estimate_total: int
    actual_total: int
    blocked_count: int
    overdue_count: int

    @property
    def remaining(self) -> int:
        return max(0, self.estimate_total - self.actual_total)
