"""Data models for worktrack."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
import uuid

from errors import ValidationError


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class TaskStatus(str, Enum):
    """Workflow columns, in board order."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    DONE = "done"

    @classmethod
    def from_str(cls, value: "str | TaskStatus") -> "TaskStatus":
        """Parse a status, accepting the in_progress and doing spellings."""
        if isinstance(value, TaskStatus):
            return value
        key = str(value).strip().lower().replace("_", "-")
        if key == "doing":
            key = "in-progress"
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown task status: {value!r}") from None


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_str(cls, value: "str | TaskPriority") -> "TaskPriority":
        if isinstance(value, TaskPriority):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown task priority: {value!r}") from None


@dataclass
class WorkInterval:
    """One running stretch of a timer session. end is None while running."""

    start: datetime
    end: Optional[datetime] = None

    def seconds(self, now: datetime) -> float:
        return ((self.end or now) - self.start).total_seconds()

    def to_dict(self) -> dict:
        return {"start": _iso(self.start), "end": _iso(self.end)}

    @classmethod
    def from_dict(cls, d: dict) -> "WorkInterval":
        return cls(start=_parse(d["start"]), end=_parse(d.get("end")))


@dataclass
class TimerSession:
    """The single live (running or paused) time-tracking session."""

    id: str
    task_id: str
    user_id: str
    start_time: datetime
    project_id: str = ""
    end_time: Optional[datetime] = None
    is_active: bool = True
    description: Optional[str] = None
    intervals: List[WorkInterval] = field(default_factory=list)

    def start_interval(self, now: datetime) -> None:
        """Open a new work interval (session started/resumed)."""
        self.intervals.append(WorkInterval(start=now))

    def end_interval(self, now: datetime) -> None:
        """Close the open work interval (session paused/stopped)."""
        if self.intervals and self.intervals[-1].end is None:
            self.intervals[-1].end = now

    def compute_elapsed(self, now: datetime) -> float:
        """Active seconds: closed intervals plus the open one up to now.

        Paused stretches lie between intervals and are never counted.
        """
        return max(0.0, sum(iv.seconds(now) for iv in self.intervals))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "is_active": self.is_active,
            "description": self.description,
            "intervals": [iv.to_dict() for iv in self.intervals],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "TimerSession":
        start_time = _parse(d["start_time"])
        intervals = [WorkInterval.from_dict(iv) for iv in d.get("intervals", [])]
        is_active = bool(d.get("is_active", True))
        # Sessions written without interval history count from start_time
        if not intervals and is_active:
            intervals = [WorkInterval(start=start_time)]
        return cls(
            id=d["id"],
            task_id=d["task_id"],
            user_id=d.get("user_id", ""),
            start_time=start_time,
            project_id=d.get("project_id", ""),
            end_time=_parse(d.get("end_time")),
            is_active=is_active,
            description=d.get("description"),
            intervals=intervals,
        )


@dataclass(frozen=True)
class TimeEntry:
    """Immutable record of hours worked on a task."""

    id: str
    task_id: str
    user_id: str
    hours: float
    entry_date: datetime
    created_at: datetime
    project_id: str = ""
    description: str = ""
    start_time: Optional[datetime] = None  # set for timer-derived entries
    end_time: Optional[datetime] = None
    source: str = "manual"  # "manual" or "timer"

    @property
    def started_at(self) -> datetime:
        """Instant the work began (entry date for manual entries)."""
        return self.start_time or self.entry_date

    def to_dict(self) -> dict:
        d = asdict(self)
        for key in ("entry_date", "created_at", "start_time", "end_time"):
            d[key] = _iso(d[key])
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TimeEntry":
        return cls(
            id=d["id"],
            task_id=d["task_id"],
            user_id=d.get("user_id", ""),
            hours=float(d["hours"]),
            entry_date=_parse(d["entry_date"]),
            created_at=_parse(d["created_at"]),
            project_id=d.get("project_id", ""),
            description=d.get("description", ""),
            start_time=_parse(d.get("start_time")),
            end_time=_parse(d.get("end_time")),
            source=d.get("source", "manual"),
        )


@dataclass
class Task:
    """A unit of work on the board."""

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    description: str = ""
    project: str = ""
    assignee: str = ""
    estimated_hours: float = 0.0
    logged_hours: float = 0.0  # cached sum of time entry hours
    due_date: Optional[datetime] = None
    time_entry_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        d["priority"] = self.priority.value
        for key in ("created_at", "updated_at", "due_date"):
            d[key] = _iso(d[key])
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Task":
        return cls(
            id=d["id"],
            title=d["title"],
            created_at=_parse(d["created_at"]),
            updated_at=_parse(d.get("updated_at") or d["created_at"]),
            status=TaskStatus.from_str(d.get("status", "todo")),
            priority=TaskPriority.from_str(d.get("priority", "medium")),
            description=d.get("description", ""),
            project=d.get("project", ""),
            assignee=d.get("assignee", ""),
            estimated_hours=float(d.get("estimated_hours", 0.0)),
            logged_hours=float(d.get("logged_hours", 0.0)),
            due_date=_parse(d.get("due_date")),
            time_entry_ids=list(d.get("time_entry_ids", [])),
        )


@dataclass
class KanbanColumn:
    """Derived view of the tasks in one workflow status."""

    status: TaskStatus
    title: str
    wip_limit: Optional[int] = None
    tasks: List[Task] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return self.wip_limit is not None and len(self.tasks) >= self.wip_limit

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "title": self.title,
            "wip_limit": self.wip_limit,
            "tasks": [t.to_dict() for t in self.tasks],
        }
