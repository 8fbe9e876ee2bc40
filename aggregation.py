"""Derived board views: logged hours, columns and statistics.

Everything here is a pure function of the task list and the time entry
log; nothing is cached.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from config import COLUMN_TITLES
from models import KanbanColumn, Task, TaskPriority, TaskStatus, TimeEntry


@dataclass
class BoardStats:
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    total_logged_hours: float
    today_hours: float
    efficiency: float  # logged / estimated, 0 without estimates

    def to_dict(self) -> dict:
        return asdict(self)


def logged_hours(task_id: str, entries: Iterable[TimeEntry]) -> float:
    """Sum of hours over the entries attributed to task_id."""
    return sum(e.hours for e in entries if e.task_id == task_id)


def columns_view(
    tasks: Sequence[Task],
    wip_limits: Optional[Mapping[str, Optional[int]]] = None,
) -> List[KanbanColumn]:
    """Partition tasks by status, keeping their relative order."""
    limits = wip_limits or {}
    columns = {
        status: KanbanColumn(
            status=status,
            title=COLUMN_TITLES.get(status.value, status.value),
            wip_limit=limits.get(status.value),
        )
        for status in TaskStatus
    }
    for task in tasks:
        columns[task.status].tasks.append(task)
    return list(columns.values())


def _same_day(instant: datetime, now: datetime) -> bool:
    if instant.tzinfo is not None and now.tzinfo is not None:
        instant = instant.astimezone(now.tzinfo)
    return instant.date() == now.date()


def board_stats(
    tasks: Sequence[Task],
    entries: Iterable[TimeEntry],
    now: datetime,
) -> BoardStats:
    """Compute summary statistics for the board."""
    total_logged = sum(t.logged_hours for t in tasks)
    total_estimated = sum(t.estimated_hours for t in tasks)
    today = sum(e.hours for e in entries if _same_day(e.started_at, now))

    return BoardStats(
        total_tasks=len(tasks),
        completed_tasks=sum(1 for t in tasks if t.status == TaskStatus.DONE),
        in_progress_tasks=sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS),
        total_logged_hours=total_logged,
        today_hours=today,
        efficiency=total_logged / total_estimated if total_estimated > 0 else 0.0,
    )


def status_counts(tasks: Iterable[Task]) -> Dict[str, int]:
    counts = {status.value: 0 for status in TaskStatus}
    for task in tasks:
        counts[task.status.value] += 1
    return counts


def filter_tasks(
    tasks: Iterable[Task],
    project: Optional[str] = None,
    assignee: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Task]:
    """Return tasks matching every given filter. Empty filters match all."""
    wanted_priority = TaskPriority.from_str(priority) if priority else None
    needle = search.lower() if search else None

    matched = []
    for task in tasks:
        if project and task.project != project:
            continue
        if assignee and task.assignee != assignee:
            continue
        if wanted_priority and task.priority != wanted_priority:
            continue
        if needle and needle not in task.title.lower() and needle not in task.description.lower():
            continue
        matched.append(task)
    return matched


def task_progress(task: Task) -> float:
    """Logged hours as a percentage of the estimate."""
    if task.estimated_hours <= 0:
        return 0.0
    return task.logged_hours / task.estimated_hours * 100


def is_overdue(task: Task, now: datetime) -> bool:
    if task.due_date is None or task.status == TaskStatus.DONE:
        return False
    due = task.due_date
    if due.tzinfo is None and now.tzinfo is not None:
        now = now.replace(tzinfo=None)
    elif due.tzinfo is not None and now.tzinfo is None:
        due = due.replace(tzinfo=None)
    return now > due


def hours_by_month(entries: Iterable[TimeEntry], year: int, month: int) -> float:
    return sum(
        e.hours for e in entries
        if e.started_at.year == year and e.started_at.month == month
    )


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as HH:MM:SS. Negative values clamp to zero."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
