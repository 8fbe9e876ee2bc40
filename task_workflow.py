"""Kanban task workflow: status transitions, WIP limits, task CRUD."""

import copy
import logging
from datetime import datetime
from typing import Dict, List, Optional

from PyQt6.QtCore import QObject, pyqtSignal

import aggregation
from clock import SystemClock
from config import DEFAULT_USER_ID, DEFAULT_WIP_LIMITS, TASKS_KEY
from errors import CapacityError, NotFoundError, PersistenceError, ValidationError
from models import KanbanColumn, Task, TaskPriority, TaskStatus, TimeEntry, new_id

logger = logging.getLogger(__name__)

# Fields update_task() may change; status and logged hours have their own paths
EDITABLE_FIELDS = (
    "title", "description", "priority", "project",
    "assignee", "estimated_hours", "due_date",
)


def _estimate(value) -> float:
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Estimated hours must be a number, got {value!r}") from None
    if hours < 0:
        raise ValidationError("Estimated hours cannot be negative")
    return hours


class TaskWorkflowEngine(QObject):
    """Owns the task list and the status state machine.

    The task list is kept in board order: filtering it by status yields
    each column in display order, and that order is what gets persisted.
    """

    tasks_changed = pyqtSignal(object)  # list of Task

    def __init__(
        self,
        store,
        recorder,
        timer,
        clock=None,
        wip_limits: Optional[Dict[str, Optional[int]]] = None,
        key: str = TASKS_KEY,
    ):
        super().__init__()
        self.store = store
        self.recorder = recorder
        self.timer = timer
        self.clock = clock or SystemClock()
        self.key = key
        self.wip_limits = dict(DEFAULT_WIP_LIMITS if wip_limits is None else wip_limits)
        self._tasks: List[Task] = []
        self.recorder.add_listener(self._on_entries_recorded)

    # -------------------- queries --------------------
    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks)

    def get_task(self, task_id: str) -> Task:
        return self._tasks[self._index_of(task_id)]

    def columns(self) -> List[KanbanColumn]:
        return aggregation.columns_view(self._tasks, self.wip_limits)

    def column_tasks(self, status) -> List[Task]:
        status = TaskStatus.from_str(status)
        return [t for t in self._tasks if t.status == status]

    def wip_limit(self, status) -> Optional[int]:
        return self.wip_limits.get(TaskStatus.from_str(status).value)

    def _find_index(self, task_id: str) -> Optional[int]:
        return next((i for i, t in enumerate(self._tasks) if t.id == task_id), None)

    def _index_of(self, task_id: str) -> int:
        index = self._find_index(task_id)
        if index is None:
            raise NotFoundError(f"Task {task_id} not found")
        return index

    def _check_capacity(self, status: TaskStatus) -> None:
        limit = self.wip_limit(status)
        if limit is None:
            return
        occupants = sum(1 for t in self._tasks if t.status == status)
        if occupants >= limit:
            logger.info("Column %s is full (%d/%d)", status.value, occupants, limit)
            raise CapacityError(status.value, limit)

    def _stop_timer_for(self, task_id: str) -> Optional[TimeEntry]:
        session = self.timer.session
        if session is not None and session.task_id == task_id:
            logger.info("Stopping timer for task %s", task_id)
            return self.timer.stop()
        return None

    # -------------------- loading --------------------
    def load(self) -> None:
        """Read the persisted task list and refresh cached logged hours."""
        data = self.store.get(self.key)
        if data is None:
            data = []
        elif not isinstance(data, list):
            logger.warning("Stored tasks are not a list, starting fresh")
            data = []

        tasks = []
        for raw in data:
            try:
                tasks.append(Task.from_dict(raw))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                task_id = raw.get("id", "unknown") if isinstance(raw, dict) else "unknown"
                logger.warning("Skipping task %s: %s", task_id, e)

        entries = self.recorder.entries
        for task in tasks:
            task.logged_hours = aggregation.logged_hours(task.id, entries)
            task.time_entry_ids = [e.id for e in entries if e.task_id == task.id]

        self._tasks = tasks
        logger.info("Loaded %d tasks", len(tasks))
        self.tasks_changed.emit(self.tasks)

    # -------------------- transitions --------------------
    def move_task(self, task_id: str, target_status, target_index: Optional[int] = None) -> Task:
        """Move a task to target_status at target_index within that column.

        target_index None (or past the end) appends to the column. A move
        into a full column raises CapacityError and changes nothing;
        reordering inside a full column is always allowed. Moving a task
        with a running timer to done stops the timer first.
        """
        status = TaskStatus.from_str(target_status)
        if target_index is not None and target_index < 0:
            raise ValidationError(f"Invalid column index: {target_index}")

        current = self.get_task(task_id)
        same_column = current.status == status
        if not same_column:
            self._check_capacity(status)

        if status == TaskStatus.DONE:
            self._stop_timer_for(task_id)

        previous = self._tasks
        tasks = copy.deepcopy(previous)
        moved = tasks.pop(self._index_of(task_id))
        if not same_column:
            moved.status = status
            moved.updated_at = self.clock.now()

        members = [i for i, t in enumerate(tasks) if t.status == status]
        if target_index is None or target_index >= len(members):
            position = members[-1] + 1 if members else len(tasks)
        else:
            position = members[target_index]
        tasks.insert(position, moved)

        self._commit(tasks, previous)
        if same_column:
            logger.info("Reordered task %s in %s", task_id, status.value)
        else:
            logger.info("Moved task %s: %s -> %s", task_id, current.status.value, status.value)
        return moved

    # -------------------- task operations --------------------
    def create_task(
        self,
        title: str,
        project: str = "",
        assignee: str = "",
        priority="medium",
        estimated_hours=0.0,
        due_date: Optional[datetime] = None,
        description: str = "",
        status=TaskStatus.TODO,
    ) -> Task:
        if not title or not str(title).strip():
            raise ValidationError("A task needs a title")
        status = TaskStatus.from_str(status)
        self._check_capacity(status)

        now = self.clock.now()
        task = Task(
            id=new_id(),
            title=str(title).strip(),
            created_at=now,
            updated_at=now,
            status=status,
            priority=TaskPriority.from_str(priority),
            description=description,
            project=project,
            assignee=assignee,
            estimated_hours=_estimate(estimated_hours),
            due_date=due_date,
        )
        self._commit(self._tasks + [task], self._tasks)
        logger.info("Created task %s (%s)", task.id, task.title)
        return task

    def update_task(self, task_id: str, **changes) -> Task:
        """Edit task fields. Status changes go through move_task()."""
        if "status" in changes:
            raise ValidationError("Use move_task() to change a task's status")
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        previous = self._tasks
        tasks = copy.deepcopy(previous)
        task = tasks[self._index_of(task_id)]
        for name, value in changes.items():
            if name == "title":
                if not value or not str(value).strip():
                    raise ValidationError("A task needs a title")
                value = str(value).strip()
            elif name == "priority":
                value = TaskPriority.from_str(value)
            elif name == "estimated_hours":
                value = _estimate(value)
            setattr(task, name, value)
        task.updated_at = self.clock.now()

        self._commit(tasks, previous)
        return task

    def delete_task(self, task_id: str) -> Task:
        """Remove a task, stopping its timer. Its time entries are kept."""
        self._index_of(task_id)
        self._stop_timer_for(task_id)

        previous = self._tasks
        tasks = list(previous)
        removed = tasks.pop(self._index_of(task_id))
        self._commit(tasks, previous)
        logger.info("Deleted task %s", task_id)
        return removed

    def log_time(
        self,
        task_id: str,
        hours,
        user_id: str = DEFAULT_USER_ID,
        description: str = "",
        entry_date: Optional[datetime] = None,
    ) -> TimeEntry:
        """Record a manual time entry against an existing task."""
        task = self.get_task(task_id)
        return self.recorder.record(
            task_id, user_id, hours,
            project_id=task.project,
            description=description,
            entry_date=entry_date,
        )

    # -------------------- persistence --------------------
    def _on_entries_recorded(self, task_id: str) -> None:
        """Refresh the cached logged hours of the task an entry belongs to."""
        index = self._find_index(task_id)
        if index is None:
            logger.debug("Time entry for unknown task %s", task_id)
            return

        previous = self._tasks
        tasks = copy.deepcopy(previous)
        task = tasks[index]
        entries = self.recorder.entries
        task.logged_hours = aggregation.logged_hours(task_id, entries)
        task.time_entry_ids = [e.id for e in entries if e.task_id == task_id]
        self._commit(tasks, previous)

    def _commit(self, tasks: List[Task], previous: List[Task]) -> None:
        """Persist the task list, restoring the previous one on failure."""
        self._tasks = tasks
        try:
            self.store.set(self.key, [t.to_dict() for t in tasks])
        except PersistenceError as e:
            logger.error("Failed to persist tasks: %s", e)
            self._tasks = previous
            raise
        self.tasks_changed.emit(self.tasks)
