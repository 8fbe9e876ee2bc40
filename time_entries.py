"""Append-only log of time entries."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from config import (
    AUTO_ENTRY_DESCRIPTION, LAST_TIMER_ENTRIES_KEY, SECONDS_PER_HOUR, TIME_ENTRIES_KEY,
)
from errors import NotFoundError, PersistenceError, ValidationError
from models import TimeEntry, TimerSession, new_id

logger = logging.getLogger(__name__)

EntryListener = Callable[[str], None]


def _positive_hours(hours) -> float:
    try:
        value = float(hours)
    except (TypeError, ValueError):
        raise ValidationError(f"Hours must be a number, got {hours!r}") from None
    if not value > 0:
        raise ValidationError(f"Hours must be greater than zero, got {hours!r}")
    return value


class TimeEntryRecorder(QObject):
    """Records finished timer sessions and manual entries.

    Listeners registered with add_listener() are called synchronously with
    the affected task id after every persisted change. If a listener raises
    PersistenceError the log is rolled back and the error re-raised.
    """

    entries_changed = pyqtSignal(object)  # tuple of TimeEntry

    def __init__(
        self,
        store,
        clock,
        key: str = TIME_ENTRIES_KEY,
        last_timer_key: str = LAST_TIMER_ENTRIES_KEY,
    ):
        super().__init__()
        self.store = store
        self.clock = clock
        self.key = key
        self.last_timer_key = last_timer_key
        self._entries: List[TimeEntry] = []
        self._listeners: List[EntryListener] = []
        # task_id -> id of the timer entry that amend_last() may still change
        self._amendable: Dict[str, str] = {}

    @property
    def entries(self) -> Tuple[TimeEntry, ...]:
        return tuple(self._entries)

    def entries_for_task(self, task_id: str) -> List[TimeEntry]:
        return [e for e in self._entries if e.task_id == task_id]

    def add_listener(self, listener: EntryListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EntryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def load(self) -> None:
        """Read the persisted log. Unparseable records are skipped."""
        data = self.store.get(self.key)
        entries = []
        if data is None:
            data = []
        elif not isinstance(data, list):
            logger.warning("Stored time entries are not a list, starting fresh")
            data = []
        for raw in data:
            try:
                entries.append(TimeEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                entry_id = raw.get("id", "unknown") if isinstance(raw, dict) else "unknown"
                logger.warning("Skipping time entry %s: %s", entry_id, e)
        self._entries = entries
        self._amendable = self._load_amendable(entries)
        logger.info("Loaded %d time entries", len(entries))
        self.entries_changed.emit(self.entries)

    def _load_amendable(self, entries: List[TimeEntry]) -> Dict[str, str]:
        pointers = self.store.get(self.last_timer_key)
        if pointers is None:
            return {}
        if not isinstance(pointers, dict):
            logger.warning("Stored amend pointers are not a mapping, ignoring them")
            return {}
        known = {e.id for e in entries if e.source == "timer"}
        return {
            task_id: entry_id for task_id, entry_id in pointers.items()
            if entry_id in known
        }

    def record(
        self,
        task_id: str,
        user_id: str,
        hours,
        project_id: str = "",
        description: str = "",
        entry_date: Optional[datetime] = None,
    ) -> TimeEntry:
        """Create a manual entry. Hours must be strictly positive."""
        if not task_id:
            raise ValidationError("A time entry needs a task id")
        value = _positive_hours(hours)
        now = self.clock.now()
        entry = TimeEntry(
            id=new_id(),
            task_id=task_id,
            user_id=user_id,
            hours=value,
            entry_date=entry_date or now,
            created_at=now,
            project_id=project_id,
            description=description,
            source="manual",
        )
        self._commit(self._entries + [entry], task_id)
        logger.info("Logged %.2fh on task %s", value, task_id)
        return entry

    def record_session(self, session: TimerSession) -> TimeEntry:
        """Turn a finished timer session into an entry."""
        now = self.clock.now()
        end = session.end_time or now
        hours = session.compute_elapsed(end) / SECONDS_PER_HOUR
        entry = TimeEntry(
            id=new_id(),
            task_id=session.task_id,
            user_id=session.user_id,
            hours=hours,
            entry_date=end,
            created_at=now,
            project_id=session.project_id,
            description=session.description or AUTO_ENTRY_DESCRIPTION,
            start_time=session.start_time,
            end_time=end,
            source="timer",
        )
        amendable = dict(self._amendable)
        amendable[session.task_id] = entry.id
        self._commit(self._entries + [entry], session.task_id, amendable)
        logger.info("Recorded %.4fh from timer session %s", hours, session.id)
        return entry

    def amend_last(
        self,
        task_id: str,
        description: Optional[str] = None,
        hours=None,
    ) -> TimeEntry:
        """Adjust the latest timer-generated entry for a task."""
        entry_id = self._amendable.get(task_id)
        index = next(
            (i for i, e in enumerate(self._entries) if e.id == entry_id), None
        )
        if entry_id is None or index is None:
            raise NotFoundError(f"No recent timer entry to amend for task {task_id}")

        changes = {}
        if description is not None:
            changes["description"] = description
        if hours is not None:
            changes["hours"] = _positive_hours(hours)
        if not changes:
            return self._entries[index]

        amended = replace(self._entries[index], **changes)
        entries = list(self._entries)
        entries[index] = amended
        self._commit(entries, task_id)
        logger.info("Amended entry %s", amended.id)
        return amended

    def retract(self, entry_id: str) -> None:
        """Undo a just-recorded entry. Only used to roll back a failed stop."""
        entry = next((e for e in self._entries if e.id == entry_id), None)
        if entry is None:
            raise NotFoundError(f"Time entry {entry_id} not found")
        amendable = {t: e for t, e in self._amendable.items() if e != entry_id}
        self._commit(
            [e for e in self._entries if e.id != entry_id], entry.task_id, amendable
        )

    def _commit(
        self,
        entries: List[TimeEntry],
        task_id: str,
        amendable: Optional[Dict[str, str]] = None,
    ) -> None:
        """Persist the log (and the amend pointers, if given), then notify.

        On PersistenceError both are restored to their previous values.
        """
        previous, previous_amendable = self._entries, self._amendable
        self._entries = entries
        if amendable is not None:
            self._amendable = amendable
        try:
            self.store.set(self.key, [e.to_dict() for e in entries])
            if amendable is not None:
                self.store.set(self.last_timer_key, amendable)
            for listener in list(self._listeners):
                listener(task_id)
        except PersistenceError:
            self._entries, self._amendable = previous, previous_amendable
            try:
                self.store.set(self.key, [e.to_dict() for e in previous])
                if amendable is not None:
                    self.store.set(self.last_timer_key, previous_amendable)
            except PersistenceError as e:
                logger.error("Could not restore time entry log: %s", e)
            raise
        self.entries_changed.emit(self.entries)
