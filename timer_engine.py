"""Timer session manager for worktrack."""

import copy
import logging
from typing import Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from clock import SystemClock
from config import SESSION_KEY, TICK_INTERVAL_MS
from errors import CorruptValueError, PersistenceError
from models import TimeEntry, TimerSession, new_id

logger = logging.getLogger(__name__)


class TimerSessionManager(QObject):
    """Owns the single live timer session and its periodic tick.

    Elapsed time is always derived from the session's work intervals and
    the clock, never accumulated from ticks, so late or missed ticks
    cannot drift. Every transition is written through to the store before
    subscribers are notified.
    """

    # Signals
    session_changed = pyqtSignal(object)  # TimerSession or None
    tick = pyqtSignal(float)  # elapsed seconds of the running session

    def __init__(
        self,
        store,
        recorder,
        clock=None,
        tick_interval_ms: Optional[int] = TICK_INTERVAL_MS,
        key: str = SESSION_KEY,
    ):
        """
        Initialize the manager.

        Args:
            store: Key-value persistence collaborator.
            recorder: TimeEntryRecorder receiving finished sessions.
            clock: Clock source, defaults to the system clock.
            tick_interval_ms: Tick period; None or 0 disables the tick.
            key: Store key of the session blob.
        """
        super().__init__()
        self.store = store
        self.recorder = recorder
        self.clock = clock or SystemClock()
        self.key = key
        self.session: Optional[TimerSession] = None

        self.timer: Optional[QTimer] = None
        if tick_interval_ms:
            self.timer = QTimer(self)
            self.timer.setInterval(tick_interval_ms)
            self.timer.timeout.connect(self._on_tick)

    @property
    def is_running(self) -> bool:
        return self.session is not None and self.session.is_active

    @property
    def is_ticking(self) -> bool:
        return self.timer is not None and self.timer.isActive()

    def current_elapsed(self) -> float:
        """Seconds tracked by the live session so far, 0.0 if none."""
        if self.session is None:
            return 0.0
        return self.session.compute_elapsed(self.clock.now())

    def restore(self) -> Optional[TimerSession]:
        """Pick up a session persisted by a previous run.

        A running session keeps accruing across the downtime because
        elapsed time is computed from wall-clock instants. A stored blob
        that cannot be decoded is discarded; a failing read propagates and
        leaves the stored session untouched.
        """
        self._stop_ticking()
        try:
            data = self.store.get(self.key)
            session = TimerSession.from_dict(data) if data else None
        except (CorruptValueError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable timer session: %s", e)
            self.store.remove(self.key)
            session = None

        self.session = session
        if session is not None:
            logger.info(
                "Restored %s session %s for task %s (%.0fs elapsed)",
                "running" if session.is_active else "paused",
                session.id, session.task_id, self.current_elapsed(),
            )
            if session.is_active:
                self._start_ticking()
        self.session_changed.emit(session)
        return session

    def start(
        self,
        task_id: str,
        user_id: str,
        project_id: str = "",
        description: Optional[str] = None,
    ) -> TimerSession:
        """Start tracking a task, finalizing any live session first.

        Finalizing the old session and creating the new one are two
        separate commits: if the new session cannot be written, the old
        one stays finalized and no session is live.
        """
        if self.session is not None:
            logger.info(
                "Finalizing session %s for task %s before starting a new one",
                self.session.id, self.session.task_id,
            )
            self.stop()

        now = self.clock.now()
        session = TimerSession(
            id=new_id(),
            task_id=task_id,
            user_id=user_id,
            project_id=project_id,
            start_time=now,
            is_active=True,
            description=description,
        )
        session.start_interval(now)
        self._persist(session, previous=None)
        self._start_ticking()
        logger.info("Timer started for task %s", task_id)
        return session

    def pause(self) -> bool:
        """Freeze the live session. Returns False if nothing was running."""
        if not self.is_running:
            logger.debug("pause: no running session")
            return False

        paused = copy.deepcopy(self.session)
        paused.end_interval(self.clock.now())
        paused.is_active = False
        self._persist(paused, previous=self.session)
        self._stop_ticking()
        logger.info("Timer paused at %.0fs", self.current_elapsed())
        return True

    def resume(self) -> bool:
        """Continue a paused session. Returns False if none is paused."""
        if self.session is None or self.session.is_active:
            logger.debug("resume: no paused session")
            return False

        resumed = copy.deepcopy(self.session)
        resumed.start_interval(self.clock.now())
        resumed.is_active = True
        self._persist(resumed, previous=self.session)
        self._start_ticking()
        logger.info("Timer resumed for task %s", resumed.task_id)
        return True

    def stop(self) -> Optional[TimeEntry]:
        """Finalize the live session into a time entry.

        Returns None (and records nothing) when no session is live.
        """
        if self.session is None:
            logger.debug("stop: no live session")
            return None

        previous = self.session
        now = self.clock.now()
        finished = copy.deepcopy(previous)
        finished.end_interval(now)
        finished.end_time = now
        finished.is_active = False

        entry = self.recorder.record_session(finished)
        try:
            self._persist(None, previous=previous)
        except PersistenceError:
            try:
                self.recorder.retract(entry.id)
            except PersistenceError as e:
                logger.error("Could not retract entry %s: %s", entry.id, e)
            raise

        self._stop_ticking()
        logger.info("Timer stopped for task %s: %.4fh", entry.task_id, entry.hours)
        return entry

    def _persist(self, session: Optional[TimerSession], previous: Optional[TimerSession]) -> None:
        """Write the session through to the store, rolling back on failure."""
        self.session = session
        try:
            if session is None:
                self.store.remove(self.key)
            else:
                self.store.set(self.key, session.to_dict())
        except PersistenceError as e:
            logger.error("Failed to persist timer session: %s", e)
            self.session = previous
            raise
        self.session_changed.emit(session)

    def _start_ticking(self) -> None:
        if self.timer is not None and not self.timer.isActive():
            self.timer.start()

    def _stop_ticking(self) -> None:
        if self.timer is not None:
            self.timer.stop()

    def _on_tick(self) -> None:
        """Handle timer tick: publish elapsed time while running."""
        if not self.is_running:
            self._stop_ticking()
            return
        self.tick.emit(self.current_elapsed())
