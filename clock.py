"""Wall-clock sources for worktrack."""

from datetime import datetime, timedelta
from typing import Optional


class SystemClock:
    """Reads the local wall clock as a timezone-aware datetime."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class ManualClock:
    """Clock that only moves when told to. Used for deterministic runs."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime.now().astimezone()

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        """Move the clock forward and return the new instant."""
        self._now = self._now + timedelta(seconds=seconds)
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = instant
