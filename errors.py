"""Error types raised by the worktrack engine."""

from typing import Optional


class WorkTrackError(Exception):
    """Base class for all engine errors."""
    pass


class ValidationError(WorkTrackError):
    """Raised for invalid input (non-positive hours, unknown status, ...)."""
    pass


class NotFoundError(WorkTrackError):
    """Raised when a task or time entry id does not exist."""
    pass


class CapacityError(WorkTrackError):
    """Raised when a column's WIP limit would be exceeded."""

    def __init__(self, status: str, limit: int, message: Optional[str] = None):
        self.status = status
        self.limit = limit
        super().__init__(
            message or f"Column '{status}' is at its limit of {limit} tasks"
        )


class PersistenceError(WorkTrackError):
    """Raised when the key-value store fails to read or write."""
    pass


class CorruptValueError(PersistenceError):
    """Raised when a stored value exists but cannot be decoded."""
    pass
