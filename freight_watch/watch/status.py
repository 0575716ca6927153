"""Status information for a watch session."""

from enum import StrEnum
from dataclasses import dataclass


class SessionStatus(StrEnum):
    """Lifecycle status of a watch session."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        """Return True once the session no longer consumes its stream."""
        return self in (
            SessionStatus.COMPLETED,
            SessionStatus.FAILED,
            SessionStatus.CANCELLED,
        )


@dataclass
class StatusInfo:
    """Session status and optional error message."""

    status: SessionStatus
    error: str | None = None

    def __str__(self) -> str:
        """Return a string representation of the status."""
        if self.error:
            return f"{self.status}: {self.error}"
        return str(self.status)
