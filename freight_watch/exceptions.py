"""Exceptions related to freight-watch."""

__all__ = [
    "FreightWatchException",
    "InputException",
    "StreamException",
]


class FreightWatchException(Exception):
    """Generic base exception used for this library."""


class InputException(FreightWatchException):
    """Raised when an event or resource document is not formatted as expected."""


class StreamException(FreightWatchException):
    """Raised when the underlying event stream fails or is dropped."""

    def __init__(self, stream: str, message: str | None = None) -> None:
        super().__init__(f"Stream {stream} failed: {message or 'Unknown error'}")
        self.stream = stream
        self.message = message
