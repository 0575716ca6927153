"""
The watch module keeps cache partitions synchronized with live event streams.

- WatchSession consumes the stream of one `(scope, kind)` partition.
- WatchManager guarantees a single writer per partition.
- EventSource is the boundary to the transport delivering the events.
"""

from .source import EventSource, QueueEventSource
from .session import (
    CancelHandle,
    ErrorCallback,
    ResourceCallback,
    WatchManager,
    WatchSession,
)
from .sse import decode_sse
from .status import SessionStatus, StatusInfo

__all__ = [
    "EventSource",
    "QueueEventSource",
    "CancelHandle",
    "ErrorCallback",
    "ResourceCallback",
    "WatchManager",
    "WatchSession",
    "decode_sse",
    "SessionStatus",
    "StatusInfo",
]
