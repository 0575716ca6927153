"""Sources of watch events.

The transport that talks to the server lives outside of this library. It is
plugged in through the EventSource interface, which provides a stream of
events per `(scope, kind)` and a full listing used to repopulate a partition.
"""

from abc import ABC, abstractmethod
import asyncio
from collections import defaultdict
from collections.abc import AsyncGenerator, Iterable
import logging
from typing import DefaultDict, TYPE_CHECKING

from freight_watch.manifest import Resource, ResourceKind, WatchEvent

__all__ = [
    "EventSource",
    "QueueEventSource",
]

_LOGGER = logging.getLogger(__name__)


class EventSource(ABC):
    """Interface to the transport delivering watch events."""

    @abstractmethod
    async def subscribe(
        self, scope: str, kind: ResourceKind
    ) -> AsyncGenerator[WatchEvent, None]:
        """
        Subscribe to the events of a partition.

        Events are yielded in delivery order with at-least-once semantics.
        Closing the generator releases the subscription. Transport failures
        are raised from the generator.

        Args:
            scope: The project to watch.
            kind: The kind of resource to watch.

        Yields:
            WatchEvent objects as they are delivered.
        """
        if TYPE_CHECKING:
            yield None  # type: ignore[misc]

    @abstractmethod
    async def list(self, scope: str, kind: ResourceKind) -> list[Resource]:
        """Return the full current listing of a partition."""


class _End:
    """Marker closing a stream."""


class QueueEventSource(EventSource):
    """In-process event source fed by publishing events to per partition channels.

    Useful for replaying recorded streams and for tests. A channel buffers
    events published before anyone subscribes.
    """

    def __init__(self) -> None:
        """Initialize the QueueEventSource."""
        self._channels: DefaultDict[
            tuple[str, ResourceKind], asyncio.Queue[WatchEvent | BaseException | _End]
        ] = defaultdict(asyncio.Queue)
        self._listings: dict[tuple[str, ResourceKind], list[Resource]] = {}

    def publish(self, event: WatchEvent) -> None:
        """Deliver an event to the channel of its partition."""
        self._channels[(event.scope, event.kind)].put_nowait(event)

    def fail(self, scope: str, kind: ResourceKind, error: BaseException) -> None:
        """Terminate the stream of a partition with an error."""
        self._channels[(scope, kind)].put_nowait(error)

    def finish(self, scope: str, kind: ResourceKind) -> None:
        """Terminate the stream of a partition normally."""
        self._channels[(scope, kind)].put_nowait(_End())

    def load(self, scope: str, kind: ResourceKind, resources: Iterable[Resource]) -> None:
        """Set the full listing returned for a partition."""
        self._listings[(scope, kind)] = list(resources)

    async def subscribe(
        self, scope: str, kind: ResourceKind
    ) -> AsyncGenerator[WatchEvent, None]:
        """Subscribe to the events published for a partition."""
        channel = self._channels[(scope, kind)]
        _LOGGER.debug("Subscribed to %s/%s", kind, scope)
        try:
            while True:
                item = await channel.get()
                if isinstance(item, _End):
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            _LOGGER.debug("Released subscription to %s/%s", kind, scope)

    async def list(self, scope: str, kind: ResourceKind) -> list[Resource]:
        """Return the listing loaded for a partition."""
        return list(self._listings.get((scope, kind), []))
