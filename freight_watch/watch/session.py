"""Bridges a live event stream to the resource cache.

A WatchSession owns the subscription of a single `(scope, kind)` partition.
Its consumer task reads events in delivery order and, for each one, merges it
into the current snapshot and writes the result back before invoking an
optional callback. Merging and writing happen synchronously between two reads
so an event is never half applied, and cancellation only takes effect while
the consumer waits for the next event.
"""

import asyncio
from collections import defaultdict
from collections.abc import Callable
import contextlib
import logging
from typing import DefaultDict

from freight_watch.exceptions import StreamException
from freight_watch.manifest import Resource, ResourceKind, WatchEvent
from freight_watch.store import ResourceCache
from freight_watch.store.reducer import apply
from freight_watch.task import TaskService, get_task_service

from .source import EventSource
from .status import SessionStatus, StatusInfo

__all__ = [
    "ResourceCallback",
    "ErrorCallback",
    "WatchSession",
    "CancelHandle",
    "WatchManager",
]

_LOGGER = logging.getLogger(__name__)

ResourceCallback = Callable[[Resource, tuple[Resource, ...]], None]
"""Invoked with the resolved resource and the snapshot it was written to."""

ErrorCallback = Callable[[StreamException], None]


class WatchSession:
    """Consumes the event stream of one partition into the cache."""

    def __init__(
        self,
        cache: ResourceCache,
        source: EventSource,
        scope: str,
        kind: ResourceKind,
        on_resource: ResourceCallback | None = None,
        on_error: ErrorCallback | None = None,
        task_service: TaskService | None = None,
    ) -> None:
        """Initialize the WatchSession.

        Args:
            cache: The cache the partition is written to.
            source: The transport providing the event stream.
            scope: The project to watch.
            kind: The kind of resource to watch.
            on_resource: Optional side effect run after each cache write.
            on_error: Optional callback for a stream failure.
            task_service: Service running the consumer task.
        """
        self._cache = cache
        self._source = source
        self._scope = scope
        self._kind = kind
        self._on_resource = on_resource
        self._on_error = on_error
        self._task_service = task_service or get_task_service()
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self._status = StatusInfo(status=SessionStatus.PENDING)

    @property
    def name(self) -> str:
        """Name of the watched partition."""
        return f"{self._kind}/{self._scope}"

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    @property
    def status(self) -> StatusInfo:
        """Current lifecycle status of the session."""
        return self._status

    def open(self) -> "CancelHandle":
        """Start consuming the stream, returning a handle to control the session."""
        if self._task is not None:
            raise RuntimeError(f"Watch session {self.name} already opened")
        _LOGGER.debug("Opening watch session %s", self.name)
        self._task = self._task_service.create_background_task(
            self._consume(), name=f"watch-{self.name}"
        )
        return CancelHandle(self)

    async def _consume(self) -> None:
        self._status = StatusInfo(status=SessionStatus.RUNNING)
        try:
            async with contextlib.aclosing(
                self._source.subscribe(self._scope, self._kind)
            ) as stream:
                async for event in stream:
                    if self._cancelled:
                        break
                    self._handle_event(event)
        except asyncio.CancelledError:
            _LOGGER.debug("Watch session %s cancelled", self.name)
            self._status = StatusInfo(status=SessionStatus.CANCELLED)
            raise
        except Exception as err:
            fault = (
                err
                if isinstance(err, StreamException)
                else StreamException(self.name, str(err) or type(err).__name__)
            )
            _LOGGER.error("Watch session %s failed: %s", self.name, fault.message)
            self._status = StatusInfo(status=SessionStatus.FAILED, error=fault.message)
            if self._on_error is not None:
                try:
                    self._on_error(fault)
                except Exception:
                    _LOGGER.exception("Error callback failed for %s", self.name)
            if fault is err:
                raise
            raise fault from err

        if self._cancelled:
            self._status = StatusInfo(status=SessionStatus.CANCELLED)
        else:
            _LOGGER.debug("Watch session %s stream ended", self.name)
            self._status = StatusInfo(status=SessionStatus.COMPLETED)

    def _handle_event(self, event: WatchEvent) -> None:
        if event.scope != self._scope or event.kind != self._kind:
            _LOGGER.warning(
                "Dropping event for %s/%s delivered to %s",
                event.kind,
                event.scope,
                self.name,
            )
            return
        resolved, snapshot = apply(self._cache.get(self._scope, self._kind), event)
        if resolved is None:
            return
        _LOGGER.debug("Applied %s of %s", event.change_type, resolved.id)
        self._cache.set(self._scope, self._kind, snapshot)
        if self._on_resource is None:
            return
        try:
            self._on_resource(resolved, snapshot)
        except Exception:
            _LOGGER.exception("Resource callback failed for %s", resolved.id)

    async def cancel(self) -> None:
        """Stop consuming the stream and release the subscription.

        Returns once the consumer task has finished, after which the session
        no longer writes to the cache.
        """
        self._cancelled = True
        task = self._task
        if task is None:
            self._status = StatusInfo(status=SessionStatus.CANCELLED)
            return
        if task.done():
            return
        if task is asyncio.current_task():
            # Called from a callback of this session; the loop stops on its next read
            return
        task.cancel()
        await asyncio.wait([task])
        if not self._status.status.is_terminal:
            self._status = StatusInfo(status=SessionStatus.CANCELLED)

    async def wait(self) -> StatusInfo:
        """Wait for the session to finish.

        Raises:
            StreamException: If the stream failed.
        """
        if self._task is None:
            raise RuntimeError(f"Watch session {self.name} was never opened")
        await asyncio.wait([self._task])
        if not self._task.cancelled() and (err := self._task.exception()) is not None:
            raise err
        return self._status

    @property
    def done(self) -> bool:
        """Return True once the consumer task has finished."""
        return self._task is not None and self._task.done()


class CancelHandle:
    """Handle returned when opening a session."""

    def __init__(self, session: WatchSession) -> None:
        self._session = session

    @property
    def session(self) -> WatchSession:
        return self._session

    @property
    def status(self) -> StatusInfo:
        return self._session.status

    @property
    def done(self) -> bool:
        return self._session.done

    async def cancel(self) -> None:
        """Cancel the session and wait for it to stop."""
        await self._session.cancel()

    async def wait(self) -> StatusInfo:
        """Wait for the session to finish, raising a stream failure."""
        return await self._session.wait()


class WatchManager:
    """Keeps at most one open session per partition."""

    def __init__(
        self,
        cache: ResourceCache,
        source: EventSource,
        task_service: TaskService | None = None,
    ) -> None:
        self._cache = cache
        self._source = source
        self._task_service = task_service or get_task_service()
        self._sessions: dict[tuple[str, ResourceKind], WatchSession] = {}
        self._locks: DefaultDict[tuple[str, ResourceKind], asyncio.Lock] = (
            defaultdict(asyncio.Lock)
        )

    async def open(
        self,
        scope: str,
        kind: ResourceKind,
        on_resource: ResourceCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> CancelHandle:
        """Open a session for a partition, cancelling any existing session first."""
        key = (scope, kind)
        async with self._locks[key]:
            if (existing := self._sessions.pop(key, None)) is not None:
                _LOGGER.debug("Replacing watch session %s", existing.name)
                await existing.cancel()
            session = WatchSession(
                self._cache,
                self._source,
                scope,
                kind,
                on_resource=on_resource,
                on_error=on_error,
                task_service=self._task_service,
            )
            self._sessions[key] = session
            return session.open()

    def session(self, scope: str, kind: ResourceKind) -> WatchSession | None:
        """Return the session of a partition, if one was opened."""
        return self._sessions.get((scope, kind))

    def sessions(self, scope: str | None = None) -> list[WatchSession]:
        """Return the sessions, optionally restricted to a scope."""
        return [
            session
            for (session_scope, _), session in self._sessions.items()
            if scope is None or session_scope == scope
        ]

    async def close_scope(self, scope: str) -> None:
        """Cancel every session of a scope and discard its cached state."""
        _LOGGER.debug("Closing scope %s", scope)
        for key in [key for key in self._sessions if key[0] == scope]:
            async with self._locks[key]:
                if (session := self._sessions.pop(key, None)) is not None:
                    await session.cancel()
            self._locks.pop(key, None)
        self._cache.drop_scope(scope)

    async def close(self) -> None:
        """Cancel every session."""
        for key in list(self._sessions):
            if (session := self._sessions.pop(key, None)) is not None:
                await session.cancel()
