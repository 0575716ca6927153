"""Module for in memory resource cache."""

import asyncio
from collections import defaultdict
from collections.abc import AsyncGenerator, Callable, Iterable
import logging
from typing import Any, DefaultDict

from freight_watch.manifest import Resource, ResourceKind

from .store import CacheEvent, DistanceMatrix, ResourceCache


_LOGGER = logging.getLogger(__name__)


class InMemoryCache(ResourceCache):
    """In-memory implementation of the ResourceCache interface.

    Stores snapshots keyed by `(scope, kind)` and distance matrices keyed by
    scope. Supports event listeners for snapshot, matrix and scope changes.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryCache."""
        self._snapshots: dict[tuple[str, ResourceKind], tuple[Resource, ...]] = {}
        self._matrices: dict[str, DistanceMatrix] = {}
        self._listeners: DefaultDict[CacheEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )

    def get(self, scope: str, kind: ResourceKind) -> tuple[Resource, ...]:
        """Return the current snapshot for a partition, empty when absent."""
        return self._snapshots.get((scope, kind), ())

    def set(self, scope: str, kind: ResourceKind, resources: Iterable[Resource]) -> None:
        """Atomically replace the snapshot for a partition."""
        snapshot = tuple(resources)
        _LOGGER.debug(
            "Setting %d %s resources for scope %s", len(snapshot), kind, scope
        )
        self._snapshots[(scope, kind)] = snapshot
        self._fire_event(CacheEvent.RESOURCES_UPDATED, scope, kind, snapshot)

    def get_matrix(self, scope: str) -> DistanceMatrix:
        """Return the distance matrix for a scope, empty when absent."""
        return self._matrices.get(scope, {})

    def set_matrix(self, scope: str, matrix: DistanceMatrix) -> None:
        """Replace the distance matrix for a scope."""
        self._matrices[scope] = matrix
        self._fire_event(CacheEvent.MATRIX_UPDATED, scope, matrix)

    def scopes(self) -> list[str]:
        """Return the scopes that currently hold any state."""
        scopes = {scope for scope, _ in self._snapshots}
        scopes.update(self._matrices)
        return sorted(scopes)

    def drop_scope(self, scope: str) -> None:
        """Discard every partition and the distance matrix of a scope."""
        _LOGGER.debug("Dropping scope %s from cache", scope)
        for key in [key for key in self._snapshots if key[0] == scope]:
            del self._snapshots[key]
        self._matrices.pop(scope, None)
        self._fire_event(CacheEvent.SCOPE_DROPPED, scope)

    def add_listener(
        self,
        event: CacheEvent,
        callback: Callable[..., None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific cache event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush:
            _LOGGER.debug("Flushing cache state for event type %s", event)
            if event == CacheEvent.RESOURCES_UPDATED:
                for (scope, kind), snapshot in list(self._snapshots.items()):
                    callback(scope, kind, snapshot)
            elif event == CacheEvent.MATRIX_UPDATED:
                for scope, matrix in list(self._matrices.items()):
                    callback(scope, matrix)

        return remove

    def _fire_event(self, event: CacheEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Cache listener callback failed for event %s", event)

    async def watch(
        self, scope: str, kind: ResourceKind
    ) -> AsyncGenerator[tuple[Resource, ...], None]:
        """
        Watch the snapshots of a partition.

        This is an asynchronous iterator that first yields the current
        snapshot, then every snapshot written afterwards. Snapshots are
        immutable so a slow consumer never observes a partial update.
        """
        queue: asyncio.Queue[tuple[Resource, ...]] = asyncio.Queue()

        def callback(
            updated_scope: str, updated_kind: ResourceKind, snapshot: tuple[Resource, ...]
        ) -> None:
            if updated_scope == scope and updated_kind == kind:
                queue.put_nowait(snapshot)

        remove_listener = self.add_listener(CacheEvent.RESOURCES_UPDATED, callback)
        try:
            yield self.get(scope, kind)
            while True:
                snapshot = await queue.get()
                yield snapshot
                queue.task_done()
        except asyncio.CancelledError:
            _LOGGER.debug("watch for %s/%s cancelled.", kind, scope)
            raise
        finally:
            _LOGGER.debug("Cleaning up listener for watch (%s/%s)", kind, scope)
            remove_listener()
