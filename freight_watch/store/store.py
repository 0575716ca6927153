"""Store module for holding the watched resources of each project."""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Callable, Iterable
from enum import Enum
from typing import TYPE_CHECKING

from freight_watch.manifest import Resource, ResourceKind

DistanceMatrix = dict[str, dict[str, dict[str, int]]]
"""Mapping of artifact repo to version tag to target name to distance."""


class CacheEvent(str, Enum):
    """Enum for cache events."""

    RESOURCES_UPDATED = "resources_updated"
    MATRIX_UPDATED = "matrix_updated"
    SCOPE_DROPPED = "scope_dropped"


class ResourceCache(ABC):
    """Abstract base class for the per-project resource cache with listener support.

    Each `(scope, kind)` partition holds an immutable, ordered snapshot of
    resources. Writers replace a snapshot as a whole so that readers holding
    a previous snapshot are never affected by later updates.
    """

    @abstractmethod
    def get(self, scope: str, kind: ResourceKind) -> tuple[Resource, ...]:
        """Return the current snapshot for a partition, empty when absent."""

    @abstractmethod
    def set(self, scope: str, kind: ResourceKind, resources: Iterable[Resource]) -> None:
        """Atomically replace the snapshot for a partition."""

    @abstractmethod
    def get_matrix(self, scope: str) -> DistanceMatrix:
        """Return the distance matrix for a scope, empty when absent.

        The returned matrix must not be mutated by the caller.
        """

    @abstractmethod
    def set_matrix(self, scope: str, matrix: DistanceMatrix) -> None:
        """Replace the distance matrix for a scope."""

    @abstractmethod
    def scopes(self) -> list[str]:
        """Return the scopes that currently hold any state."""

    @abstractmethod
    def drop_scope(self, scope: str) -> None:
        """Discard every partition and the distance matrix of a scope."""

    @abstractmethod
    def add_listener(
        self,
        event: CacheEvent,
        callback: Callable[..., None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific cache event.

        Callbacks receive `(scope, kind, snapshot)` for resource updates,
        `(scope, matrix)` for matrix updates and `(scope,)` when a scope is
        dropped. When `flush` is set the callback is invoked immediately for
        the existing state.

        Returns a callable that can be called to remove the listener.
        """

    @abstractmethod
    async def watch(
        self, scope: str, kind: ResourceKind
    ) -> AsyncGenerator[tuple[Resource, ...], None]:
        """
        Watch the snapshots of a partition.

        This is an asynchronous iterator that first yields the current
        snapshot, then every snapshot written afterwards.

        Args:
            scope: The project of the partition.
            kind: The kind of resource in the partition.

        Yields:
            Successive snapshots of the partition.
        """
        if TYPE_CHECKING:
            yield ()  # type: ignore[misc]

