"""Synchronization of a single project.

This module wires the components together the way a dashboard uses them:
one watch session per kind, the Stage session feeding the distance matrix
and the consistency check, and refetches repopulating the Freight partition
when a Stage refers to Freight the cache has never seen.
"""

import asyncio
import logging

from freight_watch.config import SyncConfig
from freight_watch.manifest import Resource, ResourceKind
from freight_watch.store import (
    ConsistencyBackstop,
    DistanceMatrix,
    DistanceMatrixMaintainer,
    ResourceCache,
)
from freight_watch.task import TaskService, get_task_service
from freight_watch.watch import CancelHandle, EventSource, WatchManager

_LOGGER = logging.getLogger(__name__)


class ProjectSync:
    """Keeps the cache of one project synchronized with its event streams.

    The sync is responsible for:
    - Opening a watch session for each configured kind
    - Updating the distance matrix from Stage updates
    - Requesting a Freight refetch when Stages refer to unknown Freight
    - Tearing down the sessions and cached state of the project
    """

    def __init__(
        self,
        cache: ResourceCache,
        source: EventSource,
        scope: str,
        config: SyncConfig | None = None,
        manager: WatchManager | None = None,
        task_service: TaskService | None = None,
    ) -> None:
        """Initialize the ProjectSync."""
        self._cache = cache
        self._source = source
        self._scope = scope
        self._config = config or SyncConfig()
        self._task_service = task_service or get_task_service()
        self._manager = manager or WatchManager(cache, source, self._task_service)
        self._maintainer = DistanceMatrixMaintainer(cache, self._config.distance)
        self._backstop = ConsistencyBackstop(cache, self._request_refetch)
        self._handles: dict[ResourceKind, CancelHandle] = {}
        self._stopped = False

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def maintainer(self) -> DistanceMatrixMaintainer:
        return self._maintainer

    @property
    def backstop(self) -> ConsistencyBackstop:
        return self._backstop

    @property
    def matrix(self) -> DistanceMatrix:
        """The current distance matrix of the project."""
        return self._cache.get_matrix(self._scope)

    def resources(self, kind: ResourceKind) -> tuple[Resource, ...]:
        """The current snapshot of a kind in the project."""
        return self._cache.get(self._scope, kind)

    async def start(self) -> None:
        """Open a watch session for every configured kind."""
        if self._handles:
            return
        _LOGGER.info("Starting sync of project %s", self._scope)
        self._stopped = False
        for kind in self._config.kinds:
            on_resource = self._on_stage if kind == ResourceKind.STAGE else None
            self._handles[kind] = await self._manager.open(
                self._scope, kind, on_resource=on_resource
            )

    def _on_stage(self, resource: Resource, snapshot: tuple[Resource, ...]) -> None:
        self._maintainer.on_resource(resource, snapshot)
        if self._config.backstop.enabled:
            self._backstop.reconcile(self._scope)

    def _request_refetch(self, scope: str, kind: ResourceKind) -> None:
        self._task_service.create_task(
            self._refetch(scope, kind), name=f"refetch-{kind}/{scope}"
        )

    async def _refetch(self, scope: str, kind: ResourceKind) -> None:
        try:
            resources = await self._source.list(scope, kind)
        except Exception as err:
            _LOGGER.error("Refetch of %s/%s failed: %s", kind, scope, err)
            raise
        finally:
            self._backstop.refetch_done(scope)
        if self._stopped:
            _LOGGER.debug("Discarding refetch of %s/%s after stop", kind, scope)
            return
        _LOGGER.info("Refetched %d %s resources for %s", len(resources), kind, scope)
        self._cache.set(scope, kind, resources)

    async def wait(self) -> None:
        """Wait for every session to finish, raising the first stream failure."""
        await asyncio.gather(*(handle.wait() for handle in self._handles.values()))

    async def stop(self) -> None:
        """Cancel the sessions of the project and discard its cached state."""
        if self._stopped:
            return
        _LOGGER.info("Stopping sync of project %s", self._scope)
        self._stopped = True
        await self._manager.close_scope(self._scope)
        self._handles.clear()
