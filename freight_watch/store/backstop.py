"""Detects Freight referenced by Stages that is missing from the cache.

A watch only delivers changes made after the subscription opened. When a
Stage refers to Freight whose Added event was missed, the Freight partition
has to be repopulated from a full listing.
"""

from collections.abc import Callable, Iterable
import logging

from freight_watch.manifest import ResourceKind, referenced_freight

from .store import ResourceCache

_LOGGER = logging.getLogger(__name__)

RefetchTrigger = Callable[[str, ResourceKind], None]


class ConsistencyBackstop:
    """Compares Freight references in Stages against the cached Freight."""

    def __init__(self, cache: ResourceCache, refetch: RefetchTrigger | None = None) -> None:
        self._cache = cache
        self._refetch = refetch
        self._pending: set[str] = set()

    def check(
        self, scope: str, referenced_ids: Iterable[str], cached_ids: Iterable[str]
    ) -> bool:
        """Return True if any referenced id is absent from the cached ids."""
        missing = set(referenced_ids) - set(cached_ids)
        if missing:
            _LOGGER.info(
                "Scope %s references Freight missing from cache: %s",
                scope,
                sorted(missing),
            )
        return bool(missing)

    def _referenced_ids(self, scope: str) -> set[str]:
        referenced: set[str] = set()
        for stage in self._cache.get(scope, ResourceKind.STAGE):
            referenced |= referenced_freight(stage)
        return referenced

    def _cached_ids(self, scope: str) -> set[str]:
        return {freight.name for freight in self._cache.get(scope, ResourceKind.FREIGHT)}

    def missing(self, scope: str) -> set[str]:
        """Return the Freight referenced by cached Stages but not cached itself."""
        return self._referenced_ids(scope) - self._cached_ids(scope)

    def reconcile(self, scope: str) -> bool:
        """Check a scope and request a Freight refetch when needed.

        A refetch already requested for the scope is not requested again until
        `refetch_done` is called. Returns True if the scope is inconsistent.
        """
        if not self.check(scope, self._referenced_ids(scope), self._cached_ids(scope)):
            return False
        if self._refetch is None or scope in self._pending:
            return True
        self._pending.add(scope)
        _LOGGER.debug("Requesting Freight refetch for scope %s", scope)
        self._refetch(scope, ResourceKind.FREIGHT)
        return True

    def refetch_done(self, scope: str) -> None:
        """Mark the refetch of a scope as finished."""
        self._pending.discard(scope)
