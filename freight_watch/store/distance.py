"""Maintains the artifact version to Stage distance matrix of a project.

The distance of a version at a Stage counts the successful promotions observed
at that Stage since the version was last the active one there. A distance of
zero means the version is currently active.

The matrix is reconstructed purely from "this version is now active here"
signals carried on Stage updates, without access to the full promotion
history. Stage updates are re-delivered frequently and carry the same last
promotion many times, so a version that is already active at a Stage never
ages its siblings a second time.
"""

import logging
from collections.abc import Sequence

from freight_watch.config import DistanceConfig
from freight_watch.manifest import (
    FreightReference,
    PromotionPhase,
    PromotionSignal,
    Resource,
    ResourceKind,
)

from .store import DistanceMatrix, ResourceCache

_LOGGER = logging.getLogger(__name__)


class DistanceMatrixMaintainer:
    """Incrementally updates the distance matrix from promotion signals."""

    def __init__(self, cache: ResourceCache, config: DistanceConfig | None = None) -> None:
        """Initialize the DistanceMatrixMaintainer.

        Args:
            cache: The cache holding the matrix of each scope.
            config: Optional eviction policy for aged versions.
        """
        self._cache = cache
        self._config = config or DistanceConfig()

    def on_promotion_observed(
        self,
        scope: str,
        target_name: str,
        promotion_status: str,
        freight: FreightReference | None,
    ) -> bool:
        """Record a promotion observed at a Stage.

        Only successful promotions that carry artifact references change the
        matrix. Returns True if the matrix was updated.
        """
        if str(promotion_status).lower() != PromotionPhase.SUCCEEDED.lower():
            _LOGGER.debug(
                "Ignoring %s promotion of %s/%s", promotion_status, scope, target_name
            )
            return False
        if freight is None or not freight.artifacts:
            _LOGGER.warning(
                "Promotion of %s/%s succeeded without artifact references",
                scope,
                target_name,
            )
            return False

        matrix: DistanceMatrix = dict(self._cache.get_matrix(scope))
        changed = False
        for ref in freight.artifacts:
            existing = matrix.get(ref.repo, {})
            if existing.get(ref.tag, {}).get(target_name) == 0:
                continue
            tags = {tag: dict(targets) for tag, targets in existing.items()}
            for tag, targets in tags.items():
                if tag != ref.tag and target_name in targets:
                    targets[target_name] += 1
            tags.setdefault(ref.tag, {})[target_name] = 0
            self._evict(tags, target_name)
            matrix[ref.repo] = tags
            changed = True
            _LOGGER.debug("Version %s is now active at %s/%s", ref, scope, target_name)

        if changed:
            self._cache.set_matrix(scope, matrix)
        return changed

    def _evict(self, tags: dict[str, dict[str, int]], target_name: str) -> None:
        if (max_distance := self._config.max_distance) is None:
            return
        for tag in list(tags):
            targets = tags[tag]
            if targets.get(target_name, 0) > max_distance:
                del targets[target_name]
                if not targets:
                    del tags[tag]

    def on_resource(self, resource: Resource, snapshot: Sequence[Resource]) -> None:
        """Session callback feeding Stage updates into the matrix."""
        if resource.kind != ResourceKind.STAGE:
            return
        if not any(existing.id == resource.id for existing in snapshot):
            # Stage was deleted, its history stays in the matrix
            return
        if (signal := PromotionSignal.from_resource(resource)) is None:
            return
        self.on_promotion_observed(
            resource.scope, signal.target_name, signal.phase, signal.freight
        )

    def distance(self, scope: str, repo: str, tag: str, target_name: str) -> int | None:
        """Return the distance of a version at a Stage, or None if never observed."""
        return self._cache.get_matrix(scope).get(repo, {}).get(tag, {}).get(target_name)

    def current_tag(self, scope: str, repo: str, target_name: str) -> str | None:
        """Return the version of a repo currently active at a Stage."""
        for tag, targets in self._cache.get_matrix(scope).get(repo, {}).items():
            if targets.get(target_name) == 0:
                return tag
        return None
