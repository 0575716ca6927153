"""Configuration objects for freight-watch."""

from dataclasses import dataclass, field

from .manifest import ResourceKind


@dataclass
class DistanceConfig:
    """Configuration for the DistanceMatrixMaintainer."""

    max_distance: int | None = None
    """Evict a version from a target once its distance exceeds this value.

    None keeps every version ever observed at a target.
    """


@dataclass
class BackstopConfig:
    """Configuration for the ConsistencyBackstop."""

    enabled: bool = True


@dataclass
class SyncConfig:
    """Configuration for synchronizing a single project."""

    kinds: list[ResourceKind] = field(
        default_factory=lambda: [
            ResourceKind.WAREHOUSE,
            ResourceKind.FREIGHT,
            ResourceKind.STAGE,
        ]
    )
    """Kinds to open a watch for, in the order they are opened."""

    distance: DistanceConfig = field(default_factory=DistanceConfig)
    backstop: BackstopConfig = field(default_factory=BackstopConfig)
