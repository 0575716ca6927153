"""
The store module holds the watched resources of each project and the views
derived from them.

- Keys partitions by `(scope, kind)` and holds immutable snapshots.
- Merges watch events into snapshots with a pure reducer.
- Maintains the artifact version to Stage distance matrix.
- Detects Freight referenced by Stages that is missing from the cache.

This abstract interface allows for various implementations (in-memory, persistent, etc.).
"""

from .store import ResourceCache, CacheEvent, DistanceMatrix
from .in_memory import InMemoryCache
from .distance import DistanceMatrixMaintainer
from .backstop import ConsistencyBackstop, RefetchTrigger

__all__ = [
    "ResourceCache",
    "CacheEvent",
    "DistanceMatrix",
    "InMemoryCache",
    "DistanceMatrixMaintainer",
    "ConsistencyBackstop",
    "RefetchTrigger",
]
