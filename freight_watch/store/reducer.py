"""Merge a single watch event into a snapshot of resources.

Added and Modified events are treated the same way: the resource replaces an
existing entry with the same identity in place, or is appended when there is
none. This makes re-delivered events idempotent. Deleted events remove the
entry, and deleting an unknown identity leaves the snapshot unchanged.
"""

from collections.abc import Sequence
import logging

from freight_watch.manifest import ChangeType, Resource, WatchEvent

__all__ = ["apply"]

_LOGGER = logging.getLogger(__name__)


def _routed_resource(event: WatchEvent) -> Resource | None:
    """Return the resource of an event, or None when it is malformed."""
    resource = event.resource
    if resource is None or not resource.name:
        return None
    if resource.scope != event.scope or resource.kind != event.kind:
        return None
    return resource


def apply(
    current: Sequence[Resource], event: WatchEvent
) -> tuple[Resource | None, tuple[Resource, ...]]:
    """Apply an event to a snapshot, returning the resolved resource and the next snapshot.

    The input snapshot is never modified. Malformed events resolve to None
    and return the snapshot unchanged.
    """
    snapshot = tuple(current)
    if (resource := _routed_resource(event)) is None:
        _LOGGER.debug("Dropping malformed %s event for %s", event.change_type, event.kind)
        return None, snapshot

    index = next(
        (i for i, existing in enumerate(snapshot) if existing.id == resource.id),
        None,
    )
    if event.change_type == ChangeType.DELETED:
        if index is None:
            _LOGGER.debug("Ignoring delete of unknown resource %s", resource.id)
            return resource, snapshot
        return resource, snapshot[:index] + snapshot[index + 1 :]

    if index is None:
        return resource, snapshot + (resource,)
    return resource, snapshot[:index] + (resource,) + snapshot[index + 1 :]
