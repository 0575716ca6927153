"""Tests for the event reducer."""

from typing import Any

import pytest

from freight_watch.manifest import ChangeType, Resource, ResourceKind, WatchEvent
from freight_watch.store.reducer import apply


def stage(name: str, scope: str = "demo", **payload: Any) -> Resource:
    """Create a Stage resource for tests."""
    return Resource(
        scope=scope,
        kind=ResourceKind.STAGE,
        name=name,
        payload={"metadata": {"name": name, "namespace": scope}, **payload},
    )


def event(change_type: ChangeType, resource: Resource) -> WatchEvent:
    """Create an event for the partition of the resource."""
    return WatchEvent(
        scope=resource.scope,
        kind=resource.kind,
        change_type=change_type,
        resource=resource,
    )


def test_add_modify_delete() -> None:
    """Test the lifecycle of a single resource."""
    a = stage("a")
    resolved, snapshot = apply((), event(ChangeType.ADDED, a))
    assert resolved == a
    assert snapshot == (a,)

    a2 = stage("a", generation=2)
    resolved, snapshot = apply(snapshot, event(ChangeType.MODIFIED, a2))
    assert resolved == a2
    assert snapshot == (a2,)

    resolved, snapshot = apply(snapshot, event(ChangeType.DELETED, a))
    assert resolved == a
    assert snapshot == ()


def test_duplicate_added() -> None:
    """Test a re-delivered Added event does not create a second entry."""
    b = stage("b")
    _, snapshot = apply((), event(ChangeType.ADDED, b))
    _, snapshot = apply(snapshot, event(ChangeType.ADDED, b))
    assert snapshot == (b,)


@pytest.mark.parametrize(("change_type"), [ChangeType.ADDED, ChangeType.MODIFIED])
def test_update_preserves_position(change_type: ChangeType) -> None:
    """Test an update replaces the entry in place."""
    a, b, c = stage("a"), stage("b"), stage("c")
    b2 = stage("b", generation=2)
    _, snapshot = apply((a, b, c), event(change_type, b2))
    assert snapshot == (a, b2, c)


def test_modified_unknown_appends() -> None:
    """Test a Modified event for an unknown resource appends it."""
    a, b = stage("a"), stage("b")
    _, snapshot = apply((a,), event(ChangeType.MODIFIED, b))
    assert snapshot == (a, b)


@pytest.mark.parametrize(("change_type"), [ChangeType.ADDED, ChangeType.MODIFIED])
def test_idempotent(change_type: ChangeType) -> None:
    """Test applying the same event twice equals applying it once."""
    current = (stage("a"), stage("b"))
    ev = event(change_type, stage("b", generation=5))
    _, once = apply(current, ev)
    _, twice = apply(once, ev)
    assert once == twice


def test_delete_unknown() -> None:
    """Test deleting an unknown resource leaves the snapshot unchanged."""
    current = (stage("a"), stage("b"))
    resolved, snapshot = apply(current, event(ChangeType.DELETED, stage("z")))
    assert resolved == stage("z")
    assert snapshot == current


def test_malformed_event() -> None:
    """Test an event without a resource is dropped."""
    current = (stage("a"),)
    resolved, snapshot = apply(
        current,
        WatchEvent(scope="demo", kind=ResourceKind.STAGE, change_type=ChangeType.ADDED),
    )
    assert resolved is None
    assert snapshot == current


def test_resource_from_other_partition() -> None:
    """Test a resource that does not belong to the event partition is dropped."""
    current = (stage("a"),)
    other = stage("b", scope="other")
    resolved, snapshot = apply(
        current,
        WatchEvent(
            scope="demo",
            kind=ResourceKind.STAGE,
            change_type=ChangeType.ADDED,
            resource=other,
        ),
    )
    assert resolved is None
    assert snapshot == current


def test_resource_of_other_kind() -> None:
    """Test a resource routed to the stream of another kind is dropped."""
    current = (stage("a"),)
    resolved, snapshot = apply(
        current,
        WatchEvent(
            scope="demo",
            kind=ResourceKind.FREIGHT,
            change_type=ChangeType.ADDED,
            resource=stage("b"),
        ),
    )
    assert resolved is None
    assert snapshot == current


def test_input_not_modified() -> None:
    """Test the current snapshot is never modified."""
    current = [stage("a"), stage("b")]
    _, snapshot = apply(current, event(ChangeType.DELETED, stage("a")))
    assert snapshot == (stage("b"),)
    assert current == [stage("a"), stage("b")]


def test_identity_uniqueness() -> None:
    """Test no sequence of events produces two entries with the same identity."""
    events = [
        event(ChangeType.ADDED, stage("a")),
        event(ChangeType.MODIFIED, stage("b")),
        event(ChangeType.ADDED, stage("a", generation=2)),
        event(ChangeType.DELETED, stage("c")),
        event(ChangeType.ADDED, stage("b", generation=3)),
        event(ChangeType.MODIFIED, stage("a", generation=4)),
        event(ChangeType.DELETED, stage("b")),
        event(ChangeType.ADDED, stage("b")),
        event(ChangeType.ADDED, stage("c")),
    ]
    snapshot: tuple[Resource, ...] = ()
    for ev in events:
        _, snapshot = apply(snapshot, ev)
        names = [resource.name for resource in snapshot]
        assert len(names) == len(set(names))
    assert snapshot == (stage("a", generation=4), stage("b"), stage("c"))
