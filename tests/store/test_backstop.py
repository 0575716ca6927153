"""Tests for the consistency backstop."""

import pytest

from freight_watch.manifest import Resource, ResourceKind
from freight_watch.store import ConsistencyBackstop, InMemoryCache


def stage(name: str, current: str) -> Resource:
    """Create a Stage whose current Freight is `current`."""
    return Resource(
        scope="demo",
        kind=ResourceKind.STAGE,
        name=name,
        payload={"status": {"currentFreight": {"name": current}}},
    )


def freight(name: str) -> Resource:
    return Resource(scope="demo", kind=ResourceKind.FREIGHT, name=name)


@pytest.fixture(name="cache")
def cache_fixture() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture(name="requests")
def requests_fixture() -> list[tuple[str, ResourceKind]]:
    return []


@pytest.fixture(name="backstop")
def backstop_fixture(
    cache: InMemoryCache, requests: list[tuple[str, ResourceKind]]
) -> ConsistencyBackstop:
    return ConsistencyBackstop(cache, lambda scope, kind: requests.append((scope, kind)))


@pytest.mark.parametrize(
    ("referenced", "cached", "expected"),
    [
        ([], [], False),
        (["f1"], ["f1", "f2"], False),
        (["f1", "f3"], ["f1", "f2"], True),
        (["f1"], [], True),
    ],
)
def test_check(
    backstop: ConsistencyBackstop,
    referenced: list[str],
    cached: list[str],
    expected: bool,
) -> None:
    assert backstop.check("demo", referenced, cached) == expected


def test_reconcile_consistent(
    cache: InMemoryCache,
    backstop: ConsistencyBackstop,
    requests: list[tuple[str, ResourceKind]],
) -> None:
    cache.set("demo", ResourceKind.FREIGHT, [freight("f1")])
    cache.set("demo", ResourceKind.STAGE, [stage("prod", "f1")])
    assert not backstop.reconcile("demo")
    assert backstop.missing("demo") == set()
    assert requests == []


def test_reconcile_missing(
    cache: InMemoryCache,
    backstop: ConsistencyBackstop,
    requests: list[tuple[str, ResourceKind]],
) -> None:
    """Test a single refetch is requested until the previous one finishes."""
    cache.set("demo", ResourceKind.FREIGHT, [freight("f1")])
    cache.set("demo", ResourceKind.STAGE, [stage("prod", "f1"), stage("qa", "f2")])
    assert backstop.missing("demo") == {"f2"}

    assert backstop.reconcile("demo")
    assert backstop.reconcile("demo")
    assert requests == [("demo", ResourceKind.FREIGHT)]

    backstop.refetch_done("demo")
    assert backstop.reconcile("demo")
    assert requests == [("demo", ResourceKind.FREIGHT)] * 2

    backstop.refetch_done("demo")
    cache.set("demo", ResourceKind.FREIGHT, [freight("f1"), freight("f2")])
    assert not backstop.reconcile("demo")
    assert len(requests) == 2


def test_reconcile_without_trigger(cache: InMemoryCache) -> None:
    """Test detection works without a refetch trigger."""
    backstop = ConsistencyBackstop(cache)
    cache.set("demo", ResourceKind.STAGE, [stage("prod", "f1")])
    assert backstop.reconcile("demo")


def test_reconcile_freight_ids(
    cache: InMemoryCache,
    backstop: ConsistencyBackstop,
    requests: list[tuple[str, ResourceKind]],
) -> None:
    """Test Stages that embed Freight by id are checked against the cache."""
    cache.set(
        "demo",
        ResourceKind.STAGE,
        [
            Resource(
                scope="demo",
                kind=ResourceKind.STAGE,
                name="prod",
                payload={
                    "status": {
                        "currentFreight": {"id": "abc123"},
                        "history": [{"id": "abc123"}, {"id": "old999"}],
                    }
                },
            )
        ],
    )
    assert backstop.reconcile("demo")
    assert backstop.missing("demo") == {"abc123", "old999"}
    assert requests == [("demo", ResourceKind.FREIGHT)]

    backstop.refetch_done("demo")
    cache.set("demo", ResourceKind.FREIGHT, [freight("abc123"), freight("old999")])
    assert not backstop.reconcile("demo")
