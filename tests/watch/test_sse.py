"""Tests for decoding Server-Sent Events."""

from collections.abc import AsyncGenerator
import json
from typing import Any

import pytest

from freight_watch.exceptions import StreamException
from freight_watch.manifest import ChangeType, ResourceKind, WatchEvent
from freight_watch.watch import decode_sse
from freight_watch.watch.sse import MAX_EVENT_SIZE


async def chunked(*chunks: str) -> AsyncGenerator[str, None]:
    for chunk in chunks:
        yield chunk


async def decode(*chunks: str) -> list[WatchEvent]:
    return [
        event
        async for event in decode_sse(chunked(*chunks), "demo", ResourceKind.FREIGHT)
    ]


def data(change_type: str, name: str) -> str:
    obj: dict[str, Any] = {"metadata": {"name": name, "namespace": "demo"}}
    return "data: " + json.dumps({"type": change_type, "object": obj})


async def test_events_and_keepalives() -> None:
    """Test keepalive comments between events are skipped."""
    events = await decode(
        ": keepalive\n\n",
        data("ADDED", "f1") + "\n\n",
        ": keepalive\n\n",
        data("MODIFIED", "f1") + "\n\n",
        data("DELETED", "f1") + "\n\n",
    )
    assert [
        (event.change_type, event.resource and event.resource.name)
        for event in events
    ] == [
        (ChangeType.ADDED, "f1"),
        (ChangeType.MODIFIED, "f1"),
        (ChangeType.DELETED, "f1"),
    ]
    assert all(event.scope == "demo" for event in events)
    assert all(event.kind == ResourceKind.FREIGHT for event in events)


async def test_split_chunks() -> None:
    """Test events split across chunk boundaries."""
    body = data("ADDED", "f1") + "\n\n" + data("ADDED", "f2") + "\n\n"
    events = await decode(*[body[i : i + 7] for i in range(0, len(body), 7)])
    assert [event.resource and event.resource.name for event in events] == ["f1", "f2"]


async def test_crlf_line_endings() -> None:
    body = data("ADDED", "f1") + "\r\n\r\n"
    events = await decode(body[:-3], body[-3:])
    assert len(events) == 1


async def test_multi_line_data() -> None:
    """Test data lines of one event are joined with newlines."""
    events = await decode(
        'data: {"type": "ADDED",\n',
        'data: "object": {"metadata": {"name": "f1"}}}\n\n',
    )
    assert len(events) == 1
    assert events[0].resource is not None
    assert events[0].resource.name == "f1"


async def test_trailing_block() -> None:
    """Test a final event without a terminating blank line is decoded."""
    events = await decode(data("ADDED", "f1") + "\n\n", data("ADDED", "f2"))
    assert [event.resource and event.resource.name for event in events] == ["f1", "f2"]


async def test_invalid_json() -> None:
    """Test a corrupt event fails the stream."""
    with pytest.raises(StreamException, match="unmarshaling event") as exc_info:
        await decode(data("ADDED", "f1") + "\n\n", "data: {not json\n\n")
    assert exc_info.value.stream == "Freight/demo"


async def test_unknown_event_type_dropped() -> None:
    events = await decode(data("BOOKMARK", "f1") + "\n\n", data("ADDED", "f2") + "\n\n")
    assert [event.resource and event.resource.name for event in events] == ["f2"]


async def test_block_without_data() -> None:
    events = await decode("event: ping\nid: 4\n\n")
    assert events == []


async def test_oversized_event() -> None:
    """Test an event larger than the limit fails the stream once it is complete."""
    padding = "x" * MAX_EVENT_SIZE
    body = (
        'data: {"type": "ADDED", "object": {"metadata": {"name": "f1"}, '
        f'"padding": "{padding}"}}}}\n\n'
    )
    with pytest.raises(StreamException, match="exceeds") as exc_info:
        await decode(body)
    assert exc_info.value.stream == "Freight/demo"


async def test_unterminated_event_is_bounded() -> None:
    """Test the stream fails before buffering an unbounded event."""
    chunk_size = 64 * 1024
    consumed = 0

    async def endless() -> AsyncGenerator[str, None]:
        nonlocal consumed
        yield "data: "
        while consumed < 3 * MAX_EVENT_SIZE:
            consumed += chunk_size
            yield "x" * chunk_size

    with pytest.raises(StreamException, match="reading stream"):
        async for _ in decode_sse(endless(), "demo", ResourceKind.FREIGHT):
            pass
    assert consumed <= MAX_EVENT_SIZE + chunk_size


async def test_event_below_limit() -> None:
    padding = "x" * (MAX_EVENT_SIZE - 1024)
    body = (
        'data: {"type": "ADDED", "object": {"metadata": {"name": "f1"}, '
        f'"padding": "{padding}"}}}}\n\n'
    )
    events = await decode(body)
    assert len(events) == 1
