"""Decoding of watch events delivered as Server-Sent Events.

The server frames each event as a block of lines terminated by a blank line.
Lines starting with `:` are keepalive comments and the JSON encoded event is
carried in one or more `data:` lines, which are joined with newlines.
"""

from collections.abc import AsyncGenerator, AsyncIterable
import json
import logging

from freight_watch.exceptions import InputException, StreamException
from freight_watch.manifest import ResourceKind, WatchEvent

__all__ = ["decode_sse"]

_LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data:"

MAX_EVENT_SIZE = 1024 * 1024
"""Largest event block accepted from a stream, in characters."""


def _block_data(block: str) -> str | None:
    data_lines = []
    for line in block.split("\n"):
        if line.startswith(":"):
            continue
        if line.startswith(DATA_PREFIX):
            value = line[len(DATA_PREFIX) :]
            data_lines.append(value[1:] if value.startswith(" ") else value)
    if not data_lines:
        return None
    return "\n".join(data_lines)


def _decode_block(block: str, scope: str, kind: ResourceKind) -> WatchEvent | None:
    if (data := _block_data(block)) is None:
        return None
    try:
        doc = json.loads(data)
    except json.JSONDecodeError as err:
        raise StreamException(f"{kind}/{scope}", f"unmarshaling event: {err}") from err
    try:
        return WatchEvent.parse_doc(doc, scope=scope, kind=kind)
    except InputException as err:
        _LOGGER.warning("Dropping undecodable event for %s/%s: %s", kind, scope, err)
        return None


def _oversized(size: int) -> str:
    return f"reading stream: event of {size} characters exceeds {MAX_EVENT_SIZE}"


async def decode_sse(
    chunks: AsyncIterable[str], scope: str, kind: ResourceKind
) -> AsyncGenerator[WatchEvent, None]:
    """Decode a Server-Sent Events body into watch events.

    Args:
        chunks: The body of the response, in arbitrary pieces.
        scope: The project the stream belongs to.
        kind: The kind of resource carried by the stream.

    Yields:
        Decoded events. A trailing block without a terminating blank line is
        decoded when the body ends.

    Raises:
        StreamException: If an event does not contain valid JSON or exceeds
            MAX_EVENT_SIZE.
    """
    stream = f"{kind}/{scope}"
    buffer = ""
    async for chunk in chunks:
        buffer = (buffer + chunk).replace("\r\n", "\n")
        while (index := buffer.find("\n\n")) >= 0:
            block, buffer = buffer[:index], buffer[index + 2 :]
            if len(block) > MAX_EVENT_SIZE:
                raise StreamException(stream, _oversized(len(block)))
            if (event := _decode_block(block, scope, kind)) is not None:
                yield event
        if len(buffer) > MAX_EVENT_SIZE:
            raise StreamException(stream, _oversized(len(buffer)))
    if buffer.strip():
        if (event := _decode_block(buffer, scope, kind)) is not None:
            yield event
