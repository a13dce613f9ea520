from __future__ import annotations

from typing import AsyncIterable, AsyncIterator

DEFAULT_THRESHOLD = 10


async def rechunk(
    fragments: AsyncIterable[str], threshold: int = DEFAULT_THRESHOLD
) -> AsyncIterator[str]:
    """Coalesce streamed fragments into chunks of at least ``threshold`` chars.

    Only the final chunk may be shorter; empty chunks are never emitted.
    """

    buffer = ""
    async for fragment in fragments:
        if not fragment:
            continue
        buffer += fragment
        if len(buffer) >= threshold:
            yield buffer
            buffer = ""
    if buffer:
        yield buffer
