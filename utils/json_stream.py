"""
Streamed JSON response bodies.

Some hosting platforms cut off responses that have not started within a
fixed wall-clock window. Streaming the body lets the status line and headers
go out immediately while the upstream call is still running; the single
final JSON document is written as one chunk once it is ready.

Usage:

    writer = JsonStreamWriter()
    async with writer:
        writer.write({"imageData": "..."})

    async for chunk in writer.chunks():
        ...
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)

JSON_STREAM_MEDIA_TYPE = "application/json; charset=utf-8"

_END_OF_STREAM = None


class StreamClosedError(RuntimeError):
    """Raised when writing to a stream that has already been closed."""


class JsonStreamWriter:
    """
    Single-consumer stream of JSON-encoded chunks.

    close() is idempotent: the end-of-stream marker is enqueued exactly once
    no matter how many exit paths reach it. Using the writer as an async
    context manager closes it on every exit, including exceptions.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, payload: Any) -> None:
        """Serialize payload as JSON and enqueue it as one chunk."""
        if self._closed:
            raise StreamClosedError("Cannot write to a closed JSON stream")
        self._queue.put_nowait(json.dumps(payload).encode("utf-8"))

    def close(self) -> None:
        """Signal end of stream. Further calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)

    async def __aenter__(self) -> JsonStreamWriter:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            logger.error("JSON stream producer failed: %s", exc)
        self.close()

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield chunks in write order until the stream is closed."""
        while True:
            chunk = await self._queue.get()
            if chunk is _END_OF_STREAM:
                return
            yield chunk
