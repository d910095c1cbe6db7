"""
StreamMultiplexer - one output channel fed by several concurrent producers.

A streaming operation owns one multiplexer. Its own model stream is the
primary producer; every sub-agent stream merged during delegation is an
additional producer. Chunks are forwarded in arrival order to a single
consumer, and the channel closes once the primary producer and every merged
producer have finished.

Usage:
    mux = StreamMultiplexer()
    mux.merge(provider_stream, primary=True)
    ...
    mux.merge(enrich_stream(sub_stream, ...))   # from the delegate tool

    async for chunk in mux.read():
        ...
"""

import asyncio
from typing import Any, AsyncIterator

from agentcore.utils.logging import get_logger

logger = get_logger(__name__)


class StreamMultiplexer:
    """
    Event streaming channel with producer accounting.

    Wraps an asyncio.Queue and provides:
    - merge(): pump an async iterator into the channel as a producer
    - write()/write_nowait(): put a single chunk
    - read(): async iterate over chunks until closed
    - close(): stop accepting chunks
    """

    # Sentinel value to signal end of stream
    _SENTINEL = object()

    def __init__(self, maxsize: int = 0):
        """
        Args:
            maxsize: Maximum queue size (0 = unlimited)
        """
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._active_producers = 0
        self._primary_done = False
        self._has_primary = False
        self._tasks: set[asyncio.Task] = set()
        self._error: BaseException | None = None

    def merge(self, stream: AsyncIterator[Any], primary: bool = False) -> bool:
        """
        Register a producer and start pumping it into the channel.

        Returns:
            bool: False when the channel is already closed (stream ignored)
        """
        if self._closed:
            logger.debug("stream_merge_after_close", primary=primary)
            return False
        if primary:
            self._has_primary = True
        self._active_producers += 1
        task = asyncio.get_running_loop().create_task(self._pump(stream, primary))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def write(self, chunk: Any) -> None:
        """Write a chunk. Writes after close are ignored."""
        if self._closed:
            return
        await self._queue.put(chunk)

    def write_nowait(self, chunk: Any) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            logger.warning("stream_chunk_dropped", reason="queue_full")

    def close(self) -> None:
        """Close the channel, signaling no more chunks will be written."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._SENTINEL)

    async def read(self) -> AsyncIterator[Any]:
        """
        Read chunks until closed.

        Raises the primary producer's error, if it failed.
        """
        while True:
            item = await self._queue.get()
            if item is self._SENTINEL:
                # Re-put sentinel for other readers (if any)
                self._queue.put_nowait(self._SENTINEL)
                break
            yield item
        if self._error is not None:
            raise self._error

    async def _pump(self, stream: AsyncIterator[Any], primary: bool) -> None:
        try:
            async for chunk in stream:
                await self.write(chunk)
        except Exception as e:
            if primary:
                self._error = e
            else:
                logger.warning("merged_stream_failed", error=str(e))
        finally:
            self._active_producers -= 1
            if primary:
                self._primary_done = True
            self._maybe_close()

    def _maybe_close(self) -> None:
        if self._has_primary and self._primary_done and self._active_producers == 0:
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_producers(self) -> int:
        return self._active_producers

    def __repr__(self) -> str:
        return (
            f"StreamMultiplexer(closed={self._closed}, "
            f"producers={self._active_producers}, qsize={self._queue.qsize()})"
        )


async def enrich_stream(
    stream: AsyncIterator[Any],
    sub_agent_id: str,
    sub_agent_name: str,
    allowed_types: list[str] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Filter a sub-agent stream and tag each chunk with its origin.

    Chunks whose "type" is not in allowed_types are skipped (no filter when
    allowed_types is empty). Forwarded chunks keep their fields and gain
    sub_agent_id / sub_agent_name.
    """
    async for chunk in stream:
        chunk_type = chunk.get("type") if isinstance(chunk, dict) else None
        if allowed_types and chunk_type not in allowed_types:
            continue
        if isinstance(chunk, dict):
            yield {**chunk, "sub_agent_id": sub_agent_id, "sub_agent_name": sub_agent_name}
        else:
            yield chunk


__all__ = ["StreamMultiplexer", "enrich_stream"]
