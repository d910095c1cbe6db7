"""
BackgroundQueue - fire-and-forget work that must never block an operation.

Operations are executed sequentially in FIFO order by a single drain task,
each one retried with exponential backoff (tenacity). A failure that
survives all retries is logged and dropped.

Usage:
    queue = BackgroundQueue(name="events")
    queue.enqueue(lambda: store.save(item), operation_id="save-1")
    ...
    await queue.flush()  # tests / shutdown
"""

import asyncio
from typing import Awaitable, Callable
from uuid import uuid4

from agentcore.utils.logging import get_logger
from agentcore.utils.retry import background_retrying

logger = get_logger(__name__)

BackgroundOperation = Callable[[], Awaitable[object]]


class BackgroundQueue:
    """Sequential background executor with retries."""

    def __init__(
        self,
        name: str = "background",
        max_attempts: int | None = None,
        min_wait: float | None = None,
        max_wait: float | None = None,
    ):
        self.name = name
        self._max_attempts = max_attempts
        self._min_wait = min_wait
        self._max_wait = max_wait
        self._queue: asyncio.Queue | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._worker: asyncio.Task | None = None

    def enqueue(self, operation: BackgroundOperation, operation_id: str | None = None) -> str:
        """
        Schedule an operation without waiting for it.

        Must be called from within a running event loop.

        Returns:
            str: Operation id used in logs
        """
        op_id = operation_id or str(uuid4())
        queue = self._ensure_queue()
        queue.put_nowait((op_id, operation))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())
        return op_id

    async def flush(self) -> None:
        """Wait until every queued operation has been processed."""
        if self._queue is None or self._loop is not asyncio.get_running_loop():
            return
        await self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def _ensure_queue(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            self._queue = asyncio.Queue()
            self._loop = loop
            self._worker = None
        return self._queue

    async def _drain(self) -> None:
        queue = self._queue
        if queue is None:
            return
        while not queue.empty():
            op_id, operation = queue.get_nowait()
            try:
                await self._run(op_id, operation)
            finally:
                queue.task_done()

    async def _run(self, op_id: str, operation: BackgroundOperation) -> None:
        try:
            async for attempt in background_retrying(
                max_attempts=self._max_attempts,
                min_wait=self._min_wait,
                max_wait=self._max_wait,
            ):
                with attempt:
                    await operation()
        except Exception as e:
            logger.error(
                "background_operation_failed",
                queue=self.name,
                operation_id=op_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def __repr__(self) -> str:
        return f"BackgroundQueue(name={self.name!r}, pending={self.pending})"


__all__ = ["BackgroundQueue", "BackgroundOperation"]
