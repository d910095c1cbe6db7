"""
Control flow utilities for agent execution.

This module consolidates:
- AbortSignal: Graceful cancellation mechanism with abort listeners
- AbortController: Owner of a signal
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable

from agentcore.utils.logging import get_logger

logger = get_logger(__name__)

AbortListener = Callable[[str | None], Any | Awaitable[Any]]


# ============================================================================
# AbortSignal
# ============================================================================


class AbortSignal:
    """
    Abort signal for graceful cancellation of long-running operations.

    Based on asyncio.Event, supports:
    - Synchronous abort status check
    - Async wait for abort signal
    - Recording abort reason
    - Listeners notified exactly once when the signal fires

    Examples:
        >>> signal = AbortSignal()
        >>>
        >>> # React to abort wherever the pipeline currently is
        >>> signal.add_listener(lambda reason: print(reason))
        >>>
        >>> # Trigger abort in another task
        >>> signal.abort("User cancelled")
        >>>
        >>> # Check in tool execution
        >>> if signal.is_aborted():
        >>>     return  # Early exit
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._listeners: list[AbortListener] = []
        self._tasks: set[asyncio.Task] = set()

    def abort(self, reason: str = "Operation cancelled"):
        """Trigger abort signal. Repeated calls are ignored."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            self._notify(listener)

    def is_aborted(self) -> bool:
        """Check if abort has been triggered."""
        return self._event.is_set()

    async def wait(self):
        """Async wait for abort signal."""
        await self._event.wait()

    @property
    def reason(self) -> str | None:
        """Get abort reason."""
        return self._reason

    def reset(self):
        """Reset abort signal for reuse."""
        self._event.clear()
        self._reason = None

    def add_listener(self, listener: AbortListener) -> None:
        """
        Register a callback invoked with the abort reason.

        Coroutine functions are scheduled as tasks. A listener added after
        the signal fired is invoked immediately.
        """
        if self._event.is_set():
            self._notify(listener)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, listener: AbortListener) -> None:
        try:
            result = listener(self._reason)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except Exception as e:
            logger.error("abort_listener_failed", error=str(e), exc_info=True)


# ============================================================================
# AbortController
# ============================================================================


class AbortController:
    """Owns an AbortSignal and triggers it."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: str = "Operation cancelled") -> None:
        self.signal.abort(reason)


__all__ = ["AbortSignal", "AbortController", "AbortListener"]
