"""
OperationContext - mutable per-call state container.

One context is created for every call shape invocation and lives until
the call settles. States:

    INITIALIZING -> RUNNING -> COMPLETED | ERRORED | CANCELLED

The terminal transition happens exactly once (see `finish`). After it,
`is_active` is False and the operation must not touch its history entry
or publish further success/error events.

A delegated (sub-agent) context shares the parent's conversation steps and
abort signal but owns its own id, span and history entry.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from agentcore.domain.models import HistoryEntry, StepWithContent

if TYPE_CHECKING:
    from agentcore.domain.events import TimelineEvent
    from agentcore.observability.tracing import Span
    from agentcore.runtime.control import AbortSignal


class OperationStatus(str, Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (
    OperationStatus.COMPLETED,
    OperationStatus.ERRORED,
    OperationStatus.CANCELLED,
)

# system_context key under which a streaming operation exposes its multiplexer
STREAM_WRITER_KEY = "stream_writer"


@dataclass(eq=False)
class OperationContext:
    """Per-call state shared by hooks, tools and managers."""

    operation_id: str
    history_entry: HistoryEntry
    logger: Any
    user_context: dict[Any, Any] = field(default_factory=dict)
    system_context: dict[str, Any] = field(default_factory=dict)
    conversation_steps: list[StepWithContent] = field(default_factory=list)
    signal: "AbortSignal | None" = None
    span: "Span | None" = None

    operation_name: str = "unknown"
    parent_agent_id: str | None = None
    parent_history_entry_id: str | None = None
    delegation_depth: int = 0

    status: OperationStatus = OperationStatus.INITIALIZING

    # Set once agent:start has been published
    start_event: "TimelineEvent | None" = None

    # Background task running cancellation bookkeeping
    cancellation_task: "asyncio.Future | None" = None

    # Copy of user_context taken once the operation settled
    final_user_context: dict[Any, Any] | None = None

    @property
    def is_active(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.status == OperationStatus.CANCELLED

    @property
    def is_delegated(self) -> bool:
        return self.parent_agent_id is not None

    def mark_running(self) -> None:
        if self.status == OperationStatus.INITIALIZING:
            self.status = OperationStatus.RUNNING

    def finish(self, status: OperationStatus) -> bool:
        """
        Move to a terminal state.

        Returns:
            bool: False if the context already reached a terminal state
        """
        if not self.is_active:
            return False
        self.status = status
        return True

    async def wait_cancellation(self) -> None:
        """Wait for cancellation bookkeeping (history, events, on_end) to finish."""
        if self.cancellation_task is not None:
            await asyncio.shield(self.cancellation_task)

    def user_context_snapshot(self) -> dict[Any, Any]:
        return dict(self.user_context)

    def freeze_user_context(self) -> dict[Any, Any]:
        """Record the final user context of a settled operation."""
        self.final_user_context = self.user_context_snapshot()
        return dict(self.final_user_context)


@dataclass
class ToolExecutionContext:
    """Execution context injected into every tool call."""

    operation_context: OperationContext | None
    agent_id: str
    history_entry_id: str = "unknown"

    @property
    def user_context(self) -> dict[Any, Any]:
        if self.operation_context is None:
            return {}
        return self.operation_context.user_context

    @property
    def signal(self) -> "AbortSignal | None":
        if self.operation_context is None:
            return None
        return self.operation_context.signal


@dataclass
class ReasoningToolExecutionContext(ToolExecutionContext):
    """
    Context for the reserved reasoning tools (think, analyze).

    Carries the owning history entry id as given, without the "unknown"
    fallback, so reasoning records can be attached to the entry.
    """

    operation_id: str | None = None

    @property
    def has_history_entry(self) -> bool:
        return bool(self.history_entry_id) and self.history_entry_id != "unknown"


__all__ = [
    "OperationStatus",
    "OperationContext",
    "ToolExecutionContext",
    "ReasoningToolExecutionContext",
    "STREAM_WRITER_KEY",
]
