"""
TimelineEventFactory - Context-bound event factory.

Binds to an agent identity and an OperationContext and creates
TimelineEvents without repetitive parameter passing.

Usage:
    ef = TimelineEventFactory(agent_id=agent.id, agent_name=agent.name, ctx=ctx)

    start = ef.agent_start(input)
    ...
    done = ef.agent_success(start, output={"text": text}, usage=usage)
"""

from datetime import datetime, timezone
from typing import Any

from agentcore.domain.errors import status_message_for
from agentcore.domain.events import EventName, EventStatus, EventType, TimelineEvent
from agentcore.runtime.context import OperationContext


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump(value: Any) -> Any:
    """Make pydantic payloads JSON friendly."""
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


class TimelineEventFactory:
    """Context-bound timeline event factory."""

    def __init__(self, agent_id: str, agent_name: str, ctx: OperationContext) -> None:
        self._agent_id = agent_id
        self._agent_name = agent_name
        self._ctx = ctx

    @property
    def ctx(self) -> OperationContext:
        return self._ctx

    def _user_context(self) -> dict[str, Any]:
        return {str(k): v for k, v in self._ctx.user_context.items()}

    def _agent_metadata(self, **extra: Any) -> dict[str, Any]:
        metadata = {
            "display_name": self._agent_name,
            "id": self._agent_id,
            "user_context": self._user_context(),
        }
        metadata.update({k: v for k, v in extra.items() if v is not None})
        return metadata

    def _component_metadata(self, display_name: str, component_id: str) -> dict[str, Any]:
        return {"display_name": display_name, "id": component_id, "agent_id": self._agent_id}

    # ------------------------------------------------------------------
    # Agent
    # ------------------------------------------------------------------

    def agent_start(
        self,
        input: Any,
        system_prompt: Any = None,
        messages: list[Any] | None = None,
        model_parameters: dict[str, Any] | None = None,
    ) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.AGENT_START,
            type=EventType.AGENT,
            status=EventStatus.RUNNING,
            input={"input": _dump(input)},
            metadata=self._agent_metadata(
                system_prompt=system_prompt,
                messages=_dump(messages) if messages is not None else None,
                model_parameters=model_parameters,
            ),
            trace_id=self._ctx.history_entry.id,
        )

    def agent_success(
        self,
        start: TimelineEvent,
        output: Any,
        usage: Any = None,
    ) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.AGENT_SUCCESS,
            type=EventType.AGENT,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.COMPLETED,
            output=_dump(output),
            metadata=self._agent_metadata(usage=_dump(usage)),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    def agent_error(self, start: TimelineEvent, error: BaseException) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.AGENT_ERROR,
            type=EventType.AGENT,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.ERROR,
            level="ERROR",
            status_message=status_message_for(error),
            metadata=self._agent_metadata(),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    def agent_cancel(self, start: TimelineEvent, error: BaseException) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.AGENT_CANCEL,
            type=EventType.AGENT,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.CANCELLED,
            status_message=status_message_for(error),
            metadata=self._agent_metadata(),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def tool_start(self, tool_name: str, args: Any, tool_call_id: str | None = None) -> TimelineEvent:
        metadata = self._component_metadata(tool_name, tool_name)
        if tool_call_id:
            metadata["tool_call_id"] = tool_call_id
        return TimelineEvent(
            name=EventName.TOOL_START,
            type=EventType.TOOL,
            status=EventStatus.RUNNING,
            input=_dump(args),
            metadata=metadata,
            trace_id=self._ctx.history_entry.id,
            parent_event_id=self._start_event_id(),
        )

    def tool_success(self, start: TimelineEvent, tool_name: str, output: Any) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.TOOL_SUCCESS,
            type=EventType.TOOL,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.COMPLETED,
            output=_dump(output),
            metadata=self._component_metadata(tool_name, tool_name),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    def tool_error(
        self, start: TimelineEvent, tool_name: str, error: BaseException
    ) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.TOOL_ERROR,
            type=EventType.TOOL,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.ERROR,
            level="ERROR",
            status_message=status_message_for(error),
            metadata=self._component_metadata(tool_name, tool_name),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    # ------------------------------------------------------------------
    # Retriever
    # ------------------------------------------------------------------

    def retriever_start(self, name: str, input: Any) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.RETRIEVER_START,
            type=EventType.RETRIEVER,
            status=EventStatus.RUNNING,
            input={"query": _dump(input)},
            metadata=self._component_metadata(name, name),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=self._start_event_id(),
        )

    def retriever_success(self, start: TimelineEvent, name: str, context: str | None) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.RETRIEVER_SUCCESS,
            type=EventType.RETRIEVER,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.COMPLETED,
            output={"context": context},
            metadata=self._component_metadata(name, name),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    def retriever_error(self, start: TimelineEvent, name: str, error: BaseException) -> TimelineEvent:
        return TimelineEvent(
            name=EventName.RETRIEVER_ERROR,
            type=EventType.RETRIEVER,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.ERROR,
            level="ERROR",
            status_message=status_message_for(error),
            metadata=self._component_metadata(name, name),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    def memory_start(self, name: EventName, input: Any) -> TimelineEvent:
        return TimelineEvent(
            name=name,
            type=EventType.MEMORY,
            status=EventStatus.RUNNING,
            input=_dump(input),
            metadata=self._component_metadata("Memory", "memory"),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=self._start_event_id(),
        )

    def memory_end(
        self,
        name: EventName,
        start: TimelineEvent,
        output: Any = None,
        error: BaseException | None = None,
    ) -> TimelineEvent:
        return TimelineEvent(
            name=name,
            type=EventType.MEMORY,
            start_time=start.start_time,
            end_time=_iso_now(),
            status=EventStatus.ERROR if error else EventStatus.COMPLETED,
            level="ERROR" if error else "INFO",
            output=_dump(output),
            status_message=status_message_for(error) if error else None,
            metadata=self._component_metadata("Memory", "memory"),
            trace_id=self._ctx.history_entry.id,
            parent_event_id=start.id,
        )

    def _start_event_id(self) -> str | None:
        start = self._ctx.start_event
        return start.id if start is not None else None


__all__ = ["TimelineEventFactory"]
