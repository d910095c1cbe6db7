"""
Timeline event protocol.

Events are ephemeral: they are published, never stored by the engine itself.
Every event carries the HistoryEntry id as trace id and may point at a
parent event, so the events of one operation form a tree rooted at its
agent:start event.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EventName(str, Enum):
    """Names of timeline events"""

    # Agent lifecycle
    AGENT_START = "agent:start"
    AGENT_SUCCESS = "agent:success"
    AGENT_ERROR = "agent:error"
    AGENT_CANCEL = "agent:cancel"

    # Tools
    TOOL_START = "tool:start"
    TOOL_SUCCESS = "tool:success"
    TOOL_ERROR = "tool:error"

    # Retriever
    RETRIEVER_START = "retriever:start"
    RETRIEVER_SUCCESS = "retriever:success"
    RETRIEVER_ERROR = "retriever:error"

    # Memory
    MEMORY_READ_START = "memory:read_start"
    MEMORY_READ_SUCCESS = "memory:read_success"
    MEMORY_READ_ERROR = "memory:read_error"
    MEMORY_WRITE_START = "memory:write_start"
    MEMORY_WRITE_SUCCESS = "memory:write_success"
    MEMORY_WRITE_ERROR = "memory:write_error"


class EventType(str, Enum):
    AGENT = "agent"
    TOOL = "tool"
    RETRIEVER = "retriever"
    MEMORY = "memory"


class EventStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


# Names that end an operation
TERMINAL_AGENT_EVENTS = frozenset(
    name.value
    for name in (EventName.AGENT_SUCCESS, EventName.AGENT_ERROR, EventName.AGENT_CANCEL)
)


class TimelineEvent(BaseModel):
    """A single observability event."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: EventName
    type: EventType
    start_time: str = Field(default_factory=_iso_now)
    end_time: str | None = None
    status: EventStatus
    level: str = "INFO"
    input: Any = None
    output: Any = None
    status_message: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Trace tree
    trace_id: str
    parent_event_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.name in TERMINAL_AGENT_EVENTS


class TimelineEventRecord(BaseModel):
    """Envelope delivered to event subscribers."""

    agent_id: str
    history_id: str
    event: TimelineEvent
    parent_history_entry_id: str | None = None


__all__ = [
    "EventName",
    "EventType",
    "EventStatus",
    "TERMINAL_AGENT_EVENTS",
    "TimelineEvent",
    "TimelineEventRecord",
]
