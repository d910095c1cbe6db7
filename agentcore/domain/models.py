"""
Core domain models for agentcore.

This module contains the data models shared across the engine:
- Message: LLM-facing conversation message
- StepWithContent: one step emitted by the model collaborator
- HistoryEntry: durable record of one operation
- Conversation: memory-side conversation record
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class MessageRole(str, Enum):
    """Standard LLM message roles"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class StepType(str, Enum):
    """Kind of step emitted during generation"""

    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class HistoryStatus(str, Enum):
    """Status of a history entry"""

    WORKING = "working"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


# ============================================================================
# Messages
# ============================================================================


class Message(BaseModel):
    """A single conversation message."""

    model_config = ConfigDict(use_enum_values=True)

    role: MessageRole
    content: Any = ""
    name: str | None = None
    tool_call_id: str | None = None

    def text(self) -> str:
        """Content rendered as plain text."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            parts = []
            for part in self.content:
                if isinstance(part, dict) and part.get("type") == "text":
                    parts.append(str(part.get("text", "")))
            return "".join(parts)
        return str(self.content)


class Usage(BaseModel):
    """Token usage reported by the model collaborator."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


# ============================================================================
# Steps
# ============================================================================


class StepWithContent(BaseModel):
    """
    One generation step reported through the step callback.

    - text: assistant produced text
    - tool_call: assistant requested a tool (name + arguments)
    - tool_result: tool output fed back to the model (result)
    """

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: StepType
    content: Any = ""
    role: MessageRole = MessageRole.ASSISTANT
    name: str | None = None
    arguments: dict[str, Any] | None = None
    result: Any = None
    usage: Usage | None = None
    # Provider id of the tool call a tool_call / tool_result step belongs to
    tool_call_id: str | None = None

    # Set when the step was produced by a delegated (sub-agent) operation
    sub_agent_id: str | None = None
    sub_agent_name: str | None = None

    def content_text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return str(self.content)


# ============================================================================
# History
# ============================================================================


class HistoryStep(BaseModel):
    """Compact step log stored inside a history entry."""

    type: str
    name: str | None = None
    content: Any = None
    arguments: dict[str, Any] | None = None

    @classmethod
    def from_step(cls, step: StepWithContent) -> "HistoryStep":
        return cls(
            type=step.type,
            name=step.name,
            content=step.content,
            arguments=step.arguments,
        )


class HistoryEntry(BaseModel):
    """Durable record of one operation (one call shape invocation)."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    input: Any = None
    output: Any = ""
    status: HistoryStatus = HistoryStatus.WORKING
    steps: list[HistoryStep] = Field(default_factory=list)
    usage: Usage | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    user_id: str | None = None
    conversation_id: str | None = None
    model: str | None = None


# ============================================================================
# Conversations
# ============================================================================


class Conversation(BaseModel):
    """Conversation record owned by the memory storage."""

    id: str
    resource_id: str
    user_id: str
    title: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "utc_now",
    "MessageRole",
    "StepType",
    "HistoryStatus",
    "Message",
    "Usage",
    "StepWithContent",
    "HistoryStep",
    "HistoryEntry",
    "Conversation",
]
