"""
Domain module - Pure domain models with no external dependencies.

This module contains the core data models, timeline events and errors.
"""

from .errors import (
    AgentCoreError,
    CancellationError,
    DelegationError,
    ProviderError,
    RetrievalError,
    ToolExecutionError,
    status_message_for,
)
from .events import (
    TERMINAL_AGENT_EVENTS,
    EventName,
    EventStatus,
    EventType,
    TimelineEvent,
    TimelineEventRecord,
)
from .models import (
    Conversation,
    HistoryEntry,
    HistoryStatus,
    HistoryStep,
    Message,
    MessageRole,
    StepType,
    StepWithContent,
    Usage,
    utc_now,
)

__all__ = [
    # Models
    "Conversation",
    "HistoryEntry",
    "HistoryStatus",
    "HistoryStep",
    "Message",
    "MessageRole",
    "StepType",
    "StepWithContent",
    "Usage",
    "utc_now",
    # Events
    "EventName",
    "EventStatus",
    "EventType",
    "TERMINAL_AGENT_EVENTS",
    "TimelineEvent",
    "TimelineEventRecord",
    # Errors
    "AgentCoreError",
    "CancellationError",
    "DelegationError",
    "ProviderError",
    "RetrievalError",
    "ToolExecutionError",
    "status_message_for",
]
