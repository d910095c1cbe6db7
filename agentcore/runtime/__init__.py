"""
Runtime module - per-operation execution machinery.

This module contains:
- OperationContext / ToolExecutionContext: per-call state
- AbortSignal / AbortController: cooperative cancellation
- BackgroundQueue: fire-and-forget work with retries
- AgentEventEmitter / TimelineEventFactory: timeline events
- AgentRegistry: orchestration root (agents, links, emitter, tracer)
- StreamMultiplexer: merged output stream for streaming operations
- ToolExecutionWrapper: observed, fault-contained tool execution
"""

from .background import BackgroundQueue
from .context import (
    STREAM_WRITER_KEY,
    OperationContext,
    OperationStatus,
    ReasoningToolExecutionContext,
    ToolExecutionContext,
)
from .control import AbortController, AbortSignal
from .event_emitter import AgentEventEmitter, EventCollector
from .event_factory import TimelineEventFactory
from .registry import AgentRegistry
from .tool_executor import ToolExecutionWrapper
from .wire import StreamMultiplexer, enrich_stream

__all__ = [
    "BackgroundQueue",
    "STREAM_WRITER_KEY",
    "OperationContext",
    "OperationStatus",
    "ToolExecutionContext",
    "ReasoningToolExecutionContext",
    "AbortController",
    "AbortSignal",
    "AgentEventEmitter",
    "EventCollector",
    "TimelineEventFactory",
    "AgentRegistry",
    "ToolExecutionWrapper",
    "StreamMultiplexer",
    "enrich_stream",
]
