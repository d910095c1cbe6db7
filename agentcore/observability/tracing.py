"""
Span model and tracer contract.

The engine opens one span per operation and one child span per tool call or
retrieval. Tracer implementations decide where spans go; InMemoryTracer keeps
them for inspection and tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from agentcore.utils.logging import get_logger

logger = get_logger(__name__)


class SpanKind(str, Enum):
    AGENT = "agent"
    TOOL = "tool"
    RETRIEVER = "retriever"
    MEMORY = "memory"


class SpanStatus(str, Enum):
    UNSET = "unset"
    OK = "ok"
    ERROR = "error"
    CANCELLED = "cancelled"


class Span(BaseModel):
    """One timed unit of work."""

    span_id: str = Field(default_factory=lambda: str(uuid4()))
    trace_id: str = Field(default_factory=lambda: str(uuid4()))
    parent_span_id: str | None = None

    name: str
    kind: SpanKind = SpanKind.AGENT
    status: SpanStatus = SpanStatus.UNSET

    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None
    duration_ms: float | None = None

    attributes: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_attributes(self, attributes: dict[str, Any]) -> None:
        self.attributes.update(attributes)

    def complete(
        self,
        status: SpanStatus = SpanStatus.OK,
        error_message: str | None = None,
    ) -> None:
        self.end_time = datetime.now(timezone.utc)
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        self.status = status
        if error_message:
            self.error_message = error_message

    @property
    def is_ended(self) -> bool:
        return self.end_time is not None


class Tracer(ABC):
    """Distributed-tracing span API consumed by the engine."""

    @abstractmethod
    def start_span(
        self,
        name: str,
        kind: SpanKind,
        parent: Span | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Span:
        ...

    @abstractmethod
    def end_span(
        self,
        span: Span,
        status: SpanStatus = SpanStatus.OK,
        error: BaseException | str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        ...


class InMemoryTracer(Tracer):
    """Keeps every span in memory."""

    def __init__(self) -> None:
        self.spans: list[Span] = []

    def start_span(
        self,
        name: str,
        kind: SpanKind,
        parent: Span | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Span:
        span = Span(
            name=name,
            kind=kind,
            trace_id=parent.trace_id if parent else str(uuid4()),
            parent_span_id=parent.span_id if parent else None,
            attributes=dict(attributes or {}),
        )
        self.spans.append(span)
        return span

    def end_span(
        self,
        span: Span,
        status: SpanStatus = SpanStatus.OK,
        error: BaseException | str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        if span.is_ended:
            logger.debug("span_already_ended", span_id=span.span_id, name=span.name)
            return
        if attributes:
            span.set_attributes(attributes)
        span.complete(status=status, error_message=str(error) if error else None)

    def get_trace(self, trace_id: str) -> list[Span]:
        return [s for s in self.spans if s.trace_id == trace_id]

    def get_children(self, span: Span) -> list[Span]:
        return [s for s in self.spans if s.parent_span_id == span.span_id]


__all__ = ["SpanKind", "SpanStatus", "Span", "Tracer", "InMemoryTracer"]
