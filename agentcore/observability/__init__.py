"""
Observability module - spans and tracers.
"""

from .tracing import InMemoryTracer, Span, SpanKind, SpanStatus, Tracer

__all__ = ["InMemoryTracer", "Span", "SpanKind", "SpanStatus", "Tracer"]
