"""
Error taxonomy of the orchestration engine.

- ToolExecutionError: tool raised or its output failed validation (recovered, returned as data)
- RetrievalError: retriever failed (recovered, treated as no context)
- CancellationError: operation aborted (terminal, delivered via on_end and re-raised)
- ProviderError: model collaborator failed (terminal, re-raised)
- DelegationError: one sub-agent handoff failed (recovered per target)
"""

from contextlib import contextmanager
from typing import Any, Iterator


class AgentCoreError(Exception):
    """Base exception for engine errors."""

    default_code: str | None = None

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        stage: str | None = None,
        original_error: BaseException | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.stage = stage
        self.original_error = original_error
        self.metadata = metadata or {}

    def to_status_message(self) -> dict[str, Any]:
        """Render as an event status message."""
        status: dict[str, Any] = {"message": self.message}
        if self.code:
            status["code"] = self.code
        if self.stage:
            status["stage"] = self.stage
        if self.original_error is not None:
            status["original_error"] = str(self.original_error)
        return status


class ToolExecutionError(AgentCoreError):
    """Tool execution failed or produced invalid output."""

    default_code = "TOOL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        tool_call_id: str | None = None,
        validation_errors: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, stage="tool_execution", **kwargs)
        self.tool_name = tool_name
        self.tool_call_id = tool_call_id
        self.validation_errors = validation_errors

    def to_payload(self) -> dict[str, Any]:
        """Structured error returned to the model instead of raising."""
        payload: dict[str, Any] = {"error": True, "message": self.message}
        if self.validation_errors is not None:
            payload["validationErrors"] = self.validation_errors
        return payload


class RetrievalError(AgentCoreError):
    """Retriever failed to produce context."""

    default_code = "RETRIEVAL_ERROR"


class CancellationError(AgentCoreError):
    """Operation cancelled through its abort signal."""

    default_code = "USER_CANCELLED"

    def __init__(self, message: str = "Operation cancelled by user", **kwargs: Any) -> None:
        kwargs.setdefault("stage", "cancelled")
        super().__init__(message, **kwargs)


class ProviderError(AgentCoreError):
    """Model collaborator failed."""

    default_code = "PROVIDER_ERROR"


class DelegationError(AgentCoreError):
    """A sub-agent handoff failed."""

    default_code = "DELEGATION_ERROR"


def as_provider_error(error: BaseException) -> AgentCoreError:
    """Engine errors pass through, anything else becomes a ProviderError."""
    if isinstance(error, AgentCoreError):
        return error
    return ProviderError(
        str(error) or type(error).__name__, stage="model_invocation", original_error=error
    )


@contextmanager
def provider_errors() -> Iterator[None]:
    """Re-raise failures of the model collaborator as ProviderError."""
    try:
        yield
    except AgentCoreError:
        raise
    except Exception as e:
        raise as_provider_error(e) from e


def status_message_for(error: BaseException) -> dict[str, Any]:
    """Event status message for any exception."""
    if isinstance(error, AgentCoreError):
        return error.to_status_message()
    return {"message": str(error), "code": type(error).__name__}


__all__ = [
    "AgentCoreError",
    "ToolExecutionError",
    "RetrievalError",
    "CancellationError",
    "ProviderError",
    "DelegationError",
    "status_message_for",
    "as_provider_error",
    "provider_errors",
]
