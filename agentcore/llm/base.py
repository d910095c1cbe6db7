"""
Model invocation abstraction - pure LLM collaborator interface.

Responsibilities:
- Run a (possibly multi-step) generation over the given messages
- Execute tool calls through the tools it receives
- Report every step through `on_step_finish`, in emission order
- For streaming shapes, settle `text`/`object`/`usage` only after awaiting
  `on_finish` or `on_error`

Does NOT handle:
- History, memory or events
- Hook dispatch
- Tool wrapping (the tools it receives are already wrapped)

Wire-level protocol concerns belong entirely to implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

from agentcore.domain.models import Message, StepWithContent, Usage

if TYPE_CHECKING:
    from agentcore.runtime.control import AbortSignal
    from agentcore.tools.base import Tool

StepCallback = Callable[[StepWithContent], Awaitable[None]]
FinishCallback = Callable[[Any], Awaitable[None]]
ErrorCallback = Callable[[BaseException], Awaitable[None]]


# ============================================================================
# Results
# ============================================================================


class GenerateTextResult(BaseModel):
    """Finished text generation."""

    text: str = ""
    usage: Usage | None = None
    finish_reason: str | None = None
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    tool_results: list[dict[str, Any]] = Field(default_factory=list)


class GenerateObjectResult(BaseModel):
    """Finished structured generation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    object: Any = None
    usage: Usage | None = None
    finish_reason: str | None = None


@dataclass
class StreamTextResult:
    """
    Live text stream.

    `full_stream` yields dict chunks such as
    {"type": "text-delta", "text": ...} or {"type": "tool-call", ...}.
    `text` and `usage` resolve once the generation has finished.
    """

    text_stream: AsyncIterator[str]
    text: Awaitable[str]
    usage: Awaitable[Usage | None]
    full_stream: AsyncIterator[dict[str, Any]] | None = None


@dataclass
class StreamObjectResult:
    """Live structured stream of progressively completed objects."""

    partial_object_stream: AsyncIterator[Any]
    object: Awaitable[Any]
    usage: Awaitable[Usage | None]


# ============================================================================
# Provider interface
# ============================================================================


class LLMProvider(ABC):
    """
    Model invocation collaborator.

    `on_finish` receives a GenerateTextResult (text shapes) or a
    GenerateObjectResult (object shapes).
    """

    @abstractmethod
    async def generate_text(
        self,
        messages: list[Message],
        *,
        model: Any = None,
        tools: list["Tool"] | None = None,
        max_steps: int | None = None,
        signal: "AbortSignal | None" = None,
        on_step_finish: StepCallback | None = None,
        provider_options: dict[str, Any] | None = None,
    ) -> GenerateTextResult:
        pass

    @abstractmethod
    async def stream_text(
        self,
        messages: list[Message],
        *,
        model: Any = None,
        tools: list["Tool"] | None = None,
        max_steps: int | None = None,
        signal: "AbortSignal | None" = None,
        on_step_finish: StepCallback | None = None,
        on_finish: FinishCallback | None = None,
        on_error: ErrorCallback | None = None,
        provider_options: dict[str, Any] | None = None,
    ) -> StreamTextResult:
        pass

    @abstractmethod
    async def generate_object(
        self,
        messages: list[Message],
        schema: type[BaseModel],
        *,
        model: Any = None,
        signal: "AbortSignal | None" = None,
        on_step_finish: StepCallback | None = None,
        provider_options: dict[str, Any] | None = None,
    ) -> GenerateObjectResult:
        pass

    @abstractmethod
    async def stream_object(
        self,
        messages: list[Message],
        schema: type[BaseModel],
        *,
        model: Any = None,
        signal: "AbortSignal | None" = None,
        on_step_finish: StepCallback | None = None,
        on_finish: FinishCallback | None = None,
        on_error: ErrorCallback | None = None,
        provider_options: dict[str, Any] | None = None,
    ) -> StreamObjectResult:
        pass

    def get_model_identifier(self, model: Any) -> str:
        """Human readable model name used in history and events."""
        if model is None:
            return type(self).__name__
        if isinstance(model, str):
            return model
        return getattr(model, "model_id", None) or getattr(model, "name", None) or str(model)


__all__ = [
    "LLMProvider",
    "GenerateTextResult",
    "GenerateObjectResult",
    "StreamTextResult",
    "StreamObjectResult",
    "StepCallback",
    "FinishCallback",
    "ErrorCallback",
]
