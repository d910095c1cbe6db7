"""
ToolExecutionWrapper - runs every tool call of an operation.

Each wrapped tool, on invocation:
1. publishes tool:start (child of agent:start) and opens a child span
2. runs on_tool_start
3. calls the tool with a ToolExecutionContext
4. validates the output against the tool's output schema, if any
5. publishes tool:success or tool:error and runs on_tool_end

Failures never escape to the model collaborator; they come back as a
structured payload so the model can recover within the same turn.
"""

import json
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from agentcore.domain.errors import ToolExecutionError
from agentcore.observability.tracing import SpanKind, SpanStatus, Tracer
from agentcore.runtime.context import (
    OperationContext,
    ReasoningToolExecutionContext,
    ToolExecutionContext,
)
from agentcore.runtime.event_factory import TimelineEventFactory
from agentcore.tools.base import Tool

if TYPE_CHECKING:
    from agentcore.agent.agent import Agent
    from agentcore.agent.hooks import AgentHooks
    from agentcore.domain.events import TimelineEvent

# Reserved tools that receive a ReasoningToolExecutionContext
REASONING_TOOLS = ("think", "analyze")

CANCELLED_PAYLOAD = {"error": True, "message": "Operation cancelled"}


def _validation_errors(error: ValidationError) -> list[dict[str, Any]]:
    return json.loads(error.json(include_url=False))


class ToolExecutionWrapper:
    """Wraps tools so their execution is observed and fault-contained."""

    def __init__(
        self,
        agent: "Agent",
        context: OperationContext,
        hooks: "AgentHooks",
        event_factory: TimelineEventFactory,
        tracer: Tracer,
    ):
        self._agent = agent
        self._context = context
        self._hooks = hooks
        self._events = event_factory
        self._tracer = tracer
        self._execution_context = ToolExecutionContext(
            operation_context=context,
            agent_id=agent.id,
            history_entry_id=context.history_entry.id or "unknown",
        )
        self._reasoning_context = ReasoningToolExecutionContext(
            operation_context=context,
            agent_id=agent.id,
            history_entry_id=context.history_entry.id,
            operation_id=context.operation_id,
        )

    def wrap(self, tool: Tool) -> Tool:
        """Return a copy of `tool` whose execute runs through this wrapper."""

        async def execute(args: dict[str, Any] | None, _context: Any = None) -> Any:
            return await self.execute(tool, args or {})

        return tool.model_copy(update={"execute": execute})

    def wrap_all(self, tools: list[Tool]) -> list[Tool]:
        return [self.wrap(tool) for tool in tools]

    async def execute(self, tool: Tool, args: dict[str, Any]) -> Any:
        ctx = self._context
        if not ctx.is_active:
            ctx.logger.debug("tool_skipped_inactive_operation", tool_name=tool.name)
            return dict(CANCELLED_PAYLOAD)

        args = dict(args)
        tool_call_id = args.pop("tool_call_id", None)

        execution_context = self._context_for(tool)

        start = self._events.tool_start(tool.name, args, tool_call_id)
        self._publish(start)
        span = self._tracer.start_span(
            f"tool.{tool.name}",
            SpanKind.TOOL,
            parent=ctx.span,
            attributes={"tool.name": tool.name, "tool.call_id": tool_call_id, "tool.args": args},
        )

        try:
            await self._hooks.invoke(
                "on_tool_start", agent=self._agent, tool=tool, context=ctx
            )
            try:
                call_args = tool.validate_args(args)
            except ValidationError as e:
                raise ToolExecutionError(
                    f"Invalid arguments for tool '{tool.name}'",
                    tool_name=tool.name,
                    tool_call_id=tool_call_id,
                    validation_errors=_validation_errors(e),
                    original_error=e,
                ) from e
            output = await tool.run(call_args, execution_context)
            self._check_output(tool, output, tool_call_id)
        except Exception as e:
            return await self._fail(tool, tool_call_id, start, span, e)

        if not ctx.is_active:
            # Operation was cancelled while the tool ran; its result is discarded
            self._tracer.end_span(span, status=SpanStatus.CANCELLED)
            ctx.logger.info("tool_result_discarded", tool_name=tool.name)
            return dict(CANCELLED_PAYLOAD)

        self._tracer.end_span(span, status=SpanStatus.OK)
        self._publish(self._events.tool_success(start, tool.name, output))
        await self._end_hook(tool, output, None)
        ctx.logger.debug("tool_execution_completed", tool_name=tool.name, tool_call_id=tool_call_id)
        return output

    def _context_for(self, tool: Tool) -> ToolExecutionContext:
        if tool.name not in REASONING_TOOLS:
            return self._execution_context
        if not self._reasoning_context.has_history_entry:
            self._context.logger.warning(
                "reasoning_tool_without_history_entry",
                tool_name=tool.name,
                agent_id=self._agent.id,
            )
        return self._reasoning_context

    def _check_output(self, tool: Tool, output: Any, tool_call_id: str | None) -> None:
        schema = tool.output_schema
        if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
            return
        if isinstance(output, schema):
            return
        try:
            schema.model_validate(output)
        except ValidationError as e:
            raise ToolExecutionError(
                f"Tool '{tool.name}' returned output that does not match its output schema",
                tool_name=tool.name,
                tool_call_id=tool_call_id,
                validation_errors=_validation_errors(e),
                original_error=e,
            ) from e

    async def _fail(
        self,
        tool: Tool,
        tool_call_id: str | None,
        start: "TimelineEvent",
        span: Any,
        error: Exception,
    ) -> dict[str, Any]:
        if not isinstance(error, ToolExecutionError):
            error = ToolExecutionError(
                str(error) or type(error).__name__,
                tool_name=tool.name,
                tool_call_id=tool_call_id,
                original_error=error,
            )

        self._context.logger.error(
            "tool_execution_failed",
            tool_name=tool.name,
            tool_call_id=tool_call_id,
            error=error.message,
            exc_info=error.original_error is not None,
        )
        self._tracer.end_span(span, status=SpanStatus.ERROR, error=error)
        if self._context.is_active:
            self._publish(self._events.tool_error(start, tool.name, error))
            await self._end_hook(tool, None, error)
        return error.to_payload()

    async def _end_hook(self, tool: Tool, output: Any, error: BaseException | None) -> None:
        try:
            await self._hooks.invoke(
                "on_tool_end",
                agent=self._agent,
                tool=tool,
                output=output,
                error=error,
                context=self._context,
            )
        except Exception as e:
            self._context.logger.error(
                "tool_end_hook_failed", tool_name=tool.name, error=str(e), exc_info=True
            )

    def _publish(self, event: "TimelineEvent") -> None:
        ctx = self._context
        self._agent.registry.event_emitter.publish_timeline_event_async(
            agent_id=self._agent.id,
            history_id=ctx.history_entry.id,
            event=event,
            parent_history_entry_id=ctx.parent_history_entry_id,
        )


__all__ = ["ToolExecutionWrapper", "REASONING_TOOLS", "CANCELLED_PAYLOAD"]
