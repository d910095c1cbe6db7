"""
Agent - the orchestration façade.

One Agent owns its HistoryManager, MemoryManager, ToolManager and
SubAgentManager for its whole lifetime. Each call shape runs one operation:

    create OperationContext
    -> load memory window, on_start
    -> build system message (instructions, toolkits, retriever, supervisor)
    -> on_prepare_messages, agent:start
    -> resolve model and tools (wrapped, delegate tool bound to the call)
    -> invoke the LLM collaborator with step/finish/error callbacks
    -> finalize history, agent:success | agent:error | agent:cancel, on_end

Cancellation is cooperative: an abort listener registered when the context is
created settles the operation as cancelled wherever the pipeline currently
is, and the pipeline stops at its next suspension point.
"""

import asyncio
import inspect
from typing import Any, AsyncIterator, Awaitable, Callable
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from agentcore.agent.history import HistoryManager
from agentcore.agent.hooks import AgentHooks, merge_hooks
from agentcore.agent.memory import MemoryManager
from agentcore.agent.subagent import (
    DELEGATE_TOOL_NAME,
    SubAgentConfig,
    SubAgentManager,
    SupervisorConfig,
    render_object,
)
from agentcore.config.settings import settings
from agentcore.domain.errors import (
    AgentCoreError,
    CancellationError,
    RetrievalError,
    as_provider_error,
    provider_errors,
)
from agentcore.domain.models import (
    HistoryStatus,
    Message,
    MessageRole,
    StepWithContent,
    Usage,
    utc_now,
)
from agentcore.llm.base import GenerateObjectResult, GenerateTextResult, LLMProvider
from agentcore.observability.tracing import SpanKind, SpanStatus
from agentcore.providers.storage import ConversationStorage, HistoryStorage
from agentcore.retriever.base import BaseRetriever
from agentcore.runtime.context import STREAM_WRITER_KEY, OperationContext, OperationStatus
from agentcore.runtime.control import AbortController, AbortSignal
from agentcore.runtime.event_factory import TimelineEventFactory
from agentcore.runtime.registry import AgentRegistry
from agentcore.runtime.tool_executor import ToolExecutionWrapper
from agentcore.runtime.wire import StreamMultiplexer
from agentcore.tools.base import Tool, Toolkit
from agentcore.tools.manager import ToolManager
from agentcore.utils.logging import get_logger

logger = get_logger(__name__)

# system_context key holding the abort listener of an operation
ABORT_LISTENER_KEY = "abort_listener"

DynamicValue = Callable[[OperationContext], Any]


# ============================================================================
# Call options and responses
# ============================================================================


class CallOptions(BaseModel):
    """Per-call options accepted by every call shape."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    user_id: str | None = None
    conversation_id: str | None = None
    context_limit: int | None = None
    user_context: dict[Any, Any] | None = None
    signal: AbortSignal | None = None
    # Any: kept by reference, never re-validated
    hooks: Any = None
    max_steps: int | None = None
    tools: list[Any] | None = None
    provider: dict[str, Any] | None = None

    # Set by the delegation protocol
    parent_agent_id: str | None = None
    parent_history_entry_id: str | None = None
    parent_operation_context: Any = None


class GenerateTextResponse(BaseModel):
    text: str = ""
    usage: Usage | None = None
    finish_reason: str | None = None
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    tool_results: list[dict[str, Any]] = Field(default_factory=list)
    user_context: dict[Any, Any] = Field(default_factory=dict)


class GenerateObjectResponse(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    object: Any = None
    usage: Usage | None = None
    user_context: dict[Any, Any] = Field(default_factory=dict)


class _StreamResponse:
    """Awaitables of a live stream; a cancelled operation raises CancellationError."""

    def __init__(self, context: OperationContext, usage: Awaitable[Usage | None]):
        self._context = context
        self._usage = usage

    @property
    def user_context(self) -> dict[Any, Any]:
        """Final user context once the operation settled, a live copy before."""
        if self._context.final_user_context is not None:
            return dict(self._context.final_user_context)
        return self._context.user_context_snapshot()

    async def _settle(self, awaitable: Awaitable[Any]) -> Any:
        try:
            value = await awaitable
        except Exception as e:
            if self._context.is_cancelled:
                await self._context.wait_cancellation()
                raise CancellationError() from e
            if isinstance(e, AgentCoreError):
                raise
            raise as_provider_error(e) from e
        if self._context.is_cancelled:
            await self._context.wait_cancellation()
            raise CancellationError()
        return value

    async def usage(self) -> Usage | None:
        return await self._settle(self._usage)


class StreamTextResponse(_StreamResponse):
    def __init__(
        self,
        context: OperationContext,
        text_stream: AsyncIterator[str],
        full_stream: AsyncIterator[dict[str, Any]] | None,
        text: Awaitable[str],
        usage: Awaitable[Usage | None],
    ):
        super().__init__(context, usage)
        self.text_stream = text_stream
        self.full_stream = full_stream
        self._text = text

    async def text(self) -> str:
        return await self._settle(self._text)


class StreamObjectResponse(_StreamResponse):
    def __init__(
        self,
        context: OperationContext,
        partial_object_stream: AsyncIterator[Any],
        object: Awaitable[Any],
        usage: Awaitable[Usage | None],
    ):
        super().__init__(context, usage)
        self.partial_object_stream = partial_object_stream
        self._object = object

    async def object(self) -> Any:
        return await self._settle(self._object)


class _PreparedCall(BaseModel):
    """Everything resolved before the LLM collaborator is invoked."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    messages: list[Message]
    model: Any = None
    model_name: str | None = None
    tools: list[Tool] = Field(default_factory=list)
    max_steps: int
    conversation_id: str
    on_step_finish: Any


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _input_messages(input: Any) -> list[Message]:
    if isinstance(input, str):
        return [Message(role=MessageRole.USER, content=input)]
    if isinstance(input, Message):
        return [input]
    if isinstance(input, list):
        return [m if isinstance(m, Message) else Message.model_validate(m) for m in input]
    return [Message(role=MessageRole.USER, content=input)]


# ============================================================================
# Agent
# ============================================================================


class Agent:
    """
    Agent configuration plus the managers it owns.

    `instructions`, `model` and `tools` may be static values or resolvers
    called with the OperationContext (sync or async).
    """

    def __init__(
        self,
        name: str,
        instructions: str | DynamicValue,
        llm: LLMProvider,
        *,
        id: str | None = None,
        purpose: str | None = None,
        model: Any = None,
        tools: list[Tool | Toolkit] | DynamicValue | None = None,
        hooks: AgentHooks | None = None,
        retriever: BaseRetriever | None = None,
        sub_agents: list["Agent | SubAgentConfig"] | None = None,
        supervisor_config: SupervisorConfig | None = None,
        user_context: dict[Any, Any] | None = None,
        memory: ConversationStorage | bool | None = None,
        history_storage: HistoryStorage | None = None,
        max_steps: int | None = None,
        markdown: bool = False,
        registry: AgentRegistry | None = None,
    ):
        self.id = id or str(uuid4())
        self.name = name
        self.purpose = purpose
        self.instructions = instructions
        self.llm = llm
        self.model = model
        self.hooks = hooks or AgentHooks()
        self.retriever = retriever
        self.user_context = dict(user_context or {})
        self.max_steps = max_steps
        self.markdown = markdown

        self.registry = registry or AgentRegistry()
        self.registry.register(self)
        self.tracer = self.registry.tracer

        self._dynamic_tools: DynamicValue | None = tools if callable(tools) else None
        self.tool_manager = ToolManager([] if callable(tools) else (tools or []))
        self.history_manager = HistoryManager(
            self.id, storage=history_storage, max_entries=settings.history_max_entries
        )
        self.memory_manager = MemoryManager(
            self.id, storage=memory, event_emitter=self.registry.event_emitter
        )
        self.sub_agent_manager = SubAgentManager(
            agent_name=name,
            sub_agents=sub_agents,
            supervisor_config=supervisor_config,
            registry=self.registry,
            parent_agent_id=self.id,
        )
        if self.sub_agent_manager.has_sub_agents():
            self.tool_manager.add_tool(self.sub_agent_manager.create_delegate_tool(source_agent=self))

        logger.debug("agent_created", agent_id=self.id, agent_name=name)

    # ------------------------------------------------------------------
    # Call shapes
    # ------------------------------------------------------------------

    async def generate_text(self, input: Any, **options: Any) -> GenerateTextResponse:
        opts = CallOptions(**options)
        hooks = merge_hooks(opts.hooks, self.hooks)
        ctx = await self._create_operation_context(input, "generate_text", opts, hooks)
        try:
            prepared = await self._prepare_call(ctx, input, opts, hooks)
            with provider_errors():
                result = await self.llm.generate_text(
                    prepared.messages,
                    model=prepared.model,
                    tools=prepared.tools,
                    max_steps=prepared.max_steps,
                    signal=ctx.signal,
                    on_step_finish=prepared.on_step_finish,
                    provider_options=opts.provider,
                )
            self._ensure_active(ctx)
            response = self._text_response(ctx, result)
            await self._complete(
                ctx,
                hooks,
                prepared,
                history_output=result.text,
                event_output={"text": result.text},
                usage=result.usage,
                response=response,
            )
            return response
        except Exception as e:
            await self._fail(ctx, hooks, e)
            raise
        finally:
            self._release(ctx)

    async def stream_text(self, input: Any, **options: Any) -> StreamTextResponse:
        opts = CallOptions(**options)
        hooks = merge_hooks(opts.hooks, self.hooks)
        ctx = await self._create_operation_context(input, "stream_text", opts, hooks)
        try:
            prepared = await self._prepare_call(ctx, input, opts, hooks)
            writer = StreamMultiplexer()
            ctx.system_context[STREAM_WRITER_KEY] = writer

            async def on_finish(result: GenerateTextResult) -> None:
                if not ctx.is_active:
                    return
                try:
                    await self._complete(
                        ctx,
                        hooks,
                        prepared,
                        history_output=result.text,
                        event_output={"text": result.text},
                        usage=result.usage,
                        response=self._text_response(ctx, result),
                    )
                finally:
                    self._release(ctx)

            async def on_error(error: BaseException) -> None:
                if not ctx.is_active:
                    return
                try:
                    await self._record_failure(ctx, hooks, as_provider_error(error))
                finally:
                    self._release(ctx)

            with provider_errors():
                result = await self.llm.stream_text(
                    prepared.messages,
                    model=prepared.model,
                    tools=prepared.tools,
                    max_steps=prepared.max_steps,
                    signal=ctx.signal,
                    on_step_finish=prepared.on_step_finish,
                    on_finish=on_finish,
                    on_error=on_error,
                    provider_options=opts.provider,
                )
            full_stream = None
            if result.full_stream is not None:
                writer.merge(result.full_stream, primary=True)
                full_stream = writer.read()
            else:
                writer.close()

            return StreamTextResponse(
                ctx,
                text_stream=result.text_stream,
                full_stream=full_stream,
                text=result.text,
                usage=result.usage,
            )
        except Exception as e:
            await self._fail(ctx, hooks, e)
            self._release(ctx)
            raise

    async def generate_object(
        self, input: Any, schema: type[BaseModel], **options: Any
    ) -> GenerateObjectResponse:
        opts = CallOptions(**options)
        hooks = merge_hooks(opts.hooks, self.hooks)
        ctx = await self._create_operation_context(input, "generate_object", opts, hooks)
        try:
            prepared = await self._prepare_call(ctx, input, opts, hooks, with_tools=False)
            with provider_errors():
                result = await self.llm.generate_object(
                    prepared.messages,
                    schema,
                    model=prepared.model,
                    signal=ctx.signal,
                    on_step_finish=prepared.on_step_finish,
                    provider_options=opts.provider,
                )
            self._ensure_active(ctx)
            response = self._object_response(ctx, result)
            await self._complete(
                ctx,
                hooks,
                prepared,
                history_output=render_object(result.object),
                event_output={"object": result.object},
                usage=result.usage,
                response=response,
            )
            return response
        except Exception as e:
            await self._fail(ctx, hooks, e)
            raise
        finally:
            self._release(ctx)

    async def stream_object(
        self, input: Any, schema: type[BaseModel], **options: Any
    ) -> StreamObjectResponse:
        opts = CallOptions(**options)
        hooks = merge_hooks(opts.hooks, self.hooks)
        ctx = await self._create_operation_context(input, "stream_object", opts, hooks)
        try:
            prepared = await self._prepare_call(ctx, input, opts, hooks, with_tools=False)

            async def on_finish(result: GenerateObjectResult) -> None:
                if not ctx.is_active:
                    return
                try:
                    await self._complete(
                        ctx,
                        hooks,
                        prepared,
                        history_output=render_object(result.object),
                        event_output={"object": result.object},
                        usage=result.usage,
                        response=self._object_response(ctx, result),
                    )
                finally:
                    self._release(ctx)

            async def on_error(error: BaseException) -> None:
                if not ctx.is_active:
                    return
                try:
                    await self._record_failure(ctx, hooks, as_provider_error(error))
                finally:
                    self._release(ctx)

            with provider_errors():
                result = await self.llm.stream_object(
                    prepared.messages,
                    schema,
                    model=prepared.model,
                    signal=ctx.signal,
                    on_step_finish=prepared.on_step_finish,
                    on_finish=on_finish,
                    on_error=on_error,
                    provider_options=opts.provider,
                )
            return StreamObjectResponse(
                ctx,
                partial_object_stream=result.partial_object_stream,
                object=result.object,
                usage=result.usage,
            )
        except Exception as e:
            await self._fail(ctx, hooks, e)
            self._release(ctx)
            raise

    # ------------------------------------------------------------------
    # Operation lifecycle
    # ------------------------------------------------------------------

    async def _create_operation_context(
        self,
        input: Any,
        operation_name: str,
        opts: CallOptions,
        hooks: AgentHooks,
    ) -> OperationContext:
        parent = opts.parent_operation_context

        if opts.user_context is not None:
            user_context = dict(opts.user_context)
        elif parent is not None:
            user_context = parent.user_context
        else:
            user_context = dict(self.user_context)

        signal = opts.signal or (parent.signal if parent else None) or AbortController().signal

        entry = await self.history_manager.add_entry(
            input=input,
            status=HistoryStatus.WORKING,
            metadata={"agent_snapshot": self.get_full_state()},
            user_id=opts.user_id,
            conversation_id=opts.conversation_id,
            model=self.get_model_name(),
        )

        operation_id = str(uuid4())
        depth = self.registry.calculate_delegation_depth(opts.parent_agent_id)
        bound = {
            "agent_id": self.id,
            "agent_name": self.name,
            "user_id": opts.user_id,
            "conversation_id": opts.conversation_id,
            "execution_id": operation_id,
            "operation_name": operation_name,
        }
        if opts.parent_agent_id:
            bound.update(
                parent_agent_id=opts.parent_agent_id,
                parent_execution_id=opts.parent_history_entry_id,
                is_sub_agent=True,
                delegation_depth=depth,
            )

        span = self.tracer.start_span(
            f"agent.{operation_name}",
            SpanKind.AGENT,
            parent=parent.span if parent else None,
            attributes={
                "agent.id": self.id,
                "agent.name": self.name,
                "history.id": entry.id,
                "delegation.depth": depth,
            },
        )

        ctx = OperationContext(
            operation_id=operation_id,
            history_entry=entry,
            logger=get_logger("agentcore.agent").bind(**bound),
            user_context=user_context,
            conversation_steps=parent.conversation_steps if parent else [],
            signal=signal,
            span=span,
            operation_name=operation_name,
            parent_agent_id=opts.parent_agent_id,
            parent_history_entry_id=opts.parent_history_entry_id,
            delegation_depth=depth,
        )

        def on_abort(reason: str | None) -> None:
            self._handle_abort(ctx, hooks, reason)

        ctx.system_context[ABORT_LISTENER_KEY] = on_abort
        signal.add_listener(on_abort)
        ctx.logger.debug("operation_created", history_entry_id=entry.id)
        return ctx

    async def _prepare_call(
        self,
        ctx: OperationContext,
        input: Any,
        opts: CallOptions,
        hooks: AgentHooks,
        with_tools: bool = True,
    ) -> _PreparedCall:
        context_limit = (
            opts.context_limit
            if opts.context_limit is not None
            else settings.default_context_limit
        )
        context_messages, conversation_id = await self.memory_manager.prepare_conversation_context(
            ctx,
            input,
            user_id=opts.user_id,
            conversation_id=opts.conversation_id,
            context_limit=context_limit,
        )
        ctx.history_entry.conversation_id = conversation_id
        self._ensure_active(ctx)

        await hooks.invoke("on_start", agent=self, context=ctx)
        ctx.mark_running()
        self._ensure_active(ctx)

        system_message = await self.get_system_message(input, ctx, context_messages)
        self._ensure_active(ctx)
        messages = [system_message, *context_messages, *_input_messages(input)]

        if hooks.has("on_prepare_messages"):
            prepared_messages = await hooks.invoke(
                "on_prepare_messages",
                messages=[m.model_copy(deep=True) for m in messages],
                context=ctx,
            )
            if prepared_messages is not None:
                messages = list(prepared_messages)
            self._ensure_active(ctx)

        model = await _resolve(self.model(ctx)) if callable(self.model) else self.model
        model_name = self.llm.get_model_identifier(model)
        self._ensure_active(ctx)

        tools: list[Tool] = []
        if with_tools:
            tools = await self._prepare_tools(ctx, opts, hooks, conversation_id)
            self._ensure_active(ctx)

        max_steps = (
            opts.max_steps
            if opts.max_steps is not None
            else self.sub_agent_manager.calculate_max_steps(self.max_steps)
        )

        self._publish_start(
            ctx,
            input,
            system_prompt=system_message.content,
            messages=messages,
            model_parameters={"model": model_name, "max_steps": max_steps, **(opts.provider or {})},
        )

        return _PreparedCall(
            messages=messages,
            model=model,
            model_name=model_name,
            tools=tools,
            max_steps=max_steps,
            conversation_id=conversation_id,
            on_step_finish=self._step_handler(
                ctx, hooks, opts.user_id if context_limit else None, conversation_id
            ),
        )

    async def _prepare_tools(
        self,
        ctx: OperationContext,
        opts: CallOptions,
        hooks: AgentHooks,
        conversation_id: str,
    ) -> list[Tool]:
        dynamic_items = []
        if self._dynamic_tools is not None:
            dynamic_items.extend(await _resolve(self._dynamic_tools(ctx)) or [])
        dynamic_items.extend(opts.tools or [])

        tools = self.tool_manager.prepare_tools_for_generation(dynamic_items)

        if self.sub_agent_manager.has_sub_agents():
            delegate = self.sub_agent_manager.create_delegate_tool(
                source_agent=self,
                current_history_entry_id=ctx.history_entry.id,
                operation_context=ctx,
                max_steps=(
                    opts.max_steps
                    if opts.max_steps is not None
                    else self.sub_agent_manager.calculate_max_steps(self.max_steps)
                ),
                conversation_id=conversation_id,
                user_id=opts.user_id,
            )
            names = [t.name for t in tools]
            if DELEGATE_TOOL_NAME in names:
                tools[names.index(DELEGATE_TOOL_NAME)] = delegate
            else:
                tools.append(delegate)

        wrapper = ToolExecutionWrapper(
            agent=self,
            context=ctx,
            hooks=hooks,
            event_factory=self._events(ctx),
            tracer=self.tracer,
        )
        return wrapper.wrap_all(tools)

    def _step_handler(
        self,
        ctx: OperationContext,
        hooks: AgentHooks,
        user_id: str | None,
        conversation_id: str,
    ) -> Callable[[StepWithContent], Awaitable[None]]:
        save_step = self.memory_manager.create_step_finish_handler(ctx, user_id, conversation_id)

        async def on_step_finish(step: StepWithContent) -> None:
            if not ctx.is_active:
                ctx.logger.debug("step_ignored_inactive_operation", step_type=step.type)
                return
            if ctx.is_delegated:
                step = step.model_copy(update={"sub_agent_id": self.id, "sub_agent_name": self.name})
            ctx.conversation_steps.append(step)
            await self.history_manager.add_steps_to_entry(ctx.history_entry.id, [step])
            await hooks.invoke("on_step_finish", agent=self, step=step, context=ctx)
            await save_step(step)

        return on_step_finish

    async def _complete(
        self,
        ctx: OperationContext,
        hooks: AgentHooks,
        prepared: _PreparedCall,
        history_output: Any,
        event_output: Any,
        usage: Usage | None,
        response: Any,
    ) -> None:
        if not ctx.finish(OperationStatus.COMPLETED):
            raise CancellationError()

        try:
            await self.history_manager.update_entry(
                ctx.history_entry.id,
                output=history_output,
                usage=usage,
                end_time=utc_now(),
                status=HistoryStatus.COMPLETED,
                conversation_id=prepared.conversation_id,
                model=prepared.model_name,
            )
        except Exception as e:
            # The entry could not be finalized: the operation ends as errored
            ctx.status = OperationStatus.ERRORED
            await self._settle_failure(ctx, hooks, e)
            raise

        self._publish(ctx, self._events(ctx).agent_success(ctx.start_event, event_output, usage))
        self.tracer.end_span(ctx.span, status=SpanStatus.OK, attributes={"usage": _usage_dict(usage)})
        ctx.logger.info("operation_completed", history_entry_id=ctx.history_entry.id)

        try:
            await hooks.invoke(
                "on_end",
                agent=self,
                output=response,
                error=None,
                conversation_id=prepared.conversation_id,
                context=ctx,
            )
        finally:
            response.user_context = ctx.freeze_user_context()

    async def _record_failure(
        self, ctx: OperationContext, hooks: AgentHooks, error: BaseException
    ) -> bool:
        """
        Settle an operation as errored.

        Returns:
            bool: False when the operation had already reached a terminal state
        """
        if not ctx.finish(OperationStatus.ERRORED):
            return False
        await self._settle_failure(ctx, hooks, error)
        return True

    async def _settle_failure(
        self, ctx: OperationContext, hooks: AgentHooks, error: BaseException
    ) -> None:
        ctx.logger.error("operation_failed", error=str(error), error_type=type(error).__name__)
        await self._write_terminal_status(ctx, HistoryStatus.ERROR)
        self._publish(ctx, self._events(ctx).agent_error(self._ensure_start(ctx), error))
        self.tracer.end_span(ctx.span, status=SpanStatus.ERROR, error=error)
        try:
            await hooks.invoke(
                "on_end",
                agent=self,
                output=None,
                error=error,
                conversation_id=ctx.history_entry.conversation_id,
                context=ctx,
            )
            await hooks.invoke("on_error", agent=self, error=error, context=ctx)
        except Exception as e:
            ctx.logger.error("error_handling_failed", error=str(e), exc_info=True)
        finally:
            ctx.freeze_user_context()

    async def _write_terminal_status(self, ctx: OperationContext, status: HistoryStatus) -> None:
        try:
            await self.history_manager.update_entry(
                ctx.history_entry.id,
                status=status,
                end_time=utc_now(),
                conversation_id=ctx.history_entry.conversation_id,
            )
        except Exception as e:
            ctx.logger.error(
                "history_status_update_failed", status=status, error=str(e), exc_info=True
            )

    async def _fail(self, ctx: OperationContext, hooks: AgentHooks, error: Exception) -> None:
        """Settle a failed call; raises CancellationError for a cancelled one."""
        if await self._record_failure(ctx, hooks, error):
            return
        if ctx.is_cancelled:
            await ctx.wait_cancellation()
            if not isinstance(error, CancellationError):
                raise CancellationError() from error

    def _handle_abort(self, ctx: OperationContext, hooks: AgentHooks, reason: str | None) -> None:
        if not ctx.finish(OperationStatus.CANCELLED):
            return
        ctx.logger.info("operation_cancelled", reason=reason)
        ctx.cancellation_task = asyncio.ensure_future(self._settle_cancellation(ctx, hooks))

    async def _settle_cancellation(self, ctx: OperationContext, hooks: AgentHooks) -> None:
        error = CancellationError()
        await self._write_terminal_status(ctx, HistoryStatus.CANCELLED)
        self._publish(ctx, self._events(ctx).agent_cancel(self._ensure_start(ctx), error))
        self.tracer.end_span(ctx.span, status=SpanStatus.CANCELLED, error=error)
        try:
            await hooks.invoke(
                "on_end",
                agent=self,
                output=None,
                error=error,
                conversation_id=ctx.history_entry.conversation_id,
                context=ctx,
            )
        except Exception as e:
            ctx.logger.error("cancellation_handling_failed", error=str(e), exc_info=True)
        finally:
            ctx.freeze_user_context()

    def _ensure_active(self, ctx: OperationContext) -> None:
        if not ctx.is_active:
            raise CancellationError()

    def _release(self, ctx: OperationContext) -> None:
        listener = ctx.system_context.pop(ABORT_LISTENER_KEY, None)
        if listener is not None and ctx.signal is not None:
            ctx.signal.remove_listener(listener)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _events(self, ctx: OperationContext) -> TimelineEventFactory:
        return TimelineEventFactory(agent_id=self.id, agent_name=self.name, ctx=ctx)

    def _publish(self, ctx: OperationContext, event: Any) -> None:
        self.registry.event_emitter.publish_timeline_event_async(
            agent_id=self.id,
            history_id=ctx.history_entry.id,
            event=event,
            parent_history_entry_id=ctx.parent_history_entry_id,
        )

    def _publish_start(self, ctx: OperationContext, input: Any, **details: Any) -> None:
        self._ensure_active(ctx)
        ctx.start_event = self._events(ctx).agent_start(input, **details)
        self._publish(ctx, ctx.start_event)

    def _ensure_start(self, ctx: OperationContext) -> Any:
        """agent:start of the operation, published now if it was not yet."""
        if ctx.start_event is None:
            ctx.start_event = self._events(ctx).agent_start(ctx.history_entry.input)
            self._publish(ctx, ctx.start_event)
        return ctx.start_event

    # ------------------------------------------------------------------
    # System message
    # ------------------------------------------------------------------

    async def get_system_message(
        self,
        input: Any,
        ctx: OperationContext,
        context_messages: list[Message] | None = None,
    ) -> Message:
        if callable(self.instructions):
            instructions = await _resolve(self.instructions(ctx)) or ""
        else:
            instructions = self.instructions or ""

        retriever_context = None
        if self.retriever is not None and input:
            retriever_context = await self._get_retriever_context(input, ctx)

        for toolkit in self.tool_manager.get_toolkits():
            if toolkit.add_instructions and toolkit.instructions:
                instructions = f"{instructions}\n\n{toolkit.instructions}"

        if self.markdown:
            instructions = f"{instructions}\n\nUse markdown to format your answers."

        if retriever_context:
            instructions = f"{instructions}\n\nRelevant Context:\n{retriever_context}"

        if self.sub_agent_manager.has_sub_agents():
            content = self.sub_agent_manager.generate_supervisor_system_message(
                instructions, self._prepare_agents_memory(context_messages or [])
            )
        else:
            content = f"You are {self.name}. {instructions}"

        return Message(role=MessageRole.SYSTEM, content=content)

    def _prepare_agents_memory(self, context_messages: list[Message]) -> str:
        return "\n\n".join(
            f"{m.role}: {m.text()}"
            for m in context_messages
            if m.role == MessageRole.ASSISTANT.value and m.tool_call_id is None
        )

    async def _get_retriever_context(self, input: Any, ctx: OperationContext) -> str | None:
        retriever = self.retriever
        events = self._events(ctx)
        start = events.retriever_start(retriever.name, input)
        self._publish(ctx, start)
        span = self.tracer.start_span(
            f"retriever.{retriever.name}", SpanKind.RETRIEVER, parent=ctx.span
        )

        try:
            context = await retriever.retrieve(
                input, user_context=ctx.user_context, logger=ctx.logger
            )
        except Exception as e:
            error = RetrievalError(str(e), original_error=e)
            self._publish(ctx, events.retriever_error(start, retriever.name, error))
            self.tracer.end_span(span, status=SpanStatus.ERROR, error=error)
            ctx.logger.error("retriever_failed", retriever=retriever.name, error=str(e), exc_info=True)
            return None

        self._publish(ctx, events.retriever_success(start, retriever.name, context))
        self.tracer.end_span(span, status=SpanStatus.OK)
        if context and context.strip():
            return context
        ctx.logger.debug("retriever_no_context", retriever=retriever.name)
        return None

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def _text_response(self, ctx: OperationContext, result: GenerateTextResult) -> GenerateTextResponse:
        return GenerateTextResponse(
            text=result.text,
            usage=result.usage,
            finish_reason=result.finish_reason,
            tool_calls=result.tool_calls,
            tool_results=result.tool_results,
            user_context=ctx.user_context_snapshot(),
        )

    def _object_response(
        self, ctx: OperationContext, result: GenerateObjectResult
    ) -> GenerateObjectResponse:
        return GenerateObjectResponse(
            object=result.object,
            usage=result.usage,
            user_context=ctx.user_context_snapshot(),
        )

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def add_tools(self, tools: list[Tool | Toolkit]) -> list[Tool | Toolkit]:
        return self.tool_manager.add_items(tools)

    def add_items(self, items: list[Tool | Toolkit]) -> list[Tool | Toolkit]:
        return self.tool_manager.add_items(items)

    def add_sub_agent(self, sub_agent: "Agent | SubAgentConfig") -> None:
        self.sub_agent_manager.add_sub_agent(sub_agent)
        self.tool_manager.add_tool(self.sub_agent_manager.create_delegate_tool(source_agent=self))

    def remove_sub_agent(self, agent_id: str) -> None:
        self.sub_agent_manager.remove_sub_agent(agent_id)
        if not self.sub_agent_manager.has_sub_agents():
            self.tool_manager.remove_tool(DELEGATE_TOOL_NAME)

    def use_registry(self, registry: AgentRegistry) -> None:
        """Move the agent, and its own sub-agents, onto another registry."""
        if registry is self.registry:
            return
        self.registry.unregister(self.id)
        self.registry = registry
        self.tracer = registry.tracer
        registry.register(self)
        self.memory_manager.event_emitter = registry.event_emitter
        self.sub_agent_manager.use_registry(registry)
        logger.info("agent_registry_changed", agent_id=self.id, agent_name=self.name)

    def unregister(self) -> None:
        """Remove the agent and its sub-agent links from the registry."""
        self.sub_agent_manager.unregister_all_sub_agents()
        self.registry.unregister(self.id)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_tools(self) -> list[Tool]:
        return self.tool_manager.get_tools()

    def get_tools_for_api(self) -> list[dict[str, Any]]:
        return self.tool_manager.get_tools_for_api()

    def get_sub_agents(self) -> list[SubAgentConfig]:
        return self.sub_agent_manager.get_sub_agents()

    def get_model_name(self) -> str:
        if callable(self.model):
            return "dynamic"
        return self.llm.get_model_identifier(self.model)

    def get_history_manager(self) -> HistoryManager:
        return self.history_manager

    async def get_history(self, limit: int | None = None, offset: int = 0):
        return await self.history_manager.get_entries(limit=limit, offset=offset)

    def get_full_state(self) -> dict[str, Any]:
        """Snapshot of the agent configuration (stored with every history entry)."""
        return {
            "id": self.id,
            "name": self.name,
            "purpose": self.purpose,
            "instructions": (
                self.instructions if isinstance(self.instructions, str) else "Dynamic instructions"
            ),
            "status": "idle",
            "model": self.get_model_name(),
            "node_id": f"agent_{self.id}",
            "tools": self.get_tools_for_api(),
            "sub_agents": [
                {
                    "id": c.agent.id,
                    "name": c.agent.name,
                    "purpose": c.agent.purpose,
                    "method": c.method,
                }
                for c in self.sub_agent_manager.get_sub_agents()
            ],
            "memory": self.memory_manager.get_memory_state(),
            "retriever": (
                {"name": self.retriever.name, "description": self.retriever.description}
                if self.retriever is not None
                else None
            ),
            "max_steps": self.max_steps,
            "markdown": self.markdown,
        }

    def __repr__(self) -> str:
        return f"Agent(id={self.id!r}, name={self.name!r})"


def _usage_dict(usage: Usage | None) -> dict[str, Any] | None:
    return usage.model_dump() if usage is not None else None


__all__ = [
    "Agent",
    "CallOptions",
    "GenerateTextResponse",
    "GenerateObjectResponse",
    "StreamTextResponse",
    "StreamObjectResponse",
]
