"""
Shared fixtures: a scripted LLM provider and agent factories.

The provider replays a script on every call:
- str: final assistant text (one text step, one text-delta chunk)
- ToolCall: invoke the named tool (tool_call + tool_result steps)
- Pause: sleep, giving cancellation a chance to land
- Exception instance: raised as a provider failure
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from agentcore.agent import Agent
from agentcore.domain import MessageRole, StepType, StepWithContent, Usage
from agentcore.llm import (
    GenerateObjectResult,
    GenerateTextResult,
    LLMProvider,
    StreamObjectResult,
    StreamTextResult,
)
from agentcore.runtime import AgentRegistry, EventCollector

_END = object()


@dataclass
class ToolCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class Pause:
    seconds: float = 0.05


class ProviderAborted(Exception):
    pass


async def _drain(queue: asyncio.Queue):
    while True:
        item = await queue.get()
        if item is _END:
            return
        yield item


class ScriptedProvider(LLMProvider):
    def __init__(
        self,
        script: list[Any] | None = None,
        usage: Usage | None = None,
        object: Any = None,
        full_stream: bool = True,
    ):
        self.script = script if script is not None else ["ok"]
        self.usage = usage or Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5)
        self.object = object
        self.full_stream = full_stream
        self.calls: list[dict[str, Any]] = []
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------

    async def generate_text(
        self,
        messages,
        *,
        model=None,
        tools=None,
        max_steps=None,
        signal=None,
        on_step_finish=None,
        provider_options=None,
    ):
        self._record(messages, model, tools, max_steps, provider_options)
        return await self._run(tools, signal, on_step_finish, None)

    async def stream_text(
        self,
        messages,
        *,
        model=None,
        tools=None,
        max_steps=None,
        signal=None,
        on_step_finish=None,
        on_finish=None,
        on_error=None,
        provider_options=None,
    ):
        self._record(messages, model, tools, max_steps, provider_options)
        text_queue: asyncio.Queue = asyncio.Queue()
        full_queue: asyncio.Queue = asyncio.Queue()

        async def emit(chunk: dict[str, Any]) -> None:
            full_queue.put_nowait(chunk)
            if chunk["type"] == "text-delta":
                text_queue.put_nowait(chunk["text"])

        async def run() -> GenerateTextResult:
            return await self._run(tools, signal, on_step_finish, emit)

        text, usage = self._spawn(
            run, on_finish, on_error, lambda r: (r.text, r.usage), [text_queue, full_queue]
        )
        return StreamTextResult(
            text_stream=_drain(text_queue),
            text=text,
            usage=usage,
            full_stream=_drain(full_queue) if self.full_stream else None,
        )

    async def generate_object(
        self,
        messages,
        schema,
        *,
        model=None,
        signal=None,
        on_step_finish=None,
        provider_options=None,
    ):
        self._record(messages, model, None, None, provider_options)
        return await self._run_object(schema, signal, on_step_finish)

    async def stream_object(
        self,
        messages,
        schema,
        *,
        model=None,
        signal=None,
        on_step_finish=None,
        on_finish=None,
        on_error=None,
        provider_options=None,
    ):
        self._record(messages, model, None, None, provider_options)
        partial_queue: asyncio.Queue = asyncio.Queue()

        async def run() -> GenerateObjectResult:
            result = await self._run_object(schema, signal, on_step_finish)
            partial_queue.put_nowait(result.object)
            return result

        obj, usage = self._spawn(
            run, on_finish, on_error, lambda r: (r.object, r.usage), [partial_queue]
        )
        return StreamObjectResult(
            partial_object_stream=_drain(partial_queue), object=obj, usage=usage
        )

    # ------------------------------------------------------------------

    def _record(self, messages, model, tools, max_steps, provider_options) -> None:
        self.calls.append(
            {
                "messages": list(messages),
                "model": model,
                "tools": list(tools or []),
                "max_steps": max_steps,
                "provider_options": provider_options,
            }
        )

    def _spawn(self, run, on_finish, on_error, unpack, queues):
        loop = asyncio.get_running_loop()
        first, second = loop.create_future(), loop.create_future()

        async def produce() -> None:
            try:
                try:
                    result = await run()
                except Exception as e:
                    if on_error:
                        await on_error(e)
                    raise
                if on_finish:
                    await on_finish(result)
            except Exception as e:
                first.set_exception(e)
                second.set_exception(e)
            else:
                a, b = unpack(result)
                first.set_result(a)
                second.set_result(b)
            finally:
                for queue in queues:
                    queue.put_nowait(_END)

        task = loop.create_task(produce())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return first, second

    def _check(self, signal) -> None:
        if signal is not None and signal.is_aborted():
            raise ProviderAborted(signal.reason)

    async def _run(self, tools, signal, on_step_finish, emit) -> GenerateTextResult:
        tools_by_name = {t.name: t for t in tools or []}
        text = ""
        tool_calls: list[dict[str, Any]] = []
        tool_results: list[dict[str, Any]] = []

        async def step(s: StepWithContent) -> None:
            if on_step_finish:
                await on_step_finish(s)

        async def chunk(c: dict[str, Any]) -> None:
            if emit:
                await emit(c)

        for n, item in enumerate(self.script):
            self._check(signal)
            if isinstance(item, Exception):
                raise item
            if isinstance(item, Pause):
                await asyncio.sleep(item.seconds)
                continue
            if isinstance(item, ToolCall):
                call_id = f"call_{n}"
                tool_calls.append({"id": call_id, "name": item.name, "args": item.args})
                await chunk(
                    {"type": "tool-call", "toolCallId": call_id, "toolName": item.name, "args": item.args}
                )
                await step(
                    StepWithContent(
                        type=StepType.TOOL_CALL,
                        content={"name": item.name, "arguments": item.args},
                        name=item.name,
                        arguments=item.args,
                        tool_call_id=call_id,
                    )
                )
                result = await tools_by_name[item.name].run({**item.args, "tool_call_id": call_id})
                tool_results.append({"id": call_id, "name": item.name, "result": result})
                await chunk(
                    {"type": "tool-result", "toolCallId": call_id, "toolName": item.name, "result": result}
                )
                await step(
                    StepWithContent(
                        type=StepType.TOOL_RESULT,
                        role=MessageRole.TOOL,
                        content=result,
                        name=item.name,
                        result=result,
                        tool_call_id=call_id,
                    )
                )
                continue
            text += item
            await chunk({"type": "text-delta", "text": item})
            await step(StepWithContent(type=StepType.TEXT, content=item, usage=self.usage))

        self._check(signal)
        return GenerateTextResult(
            text=text,
            usage=self.usage,
            finish_reason="stop",
            tool_calls=tool_calls,
            tool_results=tool_results,
        )

    async def _run_object(self, schema, signal, on_step_finish) -> GenerateObjectResult:
        for item in self.script:
            self._check(signal)
            if isinstance(item, Exception):
                raise item
            if isinstance(item, Pause):
                await asyncio.sleep(item.seconds)
        self._check(signal)
        obj = schema.model_validate(self.object)
        if on_step_finish:
            await on_step_finish(
                StepWithContent(type=StepType.TEXT, content=obj.model_dump_json(), usage=self.usage)
            )
        return GenerateObjectResult(object=obj, usage=self.usage, finish_reason="stop")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def registry():
    return AgentRegistry()


@pytest.fixture
def collector(registry):
    events = EventCollector()
    registry.event_emitter.subscribe(events)
    return events


@pytest.fixture
def make_agent(registry):
    agents: list[Agent] = []

    def factory(name: str = "Assistant", script=None, instructions: str = "Be helpful.", **kwargs):
        kwargs.setdefault("llm", ScriptedProvider(script))
        agent = Agent(name=name, instructions=instructions, registry=registry, **kwargs)
        agents.append(agent)
        return agent

    factory.agents = agents
    return factory


@pytest.fixture
def settle(registry, make_agent):
    """Wait for background memory writes and event delivery."""

    async def wait() -> None:
        for _ in range(3):
            for agent in make_agent.agents:
                await agent.memory_manager.flush()
            await registry.event_emitter.flush()
            await asyncio.sleep(0)

    return wait
