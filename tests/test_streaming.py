"""
Tests for stream_text / stream_object
"""

import pytest
from pydantic import BaseModel

from agentcore.agent import AgentHooks
from agentcore.domain import EventName, HistoryStatus, ProviderError
from agentcore.runtime import STREAM_WRITER_KEY
from agentcore.tools import create_tool
from conftest import ScriptedProvider, ToolCall


class Answer(BaseModel):
    value: int


@pytest.mark.asyncio
async def test_stream_text_finishes_operation(make_agent, collector, settle):
    ends = []
    agent = make_agent(
        script=["Hel", "lo"],
        hooks=AgentHooks(on_end=lambda **kw: ends.append(kw["output"].text)),
    )

    response = await agent.stream_text("Hi")
    chunks = [chunk async for chunk in response.text_stream]

    assert chunks == ["Hel", "lo"]
    assert await response.text() == "Hello"
    assert (await response.usage()).total_tokens == 5
    await settle()

    entry = (await agent.get_history())[0]
    assert entry.status == HistoryStatus.COMPLETED
    assert entry.output == "Hello"
    assert ends == ["Hello"]
    names = [e.name for e in collector.events if e.type == "agent"]
    assert names == [EventName.AGENT_START, EventName.AGENT_SUCCESS]


@pytest.mark.asyncio
async def test_full_stream_carries_tool_chunks(make_agent):
    tool = create_tool("lookup", lambda args, ctx: "found")
    agent = make_agent(script=[ToolCall("lookup", {"q": "x"}), "done"], tools=[tool])

    response = await agent.stream_text("search")
    chunks = [chunk async for chunk in response.full_stream]

    assert [c["type"] for c in chunks] == ["tool-call", "tool-result", "text-delta"]
    assert chunks[1]["result"] == "found"
    assert await response.text() == "done"


@pytest.mark.asyncio
async def test_stream_without_full_stream(make_agent):
    agent = make_agent(llm=ScriptedProvider(["plain"], full_stream=False))

    response = await agent.stream_text("hi")

    assert response.full_stream is None
    assert await response.text() == "plain"


@pytest.mark.asyncio
async def test_stream_error_marks_history_error(make_agent, collector, settle):
    calls = []
    agent = make_agent(
        script=["partial", RuntimeError("stream broke")],
        hooks=AgentHooks(
            on_end=lambda **kw: calls.append(("end", str(kw["error"]))),
            on_error=lambda **kw: calls.append(("error", str(kw["error"]))),
        ),
    )

    response = await agent.stream_text("hi")
    with pytest.raises(ProviderError, match="stream broke"):
        await response.text()
    await settle()

    entry = (await agent.get_history())[0]
    assert entry.status == HistoryStatus.ERROR
    assert calls == [("end", "stream broke"), ("error", "stream broke")]
    assert collector.by_name(EventName.AGENT_ERROR)


@pytest.mark.asyncio
async def test_stream_writer_exposed_to_tools(make_agent):
    writers = []

    def inspect_writer(args, context):
        writers.append(context.operation_context.system_context.get(STREAM_WRITER_KEY))
        return "ok"

    agent = make_agent(
        script=[ToolCall("inspect"), "done"],
        tools=[create_tool("inspect", inspect_writer)],
    )

    response = await agent.stream_text("go")
    await response.text()

    assert writers[0] is not None

    agent.llm.calls.clear()
    writers.clear()
    await agent.generate_text("go")
    assert writers == [None]


@pytest.mark.asyncio
async def test_stream_object(make_agent, settle):
    agent = make_agent(llm=ScriptedProvider(object={"value": 42}))

    response = await agent.stream_object("answer?", Answer)
    partials = [p async for p in response.partial_object_stream]

    assert partials == [Answer(value=42)]
    assert await response.object() == Answer(value=42)
    assert response.user_context == {}
    await settle()

    entry = (await agent.get_history())[0]
    assert entry.status == HistoryStatus.COMPLETED
    assert entry.output == '{"value":42}'


@pytest.mark.asyncio
async def test_stream_user_context_is_final(make_agent):
    def mark(args, context):
        context.user_context["seen"] = True
        return "marked"

    def on_end(**kw):
        kw["context"].user_context["ended"] = True

    agent = make_agent(
        script=[ToolCall("mark"), "done"],
        tools=[create_tool("mark", mark)],
        hooks=AgentHooks(on_end=on_end),
    )

    response = await agent.stream_text("go", user_context={"tier": "pro"})
    assert await response.text() == "done"

    assert response.user_context == {"tier": "pro", "seen": True, "ended": True}
    response.user_context["tier"] = "free"
    assert response.user_context["tier"] == "pro"
