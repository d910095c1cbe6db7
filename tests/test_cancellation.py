"""
Cooperative cancellation through AbortSignal
"""

import asyncio

import pytest

from agentcore.agent import AgentHooks
from agentcore.domain import CancellationError, EventName, HistoryStatus
from agentcore.runtime import AbortController
from agentcore.tools import create_tool
from conftest import Pause, ScriptedProvider, ToolCall


class DeafProvider(ScriptedProvider):
    """Provider that never looks at the abort signal."""

    def _check(self, signal) -> None:
        return None


def end_recorder(ends):
    return AgentHooks(on_end=lambda **kw: ends.append(kw["error"]))


@pytest.mark.asyncio
async def test_abort_during_tool_cancels_operation(make_agent, collector, settle):
    controller = AbortController()
    second_calls = []
    ends = []

    async def slow(args, context):
        controller.abort("user stop")
        await asyncio.sleep(0)
        return "late"

    agent = make_agent(
        script=[ToolCall("slow"), ToolCall("second"), "never"],
        tools=[
            create_tool("slow", slow),
            create_tool("second", lambda args, ctx: second_calls.append(1)),
        ],
        hooks=end_recorder(ends),
    )

    with pytest.raises(CancellationError):
        await agent.generate_text("go", signal=controller.signal)
    await settle()

    entry = (await agent.get_history())[0]
    assert entry.status == HistoryStatus.CANCELLED
    assert entry.end_time is not None
    assert second_calls == []
    assert len(ends) == 1 and isinstance(ends[0], CancellationError)

    names = [e.name for e in collector.events if e.type in ("agent", "tool")]
    assert names == [EventName.AGENT_START, EventName.TOOL_START, EventName.AGENT_CANCEL]
    start = collector.by_name(EventName.AGENT_START)[0]
    cancel = collector.by_name(EventName.AGENT_CANCEL)[0]
    assert cancel.parent_event_id == start.id
    assert cancel.status_message["code"] == "USER_CANCELLED"


@pytest.mark.asyncio
async def test_already_aborted_signal(make_agent, collector, settle):
    controller = AbortController()
    controller.abort()
    ends = []
    agent = make_agent(script=["never"], hooks=end_recorder(ends))

    with pytest.raises(CancellationError):
        await agent.generate_text("go", signal=controller.signal)
    await settle()

    assert agent.llm.calls == []
    assert (await agent.get_history())[0].status == HistoryStatus.CANCELLED
    assert len(ends) == 1
    names = [e.name for e in collector.events if e.type == "agent"]
    assert names == [EventName.AGENT_START, EventName.AGENT_CANCEL]


@pytest.mark.asyncio
async def test_abort_after_completion_is_ignored(make_agent, settle):
    controller = AbortController()
    ends = []
    agent = make_agent(script=["done"], hooks=end_recorder(ends))

    await agent.generate_text("go", signal=controller.signal)
    assert controller.signal.listener_count == 0
    controller.abort()
    await settle()

    assert (await agent.get_history())[0].status == HistoryStatus.COMPLETED
    assert ends == [None]


@pytest.mark.asyncio
async def test_stream_cancelled_while_in_flight(make_agent, collector, settle):
    controller = AbortController()
    ends = []
    agent = make_agent(script=[Pause(0.05), "late"], hooks=end_recorder(ends))

    response = await agent.stream_text("go", signal=controller.signal)
    controller.abort()

    with pytest.raises(CancellationError):
        await response.text()
    await settle()

    assert (await agent.get_history())[0].status == HistoryStatus.CANCELLED
    assert len(ends) == 1
    assert collector.by_name(EventName.AGENT_ERROR) == []
    assert len(collector.by_name(EventName.AGENT_CANCEL)) == 1


@pytest.mark.asyncio
async def test_cancellation_wins_over_late_finish(make_agent, collector, settle):
    controller = AbortController()
    ends = []
    agent = make_agent(
        llm=DeafProvider([Pause(0.05), "late"]),
        hooks=end_recorder(ends),
    )

    response = await agent.stream_text("go", signal=controller.signal)
    controller.abort()

    with pytest.raises(CancellationError):
        await response.text()
    await settle()

    entry = (await agent.get_history())[0]
    assert entry.status == HistoryStatus.CANCELLED
    assert entry.output == ""
    assert len(ends) == 1 and isinstance(ends[0], CancellationError)
    assert collector.by_name(EventName.AGENT_SUCCESS) == []
