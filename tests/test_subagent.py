"""
Tests for SubAgentManager and the delegate_task tool
"""

import asyncio

import pytest
from pydantic import BaseModel

from agentcore.agent import Agent, AgentHooks, SubAgentConfig, SupervisorConfig, create_sub_agent
from agentcore.agent.subagent import DEFAULT_GUIDELINES, DELEGATE_TOOL_NAME
from agentcore.config import InvalidAgentConfigError
from agentcore.domain import CancellationError, HistoryStatus, StepType
from agentcore.runtime import AbortController, EventCollector
from agentcore.tools import create_tool
from conftest import Pause, ScriptedProvider, ToolCall


class Score(BaseModel):
    value: int


def delegate(task, *targets, **extra):
    return ToolCall(DELEGATE_TOOL_NAME, {"task": task, "targetAgents": list(targets), **extra})


# ============================================================================
# Delegation
# ============================================================================


@pytest.mark.asyncio
async def test_results_follow_target_order(make_agent):
    researcher = make_agent("Researcher", script=[Pause(0.05), "researched"])
    writer = make_agent("Writer", script=["written"])
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("write a report", "Researcher", "Writer"), "summary"],
        sub_agents=[writer, researcher],
    )

    response = await supervisor.generate_text("report please")

    results = response.tool_results[0]["result"]
    assert [r["agentName"] for r in results] == ["Researcher", "Writer"]
    assert [r["response"] for r in results] == ["researched", "written"]
    assert results[0]["usage"]["total_tokens"] == 5
    assert writer.llm.calls[0]["messages"][-1].content == "write a report"


@pytest.mark.asyncio
async def test_failed_handoff_does_not_abort_siblings(make_agent):
    broken = make_agent("Broken", script=[RuntimeError("writer down")])
    healthy = make_agent("Healthy", script=["fine"])
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("do it", "Broken", "Healthy"), "summary"],
        sub_agents=[broken, healthy],
    )

    response = await supervisor.generate_text("go")

    results = response.tool_results[0]["result"]
    assert results[0] == {
        "agentName": "Broken",
        "response": "Error in delegating task: writer down",
        "usage": None,
    }
    assert results[1]["response"] == "fine"
    assert response.text == "summary"
    assert (await broken.get_history())[0].status == HistoryStatus.ERROR


@pytest.mark.asyncio
async def test_no_valid_targets(make_agent):
    writer = make_agent("Writer", script=["written"])
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("do it", "Ghost"), "summary"],
        sub_agents=[writer],
    )

    response = await supervisor.generate_text("go")

    assert response.tool_results[0]["result"] == {"error": "No valid target agents found"}
    assert writer.llm.calls == []


@pytest.mark.asyncio
async def test_empty_task(make_agent):
    writer = make_agent("Writer", script=["written"])
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("   ", "Writer"), "summary"],
        sub_agents=[writer],
    )

    response = await supervisor.generate_text("go")

    assert response.tool_results[0]["result"] == {"error": "Task cannot be empty"}
    assert writer.llm.calls == []


@pytest.mark.asyncio
async def test_delegated_operation_is_linked_to_parent(make_agent, collector, settle):
    seen = {}
    handoffs = []

    def on_start(agent, context):
        seen["depth"] = context.delegation_depth
        seen["delegated"] = context.is_delegated
        seen["user_context"] = context.user_context

    writer = make_agent(
        "Writer",
        script=["written"],
        hooks=AgentHooks(
            on_start=on_start,
            on_handoff=lambda agent, source_agent: handoffs.append(source_agent.name),
        ),
    )
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("write", "Writer", context={"topic": "owls"}), "summary"],
        sub_agents=[writer],
    )
    steps = []
    supervisor_hooks = AgentHooks(
        on_end=lambda **kw: steps.extend(kw["context"].conversation_steps)
    )

    shared = {"tenant": "acme"}
    await supervisor.generate_text("go", user_context=shared, hooks=supervisor_hooks)
    await settle()

    assert handoffs == ["Supervisor"]
    assert seen["depth"] == 1
    assert seen["delegated"] is True
    assert seen["user_context"] == {"tenant": "acme"}

    task = writer.llm.calls[0]["messages"][-1].content
    assert task.startswith("Task handed off from Supervisor to Writer:\nwrite")
    assert '"topic": "owls"' in task

    supervisor_entry = (await supervisor.get_history())[0]
    writer_records = [r for r in collector.records if r.agent_id == writer.id]
    assert writer_records
    assert all(r.parent_history_entry_id == supervisor_entry.id for r in writer_records)

    tagged = [s for s in steps if s.sub_agent_id == writer.id]
    assert [s.type for s in tagged] == [StepType.TEXT]
    assert tagged[0].sub_agent_name == "Writer"


@pytest.mark.asyncio
async def test_object_method_renders_json(make_agent):
    scorer = make_agent("Scorer", llm=ScriptedProvider(object={"value": 7}))
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("score it", "Scorer"), "summary"],
        sub_agents=[SubAgentConfig(agent=scorer, method="generate_object", schema=Score)],
    )

    response = await supervisor.generate_text("go")

    assert response.tool_results[0]["result"][0]["response"] == '{"value":7}'


@pytest.mark.asyncio
async def test_sub_agent_stream_is_forwarded(make_agent):
    writer = make_agent(
        "Writer",
        script=[ToolCall("draft"), "written"],
        tools=[create_tool("draft", lambda args, ctx: "draft v1")],
    )
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("write", "Writer"), "summary"],
        sub_agents=[writer],
    )

    response = await supervisor.stream_text("go")
    chunks = [chunk async for chunk in response.full_stream]

    forwarded = [c for c in chunks if c.get("sub_agent_id") == writer.id]
    assert [c["type"] for c in forwarded] == ["tool-call", "tool-result"]
    assert all(c["sub_agent_name"] == "Writer" for c in forwarded)
    assert [c["type"] for c in chunks if "sub_agent_id" not in c] == [
        "tool-call",
        "tool-result",
        "text-delta",
    ]
    assert await response.text() == "summary"


@pytest.mark.asyncio
async def test_parent_abort_cancels_child(make_agent, settle):
    controller = AbortController()
    writer = make_agent("Writer", script=[Pause(0.1), "written"])
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("write", "Writer"), "summary"],
        sub_agents=[writer],
    )

    asyncio.get_running_loop().call_later(0.02, controller.abort)
    with pytest.raises(CancellationError):
        await supervisor.generate_text("go", signal=controller.signal)
    await settle()

    assert (await supervisor.get_history())[0].status == HistoryStatus.CANCELLED
    assert (await writer.get_history())[0].status == HistoryStatus.CANCELLED


@pytest.mark.asyncio
async def test_handoff_embeds_context_and_forwards_max_steps(make_agent):
    writer = make_agent("Writer", script=["written"])
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("write", "Writer", context={"topic": "owls"}), "summary"],
        sub_agents=[writer],
        max_steps=7,
    )

    await supervisor.generate_text("go")

    assert supervisor.llm.calls[0]["max_steps"] == 7
    assert writer.llm.calls[0]["max_steps"] == 7
    assert writer.llm.calls[0]["messages"][-1].content == (
        "Task handed off from Supervisor to Writer:\nwrite\n\n"
        'Context: {\n  "topic": "owls"\n}'
    )


@pytest.mark.asyncio
async def test_supervisor_memory_lists_assistant_answers(make_agent, settle):
    writer = make_agent("Writer", script=["written"])
    supervisor = make_agent(
        "Supervisor",
        script=[delegate("write", "Writer"), "summary"],
        sub_agents=[writer],
    )

    await supervisor.generate_text("go", user_id="u1", conversation_id="c1")
    await settle()
    await supervisor.generate_text("again", user_id="u1", conversation_id="c1")

    system = supervisor.llm.calls[1]["messages"][0].content
    memory = system[system.index("<agents_memory>"):]
    assert memory == "<agents_memory>\nassistant: summary\n</agents_memory>"

    first_system = supervisor.llm.calls[0]["messages"][0].content
    assert first_system.endswith(
        "<agents_memory>\nNo previous agent interactions available.\n</agents_memory>"
    )


@pytest.mark.asyncio
async def test_sub_agent_joins_supervisor_registry():
    depths = []
    worker = Agent(
        name="Worker",
        instructions="Do the work.",
        llm=ScriptedProvider(["worked"]),
        hooks=AgentHooks(on_start=lambda agent, context: depths.append(context.delegation_depth)),
    )
    own_registry = worker.registry
    supervisor = Agent(
        name="Supervisor",
        instructions="Coordinate.",
        llm=ScriptedProvider([delegate("work", "Worker"), "summary"]),
        sub_agents=[worker],
    )
    events = EventCollector()
    supervisor.registry.event_emitter.subscribe(events)

    response = await supervisor.generate_text("go")
    await supervisor.registry.event_emitter.flush()

    assert response.tool_results[0]["result"][0]["response"] == "worked"
    assert worker.registry is supervisor.registry
    assert worker.tracer is supervisor.tracer
    assert own_registry.get_agent(worker.id) is None
    assert supervisor.registry.get_parent_agent_ids(worker.id) == [supervisor.id]
    assert depths == [1]
    assert any(r.agent_id == worker.id for r in events.records)


# ============================================================================
# Membership and configuration
# ============================================================================


def test_add_and_remove_sub_agent_restores_tools(make_agent, registry):
    agent = make_agent("Supervisor", tools=[create_tool("echo", lambda args, ctx: args)])
    helper = make_agent("Helper")
    before = len(agent.get_tools())

    agent.add_sub_agent(helper)
    assert len(agent.get_tools()) == before + 1
    assert registry.get_parent_agent_ids(helper.id) == [agent.id]

    agent.remove_sub_agent(helper.id)
    assert len(agent.get_tools()) == before
    assert registry.get_parent_agent_ids(helper.id) == []


def test_adding_sub_agents_keeps_one_delegate_tool(make_agent):
    agent = make_agent("Supervisor")
    agent.add_sub_agent(make_agent("One"))
    agent.add_sub_agent(make_agent("Two"))

    names = [t.name for t in agent.get_tools()]
    assert names.count(DELEGATE_TOOL_NAME) == 1
    assert agent.sub_agent_manager.calculate_max_steps() == 20


def test_supervisor_system_message(make_agent):
    writer = make_agent("Writer", purpose="Writes polished prose")
    supervisor = make_agent(
        "Supervisor",
        sub_agents=[writer],
        supervisor_config=SupervisorConfig(custom_guidelines=["Answer in French."]),
    )

    message = supervisor.sub_agent_manager.generate_supervisor_system_message("Coordinate.")

    assert "<specialized_agents>\n- Writer: Writes polished prose\n</specialized_agents>" in message
    assert "<instructions>\nCoordinate.\n</instructions>" in message
    assert f"- {DEFAULT_GUIDELINES[0]}" in message
    assert "- Answer in French." in message
    assert message.endswith(
        "<agents_memory>\nNo previous agent interactions available.\n</agents_memory>"
    )


def test_custom_supervisor_message_replaces_template(make_agent):
    supervisor = make_agent(
        "Supervisor",
        sub_agents=[make_agent("Writer")],
        supervisor_config=SupervisorConfig(
            system_message="Route everything to Writer.", include_agents_memory=False
        ),
    )

    assert (
        supervisor.sub_agent_manager.generate_supervisor_system_message("ignored")
        == "Route everything to Writer."
    )

    supervisor.sub_agent_manager.supervisor_config.include_agents_memory = True
    assert supervisor.sub_agent_manager.generate_supervisor_system_message(
        "ignored", "assistant: done"
    ) == "Route everything to Writer.\n<agents_memory>\nassistant: done\n</agents_memory>"


def test_sub_agent_details(make_agent):
    writer = make_agent("Writer")
    supervisor = make_agent("Supervisor", sub_agents=[create_sub_agent(writer, method="generate_text")])

    details = supervisor.sub_agent_manager.get_sub_agent_details()

    assert details[0]["name"] == "Writer"
    assert details[0]["method_config"] == {"method": "generate_text", "schema": None, "options": None}
    assert supervisor.get_full_state()["sub_agents"][0]["method"] == "generate_text"


def test_object_method_requires_schema(make_agent):
    with pytest.raises(InvalidAgentConfigError):
        create_sub_agent(make_agent("Scorer"), method="generate_object")
