"""
Tests for HistoryManager and the in-memory history storage
"""

import asyncio

import pytest
from structlog.testing import capture_logs

from agentcore.agent import HistoryManager
from agentcore.domain import HistoryStatus, StepType, StepWithContent
from agentcore.providers import InMemoryHistoryStorage


@pytest.fixture
def history():
    return HistoryManager(agent_id="agent-1")


@pytest.mark.asyncio
async def test_add_and_update_entry(history):
    entry = await history.add_entry(input="Hello", user_id="u1", model="test-model")
    assert entry.status == HistoryStatus.WORKING

    updated = await history.update_entry(
        entry.id, id="ignored", output="Hi!", status=HistoryStatus.COMPLETED
    )

    assert updated.id == entry.id
    assert updated.output == "Hi!"
    assert updated.status == HistoryStatus.COMPLETED
    stored = await history.get_entry_by_id(entry.id)
    assert stored.output == "Hi!"
    assert stored.user_id == "u1"


@pytest.mark.asyncio
async def test_metadata_updates_merge(history):
    entry = await history.add_entry(input="x", metadata={"source": "api"})

    updated = await history.update_entry(entry.id, metadata={"attempt": 2})

    assert updated.metadata == {"source": "api", "attempt": 2}


@pytest.mark.asyncio
async def test_steps_are_appended(history):
    entry = await history.add_entry(input="x")
    await history.add_steps_to_entry(
        entry.id,
        [
            StepWithContent(type=StepType.TOOL_CALL, name="search", arguments={"q": "owls"}),
            StepWithContent(type=StepType.TEXT, content="done"),
        ],
    )

    stored = await history.get_entry_by_id(entry.id)
    assert [s.type for s in stored.steps] == ["tool_call", "text"]
    assert stored.steps[0].arguments == {"q": "owls"}


@pytest.mark.asyncio
async def test_entries_newest_first(history):
    ids = []
    for i in range(3):
        ids.append((await history.add_entry(input=str(i))).id)
        await asyncio.sleep(0.001)

    entries = await history.get_entries()
    assert [e.id for e in entries] == list(reversed(ids))
    assert [e.id for e in await history.get_entries(limit=1, offset=1)] == [ids[1]]


@pytest.mark.asyncio
async def test_returned_entries_are_copies(history):
    entry = await history.add_entry(input="x")
    entry.output = "mutated"

    assert (await history.get_entry_by_id(entry.id)).output == ""


@pytest.mark.asyncio
async def test_max_entries_prunes_oldest():
    history = HistoryManager(agent_id="agent-1", storage=InMemoryHistoryStorage(max_entries=2))
    first = await history.add_entry(input="first")
    for text in ("second", "third"):
        await asyncio.sleep(0.001)
        await history.add_entry(input=text)

    entries = await history.get_entries()
    assert [e.input for e in entries] == ["third", "second"]
    assert await history.get_entry_by_id(first.id) is None


@pytest.mark.asyncio
async def test_missing_entry_logs_warning(history):
    with capture_logs() as logs:
        result = await history.update_entry("missing", output="x")

    assert result is None
    assert logs[0]["event"] == "history_entry_not_found"
    assert logs[0]["log_level"] == "warning"


@pytest.mark.asyncio
async def test_clear(history):
    await history.add_entry(input="x")
    await history.clear()
    assert await history.get_entries() == []
