"""
HistoryManager - one durable HistoryEntry per operation.

Thin layer over a HistoryStorage collaborator, scoped to one agent id.
Entries are created at operation start and mutated as steps and the
terminal outcome arrive; they are never deleted here (retention belongs
to the storage).
"""

from typing import Any, Iterable

from agentcore.domain.models import HistoryEntry, HistoryStatus, HistoryStep, StepWithContent
from agentcore.providers.storage import HistoryStorage, InMemoryHistoryStorage
from agentcore.utils.logging import get_logger

logger = get_logger(__name__)


class HistoryManager:
    """Records and updates the history of one agent."""

    def __init__(
        self,
        agent_id: str,
        storage: HistoryStorage | None = None,
        max_entries: int = 0,
    ):
        self.agent_id = agent_id
        self.max_entries = max_entries
        self.storage = storage or InMemoryHistoryStorage(max_entries=max_entries)

    async def add_entry(
        self,
        input: Any,
        status: HistoryStatus = HistoryStatus.WORKING,
        output: Any = "",
        steps: list[HistoryStep] | None = None,
        metadata: dict[str, Any] | None = None,
        user_id: str | None = None,
        conversation_id: str | None = None,
        model: str | None = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            input=input,
            output=output,
            status=status,
            steps=steps or [],
            metadata=metadata or {},
            user_id=user_id,
            conversation_id=conversation_id,
            model=model,
        )
        await self.storage.add_entry(self.agent_id, entry)
        logger.debug("history_entry_created", agent_id=self.agent_id, entry_id=entry.id)
        return entry

    async def update_entry(self, entry_id: str, **updates: Any) -> HistoryEntry | None:
        """
        Update fields of an entry.

        Returns:
            HistoryEntry | None: Updated entry, None if it does not exist
        """
        updates.pop("id", None)
        updated = await self.storage.update_entry(self.agent_id, entry_id, updates)
        if updated is None:
            logger.warning("history_entry_not_found", agent_id=self.agent_id, entry_id=entry_id)
        return updated

    async def add_steps_to_entry(
        self,
        entry_id: str,
        steps: Iterable[StepWithContent | HistoryStep],
    ) -> HistoryEntry | None:
        history_steps = [
            HistoryStep.from_step(s) if isinstance(s, StepWithContent) else s for s in steps
        ]
        return await self.storage.add_steps(self.agent_id, entry_id, history_steps)

    async def get_entry_by_id(self, entry_id: str) -> HistoryEntry | None:
        return await self.storage.get_entry(self.agent_id, entry_id)

    async def get_entries(self, limit: int | None = None, offset: int = 0) -> list[HistoryEntry]:
        return await self.storage.list_entries(self.agent_id, limit=limit, offset=offset)

    async def clear(self) -> None:
        await self.storage.clear(self.agent_id)


__all__ = ["HistoryManager"]
