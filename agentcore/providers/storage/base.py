"""
Storage interfaces and in-memory implementations.

- HistoryStorage: durable operation records (HistoryEntry) per agent
- ConversationStorage: conversations and their messages per user
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from agentcore.domain import Conversation, HistoryEntry, HistoryStep, Message, utc_now


class HistoryStorage(ABC):
    """
    History storage interface.
    Responsible for HistoryEntry persistence and queries.

    Retention (max_entries) is a policy hint; implementations may or may not
    prune older entries.
    """

    @abstractmethod
    async def add_entry(self, agent_id: str, entry: HistoryEntry) -> None:
        """Store a new entry"""
        pass

    @abstractmethod
    async def get_entry(self, agent_id: str, entry_id: str) -> Optional[HistoryEntry]:
        """Get entry by id"""
        pass

    @abstractmethod
    async def update_entry(
        self, agent_id: str, entry_id: str, updates: dict[str, Any]
    ) -> Optional[HistoryEntry]:
        """Apply field updates, return the updated entry"""
        pass

    @abstractmethod
    async def add_steps(
        self, agent_id: str, entry_id: str, steps: List[HistoryStep]
    ) -> Optional[HistoryEntry]:
        """Append steps to an entry"""
        pass

    @abstractmethod
    async def list_entries(
        self,
        agent_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[HistoryEntry]:
        """List entries, newest first"""
        pass

    @abstractmethod
    async def clear(self, agent_id: str) -> None:
        """Delete every entry of an agent"""
        pass


class InMemoryHistoryStorage(HistoryStorage):
    """
    In-memory implementation (for testing and development)
    """

    def __init__(self, max_entries: int = 0):
        self.max_entries = max_entries
        self.entries: dict[str, dict[str, HistoryEntry]] = {}  # agent_id -> id -> entry

    async def add_entry(self, agent_id: str, entry: HistoryEntry) -> None:
        bucket = self.entries.setdefault(agent_id, {})
        bucket[entry.id] = entry.model_copy(deep=True)
        if self.max_entries and len(bucket) > self.max_entries:
            oldest = min(bucket.values(), key=lambda e: e.start_time)
            del bucket[oldest.id]

    async def get_entry(self, agent_id: str, entry_id: str) -> Optional[HistoryEntry]:
        entry = self.entries.get(agent_id, {}).get(entry_id)
        return entry.model_copy(deep=True) if entry else None

    async def update_entry(
        self, agent_id: str, entry_id: str, updates: dict[str, Any]
    ) -> Optional[HistoryEntry]:
        bucket = self.entries.get(agent_id, {})
        entry = bucket.get(entry_id)
        if entry is None:
            return None
        data = entry.model_dump()
        for key, value in updates.items():
            if key == "metadata" and isinstance(value, dict):
                data["metadata"] = {**data.get("metadata", {}), **value}
            else:
                data[key] = value
        updated = HistoryEntry.model_validate(data)
        bucket[entry_id] = updated
        return updated.model_copy(deep=True)

    async def add_steps(
        self, agent_id: str, entry_id: str, steps: List[HistoryStep]
    ) -> Optional[HistoryEntry]:
        entry = self.entries.get(agent_id, {}).get(entry_id)
        if entry is None:
            return None
        entry.steps.extend(copy.deepcopy(steps))
        return entry.model_copy(deep=True)

    async def list_entries(
        self,
        agent_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[HistoryEntry]:
        entries = sorted(
            self.entries.get(agent_id, {}).values(),
            key=lambda e: e.start_time,
            reverse=True,
        )
        end = offset + limit if limit is not None else None
        return [e.model_copy(deep=True) for e in entries[offset:end]]

    async def clear(self, agent_id: str) -> None:
        self.entries.pop(agent_id, None)


class ConversationStorage(ABC):
    """
    Conversation storage interface.
    Responsible for conversations and message persistence.
    """

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Create conversation; raises ConversationExistsError on duplicates"""
        pass

    @abstractmethod
    async def update_conversation(
        self, conversation_id: str, updates: dict[str, Any]
    ) -> Optional[Conversation]:
        pass

    @abstractmethod
    async def add_message(self, message: Message, user_id: str, conversation_id: str) -> None:
        pass

    @abstractmethod
    async def get_messages(
        self,
        user_id: str,
        conversation_id: str,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """Most recent `limit` messages in chronological order"""
        pass


class ConversationExistsError(Exception):
    """Conversation id already taken."""

    pass


class InMemoryConversationStorage(ConversationStorage):
    """
    In-memory implementation (for testing and development)
    """

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[tuple[str, str], List[Message]] = {}  # (user, conv) -> messages

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self.conversations.get(conversation_id)

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        if conversation.id in self.conversations:
            raise ConversationExistsError(conversation.id)
        self.conversations[conversation.id] = conversation
        return conversation

    async def update_conversation(
        self, conversation_id: str, updates: dict[str, Any]
    ) -> Optional[Conversation]:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return None
        updated = conversation.model_copy(update={**updates, "updated_at": utc_now()})
        self.conversations[conversation_id] = updated
        return updated

    async def add_message(self, message: Message, user_id: str, conversation_id: str) -> None:
        self.messages.setdefault((user_id, conversation_id), []).append(message)

    async def get_messages(
        self,
        user_id: str,
        conversation_id: str,
        limit: Optional[int] = None,
    ) -> List[Message]:
        messages = self.messages.get((user_id, conversation_id), [])
        if limit:
            messages = messages[-limit:]
        return list(messages)


__all__ = [
    "HistoryStorage",
    "InMemoryHistoryStorage",
    "ConversationStorage",
    "ConversationExistsError",
    "InMemoryConversationStorage",
]
