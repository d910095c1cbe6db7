"""
Storage providers module.

This module contains storage implementations:
- HistoryStorage: Abstract history storage interface
- InMemoryHistoryStorage: In-memory implementation (for testing)
- ConversationStorage: Abstract conversation storage interface
- InMemoryConversationStorage: In-memory implementation (for testing)
"""

from .base import (
    ConversationExistsError,
    ConversationStorage,
    HistoryStorage,
    InMemoryConversationStorage,
    InMemoryHistoryStorage,
)

__all__ = [
    "ConversationExistsError",
    "ConversationStorage",
    "HistoryStorage",
    "InMemoryConversationStorage",
    "InMemoryHistoryStorage",
]
