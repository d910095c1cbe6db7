"""
Providers module - pluggable storage backends.
"""

from .storage import (
    ConversationStorage,
    HistoryStorage,
    InMemoryConversationStorage,
    InMemoryHistoryStorage,
)

__all__ = [
    "ConversationStorage",
    "HistoryStorage",
    "InMemoryConversationStorage",
    "InMemoryHistoryStorage",
]
