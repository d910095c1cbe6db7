"""
Retriever interface for retrieval-augmented generation.
"""

from abc import ABC, abstractmethod
from typing import Any


class BaseRetriever(ABC):
    """
    Context source queried once per operation.

    `name` and `description` only label timeline events.
    """

    name: str = "retriever"
    description: str = ""

    def __init__(self, name: str | None = None, description: str | None = None):
        if name:
            self.name = name
        if description:
            self.description = description

    @abstractmethod
    async def retrieve(
        self,
        input: Any,
        *,
        user_context: dict[Any, Any],
        logger: Any,
    ) -> str | None:
        """
        Return context text for the input, or None when nothing relevant exists.
        """
        pass


__all__ = ["BaseRetriever"]
