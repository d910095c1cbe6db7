"""
LLM module - model invocation collaborator interface.
"""

from .base import (
    GenerateObjectResult,
    GenerateTextResult,
    LLMProvider,
    StreamObjectResult,
    StreamTextResult,
)

__all__ = [
    "LLMProvider",
    "GenerateTextResult",
    "GenerateObjectResult",
    "StreamTextResult",
    "StreamObjectResult",
]
