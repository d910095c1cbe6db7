"""
AgentCore - Agent orchestration engine

Top-level exports for easy access to core functionality.
"""

# Top-level Agent class
from agentcore.agent import (
    Agent,
    AgentHooks,
    GenerateObjectResponse,
    GenerateTextResponse,
    StreamObjectResponse,
    StreamTextResponse,
    SubAgentConfig,
    SupervisorConfig,
    create_sub_agent,
)

# Domain models
from agentcore.domain import (
    AgentCoreError,
    CancellationError,
    HistoryEntry,
    HistoryStatus,
    Message,
    MessageRole,
    StepType,
    StepWithContent,
    TimelineEvent,
    ToolExecutionError,
    Usage,
)

# Collaborators
from agentcore.llm import LLMProvider
from agentcore.providers import (
    ConversationStorage,
    HistoryStorage,
    InMemoryConversationStorage,
    InMemoryHistoryStorage,
)
from agentcore.retriever import BaseRetriever
from agentcore.runtime import AbortController, AbortSignal, AgentRegistry
from agentcore.tools import Tool, Toolkit, create_tool

# Config
from agentcore.config import settings

__version__ = "0.1.0"

__all__ = [
    # Agent
    "Agent",
    "AgentHooks",
    "GenerateTextResponse",
    "GenerateObjectResponse",
    "StreamTextResponse",
    "StreamObjectResponse",
    "SubAgentConfig",
    "SupervisorConfig",
    "create_sub_agent",
    # Domain
    "AgentCoreError",
    "CancellationError",
    "ToolExecutionError",
    "HistoryEntry",
    "HistoryStatus",
    "Message",
    "MessageRole",
    "StepType",
    "StepWithContent",
    "TimelineEvent",
    "Usage",
    # Collaborators
    "LLMProvider",
    "HistoryStorage",
    "InMemoryHistoryStorage",
    "ConversationStorage",
    "InMemoryConversationStorage",
    "BaseRetriever",
    "Tool",
    "Toolkit",
    "create_tool",
    # Runtime
    "AbortController",
    "AbortSignal",
    "AgentRegistry",
    # Config
    "settings",
]
