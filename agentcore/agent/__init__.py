"""
Agent module - Agent façade and the managers it owns.

This module contains:
- Agent: configuration and the four call shapes
- AgentHooks / merge_hooks: lifecycle callbacks
- HistoryManager: one history entry per operation
- MemoryManager: conversation window and message persistence
- SubAgentManager: supervisor/sub-agent delegation (delegate_task tool)
"""

from .agent import (
    Agent,
    CallOptions,
    GenerateObjectResponse,
    GenerateTextResponse,
    StreamObjectResponse,
    StreamTextResponse,
)
from .history import HistoryManager
from .hooks import AgentHooks, merge_hooks
from .memory import MemoryManager
from .subagent import (
    DELEGATE_TOOL_NAME,
    SubAgentConfig,
    SubAgentManager,
    SupervisorConfig,
    create_sub_agent,
)

__all__ = [
    "Agent",
    "CallOptions",
    "GenerateTextResponse",
    "GenerateObjectResponse",
    "StreamTextResponse",
    "StreamObjectResponse",
    "HistoryManager",
    "AgentHooks",
    "merge_hooks",
    "MemoryManager",
    "SubAgentManager",
    "SubAgentConfig",
    "SupervisorConfig",
    "create_sub_agent",
    "DELEGATE_TOOL_NAME",
]
