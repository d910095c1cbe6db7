"""
Agent lifecycle hooks.

A hook set is a fixed collection of optional async callbacks, each invoked
with keyword arguments:

- on_start(agent, context)
- on_end(agent, output, error, conversation_id, context)
- on_handoff(agent, source_agent)
- on_tool_start(agent, tool, context)
- on_tool_end(agent, tool, output, error, context)
- on_prepare_messages(messages, context) -> list of messages
- on_error(agent, error, context)
- on_step_finish(agent, step, context)

`merge_hooks` combines call-level hooks with agent-level hooks: both run,
call-level first. `on_prepare_messages` is replaced instead of merged.
"""

import inspect
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable

HookFn = Callable[..., Awaitable[Any] | Any]

# Slots combined by merge_hooks; on_prepare_messages is last-writer-wins
MERGED_HOOKS = (
    "on_start",
    "on_end",
    "on_handoff",
    "on_tool_start",
    "on_tool_end",
    "on_error",
    "on_step_finish",
)


@dataclass(frozen=True)
class AgentHooks:
    """Named lifecycle callback slots. Any slot may be None."""

    on_start: HookFn | None = None
    on_end: HookFn | None = None
    on_handoff: HookFn | None = None
    on_tool_start: HookFn | None = None
    on_tool_end: HookFn | None = None
    on_prepare_messages: HookFn | None = None
    on_error: HookFn | None = None
    on_step_finish: HookFn | None = None

    async def invoke(self, name: str, **kwargs: Any) -> Any:
        """Call the slot `name` if set; failures propagate."""
        fn = getattr(self, name)
        if fn is None:
            return None
        result = fn(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def has(self, name: str) -> bool:
        return getattr(self, name) is not None


def _chain(first: HookFn, second: HookFn) -> HookFn:
    async def chained(**kwargs: Any) -> None:
        result = first(**kwargs)
        if inspect.isawaitable(result):
            await result
        result = second(**kwargs)
        if inspect.isawaitable(result):
            await result

    return chained


def merge_hooks(call_hooks: AgentHooks | None, agent_hooks: AgentHooks | None) -> AgentHooks:
    """
    Combine call-level and agent-level hooks into one hook set.

    Pure function: neither input is modified.
    """
    agent_hooks = agent_hooks or AgentHooks()
    if call_hooks is None:
        return agent_hooks

    merged: dict[str, HookFn | None] = {}
    for slot in MERGED_HOOKS:
        call_fn = getattr(call_hooks, slot)
        agent_fn = getattr(agent_hooks, slot)
        if call_fn and agent_fn:
            merged[slot] = _chain(call_fn, agent_fn)
        else:
            merged[slot] = call_fn or agent_fn

    merged["on_prepare_messages"] = (
        call_hooks.on_prepare_messages or agent_hooks.on_prepare_messages
    )
    return AgentHooks(**merged)


def hook_slots() -> list[str]:
    return [f.name for f in fields(AgentHooks)]


__all__ = ["AgentHooks", "merge_hooks", "MERGED_HOOKS", "HookFn", "hook_slots"]
