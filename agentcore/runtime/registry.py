"""
AgentRegistry - orchestration root shared by cooperating agents.

Holds:
- agents by id (register on construction, unregister on disposal)
- parent/child links created by sub-agent registration
- the shared AgentEventEmitter and Tracer

Agents that delegate to each other share one registry so the delegation
depth of a sub-agent can be computed from the parent chain; adding a
sub-agent moves it onto its supervisor's registry.
"""

from typing import TYPE_CHECKING

from agentcore.observability.tracing import InMemoryTracer, Tracer
from agentcore.runtime.event_emitter import AgentEventEmitter
from agentcore.utils.logging import get_logger

if TYPE_CHECKING:
    from agentcore.agent.agent import Agent

logger = get_logger(__name__)


class AgentRegistry:
    """Explicit registry of agents and their delegation links."""

    def __init__(
        self,
        event_emitter: AgentEventEmitter | None = None,
        tracer: Tracer | None = None,
    ):
        self.event_emitter = event_emitter or AgentEventEmitter()
        self.tracer = tracer or InMemoryTracer()
        self._agents: dict[str, "Agent"] = {}
        # child id -> parent ids, in registration order
        self._parents: dict[str, list[str]] = {}

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def register(self, agent: "Agent") -> None:
        if agent.id in self._agents and self._agents[agent.id] is not agent:
            logger.warning("agent_id_reregistered", agent_id=agent.id, agent_name=agent.name)
        self._agents[agent.id] = agent

    def unregister(self, agent_id: str) -> None:
        self._agents.pop(agent_id, None)
        self._parents.pop(agent_id, None)
        for parents in self._parents.values():
            if agent_id in parents:
                parents.remove(agent_id)

    def get_agent(self, agent_id: str) -> "Agent | None":
        return self._agents.get(agent_id)

    def get_all_agents(self) -> list["Agent"]:
        return list(self._agents.values())

    # ------------------------------------------------------------------
    # Parent / child links
    # ------------------------------------------------------------------

    def register_sub_agent(self, parent_id: str, child_id: str) -> None:
        parents = self._parents.setdefault(child_id, [])
        if parent_id not in parents:
            parents.append(parent_id)

    def unregister_sub_agent(self, parent_id: str, child_id: str) -> None:
        parents = self._parents.get(child_id)
        if not parents:
            return
        if parent_id in parents:
            parents.remove(parent_id)
        if not parents:
            del self._parents[child_id]

    def get_parent_agent_ids(self, child_id: str) -> list[str]:
        return list(self._parents.get(child_id, []))

    def calculate_delegation_depth(self, parent_agent_id: str | None) -> int:
        """
        Depth of an operation delegated by parent_agent_id.

        0 for a top-level call. Follows the first registered parent of each
        ancestor; the visited set bounds the walk when links form a cycle.
        """
        if not parent_agent_id:
            return 0

        depth = 1
        current = parent_agent_id
        visited: set[str] = set()

        while current:
            if current in visited:
                break
            visited.add(current)

            parents = self._parents.get(current)
            if not parents:
                break
            depth += 1
            current = parents[0]

        return depth


__all__ = ["AgentRegistry"]
