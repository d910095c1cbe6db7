"""
ToolManager - owns an agent's standalone tools and toolkits.
"""

from typing import Any, Iterable

from agentcore.config.exceptions import InvalidAgentConfigError
from agentcore.tools.base import Tool, Toolkit
from agentcore.utils.logging import get_logger

logger = get_logger(__name__)


class ToolManager:
    """
    Registry of tools available to one agent.

    - Standalone tools are replaced when a tool with the same name is added
    - Toolkits whose tools collide with existing tools are rejected
    """

    def __init__(self, items: Iterable[Tool | Toolkit] | None = None):
        self._tools: list[Tool] = []
        self._toolkits: list[Toolkit] = []
        self.add_items(items or [])

    def get_tools(self) -> list[Tool]:
        """All standalone tools followed by toolkit tools, flattened."""
        tools = list(self._tools)
        for toolkit in self._toolkits:
            tools.extend(toolkit.tools)
        return tools

    def get_toolkits(self) -> list[Toolkit]:
        return list(self._toolkits)

    def add_tool(self, tool: Tool) -> bool:
        if not isinstance(tool, Tool):
            raise InvalidAgentConfigError(f"Cannot add an invalid tool: {tool!r}")

        if any(t.name == tool.name for tk in self._toolkits for t in tk.tools):
            logger.warning("tool_conflicts_with_toolkit", tool_name=tool.name)

        for index, existing in enumerate(self._tools):
            if existing.name == tool.name:
                self._tools[index] = tool
                logger.debug("tool_replaced", tool_name=tool.name)
                return True

        self._tools.append(tool)
        return True

    def add_toolkit(self, toolkit: Toolkit) -> bool:
        if not isinstance(toolkit, Toolkit) or not toolkit.name:
            raise InvalidAgentConfigError("Toolkit must have a name.")

        for tool in toolkit.tools:
            conflicts = any(t.name == tool.name for t in self._tools) or any(
                t.name == tool.name
                for tk in self._toolkits
                if tk.name != toolkit.name
                for t in tk.tools
            )
            if conflicts:
                logger.warning(
                    "toolkit_rejected_name_conflict",
                    toolkit_name=toolkit.name,
                    tool_name=tool.name,
                )
                return False

        for index, existing in enumerate(self._toolkits):
            if existing.name == toolkit.name:
                self._toolkits[index] = toolkit
                logger.debug("toolkit_replaced", toolkit_name=toolkit.name)
                return True

        self._toolkits.append(toolkit)
        logger.debug("toolkit_added", toolkit_name=toolkit.name)
        return True

    def add_items(self, items: Iterable[Tool | Toolkit]) -> list[Tool | Toolkit]:
        """Add tools and toolkits; returns the items that were added."""
        added: list[Tool | Toolkit] = []
        for item in items:
            if isinstance(item, Toolkit):
                if self.add_toolkit(item):
                    added.append(item)
            elif isinstance(item, Tool):
                self.add_tool(item)
                added.append(item)
            else:
                logger.warning("tool_item_skipped", item_type=type(item).__name__)
        return added

    def remove_tool(self, tool_name: str) -> bool:
        """Remove a standalone tool. Tools inside toolkits are untouched."""
        before = len(self._tools)
        self._tools = [t for t in self._tools if t.name != tool_name]
        removed = len(self._tools) < before
        if removed:
            logger.debug("tool_removed", tool_name=tool_name)
        return removed

    def remove_toolkit(self, toolkit_name: str) -> bool:
        before = len(self._toolkits)
        self._toolkits = [tk for tk in self._toolkits if tk.name != toolkit_name]
        return len(self._toolkits) < before

    def prepare_tools_for_generation(
        self, dynamic_items: Iterable[Tool | Toolkit] | None = None
    ) -> list[Tool]:
        """Static tools plus per-call tools/toolkits, as a new list."""
        tools = self.get_tools()
        if dynamic_items:
            temp = ToolManager(dynamic_items)
            tools.extend(temp.get_tools())
        return tools

    def get_tools_for_api(self) -> list[dict[str, Any]]:
        return [tool.to_api() for tool in self.get_tools()]

    def has_tool(self, tool_name: str) -> bool:
        return self.get_tool_by_name(tool_name) is not None

    def get_tool_by_name(self, tool_name: str) -> Tool | None:
        if not tool_name:
            return None
        for tool in self.get_tools():
            if tool.name == tool_name:
                return tool
        return None

    def __len__(self) -> int:
        return len(self.get_tools())


__all__ = ["ToolManager"]
