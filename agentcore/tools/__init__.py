"""
Tools module - tool definitions and per-agent tool management.
"""

from .base import Tool, ToolExecute, Toolkit, create_tool
from .manager import ToolManager

__all__ = ["Tool", "ToolExecute", "Toolkit", "create_tool", "ToolManager"]
