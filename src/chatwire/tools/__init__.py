"""Callable tools for chatwire."""

from chatwire.tools.base import FunctionTool, Tool
from chatwire.tools.registry import ToolRegistry

__all__ = ["FunctionTool", "Tool", "ToolRegistry"]
