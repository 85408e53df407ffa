"""Registry of tools available to one conversation."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from chatwire.errors import ToolError
from chatwire.tools.base import Tool, encode_result

_logger = logging.getLogger(__name__)


class ToolRegistry:
    """Tools keyed by their unique name."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool instance.  Names must be unique."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, tool_name: str, raw_arguments: str) -> str:
        """Call a tool by name and return its encoded result.

        Raises ``ToolError`` if no such tool exists.  Failures inside the
        tool are returned as an ``{"error": ...}`` payload so the model can
        react to them.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            available = ", ".join(self._tools) or "none"
            raise ToolError(
                f"Unknown function {tool_name!r} (available: {available})",
                tool_name=tool_name,
            )
        try:
            return await tool.call(raw_arguments)
        except Exception as e:
            _logger.warning("Tool %s failed: %s: %s", tool_name, type(e).__name__, e)
            return encode_result({"error": f"{type(e).__name__}: {e}"})

    def get_openai_schemas(self) -> list[dict[str, Any]]:
        """OpenAI function-calling schemas for all registered tools."""
        return [t.to_openai_schema() for t in self._tools.values()]
