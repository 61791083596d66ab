"""Registry of chat command tools."""

import logging
from typing import Dict, Any, List, Optional

from chatcmd.tools.base import BaseTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Name-to-tool lookup.

    Built once at startup and injected into the executor, validator and
    command processor. Enumeration follows registration order.
    """

    def __init__(self, tools: Optional[List[BaseTool]] = None):
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            logger.info(f"Replacing registered tool {tool.name}")
            del self._tools[tool.name]
        self._tools[tool.name] = tool
        logger.info(f"Registered tool: {tool.name}")

    def get_tool(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def get_all_tools(self) -> List[BaseTool]:
        return list(self._tools.values())

    def get_tool_names(self) -> List[str]:
        return list(self._tools.keys())

    def find_tools_by_capability(self, capability: str) -> List[BaseTool]:
        """Tools whose name or description contains the capability text (case-insensitive)."""
        needle = capability.lower()
        return [
            tool for tool in self._tools.values()
            if needle in tool.name.lower() or needle in tool.description.lower()
        ]

    def describe(self) -> List[Dict[str, Any]]:
        return [tool.describe() for tool in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
