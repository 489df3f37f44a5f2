"""
Tool Registry - named function-calling tools advertised to the live model.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass
class ToolDefinition:
    """A tool the model may call: JSON-schema parameters plus an async handler."""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler

    def declaration(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class ToolResult:
    """Normalized outcome of a tool execution: either ``result`` or ``error``."""
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_response(self) -> Dict[str, Any]:
        """Payload for the FunctionResponse sent back to the model."""
        if self.error is not None:
            return {"error": self.error}
        if isinstance(self.result, dict):
            return self.result
        return {"result": self.result}


class ToolRegistry:
    """Name -> ToolDefinition map. Registering an existing name replaces it."""

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            logger.debug(f"Replacing tool registration: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def get_all(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def get_tools_format(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """Declarations (name, description, parameters), optionally restricted to ``names``."""
        wanted = set(names) if names is not None else None
        return [
            tool.declaration() for tool in self._tools.values()
            if wanted is None or tool.name in wanted
        ]

    async def execute(self, name: str, args: Dict[str, Any]) -> ToolResult:
        """Run a tool handler. Never raises for handler failures."""
        tool = self._tools.get(name)
        if tool is None:
            logger.error(
                f"Tool {name} not found",
                extra={"extra_fields": {"route": "tool_execute", "tool_name": name}}
            )
            return ToolResult(error=f"Tool {name} not found")

        try:
            result = await tool.handler(args or {})
        except Exception as e:
            logger.error(
                f"Tool {name} failed: {e}",
                exc_info=True,
                extra={"extra_fields": {"route": "tool_execute", "tool_name": name}}
            )
            return ToolResult(error=str(e) or "Unknown error")
        return ToolResult(result=result)
