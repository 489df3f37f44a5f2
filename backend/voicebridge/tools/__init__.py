"""Tools module - function-calling tools, registry and call coordination."""

from typing import Any, Optional

from ..core.latency import LatencyTracker
from .registry import ToolDefinition, ToolRegistry, ToolResult
from .coordinator import ToolCallCoordinator
from .cohort_chat import COHORT_CHAT_TOOL_NAME, CohortChatClient
from .example_tools import EXAMPLE_TOOLS


def register_default_tools(
    registry: ToolRegistry,
    config: Any,
    latency: Optional[LatencyTracker] = None,
) -> ToolRegistry:
    """Register cohort_chat and, when enabled, the simulated example tools."""
    cohort_chat = CohortChatClient(
        default_base_url=config.rag_base_url,
        api_key=config.rag_api_key,
        timeout=config.rag_timeout_seconds,
        latency=latency,
    )
    registry.register(cohort_chat.as_tool())
    if config.enable_example_tools:
        for tool in EXAMPLE_TOOLS:
            registry.register(tool)
    return registry


__all__ = [
    'ToolDefinition', 'ToolRegistry', 'ToolResult', 'ToolCallCoordinator',
    'COHORT_CHAT_TOOL_NAME', 'CohortChatClient', 'EXAMPLE_TOOLS', 'register_default_tools',
]
