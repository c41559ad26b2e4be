"""
Tools module for agent capabilities.

MCP support lives in ``tools.mcp_tool`` and is imported only when MCP
servers are configured.
"""

from .base import BaseTool, Tool, ToolParameter
from .registry import ToolRegistry, create_tool_registry
from .dispatcher import ToolDispatcher, truncate_result

__all__ = [
    "BaseTool",
    "Tool",
    "ToolParameter",
    "ToolRegistry",
    "create_tool_registry",
    "ToolDispatcher",
    "truncate_result",
]
