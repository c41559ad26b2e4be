"""
Tool registry for managing available tools.

The registry is built once at startup and is read-only afterwards, so
concurrent lookups during a dispatch round need no locking.
"""

from typing import Iterable

import structlog

from ..config import Settings
from ..llm.base import ToolDefinition
from .base import BaseTool

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self, tools: Iterable[BaseTool] = ()):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            logger.warning("Tool replaced", tool_name=tool.name)
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        if name in self._tools:
            del self._tools[name]
            logger.info("Tool unregistered", tool_name=name)

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for the LLM."""
        return [tool.to_definition() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def create_tool_registry(
    settings: Settings,
    google=None,
    extra_tools: Iterable[BaseTool] = (),
) -> ToolRegistry:
    """Build the startup registry from settings.

    ``google`` is a shared GoogleServiceCache; when omitted and Google
    credentials are configured, one is created here.
    """
    registry = ToolRegistry()

    _register_shell_tools(registry, settings)
    _register_file_tools(registry, settings)
    _register_web_tools(registry, settings)

    if settings.google_enabled:
        if google is None:
            from .google_services import GoogleServiceCache
            google = GoogleServiceCache(settings.google_client_id, settings.google_client_secret)
        _register_google_tools(registry, google)

    for tool in extra_tools:
        registry.register(tool)

    logger.info("Tool registry ready", tools=len(registry))
    return registry


def _register_shell_tools(registry: ToolRegistry, settings: Settings) -> None:
    """Register shell command tools."""
    try:
        from .shell_tool import BashTool
        registry.register(BashTool(settings.working_directory))
    except Exception as e:
        logger.warning("Failed to register shell tools", error=str(e))


def _register_file_tools(registry: ToolRegistry, settings: Settings) -> None:
    """Register file operation tools."""
    try:
        from .file_tool import create_file_tools
        for tool in create_file_tools(settings.working_directory):
            registry.register(tool)
    except Exception as e:
        logger.warning("Failed to register file tools", error=str(e))


def _register_web_tools(registry: ToolRegistry, settings: Settings) -> None:
    """Register web fetch, plus web search when a Brave key is configured."""
    try:
        from .web_fetch import WebFetchTool
        registry.register(WebFetchTool())

        if settings.brave_api_key:
            from .web_search import BraveSearchProvider, WebSearchTool
            registry.register(WebSearchTool(BraveSearchProvider(settings.brave_api_key)))
    except Exception as e:
        logger.warning("Failed to register web tools", error=str(e))


def _register_google_tools(registry: ToolRegistry, google) -> None:
    """Register Gmail, Calendar and Contacts tools sharing one service cache."""
    try:
        from .calendar_tool import create_calendar_tools
        from .contacts_tool import create_contacts_tools
        from .gmail_tool import create_gmail_tools
        tools = create_gmail_tools(google) + create_calendar_tools(google) + create_contacts_tools(google)
        for tool in tools:
            registry.register(tool)
    except Exception as e:
        logger.warning("Failed to register Google tools", error=str(e))
