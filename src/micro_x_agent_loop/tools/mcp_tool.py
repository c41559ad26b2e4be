"""
MCP (Model Context Protocol) integration.

McpManager connects to the configured servers at startup and exposes each
remote tool as an McpToolProxy named ``<server>__<tool>``.
"""

import json
from contextlib import AsyncExitStack
from typing import Any

import structlog
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from ..cancellation import CancellationToken
from ..config import McpServerConfig
from ..errors import ToolExecutionError
from ..resilience import RetryPipeline
from .base import BaseTool

logger = structlog.get_logger()

NO_OUTPUT = "(no output)"


class McpToolProxy(BaseTool):
    """A remote MCP tool exposed through the local tool interface."""

    def __init__(
        self,
        server_name: str,
        tool: Any,
        session: ClientSession,
        retry: RetryPipeline | None = None,
    ):
        self.server_name = server_name
        self.tool = tool
        self.session = session
        self.retry = retry or RetryPipeline.for_tool_proxy()

    @property
    def name(self) -> str:
        return f"{self.server_name}__{self.tool.name}"

    @property
    def description(self) -> str:
        return self.tool.description or ""

    @property
    def input_schema(self) -> dict[str, Any]:
        schema = self.tool.inputSchema
        if not isinstance(schema, dict):
            return {"type": "object", "properties": {}}
        return schema

    async def execute(
        self,
        input: dict[str, Any],
        cancellation: CancellationToken | None = None,
    ) -> str:
        logger.debug("MCP tool call", tool_name=self.name, input=json.dumps(input, default=str))

        async def call() -> str:
            result = await self.session.call_tool(self.tool.name, input)
            parts = [
                item.text
                for item in result.content or []
                if getattr(item, "type", None) == "text"
            ]
            text = "\n".join(parts) if parts else NO_OUTPUT

            if result.isError:
                logger.warning("MCP tool error", tool_name=self.name, result=text[:500])
                raise ToolExecutionError(text)
            return text

        output = await self.retry.execute(call, cancellation)
        logger.debug("MCP tool result", tool_name=self.name, chars=len(output))
        return output


class McpManager:
    """Owns the connections to all configured MCP servers."""

    def __init__(self, servers: dict[str, McpServerConfig]):
        self.servers = servers
        self._stack = AsyncExitStack()
        self.sessions: dict[str, ClientSession] = {}

    async def connect_all(self) -> list[McpToolProxy]:
        """Connect to every server and return the discovered tools.

        A server that fails to connect is logged and skipped.
        """
        tools: list[McpToolProxy] = []

        for server_name, config in self.servers.items():
            try:
                discovered = await self._connect(server_name, config)
            except Exception as e:
                logger.error("Failed to connect to MCP server", server=server_name, error=str(e))
                continue
            tools.extend(discovered)
            logger.info("MCP server connected", server=server_name, tools=len(discovered))

        return tools

    async def _connect(self, server_name: str, config: McpServerConfig) -> list[McpToolProxy]:
        if config.transport == "stdio":
            if not config.command:
                raise ValueError(f"MCP server '{server_name}' has no command")
            params = StdioServerParameters(
                command=config.command,
                args=config.args,
                env=config.env,
            )
            read_stream, write_stream = await self._stack.enter_async_context(stdio_client(params))
        elif config.transport == "http":
            if not config.url:
                raise ValueError(f"MCP server '{server_name}' has no url")
            read_stream, write_stream, _ = await self._stack.enter_async_context(
                streamablehttp_client(config.url)
            )
        else:
            raise ValueError(f"Unknown transport '{config.transport}' for MCP server '{server_name}'")

        session = await self._stack.enter_async_context(ClientSession(read_stream, write_stream))
        await session.initialize()
        self.sessions[server_name] = session

        listing = await session.list_tools()
        return [McpToolProxy(server_name, tool, session) for tool in listing.tools]

    async def close(self) -> None:
        """Close every session and transport."""
        try:
            await self._stack.aclose()
        except Exception as e:
            logger.warning("Error closing MCP connections", error=str(e))
        self.sessions.clear()
