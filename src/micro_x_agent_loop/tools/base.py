"""
Base classes for tools.

Every tool exposes a name, a description, a JSON input schema and an async
``execute(input, cancellation)`` that returns text or raises on failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from ..cancellation import CancellationToken
from ..llm.base import ToolDefinition


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str  # string, integer, number, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None


class BaseTool(ABC):
    """Base class for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description."""
        pass

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """Get the tool input schema (JSON Schema)."""
        pass

    @abstractmethod
    async def execute(
        self,
        input: dict[str, Any],
        cancellation: CancellationToken | None = None,
    ) -> str:
        """Execute the tool with the model-supplied input."""
        pass

    def to_definition(self) -> ToolDefinition:
        """Convert to a tool definition for the LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.input_schema,
        )


@dataclass
class Tool(BaseTool):
    """
    Simple tool wrapper that can be created from a function.

    The handler receives the input fields as keyword arguments. With
    ``accepts_cancellation`` set it also receives ``cancellation``.
    """

    tool_name: str
    tool_description: str
    parameters: list[ToolParameter]
    handler: Callable[..., Coroutine[Any, Any, str]]
    accepts_cancellation: bool = False

    @property
    def name(self) -> str:
        return self.tool_name

    @property
    def description(self) -> str:
        return self.tool_description

    @property
    def input_schema(self) -> dict[str, Any]:
        """Convert parameters to JSON Schema format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.param_type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }

    async def execute(
        self,
        input: dict[str, Any],
        cancellation: CancellationToken | None = None,
    ) -> str:
        """Execute the tool handler."""
        known = {p.name for p in self.parameters}
        kwargs = {k: v for k, v in input.items() if k in known}
        if self.accepts_cancellation:
            kwargs["cancellation"] = cancellation
        return await self.handler(**kwargs)
