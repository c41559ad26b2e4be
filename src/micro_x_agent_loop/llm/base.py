"""
Base classes for LLM providers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Union


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class TextBlock:
    """Plain text content."""

    text: str


@dataclass
class ToolUseBlock:
    """A model-issued request to invoke a tool. Assistant messages only."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResultBlock:
    """Outcome of a tool call, paired to its ToolUseBlock by id. User messages only."""

    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass
class LLMMessage:
    """A message in the conversation."""

    role: Literal["user", "assistant"]
    content: list[ContentBlock] = field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> "LLMMessage":
        return cls(role="user", content=[TextBlock(text)])

    @classmethod
    def assistant_text(cls, text: str) -> "LLMMessage":
        return cls(role="assistant", content=[TextBlock(text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]


@dataclass
class LLMResponse:
    """Response from an LLM."""

    message: LLMMessage
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    raw_response: Any = None

    @property
    def content(self) -> str:
        return self.message.text

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return self.message.tool_uses


class BaseLLM(ABC):
    """Base class for LLM providers."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 1.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> LLMResponse:
        """Generate a response from the LLM.

        When ``on_text`` is given the response is streamed and the callback
        receives each text delta as it arrives.
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
