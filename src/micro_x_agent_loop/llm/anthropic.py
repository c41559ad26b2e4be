"""
Anthropic Claude LLM provider.
"""

from typing import Any, Callable

import anthropic
import structlog

from .base import (
    BaseLLM,
    ContentBlock,
    LLMMessage,
    LLMResponse,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

logger = structlog.get_logger()


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 1.0,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _convert_block(self, block: ContentBlock) -> dict[str, Any]:
        if isinstance(block, ToolUseBlock):
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            }
        if isinstance(block, ToolResultBlock):
            converted: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": block.tool_use_id,
                "content": block.content,
            }
            if block.is_error:
                converted["is_error"] = True
            return converted
        return {"type": "text", "text": block.text}

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to Anthropic format."""
        return [
            {
                "role": msg.role,
                "content": [self._convert_block(b) for b in msg.content],
            }
            for msg in messages
        ]

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Anthropic format."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    def _parse_response(self, response: Any) -> LLMResponse:
        content: list[ContentBlock] = []
        for block in response.content:
            if block.type == "text":
                content.append(TextBlock(block.text))
            elif block.type == "tool_use":
                content.append(ToolUseBlock(
                    id=block.id,
                    name=block.name,
                    input=dict(block.input) if isinstance(block.input, dict) else {},
                ))

        return LLMResponse(
            message=LLMMessage(role="assistant", content=content),
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            raw_response=response,
        )

    def _build_kwargs(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None,
        system_prompt: str | None,
        max_tokens: int | None,
        temperature: float | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
            "messages": self._convert_messages(messages),
        }

        if system_prompt:
            kwargs["system"] = system_prompt

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        return kwargs

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> LLMResponse:
        """Generate a response from Claude."""
        kwargs = self._build_kwargs(messages, tools, system_prompt, max_tokens, temperature)

        try:
            if on_text is None:
                response = await self.client.messages.create(**kwargs)
            else:
                async with self.client.messages.stream(**kwargs) as stream:
                    async for text in stream.text_stream:
                        on_text(text)
                    response = await stream.get_final_message()

            return self._parse_response(response)

        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e))
            raise
