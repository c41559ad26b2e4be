"""
OpenAI GPT LLM provider (also works with OpenRouter and compatible APIs).
"""

import json
from typing import Any, Callable

import openai
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

# OpenAI finish_reason -> Anthropic-style stop reason used by the agent loop
STOP_REASONS = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
}


class OpenAILLM(BaseLLM):
    """OpenAI GPT LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 1.0,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to OpenAI format.

        Tool results become separate ``tool`` role messages placed before any
        text that shared the same user message.
        """
        converted: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "assistant":
                entry: dict[str, Any] = {
                    "role": "assistant",
                    "content": msg.text or None,
                }
                if msg.tool_uses:
                    entry["tool_calls"] = [
                        {
                            "id": tu.id,
                            "type": "function",
                            "function": {
                                "name": tu.name,
                                "arguments": json.dumps(tu.input),
                            },
                        }
                        for tu in msg.tool_uses
                    ]
                converted.append(entry)
                continue

            for result in msg.tool_results:
                content = result.content
                if result.is_error and not content.startswith("Error"):
                    content = f"Error: {content}"
                converted.append({
                    "role": "tool",
                    "tool_call_id": result.tool_use_id,
                    "content": content,
                })
            if msg.text:
                converted.append({"role": "user", "content": msg.text})

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to OpenAI format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _parse_arguments(self, raw: str | None) -> dict[str, Any]:
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Unparseable tool arguments", arguments=raw[:200])
            return {}
        return parsed if isinstance(parsed, dict) else {}

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> LLMResponse:
        """Generate a response from GPT."""
        converted_messages = self._convert_messages(messages)

        if system_prompt:
            converted_messages.insert(0, {"role": "system", "content": system_prompt})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
            "messages": converted_messages,
        }

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        try:
            if on_text is None:
                return self._parse_completion(
                    await self.client.chat.completions.create(**kwargs)
                )
            return await self._stream_completion(kwargs, on_text)

        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e))
            raise

    def _parse_completion(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        message = choice.message

        content: list[ContentBlock] = []
        if message.content:
            content.append(TextBlock(message.content))
        for tc in message.tool_calls or []:
            content.append(ToolUseBlock(
                id=tc.id,
                name=tc.function.name,
                input=self._parse_arguments(tc.function.arguments),
            ))

        return LLMResponse(
            message=LLMMessage(role="assistant", content=content),
            stop_reason=STOP_REASONS.get(choice.finish_reason, choice.finish_reason),
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
            model=response.model,
            raw_response=response,
        )

    async def _stream_completion(
        self,
        kwargs: dict[str, Any],
        on_text: Callable[[str], None],
    ) -> LLMResponse:
        stream = await self.client.chat.completions.create(
            **kwargs,
            stream=True,
            stream_options={"include_usage": True},
        )

        text_parts: list[str] = []
        calls: dict[int, dict[str, str]] = {}
        finish_reason: str | None = None
        model = self.model
        input_tokens = output_tokens = 0

        async for chunk in stream:  # type: ignore
            model = chunk.model or model
            if chunk.usage:
                input_tokens = chunk.usage.prompt_tokens
                output_tokens = chunk.usage.completion_tokens
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta
            if delta.content:
                text_parts.append(delta.content)
                on_text(delta.content)
            for tc in delta.tool_calls or []:
                slot = calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                if tc.id:
                    slot["id"] = tc.id
                if tc.function and tc.function.name:
                    slot["name"] += tc.function.name
                if tc.function and tc.function.arguments:
                    slot["arguments"] += tc.function.arguments
            if choice.finish_reason:
                finish_reason = choice.finish_reason

        content: list[ContentBlock] = []
        if text_parts:
            content.append(TextBlock("".join(text_parts)))
        for index in sorted(calls):
            slot = calls[index]
            content.append(ToolUseBlock(
                id=slot["id"],
                name=slot["name"],
                input=self._parse_arguments(slot["arguments"]),
            ))

        return LLMResponse(
            message=LLMMessage(role="assistant", content=content),
            stop_reason=STOP_REASONS.get(finish_reason or "", finish_reason),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model,
        )
