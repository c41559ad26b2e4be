"""
Tests for LLM provider adapters.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from micro_x_agent_loop.config import LLMConfig
from micro_x_agent_loop.llm import (
    AnthropicLLM,
    LLMMessage,
    OpenAILLM,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    create_llm,
)


def _conversation() -> list[LLMMessage]:
    return [
        LLMMessage.user_text("List files"),
        LLMMessage(role="assistant", content=[
            TextBlock("Checking."),
            ToolUseBlock(id="t1", name="bash", input={"command": "ls"}),
        ]),
        LLMMessage(role="user", content=[
            ToolResultBlock(tool_use_id="t1", content="boom", is_error=True),
        ]),
    ]


def test_llm_message_helpers():
    """Test text and block accessors."""
    msg = _conversation()[1]
    assert msg.text == "Checking."
    assert [b.id for b in msg.tool_uses] == ["t1"]
    assert _conversation()[2].tool_results[0].is_error is True


def test_create_llm_routes_providers():
    """Test the factory picks the adapter by provider."""
    anthropic_llm = create_llm(LLMConfig(provider="anthropic", api_key="k", model="m"))
    assert isinstance(anthropic_llm, AnthropicLLM)
    assert anthropic_llm.provider_name == "anthropic"

    openrouter_llm = create_llm(LLMConfig(
        provider="openrouter",
        api_key="k",
        model="m",
        base_url="https://openrouter.ai/api/v1",
    ))
    assert isinstance(openrouter_llm, OpenAILLM)
    assert openrouter_llm.base_url == "https://openrouter.ai/api/v1"


def test_anthropic_convert_messages():
    """Test blocks map one-to-one onto the Anthropic format."""
    llm = AnthropicLLM(api_key="k")
    converted = llm._convert_messages(_conversation())

    assert converted[0] == {"role": "user", "content": [{"type": "text", "text": "List files"}]}
    assert converted[1]["content"][1] == {
        "type": "tool_use",
        "id": "t1",
        "name": "bash",
        "input": {"command": "ls"},
    }
    assert converted[2]["content"][0] == {
        "type": "tool_result",
        "tool_use_id": "t1",
        "content": "boom",
        "is_error": True,
    }


def test_anthropic_build_kwargs():
    """Test request parameters, including an explicit zero temperature."""
    llm = AnthropicLLM(api_key="k", model="claude-test", max_tokens=100, temperature=0.7)
    tools = [ToolDefinition(name="bash", description="Run", parameters={"type": "object"})]

    kwargs = llm._build_kwargs(_conversation(), tools, "system", None, 0)

    assert kwargs["model"] == "claude-test"
    assert kwargs["max_tokens"] == 100
    assert kwargs["temperature"] == 0
    assert kwargs["system"] == "system"
    assert kwargs["tools"] == [{"name": "bash", "description": "Run", "input_schema": {"type": "object"}}]


@pytest.mark.asyncio
async def test_anthropic_generate_parses_response():
    """Test a tool-use response is parsed into blocks."""
    llm = AnthropicLLM(api_key="k")
    raw = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Let me look."),
            SimpleNamespace(type="tool_use", id="t9", name="read_file", input={"path": "a.txt"}),
        ],
        stop_reason="tool_use",
        usage=SimpleNamespace(input_tokens=12, output_tokens=34),
        model="claude-test",
    )
    llm.client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock(return_value=raw)))

    response = await llm.generate(_conversation())

    assert response.stop_reason == "tool_use"
    assert response.content == "Let me look."
    assert response.tool_uses == [ToolUseBlock(id="t9", name="read_file", input={"path": "a.txt"})]
    assert (response.input_tokens, response.output_tokens) == (12, 34)


def test_openai_convert_messages():
    """Test tool calls and tool results map onto the OpenAI format."""
    llm = OpenAILLM(api_key="k")
    converted = llm._convert_messages(_conversation())

    assert converted[0] == {"role": "user", "content": "List files"}
    assert converted[1]["role"] == "assistant"
    assert converted[1]["content"] == "Checking."
    assert converted[1]["tool_calls"][0]["function"] == {"name": "bash", "arguments": '{"command": "ls"}'}
    assert converted[2] == {"role": "tool", "tool_call_id": "t1", "content": "Error: boom"}


@pytest.mark.asyncio
async def test_openai_generate_maps_finish_reason():
    """Test finish reasons map onto the loop's stop reasons."""
    llm = OpenAILLM(api_key="k")
    raw = SimpleNamespace(
        choices=[SimpleNamespace(
            finish_reason="length",
            message=SimpleNamespace(content="partial", tool_calls=None),
        )],
        usage=SimpleNamespace(prompt_tokens=5, completion_tokens=7),
        model="gpt-test",
    )
    create = AsyncMock(return_value=raw)
    llm.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    response = await llm.generate([LLMMessage.user_text("hi")], system_prompt="sys")

    assert response.stop_reason == "max_tokens"
    assert response.content == "partial"
    assert create.await_args.kwargs["messages"][0] == {"role": "system", "content": "sys"}


@pytest.mark.asyncio
async def test_openai_stream_accumulates_tool_calls():
    """Test streamed tool-call fragments are stitched together."""

    def chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
        choices = [] if usage else [SimpleNamespace(
            delta=SimpleNamespace(content=content, tool_calls=tool_calls),
            finish_reason=finish_reason,
        )]
        return SimpleNamespace(model="gpt-test", usage=usage, choices=choices)

    def fragment(index, id=None, name=None, arguments=None):
        return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))

    chunks = [
        chunk(content="Hi "),
        chunk(content="there"),
        chunk(tool_calls=[fragment(0, id="c1", name="bash", arguments='{"comm')]),
        chunk(tool_calls=[fragment(0, arguments='and": "ls"}')]),
        chunk(finish_reason="tool_calls"),
        chunk(usage=SimpleNamespace(prompt_tokens=3, completion_tokens=4)),
    ]

    async def stream():
        for c in chunks:
            yield c

    llm = OpenAILLM(api_key="k")
    create = AsyncMock(return_value=stream())
    llm.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    seen = []

    response = await llm.generate([LLMMessage.user_text("hi")], on_text=seen.append)

    assert seen == ["Hi ", "there"]
    assert response.content == "Hi there"
    assert response.tool_uses == [ToolUseBlock(id="c1", name="bash", input={"command": "ls"})]
    assert response.stop_reason == "tool_use"
    assert (response.input_tokens, response.output_tokens) == (3, 4)
