"""
Core agent loop.

One call to ``Agent.run`` handles one user turn:
1. Appends the user message and applies the history cap
2. Compacts the conversation when it grows past the token threshold
3. Sends the conversation and tool catalogue to the LLM through the retry pipeline
4. Dispatches any requested tool calls in parallel and appends their results
5. Repeats until the model answers without tool calls
"""

import asyncio
from typing import Callable

import structlog

from ..cancellation import CancellationToken
from ..config import Settings, get_settings
from ..errors import OperationCancelledError
from ..llm import BaseLLM, LLMMessage, LLMResponse, ToolResultBlock, ToolUseBlock, create_llm
from ..resilience import RetryPipeline
from ..system_prompt import get_system_prompt
from ..tools import ToolDispatcher, ToolRegistry
from .compaction import CompactionStrategy, create_compaction_strategy
from .conversation import ConversationContext

logger = structlog.get_logger()

MAX_CONSECUTIVE_TRUNCATIONS = 3

CONTINUATION_PROMPT = (
    "Your previous response was cut off because it reached the output token limit. "
    "Continue from where you left off, and be more concise. If you are writing a "
    "large file, write it in smaller sections using write_file followed by append_file."
)

CANCELLED_RESULT = "Tool call cancelled before it completed."

RESTREAM_NOTICE = "\n[connection interrupted, retrying; the response restarts below]\n"


class Agent:
    """Drives the conversation between the user, the LLM and the tools."""

    def __init__(
        self,
        llm: BaseLLM | None = None,
        tool_registry: ToolRegistry | None = None,
        settings: Settings | None = None,
        system_prompt: str | None = None,
        compaction: CompactionStrategy | None = None,
        retry: RetryPipeline | None = None,
        on_text: Callable[[str], None] | None = None,
    ):
        self.settings = settings or get_settings()
        self.llm = llm or create_llm(settings=self.settings)
        self.tool_registry = tool_registry if tool_registry is not None else ToolRegistry()
        self.retry = retry or RetryPipeline.for_llm()
        self.compaction = compaction or create_compaction_strategy(self.settings, self.llm, self.retry)
        self.dispatcher = ToolDispatcher(self.tool_registry, self.settings.max_tool_result_chars)
        self.on_text = on_text

        self.context = ConversationContext(system_prompt=system_prompt or get_system_prompt())
        self.total_input_tokens = 0
        self.total_output_tokens = 0

    @property
    def messages(self) -> list[LLMMessage]:
        return self.context.messages

    async def run(self, user_input: str, cancellation: CancellationToken | None = None) -> str:
        """Process one user turn and return the model's final text."""
        self.context.add_user_text(user_input)
        self.context.trim(self.settings.max_conversation_messages)

        tools = self.tool_registry.get_definitions() or None
        truncations = 0

        while True:
            await self._maybe_compact(cancellation)

            response = await self._call_llm(tools, cancellation)
            message = response.message
            self.context.add_assistant_message(message)

            tool_uses = message.tool_uses
            if response.stop_reason == "max_tokens" and not tool_uses:
                truncations += 1
                if truncations >= MAX_CONSECUTIVE_TRUNCATIONS:
                    logger.warning(
                        "Output token limit hit repeatedly, stopping",
                        truncations=truncations,
                        max_tokens=self.llm.max_tokens,
                    )
                    explanation = (
                        f"Stopped: the response was cut off {truncations} times in a row by "
                        f"the max_tokens limit ({self.llm.max_tokens:,} tokens). Try asking for "
                        "a smaller piece of the work, or raise MAX_TOKENS."
                    )
                    if self.on_text is not None:
                        self.on_text(f"\n\n{explanation}")
                    return explanation
                logger.info("Response truncated, requesting continuation", truncations=truncations)
                self.context.add_user_text(CONTINUATION_PROMPT)
                continue

            truncations = 0

            if not tool_uses:
                return message.text

            results = await self._dispatch(tool_uses, cancellation)
            self.context.add_tool_results(results)
            self.context.trim(self.settings.max_conversation_messages)

    async def _call_llm(
        self,
        tools,
        cancellation: CancellationToken | None,
    ) -> LLMResponse:
        messages = list(self.context.messages)
        streamed = False

        def stream(text: str) -> None:
            nonlocal streamed
            streamed = True
            self.on_text(text)

        async def attempt() -> LLMResponse:
            nonlocal streamed
            if streamed:
                # The retry streams the response again from its first token.
                self.on_text(RESTREAM_NOTICE)
                streamed = False
            return await self.llm.generate(
                messages=messages,
                tools=tools,
                system_prompt=self.context.system_prompt,
                on_text=stream if self.on_text is not None else None,
            )

        response = await self.retry.execute(attempt, cancellation)

        self.total_input_tokens += response.input_tokens
        self.total_output_tokens += response.output_tokens
        logger.debug(
            "LLM response",
            stop_reason=response.stop_reason,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            tool_calls=len(response.tool_uses),
        )
        return response

    async def _dispatch(
        self,
        tool_uses: list[ToolUseBlock],
        cancellation: CancellationToken | None,
    ) -> list[ToolResultBlock]:
        try:
            return await self.dispatcher.dispatch(tool_uses, cancellation)
        except (OperationCancelledError, asyncio.CancelledError):
            # Every tool use must still be answered.
            self.context.add_tool_results([
                ToolResultBlock(tool_use_id=block.id, content=CANCELLED_RESULT, is_error=True)
                for block in tool_uses
            ])
            logger.info("Tool round cancelled", tool_calls=len(tool_uses))
            raise

    async def _maybe_compact(self, cancellation: CancellationToken | None) -> None:
        messages = self.context.messages
        compacted = await self.compaction.maybe_compact(messages, cancellation)
        if compacted is not messages:
            self.context.messages = compacted
            self.context.compaction_count += 1

    def reset(self) -> None:
        """Start a fresh conversation with the same configuration."""
        self.context = ConversationContext(system_prompt=self.context.system_prompt)
