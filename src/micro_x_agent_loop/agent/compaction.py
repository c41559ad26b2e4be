"""
Conversation Compaction - summarize the middle of a long conversation.

When the estimated size of the transcript crosses a threshold, the messages
between the first user message (the anchor) and a protected tail of recent
messages are replaced by a model-written summary. The anchor keeps the
original request verbatim; the tail keeps the live working context.

Structural rules the rebuilt conversation always satisfies:
- a tool call and its tool results are never split across the cut
- roles alternate, starting with the merged user anchor
- below the threshold the input list is returned as-is
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass

import structlog

from ..cancellation import CancellationToken
from ..config import Settings
from ..errors import CompactionError, OperationCancelledError
from ..llm.base import BaseLLM, LLMMessage, TextBlock, ToolResultBlock, ToolUseBlock
from ..resilience import RetryPipeline

logger = structlog.get_logger()

# Approximate characters per token
CHARS_PER_TOKEN = 4

DEFAULT_THRESHOLD_TOKENS = 80_000
DEFAULT_PROTECTED_TAIL = 6

TOOL_INPUT_PREVIEW_CHARS = 200
RESULT_PREVIEW_THRESHOLD = 700
RESULT_PREVIEW_HEAD = 500
RESULT_PREVIEW_TAIL = 200

MAX_SUMMARY_INPUT_CHARS = 100_000
SUMMARY_INPUT_HALF = 50_000

SUMMARY_MAX_TOKENS = 4096

SUMMARY_START = "[CONTEXT SUMMARY]"
SUMMARY_END = "[END CONTEXT SUMMARY]"
ACKNOWLEDGMENT = "Understood. Continuing with the current task."

SUMMARIZE_PROMPT = """Summarize the following conversation history between a user and an AI assistant.
Preserve these details precisely:
- The original user request and any specific criteria or instructions
- All decisions made and their reasoning
- Key data points, URLs, file paths, and identifiers that may be needed later
- Any scores, rankings, or evaluations produced
- Current task status and next steps

Do NOT include raw tool output data (job descriptions, email bodies, etc.).
Just note what was retrieved and key findings.

Format as a concise narrative summary.

---
"""


@dataclass
class CompactionResult:
    """Result of a compaction operation."""

    messages_compacted: int
    tokens_before: int
    tokens_after: int
    success: bool
    error: str | None = None

    @property
    def tokens_freed(self) -> int:
        return max(0, self.tokens_before - self.tokens_after)


def _compact_json(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def estimate_tokens(messages: list[LLMMessage]) -> int:
    """Estimate token count for a list of messages."""
    total_chars = 0
    for msg in messages:
        for block in msg.content:
            if isinstance(block, TextBlock):
                total_chars += len(block.text)
            elif isinstance(block, ToolUseBlock):
                total_chars += len(block.name) + len(_compact_json(block.input))
            elif isinstance(block, ToolResultBlock):
                total_chars += len(block.content)
    return total_chars // CHARS_PER_TOKEN


def adjust_boundary(messages: list[LLMMessage], start: int, end: int) -> int:
    """Move ``end`` back until the cut does not separate a tool call from its results.

    Returns ``start`` when no safe cut exists inside the span.
    """
    while end > start:
        if messages[end - 1].role == "assistant" and messages[end - 1].tool_uses:
            end -= 1
            continue
        break
    return end


def preview_text(text: str) -> str:
    """Keep the head and tail of a long tool result."""
    if len(text) <= RESULT_PREVIEW_THRESHOLD:
        return text
    return text[:RESULT_PREVIEW_HEAD] + "\n[...truncated...]\n" + text[-RESULT_PREVIEW_TAIL:]


def format_for_summarization(messages: list[LLMMessage]) -> str:
    """Flatten messages into a readable transcript for the summarizer."""
    parts = []
    for msg in messages:
        block_texts = []
        for block in msg.content:
            if isinstance(block, TextBlock):
                block_texts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                inp = _compact_json(block.input)
                if len(inp) > TOOL_INPUT_PREVIEW_CHARS:
                    inp = inp[:TOOL_INPUT_PREVIEW_CHARS] + "..."
                block_texts.append(f"[Tool call: {block.name}({inp})]")
            elif isinstance(block, ToolResultBlock):
                block_texts.append(f"[Tool result ({block.tool_use_id})]: {preview_text(block.content)}")
        parts.append(f"[{msg.role}]: " + "\n".join(block_texts))
    return "\n\n".join(parts)


def cap_transcript(text: str) -> str:
    """Keep the head and tail halves of an oversized transcript."""
    if len(text) <= MAX_SUMMARY_INPUT_CHARS:
        return text
    return (
        text[:SUMMARY_INPUT_HALF]
        + "\n\n[...middle of conversation omitted for brevity...]\n\n"
        + text[-SUMMARY_INPUT_HALF:]
    )


def split_anchor(anchor: LLMMessage) -> tuple[str, str]:
    """Split the anchor's text into (original text, previous summary)."""
    text = "\n".join(b.text for b in anchor.content if isinstance(b, TextBlock))
    marker = f"\n\n{SUMMARY_START}\n"
    index = text.find(marker)
    if index < 0:
        if text.startswith(f"{SUMMARY_START}\n"):
            index, marker = 0, f"{SUMMARY_START}\n"
        else:
            return text, ""

    original = text[:index]
    previous = text[index + len(marker):]
    end = previous.rfind(f"\n{SUMMARY_END}")
    if end >= 0:
        previous = previous[:end]
    return original, previous.strip()


def rebuild_messages(messages: list[LLMMessage], compact_end: int, summary: str) -> list[LLMMessage]:
    """Build ``[merged anchor, (ack), *tail]`` from a summary."""
    original, _ = split_anchor(messages[0])
    merged = f"{original}\n\n{SUMMARY_START}\n{summary}\n{SUMMARY_END}"

    tail = messages[compact_end:]
    result = [LLMMessage.user_text(merged)]

    if tail and tail[0].role == "user":
        result.append(LLMMessage.assistant_text(ACKNOWLEDGMENT))

    result.extend(tail)
    return result


class CompactionStrategy(ABC):
    """Keeps the transcript within a token budget."""

    @abstractmethod
    async def maybe_compact(
        self,
        messages: list[LLMMessage],
        cancellation: CancellationToken | None = None,
    ) -> list[LLMMessage]:
        """Return the messages to continue with, unchanged if no compaction is needed."""
        pass


class NoneCompactionStrategy(CompactionStrategy):
    """Never compacts; the history trimmer is the only size control."""

    async def maybe_compact(
        self,
        messages: list[LLMMessage],
        cancellation: CancellationToken | None = None,
    ) -> list[LLMMessage]:
        return messages


class SummarizeCompactionStrategy(CompactionStrategy):
    """Replaces the middle of the conversation with an LLM-written summary."""

    def __init__(
        self,
        llm: BaseLLM,
        threshold_tokens: int = DEFAULT_THRESHOLD_TOKENS,
        protected_tail_messages: int = DEFAULT_PROTECTED_TAIL,
        retry: RetryPipeline | None = None,
    ):
        self.llm = llm
        self.threshold_tokens = threshold_tokens
        self.protected_tail_messages = protected_tail_messages
        self.retry = retry or RetryPipeline.for_llm()
        self.last_result: CompactionResult | None = None

    async def maybe_compact(
        self,
        messages: list[LLMMessage],
        cancellation: CancellationToken | None = None,
    ) -> list[LLMMessage]:
        estimated = estimate_tokens(messages)
        if estimated < self.threshold_tokens or len(messages) < 2:
            return messages

        start = 1
        end = len(messages) - self.protected_tail_messages
        if end <= start:
            return messages

        end = adjust_boundary(messages, start, end)
        if end <= start:
            logger.info("Compaction skipped, no safe boundary", estimated_tokens=estimated)
            return messages

        span = messages[start:end]
        logger.info(
            "Starting conversation compaction",
            estimated_tokens=estimated,
            threshold=self.threshold_tokens,
            messages=len(span),
        )

        _, previous_summary = split_anchor(messages[0])
        try:
            summary = await self._summarize(span, previous_summary, cancellation)
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning("Compaction failed, falling back to history trimming", error=str(e))
            self.last_result = CompactionResult(
                messages_compacted=0,
                tokens_before=estimated,
                tokens_after=estimated,
                success=False,
                error=str(e),
            )
            return messages

        result = rebuild_messages(messages, end, summary)

        self.last_result = CompactionResult(
            messages_compacted=len(span),
            tokens_before=estimated,
            tokens_after=estimate_tokens(result),
            success=True,
        )
        logger.info(
            "Compaction complete",
            messages_compacted=self.last_result.messages_compacted,
            summary_tokens=len(summary) // CHARS_PER_TOKEN,
            tokens_before=self.last_result.tokens_before,
            tokens_after=self.last_result.tokens_after,
            tokens_freed=self.last_result.tokens_freed,
        )
        return result

    async def _summarize(
        self,
        span: list[LLMMessage],
        previous_summary: str,
        cancellation: CancellationToken | None,
    ) -> str:
        transcript = cap_transcript(format_for_summarization(span))

        prompt = SUMMARIZE_PROMPT
        if previous_summary:
            prompt += f"SUMMARY OF EARLIER HISTORY:\n\n{previous_summary}\n\n---\n"
        prompt += f"CONVERSATION HISTORY:\n\n{transcript}"

        response = await self.retry.execute(
            lambda: self.llm.generate(
                messages=[LLMMessage.user_text(prompt)],
                max_tokens=SUMMARY_MAX_TOKENS,
                temperature=0,
            ),
            cancellation,
        )

        summary = response.content.strip()
        if not summary:
            raise CompactionError("summarization returned no text")
        return summary


def create_compaction_strategy(
    settings: Settings,
    llm: BaseLLM,
    retry: RetryPipeline | None = None,
) -> CompactionStrategy:
    """Create the strategy named by ``settings.compaction_strategy``."""
    if settings.compaction_strategy == "summarize":
        return SummarizeCompactionStrategy(
            llm,
            threshold_tokens=settings.compaction_threshold_tokens,
            protected_tail_messages=settings.protected_tail_messages,
            retry=retry,
        )
    return NoneCompactionStrategy()
