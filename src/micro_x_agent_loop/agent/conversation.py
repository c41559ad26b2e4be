"""
In-memory conversation state and the FIFO history trimmer.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from ..llm.base import LLMMessage, TextBlock, ToolResultBlock

logger = structlog.get_logger()


def trim_history(messages: list[LLMMessage], max_messages: int) -> list[LLMMessage]:
    """Drop the oldest messages so at most ``max_messages`` remain.

    The count is exact. If the new first message carries tool results whose
    tool calls were dropped, those results are rewritten as plain text so no
    orphaned tool result is sent to the model. ``max_messages <= 0`` disables.
    """
    if max_messages <= 0 or len(messages) <= max_messages:
        return messages

    remove_count = len(messages) - max_messages
    trimmed = list(messages[remove_count:])

    logger.info(
        "Conversation history trimmed",
        removed=remove_count,
        limit=max_messages,
    )

    head = trimmed[0]
    if head.tool_results:
        trimmed[0] = LLMMessage(role=head.role, content=[_orphan_to_text(b) for b in head.content])

    return trimmed


def _orphan_to_text(block: Any) -> Any:
    if not isinstance(block, ToolResultBlock):
        return block
    label = "error" if block.is_error else "result"
    return TextBlock(text=f"[Earlier tool {label} ({block.tool_use_id})]: {block.content}")


@dataclass
class ConversationContext:
    """The transcript owned by one agent session."""

    messages: list[LLMMessage] = field(default_factory=list)
    system_prompt: str = ""
    compaction_count: int = 0
    trim_count: int = 0

    def add_user_text(self, text: str) -> None:
        """Add a user message, merging into a trailing user message if one exists."""
        if self.messages and self.messages[-1].role == "user":
            last = self.messages[-1]
            self.messages[-1] = LLMMessage(role="user", content=[*last.content, TextBlock(text=text)])
            return
        self.messages.append(LLMMessage.user_text(text))

    def add_assistant_message(self, message: LLMMessage) -> None:
        """Add an assistant message."""
        self.messages.append(message)

    def add_tool_results(self, results: list[ToolResultBlock]) -> None:
        """Add the user message answering the previous assistant's tool calls."""
        self.messages.append(LLMMessage(role="user", content=list(results)))

    def trim(self, max_messages: int) -> None:
        """Apply the FIFO history cap."""
        before = len(self.messages)
        self.messages = trim_history(self.messages, max_messages)
        if len(self.messages) < before:
            self.trim_count += 1

    @property
    def message_count(self) -> int:
        """Get the number of messages."""
        return len(self.messages)
