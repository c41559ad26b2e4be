"""
Agent module - the conversation loop.

Includes:
- Agent: Turn processing with LLM + tools
- ConversationContext: In-memory conversation state and history trimming
- Compaction: Summarization of long conversations
"""

from .core import Agent
from .conversation import ConversationContext, trim_history
from .compaction import (
    CompactionStrategy,
    NoneCompactionStrategy,
    SummarizeCompactionStrategy,
    create_compaction_strategy,
)

__all__ = [
    "Agent",
    "ConversationContext",
    "trim_history",
    "CompactionStrategy",
    "NoneCompactionStrategy",
    "SummarizeCompactionStrategy",
    "create_compaction_strategy",
]
