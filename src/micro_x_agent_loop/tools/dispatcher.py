"""
Parallel execution of one model turn's tool calls.

Every ToolUseBlock produces exactly one ToolResultBlock, in request order.
A failing or unknown tool yields an error result; it never aborts the batch.
"""

import asyncio

import structlog

from ..cancellation import CancellationToken
from ..errors import OperationCancelledError, UnknownToolError
from ..llm.base import ToolResultBlock, ToolUseBlock
from .registry import ToolRegistry

logger = structlog.get_logger()

DEFAULT_MAX_RESULT_CHARS = 40_000


def truncate_result(text: str, max_chars: int, tool_name: str) -> str:
    """Cut ``text`` to ``max_chars`` and append a notice. ``max_chars <= 0`` disables."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text

    original_length = len(text)
    logger.warning(
        "Tool output truncated",
        tool_name=tool_name,
        original_chars=original_length,
        shown_chars=max_chars,
    )
    return (
        text[:max_chars]
        + f"\n\n[OUTPUT TRUNCATED: Showing {max_chars:,} of {original_length:,} "
        f"characters from {tool_name}]"
    )


class ToolDispatcher:
    """Fans a batch of tool calls out to the registry and gathers the results."""

    def __init__(self, registry: ToolRegistry, max_result_chars: int = DEFAULT_MAX_RESULT_CHARS):
        self.registry = registry
        self.max_result_chars = max_result_chars

    async def dispatch(
        self,
        tool_uses: list[ToolUseBlock],
        cancellation: CancellationToken | None = None,
    ) -> list[ToolResultBlock]:
        """Execute all tool calls concurrently; results match input order."""
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        results = await asyncio.gather(
            *(self._execute_one(block, cancellation) for block in tool_uses),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException):
                raise result

        return list(results)  # type: ignore[arg-type]

    async def _execute_one(
        self,
        block: ToolUseBlock,
        cancellation: CancellationToken | None,
    ) -> ToolResultBlock:
        tool = self.registry.get(block.name)
        if tool is None:
            error = UnknownToolError(block.name)
            logger.warning("Unknown tool requested", tool_name=block.name)
            return ToolResultBlock(
                tool_use_id=block.id,
                content=f"Error: {error}",
                is_error=True,
            )

        logger.info("Executing tool", tool_name=block.name, tool_use_id=block.id)
        try:
            if cancellation is not None:
                text = await cancellation.run(tool.execute(block.input, cancellation))
            else:
                text = await tool.execute(block.input, cancellation)
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning("Tool execution failed", tool_name=block.name, error=str(e))
            return ToolResultBlock(
                tool_use_id=block.id,
                content=f'Error executing tool "{block.name}": {e}',
                is_error=True,
            )

        if not isinstance(text, str):
            text = str(text)

        return ToolResultBlock(
            tool_use_id=block.id,
            content=truncate_result(text, self.max_result_chars, block.name),
        )
