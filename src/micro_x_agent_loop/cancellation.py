"""
Cooperative cancellation shared by every suspension point of a turn.

A single token is created per turn and passed down to the LLM call, the
retry backoff sleeps, each tool invocation and the summarization call.
"""

import asyncio
from typing import Any, Awaitable, TypeVar

from .errors import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """Signal that aborts in-flight work at the next suspension point."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = "cancelled"

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation. Idempotent."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self.reason)

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early if cancelled."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise OperationCancelledError(self.reason)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        On cancellation the inner task is cancelled and
        OperationCancelledError is raised.
        """
        self.raise_if_cancelled()

        task: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()

        # Let the inner task observe its cancellation before reporting.
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelledError(self.reason)
