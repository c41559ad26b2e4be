"""
Retry pipeline for remote calls.

Transient failures (rate limits, connection errors, timeouts) are retried
with exponential backoff. Anything else propagates on the first failure,
and the last transient failure propagates unchanged once attempts run out.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import anthropic
import httpx
import openai
import structlog

from .cancellation import CancellationToken
from .errors import OperationCancelledError

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 5
DEFAULT_BASE_DELAY = 10.0

TOOL_PROXY_MAX_RETRIES = 2
TOOL_PROXY_BASE_DELAY = 2.0

_TIMEOUT_ERRORS: tuple[type[BaseException], ...] = (
    asyncio.TimeoutError,
    TimeoutError,
    httpx.TimeoutException,
    anthropic.APITimeoutError,
    openai.APITimeoutError,
)

_CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    anthropic.APIConnectionError,
    openai.APIConnectionError,
    httpx.TransportError,
    ConnectionError,
)


def _status_code(exc: BaseException) -> int | None:
    """Extract an HTTP status code from SDK or httpx errors."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


class RetryPipeline:
    """Bounded exponential-backoff retry around an async operation."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        extra_retryable: tuple[type[BaseException], ...] = (),
        name: str = "llm",
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.extra_retryable = extra_retryable
        self.name = name
        self._sleep = sleep
        self.last_delays: list[float] = []

    @classmethod
    def for_llm(cls) -> "RetryPipeline":
        """Preset for LLM API calls (5 retries, 10s base delay)."""
        return cls(DEFAULT_MAX_RETRIES, DEFAULT_BASE_DELAY, name="llm")

    @classmethod
    def for_tool_proxy(cls) -> "RetryPipeline":
        """Preset for proxied tool calls (2 retries, 2s base delay)."""
        return cls(
            TOOL_PROXY_MAX_RETRIES,
            TOOL_PROXY_BASE_DELAY,
            extra_retryable=(OSError,),
            name="tool_proxy",
        )

    def classify(self, exc: BaseException) -> str | None:
        """Return the retry reason for ``exc``, or None if it is fatal."""
        if isinstance(exc, _TIMEOUT_ERRORS):
            return "timeout"
        status = _status_code(exc)
        if status == 429:
            return "rate_limited"
        if status is None and isinstance(exc, _CONNECTION_ERRORS):
            return "connection_error"
        if self.extra_retryable and isinstance(exc, self.extra_retryable):
            return type(exc).__name__
        return None

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1``."""
        return self.base_delay * (2 ** attempt)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        cancellation: CancellationToken | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or fails non-transiently."""
        self.last_delays = []
        attempt = 0

        while True:
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            try:
                if cancellation is not None:
                    return await cancellation.run(operation())
                return await operation()
            except OperationCancelledError:
                raise
            except Exception as e:
                reason = self.classify(e)
                if reason is None:
                    raise
                if attempt >= self.max_retries:
                    logger.error(
                        "Retries exhausted",
                        pipeline=self.name,
                        reason=reason,
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    raise

                delay = self.delay_for(attempt)
                attempt += 1
                self.last_delays.append(delay)
                logger.warning(
                    "Transient failure, retrying",
                    pipeline=self.name,
                    reason=reason,
                    delay_seconds=delay,
                    attempt=attempt,
                    max_retries=self.max_retries,
                )
                await self._wait(delay, cancellation)

    async def _wait(self, delay: float, cancellation: CancellationToken | None) -> None:
        if self._sleep is not None:
            if cancellation is not None:
                await cancellation.run(self._sleep(delay))
            else:
                await self._sleep(delay)
        elif cancellation is not None:
            await cancellation.sleep(delay)
        else:
            await asyncio.sleep(delay)
