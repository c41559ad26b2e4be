"""
Tests for the retry pipeline.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from micro_x_agent_loop.cancellation import CancellationToken
from micro_x_agent_loop.errors import OperationCancelledError
from micro_x_agent_loop.resilience import RetryPipeline


class StatusError(Exception):
    """An SDK-style error carrying an HTTP status code."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def _pipeline(**kwargs) -> tuple[RetryPipeline, AsyncMock]:
    sleep = AsyncMock()
    return RetryPipeline(sleep=sleep, **kwargs), sleep


def test_classify_rate_limit():
    """Test that HTTP 429 is classified as rate limited."""
    pipeline = RetryPipeline()
    assert pipeline.classify(StatusError(429)) == "rate_limited"


def test_classify_httpx_status_error():
    """Test that status codes are read from httpx responses."""
    request = httpx.Request("GET", "https://example.com")
    response = httpx.Response(429, request=request)
    error = httpx.HTTPStatusError("too many", request=request, response=response)

    assert RetryPipeline().classify(error) == "rate_limited"


def test_classify_connection_and_timeout():
    """Test connection failures and timeouts are transient."""
    pipeline = RetryPipeline()
    request = httpx.Request("GET", "https://example.com")

    assert pipeline.classify(httpx.ConnectError("refused", request=request)) == "connection_error"
    assert pipeline.classify(ConnectionResetError()) == "connection_error"
    assert pipeline.classify(httpx.ReadTimeout("slow", request=request)) == "timeout"
    assert pipeline.classify(asyncio.TimeoutError()) == "timeout"


def test_classify_fatal():
    """Test that other failures are not retried."""
    pipeline = RetryPipeline()
    assert pipeline.classify(StatusError(400)) is None
    assert pipeline.classify(StatusError(500)) is None
    assert pipeline.classify(ValueError("bad")) is None


def test_classify_extra_retryable():
    """Test the tool proxy preset also retries OS errors."""
    assert RetryPipeline.for_tool_proxy().classify(BrokenPipeError()) is not None
    assert RetryPipeline.for_llm().classify(FileNotFoundError()) is None


def test_presets():
    """Test preset policies."""
    llm = RetryPipeline.for_llm()
    assert (llm.max_retries, llm.base_delay) == (5, 10.0)

    proxy = RetryPipeline.for_tool_proxy()
    assert (proxy.max_retries, proxy.base_delay) == (2, 2.0)


def test_delay_doubles():
    """Test exponential backoff delays."""
    pipeline = RetryPipeline(base_delay=10.0)
    assert [pipeline.delay_for(i) for i in range(4)] == [10.0, 20.0, 40.0, 80.0]


@pytest.mark.asyncio
async def test_retry_then_succeed():
    """Test four rate limits followed by success."""
    pipeline, sleep = _pipeline(max_retries=5, base_delay=10.0)
    operation = AsyncMock(side_effect=[StatusError(429)] * 4 + ["ok"])

    result = await pipeline.execute(operation)

    assert result == "ok"
    assert operation.await_count == 5
    assert pipeline.last_delays == [10.0, 20.0, 40.0, 80.0]
    assert [c.args[0] for c in sleep.await_args_list] == [10.0, 20.0, 40.0, 80.0]


@pytest.mark.asyncio
async def test_fatal_error_not_retried():
    """Test non-transient errors propagate immediately."""
    pipeline, sleep = _pipeline()
    operation = AsyncMock(side_effect=StatusError(400))

    with pytest.raises(StatusError):
        await pipeline.execute(operation)

    assert operation.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error():
    """Test the last transient failure propagates unchanged."""
    pipeline, sleep = _pipeline(max_retries=2, base_delay=1.0)
    last = StatusError(429)
    operation = AsyncMock(side_effect=[StatusError(429), StatusError(429), last])

    with pytest.raises(StatusError) as exc_info:
        await pipeline.execute(operation)

    assert exc_info.value is last
    assert operation.await_count == 3
    assert pipeline.last_delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_cancelled_before_first_attempt():
    """Test a cancelled token stops the pipeline before calling."""
    pipeline, _ = _pipeline()
    token = CancellationToken()
    token.cancel()
    operation = AsyncMock(return_value="ok")

    with pytest.raises(OperationCancelledError):
        await pipeline.execute(operation, token)

    operation.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_during_backoff():
    """Test cancellation interrupts a backoff sleep."""
    pipeline = RetryPipeline(max_retries=3, base_delay=60.0)
    token = CancellationToken()
    calls = MagicMock()

    async def operation():
        calls()
        asyncio.get_running_loop().call_later(0.01, token.cancel)
        raise StatusError(429)

    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(pipeline.execute(operation, token), timeout=5)

    assert calls.call_count == 1
