"""
Tests for cooperative cancellation.
"""

import asyncio

import pytest

from micro_x_agent_loop.cancellation import CancellationToken
from micro_x_agent_loop.errors import OperationCancelledError


def test_token_starts_uncancelled():
    """Test a new token is not cancelled."""
    token = CancellationToken()
    assert token.is_cancelled is False
    token.raise_if_cancelled()


def test_cancel_records_reason():
    """Test cancel sets the flag and keeps the first reason."""
    token = CancellationToken()
    token.cancel("user pressed ctrl-c")
    token.cancel("second")

    assert token.is_cancelled is True
    with pytest.raises(OperationCancelledError) as exc_info:
        token.raise_if_cancelled()
    assert exc_info.value.reason == "user pressed ctrl-c"


@pytest.mark.asyncio
async def test_sleep_completes():
    """Test an uncancelled sleep returns normally."""
    token = CancellationToken()
    await token.sleep(0.01)


@pytest.mark.asyncio
async def test_sleep_interrupted():
    """Test cancel wakes a sleeping task."""
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.01, token.cancel)

    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(token.sleep(60), timeout=5)


@pytest.mark.asyncio
async def test_run_returns_result():
    """Test run passes through a result."""
    token = CancellationToken()

    async def work():
        return 42

    assert await token.run(work()) == 42


@pytest.mark.asyncio
async def test_run_propagates_errors():
    """Test run passes through an exception."""
    token = CancellationToken()

    async def work():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await token.run(work())


@pytest.mark.asyncio
async def test_run_cancels_inner_task():
    """Test cancelling the token cancels the awaited work."""
    token = CancellationToken()
    observed = asyncio.Event()

    async def work():
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            observed.set()
            raise

    asyncio.get_running_loop().call_later(0.01, token.cancel)

    with pytest.raises(OperationCancelledError):
        await asyncio.wait_for(token.run(work()), timeout=5)

    assert observed.is_set()
