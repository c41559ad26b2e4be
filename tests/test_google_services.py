"""
Tests for the shared Google service cache.
"""

import asyncio
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from micro_x_agent_loop.cancellation import CancellationToken
from micro_x_agent_loop.errors import OperationCancelledError
from micro_x_agent_loop.tools.google_services import GMAIL_SCOPES, GoogleServiceCache


class CountingCache(GoogleServiceCache):
    """Cache whose build step is slow and counted instead of hitting Google."""

    def __init__(self):
        super().__init__("client-id", "client-secret")
        self.builds: list[str] = []
        self._lock = threading.Lock()

    def _build(self, api, version, scopes):
        time.sleep(0.05)
        with self._lock:
            self.builds.append(f"{api}:{version}")
        return MagicMock(name=f"{api}-service")


@pytest.mark.asyncio
async def test_concurrent_first_access_builds_once():
    """Test simultaneous first calls share a single build."""
    cache = CountingCache()

    services = await asyncio.gather(*(cache.get("gmail", "v1", GMAIL_SCOPES) for _ in range(10)))

    assert cache.builds == ["gmail:v1"]
    assert all(s is services[0] for s in services)


@pytest.mark.asyncio
async def test_separate_apis_are_cached_separately():
    """Test each API gets its own client."""
    cache = CountingCache()

    gmail = await cache.get("gmail", "v1", GMAIL_SCOPES)
    calendar = await cache.get("calendar", "v3", [])
    again = await cache.get("gmail", "v1", GMAIL_SCOPES)

    assert gmail is again
    assert gmail is not calendar
    assert sorted(cache.builds) == ["calendar:v3", "gmail:v1"]


@pytest.mark.asyncio
async def test_failed_build_is_retried_next_time():
    """Test a failed build is not cached."""
    cache = CountingCache()
    original = cache._build
    calls = []

    def flaky(api, version, scopes):
        calls.append(api)
        if len(calls) == 1:
            raise RuntimeError("oauth cancelled")
        return original(api, version, scopes)

    with patch.object(cache, "_build", side_effect=flaky):
        with pytest.raises(RuntimeError):
            await cache.get("gmail", "v1", GMAIL_SCOPES)
        service = await cache.get("gmail", "v1", GMAIL_SCOPES)

    assert service is not None
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_missing_credentials():
    """Test building without client credentials fails clearly."""
    cache = GoogleServiceCache("", "")

    with pytest.raises(RuntimeError, match="GOOGLE_CLIENT_ID"):
        await cache.get("gmail", "v1", GMAIL_SCOPES)


@pytest.mark.asyncio
async def test_call_serializes_requests_per_client():
    """Test requests on one client run one at a time."""
    cache = CountingCache()
    active = []
    peak = []
    guard = threading.Lock()

    def request(service):
        with guard:
            active.append(1)
            peak.append(len(active))
        time.sleep(0.02)
        with guard:
            active.pop()
        return service

    results = await asyncio.gather(*(cache.call("gmail", "v1", GMAIL_SCOPES, request) for _ in range(4)))

    assert max(peak) == 1
    assert all(r is results[0] for r in results)
    assert cache.builds == ["gmail:v1"]


@pytest.mark.asyncio
async def test_call_skips_request_after_cancellation():
    """Test a cancelled turn does not start a queued request."""
    cache = CountingCache()
    token = CancellationToken()
    token.cancel()
    request = MagicMock()

    with pytest.raises(OperationCancelledError):
        await cache.call("gmail", "v1", GMAIL_SCOPES, request, token)

    request.assert_not_called()
