"""
Process-wide cache of authenticated Google API clients.

Building a client may run an OAuth browser handshake, so each API client is
constructed once, under a lock, and then read without locking. Requests on a
client share one httplib2 transport, which is not thread-safe, so ``call``
runs them one at a time per client.
"""

import asyncio
import os
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

import structlog

from ..cancellation import CancellationToken

logger = structlog.get_logger()

T = TypeVar("T")

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
]

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]

CONTACTS_SCOPES = ["https://www.googleapis.com/auth/contacts"]


class GoogleServiceCache:
    """Lazily builds and caches Google API service objects."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_dir: str | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_dir = Path(token_dir or os.getcwd())
        self._services: dict[str, Any] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._request_locks: dict[str, threading.Lock] = {}

    async def get(self, api: str, version: str, scopes: list[str]) -> Any:
        """Return the cached client for ``api``/``version``, building it on first use."""
        key = f"{api}:{version}"

        service = self._services.get(key)
        if service is not None:
            return service

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another task may have finished building while we waited.
            service = self._services.get(key)
            if service is not None:
                return service

            logger.info("Initializing Google service", api=api, version=version)
            service = await asyncio.to_thread(self._build, api, version, scopes)
            self._services[key] = service
            return service

    async def call(
        self,
        api: str,
        version: str,
        scopes: list[str],
        request: Callable[[Any], T],
        cancellation: CancellationToken | None = None,
    ) -> T:
        """Run ``request(service)`` in a worker thread, serialized per client.

        A request still queued behind another when the turn is cancelled
        does not start.
        """
        service = await self.get(api, version, scopes)
        lock = self._request_locks.setdefault(f"{api}:{version}", threading.Lock())

        def run() -> T:
            with lock:
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                return request(service)

        return await asyncio.to_thread(run)

    def _build(self, api: str, version: str, scopes: list[str]) -> Any:
        if not self.client_id or not self.client_secret:
            raise RuntimeError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set in .env")

        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from google_auth_oauthlib.flow import InstalledAppFlow
        from googleapiclient.discovery import build

        token_path = self.token_dir / f".{api}-tokens" / "token.json"
        creds = None

        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes)

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                flow = InstalledAppFlow.from_client_config(
                    {
                        "installed": {
                            "client_id": self.client_id,
                            "client_secret": self.client_secret,
                            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                            "token_uri": "https://oauth2.googleapis.com/token",
                        }
                    },
                    scopes,
                )
                creds = flow.run_local_server(port=0)

            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json())

        return build(api, version, credentials=creds, cache_discovery=False)
