"""
Web fetch tool: GET a URL and return it as readable text.
"""

import json
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from ..cancellation import CancellationToken
from .base import BaseTool

logger = structlog.get_logger()

DEFAULT_MAX_CHARS = 50_000
MAX_RESPONSE_BYTES = 2_000_000
TIMEOUT_SECONDS = 30.0
MAX_REDIRECTS = 5

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


def html_to_text(html: str, base_url: str = "") -> tuple[str, str]:
    """Convert HTML to plain text, keeping link targets inline.

    Returns (title, text).
    """
    soup = BeautifulSoup(html, "html.parser")

    for element in soup(["script", "style", "noscript", "svg", "iframe"]):
        element.decompose()

    title = soup.title.get_text(strip=True) if soup.title else ""

    for a in soup.find_all("a", href=True):
        label = a.get_text(" ", strip=True)
        href = urljoin(base_url, a["href"]) if base_url else a["href"]
        if href.startswith("http") and label:
            a.replace_with(f"{label} ({href})")

    body = soup.find("body") or soup
    text = body.get_text(separator="\n", strip=True)
    text = "\n".join(line.strip() for line in text.split("\n") if line.strip())
    return title, text


class WebFetchTool(BaseTool):
    """Tool for fetching web pages and APIs."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return (
            "Fetch content from a URL and return it as readable text. "
            "Supports HTML pages (converted to plain text with links preserved), "
            "JSON APIs (pretty-printed), and plain text. GET requests only."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The HTTP or HTTPS URL to fetch",
                },
                "maxChars": {
                    "type": "number",
                    "description": (
                        "Maximum characters of content to return (default 50000). "
                        "Content beyond this limit is truncated with a notice."
                    ),
                },
            },
            "required": ["url"],
        }

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url)
        async with httpx.AsyncClient(
            timeout=TIMEOUT_SECONDS,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            headers=HEADERS,
        ) as client:
            return await client.get(url)

    async def execute(
        self,
        input: dict[str, Any],
        cancellation: CancellationToken | None = None,
    ) -> str:
        url = input["url"]
        max_chars = int(input.get("maxChars") or DEFAULT_MAX_CHARS)

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return "Error: URL must use http or https scheme"

        try:
            response = await self._get(url)
        except httpx.TimeoutException:
            return f"Error: Request timed out after {TIMEOUT_SECONDS:.0f} seconds"
        except httpx.HTTPError as e:
            logger.warning("Web fetch failed", url=url, error=str(e))
            return f"Error: {e}"

        if response.status_code >= 400:
            return f"Error: HTTP {response.status_code} fetching {url}"

        size = len(response.content)
        if size > MAX_RESPONSE_BYTES:
            return f"Error: Response too large ({size:,} bytes, max {MAX_RESPONSE_BYTES:,} bytes)"

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        final_url = str(response.url)
        title = ""

        if "text/html" in content_type or "application/xhtml" in content_type:
            title, content = html_to_text(response.text, final_url)
        elif "application/json" in content_type:
            try:
                content = json.dumps(response.json(), indent=2, ensure_ascii=False)
            except ValueError:
                content = response.text
        else:
            content = response.text

        original_length = len(content)
        truncated = original_length > max_chars
        if truncated:
            content = content[:max_chars]

        parts = [f"URL: {url}"]
        if final_url != url:
            parts.append(f"Final URL: {final_url}")
        parts.append(f"Status: {response.status_code}")
        parts.append(f"Content-Type: {content_type}")
        if title:
            parts.append(f"Title: {title}")
        if truncated:
            parts.append(f"Length: {max_chars:,} chars (truncated from {original_length:,})")
        else:
            parts.append(f"Length: {original_length:,} chars")
        parts.extend(["", "--- Content ---", "", content])
        if truncated:
            parts.extend(["", f"[Content truncated at {max_chars:,} characters]"])

        return "\n".join(parts)
