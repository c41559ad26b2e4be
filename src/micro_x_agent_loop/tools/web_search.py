"""
Web search tool backed by a pluggable search provider (Brave by default).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from ..cancellation import CancellationToken
from .base import BaseTool

logger = structlog.get_logger()

DEFAULT_COUNT = 5
MAX_QUERY_CHARS = 400


@dataclass
class SearchResult:
    title: str
    url: str
    description: str = ""


class SearchProvider(ABC):
    """A web search backend."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def search(self, query: str, count: int) -> list[SearchResult]:
        pass


class BraveSearchProvider(SearchProvider):
    """Brave Search API."""

    SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

    def __init__(self, api_key: str, timeout: float = 30.0):
        self.api_key = api_key
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "Brave"

    async def search(self, query: str, count: int) -> list[SearchResult]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                self.SEARCH_URL,
                params={"q": query, "count": count},
                headers={
                    "X-Subscription-Token": self.api_key,
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            data = response.json()

        return [
            SearchResult(
                title=r.get("title") or "(no title)",
                url=r.get("url") or "",
                description=r.get("description") or "",
            )
            for r in data.get("web", {}).get("results", [])
        ]


class WebSearchTool(BaseTool):
    """Tool for searching the web."""

    def __init__(self, provider: SearchProvider):
        self.provider = provider

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return (
            "Search the web and return a list of results with titles, URLs, "
            "and descriptions. Use this to discover URLs before fetching "
            "their full content with web_fetch."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query (max 400 characters)",
                },
                "count": {
                    "type": "number",
                    "description": "Number of results to return (1-20, default 5)",
                },
            },
            "required": ["query"],
        }

    async def execute(
        self,
        input: dict[str, Any],
        cancellation: CancellationToken | None = None,
    ) -> str:
        query = (input.get("query") or "").strip()
        if not query:
            return "Error: query must not be empty"
        query = query[:MAX_QUERY_CHARS]

        count = input.get("count")
        count = max(1, min(20, int(count))) if count is not None else DEFAULT_COUNT

        try:
            results = await self.provider.search(query, count)
        except httpx.TimeoutException:
            return "Error: Search request timed out"
        except httpx.HTTPStatusError as e:
            return f"Error: HTTP {e.response.status_code} from {self.provider.provider_name} Search API"
        except httpx.HTTPError as e:
            logger.warning("Web search failed", provider=self.provider.provider_name, error=str(e))
            return f"Error: {e}"

        if not results:
            return f"No results found for: {query}"

        lines = [f'Search: "{query}"', f"Results: {len(results)}", ""]
        for i, r in enumerate(results, 1):
            lines.append(f"{i}. {r.title}")
            lines.append(f"   {r.url}")
            if r.description:
                lines.append(f"   {r.description}")
            lines.append("")

        return "\n".join(lines).rstrip()
