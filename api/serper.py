"""Serper (Google Search) API integration.

Implements the two ways this server uses Google results:
- Batched web search: many keywords in one request
- Forum search: Reddit threads found through Google (``site:reddit.com``)
"""

import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from core.errors import UpstreamError, classify_status
from core.reliability import RetryConfig, execute_with_retry
from models.config import SearchSettings
from models.results import (
    KeywordSearchResult,
    MultipleSearchResponse,
    RawResult,
    SerperResponse,
)

logger = logging.getLogger(__name__)

_SITE_REDDIT = re.compile(r"site:\s*reddit\.com", re.IGNORECASE)
_SUBREDDIT_SUFFIX = re.compile(r" : r/\w+$")
_REDDIT_SUFFIX = re.compile(r" - Reddit$")


def build_forum_query(query: str, date_after: Optional[str] = None) -> str:
    """Scope a query to Reddit, optionally limited to posts after a date."""
    q = query.strip()
    if not _SITE_REDDIT.search(q):
        q = f"{q} site:reddit.com"
    if date_after:
        q = f"{q} after:{date_after}"
    return q


def clean_forum_title(title: str) -> str:
    """Strip the ' : r/sub' and ' - Reddit' suffixes Google appends."""
    return _REDDIT_SUFFIX.sub("", _SUBREDDIT_SUFFIX.sub("", title))


def _parse_total(value: Any, fallback: int) -> int:
    if value is None:
        return fallback
    try:
        return int(str(value).replace(",", ""))
    except ValueError:
        return fallback


def parse_search_response(keyword: str, payload: Dict[str, Any]) -> KeywordSearchResult:
    """Validate one Serper response and turn it into a KeywordSearchResult."""
    data = SerperResponse.model_validate(payload)

    results = [
        RawResult(
            title=item.title or "No title",
            link=item.link or "#",
            snippet=item.snippet or "",
            position=item.position or index + 1,
            date=item.date,
        )
        for index, item in enumerate(data.organic)
    ]
    total = _parse_total(
        data.search_information.total_results if data.search_information else None,
        len(results),
    )
    related = [r.query for r in data.related_searches if r.query]

    return KeywordSearchResult(
        keyword=keyword, results=results, total_results=total, related=related
    )


class SearchClient:
    """Google search via Serper with retries on every request."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        settings: SearchSettings = SearchSettings(),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("SERPER_API_KEY is required for search functionality")
        self.api_key = api_key
        self.settings = settings
        self._transport = transport
        self.retry = RetryConfig(
            name="Serper",
            max_attempts=settings.max_attempts,
            rate_limit_delays=settings.rate_limit_delays,
        )

    def _headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.api_key, "Content-Type": "application/json"}

    async def _post(self, body: Any) -> Any:
        async def attempt() -> Any:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.settings.base_url}/search",
                    headers=self._headers(),
                    json=body,
                )
            if response.is_error:
                raise UpstreamError(classify_status(response.status_code, response.text))
            return response.json()

        return await execute_with_retry(attempt, self.retry)

    async def search_multiple(self, keywords: Sequence[str]) -> MultipleSearchResponse:
        """
        Search many keywords in one batched request.

        Raises:
            UpstreamError: when the request fails after retries
        """
        start = time.monotonic()
        data = await self._post([{"q": keyword} for keyword in keywords])
        responses: List[Dict[str, Any]] = data if isinstance(data, list) else [data]

        searches = [
            parse_search_response(keywords[i] if i < len(keywords) else "", resp)
            for i, resp in enumerate(responses)
        ]
        return MultipleSearchResponse(
            searches=searches,
            total_keywords=len(keywords),
            execution_time_ms=int((time.monotonic() - start) * 1000),
        )

    async def search_forum(
        self, query: str, date_after: Optional[str] = None
    ) -> List[RawResult]:
        """Search Reddit through Google; positions follow result order."""
        data = await self._post(
            {
                "q": build_forum_query(query, date_after),
                "num": self.settings.results_per_forum_query,
            }
        )
        parsed = SerperResponse.model_validate(data)
        return [
            RawResult(
                title=clean_forum_title(item.title or "Untitled"),
                link=item.link or "",
                snippet=item.snippet or "",
                position=index + 1,
                date=item.date,
            )
            for index, item in enumerate(parsed.organic)
            if item.link
        ]

    async def search_forum_multiple(
        self, queries: Sequence[str], date_after: Optional[str] = None
    ) -> Dict[str, List[RawResult]]:
        """Run forum queries concurrently; a failed query contributes no results."""

        async def one(query: str) -> List[RawResult]:
            try:
                return await self.search_forum(query, date_after)
            except UpstreamError as e:
                logger.warning(f"Serper forum search failed for {query!r}: {e.error}")
                return []

        results = await asyncio.gather(*(one(q) for q in queries))
        return dict(zip(queries, results))
