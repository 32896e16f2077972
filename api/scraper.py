"""Scrape.do API integration.

Fetches raw page content through the Scrape.do proxy. When a plain fetch
fails the client escalates to JavaScript rendering, then to rendering
from a US exit node.
"""

import logging
from typing import List, Optional, Sequence

import httpx

from core.batch import BatchResult, ProgressHook, run_batch
from core.budget import Allocation, allocate
from core.errors import ErrorCode, UpstreamError, classify_error, classify_status
from core.reliability import RetryConfig, execute_with_retry
from models.config import ScraperSettings
from models.results import ScrapeResponse

logger = logging.getLogger(__name__)

MODE_CREDITS = {"basic": 1, "javascript": 5}

# (mode, country, description)
FALLBACK_CHAIN = (
    ("basic", None, "basic mode"),
    ("javascript", None, "javascript rendering"),
    ("javascript", "us", "javascript + US geo-targeting"),
)

NOT_FOUND_CONTENT = "404 - Page not found"


def token_allocation(
    url_count: int, settings: ScraperSettings = ScraperSettings()
) -> Allocation:
    """Split the global token budget across ``url_count`` URLs."""
    return allocate(settings.max_tokens_budget, url_count, settings.max_tokens_per_url)


class ScraperClient:
    """Scrape.do client with per-request retries and mode fallback."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        settings: ScraperSettings = ScraperSettings(),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("SCRAPEDO_API_KEY is required")
        self.api_key = api_key
        self.settings = settings
        self._transport = transport
        self.retry = RetryConfig(
            name="Scraper",
            max_attempts=settings.max_attempts,
            base_delay=settings.rate_limit_delays[0],
            max_delay=settings.rate_limit_delays[-1],
            rate_limit_delays=settings.rate_limit_delays,
        )

    async def scrape(
        self,
        url: str,
        mode: str = "basic",
        timeout: Optional[int] = None,
        country: Optional[str] = None,
    ) -> ScrapeResponse:
        """
        Fetch one URL in one mode.

        Args:
            url: Page to fetch
            mode: "basic" or "javascript" (rendered in a headless browser)
            timeout: Upstream timeout in seconds
            country: Optional exit-node country code

        Raises:
            UpstreamError: once retries are exhausted or on a 4xx answer
        """
        seconds = timeout or self.settings.default_timeout
        params = {"url": url, "token": self.api_key, "timeout": str(seconds * 1000)}
        if mode == "javascript":
            params["render"] = "true"
        if country:
            params["geoCode"] = country.upper()

        async def attempt() -> ScrapeResponse:
            # Leave headroom over the upstream's own timeout
            async with httpx.AsyncClient(
                timeout=seconds + 15, transport=self._transport
            ) as client:
                response = await client.get(
                    self.settings.base_url,
                    params=params,
                    headers={"Accept": "text/html,application/json"},
                )
            if response.is_error:
                # The request URL carries the token; only the body goes in the message
                raise UpstreamError(
                    classify_status(
                        response.status_code,
                        f"Scraper API error: {response.status_code} {response.text}",
                    )
                )
            return ScrapeResponse(
                url=url,
                content=response.text,
                status_code=response.status_code,
                credits=MODE_CREDITS.get(mode, 1),
                headers=dict(response.headers),
            )

        return await execute_with_retry(attempt, self.retry)

    async def scrape_with_fallback(
        self, url: str, timeout: Optional[int] = None
    ) -> ScrapeResponse:
        """
        Try basic, then JavaScript, then JavaScript from the US.

        A 404 is final and comes back as a response rather than an error.
        An auth or quota failure stops the chain since no mode can fix it.
        When every mode was rate limited the final error stays a rate limit.
        """
        failures: List[str] = []
        all_rate_limited = True

        for mode, country, description in FALLBACK_CHAIN:
            try:
                result = await self.scrape(url, mode=mode, timeout=timeout, country=country)
            except Exception as e:
                error = classify_error(e)
                if error.code == ErrorCode.NOT_FOUND:
                    return ScrapeResponse(
                        url=url,
                        content=NOT_FOUND_CONTENT,
                        status_code=404,
                        credits=MODE_CREDITS.get(mode, 1),
                    )
                failures.append(f"{description}: {error.message}")
                all_rate_limited = all_rate_limited and error.is_rate_limit
                logger.warning(f"[Scraper] Error with {description} for {url}: {error}")
                if error.code in (ErrorCode.AUTH_ERROR, ErrorCode.QUOTA_EXCEEDED):
                    raise UpstreamError(error) from e
                continue

            if failures:
                logger.info(
                    f"[Scraper] Success with {description} after "
                    f"{len(failures)} failed attempt(s)"
                )
            return result

        summary = "\n".join(failures)
        status = 429 if all_rate_limited else 503
        raise UpstreamError(
            classify_status(
                status, f"Failed to scrape {url} after trying all fallback modes:\n{summary}"
            )
        )

    async def batch_scrape(
        self,
        urls: Sequence[str],
        timeout: Optional[int] = None,
        on_batch_complete: Optional[ProgressHook] = None,
    ) -> BatchResult[ScrapeResponse]:
        """Scrape many URLs, ``batch_size`` at a time, each with fallback."""
        return await run_batch(
            urls,
            self.settings.batch_size,
            lambda url: self.scrape_with_fallback(url, timeout),
            on_batch_complete=on_batch_complete,
            label="Scraper",
        )
