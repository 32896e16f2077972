"""Tests for the scrape_links tool handler."""

import pytest

from core.batch import BatchResult
from core.errors import classify_status
from models.config import ScraperSettings
from models.results import ScrapeResponse
from tools.scrape import enhance_instruction, is_valid_url, scrape_links

PAGE = """
<html><head><title>t</title><script>var x = 1;</script></head>
<body><nav>menu</nav><h1>Guide</h1><p>Read the <a href="https://docs.example.com">docs</a>.</p>
<ul><li>one</li><li>two</li></ul></body></html>
"""


class FakeScraper:
    def __init__(self, outcomes):
        self.settings = ScraperSettings()
        self.outcomes = outcomes
        self.calls = []

    async def batch_scrape(self, urls, timeout=None):
        self.calls.append((list(urls), timeout))
        return BatchResult(outcomes={u: self.outcomes[u] for u in urls}, batches_processed=1)


class FakeExtractor:
    """Stands in for ExtractionClient.complete."""

    def __init__(self, reply="extracted facts", error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    async def complete(self, prompt, max_tokens=None):
        self.prompts.append((prompt, max_tokens))
        if self.error:
            raise self.error
        return self.reply


def page(url, content=PAGE, status=200, credits=1):
    return ScrapeResponse(url=url, content=content, status_code=status, credits=credits)


class TestHelpers:
    def test_is_valid_url(self):
        assert is_valid_url("https://example.com/page")
        assert is_valid_url("http://example.com")
        assert not is_valid_url("ftp://example.com")
        assert not is_valid_url("example.com")
        assert not is_valid_url("https://")

    def test_enhance_instruction(self):
        assert enhance_instruction("prices").startswith("prices\n\nTry to answer")
        assert enhance_instruction(None).startswith("Extract the main content")


class TestScrapeLinks:
    """Rendering, budget headers and LLM extraction."""

    @pytest.mark.asyncio
    async def test_cleans_html(self):
        client = FakeScraper({"https://a.com": page("https://a.com")})
        response = await scrape_links(["https://a.com"], client, timeout=45)

        assert client.calls == [(["https://a.com"], 45)]
        content = response.content
        assert content.startswith("# Scraped Content (1 URLs)")
        assert "**Token Allocation:** 32,000 tokens/URL (1 URLs, 32,000 total budget)" in content
        assert "**Status:** ✅ 1 successful | ❌ 0 failed | 📦 1 batch(es)" in content
        assert "# Guide" in content
        assert "[docs](https://docs.example.com)" in content
        assert "- one" in content
        assert "var x" not in content
        assert "menu" not in content
        assert response.metadata["total_credits"] == 1
        assert not response.is_error

    @pytest.mark.asyncio
    async def test_invalid_and_failed_urls(self):
        client = FakeScraper(
            {
                "https://ok.com": page("https://ok.com", "plain text", credits=5),
                "https://gone.com": page("https://gone.com", "404 - Page not found", status=404),
                "https://down.com": classify_status(503, "all modes failed"),
            }
        )
        urls = ["not-a-url", "https://ok.com", "https://gone.com", "https://down.com"]

        response = await scrape_links(urls, client)

        assert client.calls[0][0] == ["https://ok.com", "https://gone.com", "https://down.com"]
        content = response.content
        assert "## not-a-url\n\n❌ Invalid URL format" in content
        assert "## https://gone.com\n\n❌ Failed to scrape: 404 - Page not found" in content
        assert "## https://down.com\n\n❌ Failed to scrape: Service unavailable" in content
        assert "## https://ok.com\n\nplain text" in content
        # Budget is split across the URLs that are actually fetched
        assert response.metadata["tokens_per_url"] == 10666
        assert response.metadata["successful"] == 1
        assert response.metadata["failed"] == 3
        assert response.metadata["total_credits"] == 5

    @pytest.mark.asyncio
    async def test_repeated_urls_scraped_once(self):
        client = FakeScraper({"https://a.com": page("https://a.com", "plain text")})
        response = await scrape_links(["https://a.com", "https://a.com"], client)

        assert client.calls == [(["https://a.com"], 30)]
        assert response.content.startswith("# Scraped Content (1 URLs)")
        assert response.content.count("## https://a.com") == 1
        assert response.metadata["total_urls"] == 1
        assert response.metadata["successful"] == 1

    @pytest.mark.asyncio
    async def test_all_invalid(self):
        client = FakeScraper({})
        response = await scrape_links(["nope", "also nope"], client)

        assert response.is_error
        assert "All 2 URLs are invalid" in response.content
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_llm_extraction(self):
        client = FakeScraper({"https://a.com": page("https://a.com", "raw words")})
        extractor = FakeExtractor(reply="Meta: drop me\nkept fact")

        response = await scrape_links(
            ["https://a.com"], client, use_llm=True, what_to_extract="pricing", extractor=extractor
        )

        prompt, max_tokens = extractor.prompts[0]
        assert "Focus on: pricing" in prompt
        assert "raw words" in prompt
        assert max_tokens == 32000
        assert "kept fact" in response.content
        assert "drop me" not in response.content

    @pytest.mark.asyncio
    async def test_llm_failure_keeps_page(self):
        client = FakeScraper({"https://a.com": page("https://a.com", "raw words")})
        extractor = FakeExtractor(error=RuntimeError("connection reset by peer"))

        response = await scrape_links(["https://a.com"], client, use_llm=True, extractor=extractor)

        assert "raw words" in response.content
        assert "⚠️ 1 LLM extraction failures" in response.content

    @pytest.mark.asyncio
    async def test_llm_requested_without_key(self):
        client = FakeScraper({"https://a.com": page("https://a.com", "raw words")})
        response = await scrape_links(["https://a.com"], client, use_llm=True)

        assert "LLM extraction unavailable" in response.content
        assert "raw words" in response.content

