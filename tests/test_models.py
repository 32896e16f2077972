"""Tests for tool input models and settings."""

import pytest
from pydantic import ValidationError

from models import (
    DeepResearchInput,
    GetRedditPostInput,
    ScrapeLinksInput,
    SearchRedditInput,
    WebSearchInput,
)
from models.config import (
    ApiKeys,
    Settings,
    get_capabilities,
    load_settings,
    missing_env_message,
)


class TestWebSearchInput:
    def test_strips_and_drops_blank_keywords(self):
        params = WebSearchInput(keywords=["  python  ", "", "   ", "asyncio"])
        assert params.keywords == ["python", "asyncio"]

    def test_limits(self):
        with pytest.raises(ValidationError):
            WebSearchInput(keywords=[])
        with pytest.raises(ValidationError):
            WebSearchInput(keywords=[f"k{i}" for i in range(101)])
        with pytest.raises(ValidationError):
            WebSearchInput(keywords=["x" * 501])
        with pytest.raises(ValidationError):
            WebSearchInput(keywords=["   "])

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            WebSearchInput(keywords=["a"], limit=5)


class TestSearchRedditInput:
    def test_date_format(self):
        assert SearchRedditInput(queries=["a"], date_after="2024-01-31").date_after == "2024-01-31"
        assert SearchRedditInput(queries=["a"], date_after="").date_after is None
        with pytest.raises(ValidationError):
            SearchRedditInput(queries=["a"], date_after="31/01/2024")

    def test_query_count(self):
        with pytest.raises(ValidationError):
            SearchRedditInput(queries=[f"q{i}" for i in range(11)])


class TestGetRedditPostInput:
    def test_defaults(self):
        params = GetRedditPostInput(urls=["u1", "u2"])
        assert params.max_comments is None
        assert params.fetch_comments is True

    def test_bounds(self):
        with pytest.raises(ValidationError):
            GetRedditPostInput(urls=["u1"])
        with pytest.raises(ValidationError):
            GetRedditPostInput(urls=["u1", "u2"], max_comments=0)
        with pytest.raises(ValidationError):
            GetRedditPostInput(urls=["u1", "u2"], max_comments=501)


class TestScrapeLinksInput:
    def test_timeout_bounds(self):
        assert ScrapeLinksInput(urls=["https://a.com"]).timeout == 30
        with pytest.raises(ValidationError):
            ScrapeLinksInput(urls=["https://a.com"], timeout=4)
        with pytest.raises(ValidationError):
            ScrapeLinksInput(urls=["https://a.com"], timeout=121)

    def test_instruction_length(self):
        with pytest.raises(ValidationError):
            ScrapeLinksInput(urls=["https://a.com"], what_to_extract="x" * 1001)


def test_deep_research_question_required():
    with pytest.raises(ValidationError):
        DeepResearchInput(deep_research_question="   ")


class TestSettings:
    def test_capabilities(self):
        settings = Settings(keys=ApiKeys(serper="s", reddit_client_id="id"))
        capabilities = get_capabilities(settings)
        assert capabilities["search"]
        assert not capabilities["reddit"]
        assert not capabilities["scraping"]
        assert not capabilities["deep_research"]

    def test_load_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("SERPER_API_KEY", " key ")
        monkeypatch.setenv("SCRAPEDO_API_KEY", "")
        monkeypatch.setenv("API_TIMEOUT_MS", "60000")
        monkeypatch.setenv("DEFAULT_MAX_ATTEMPTS", "not-a-number")
        monkeypatch.setenv("SCRAPER_MAX_TOKENS_PER_URL", "8000")

        settings = load_settings()

        assert settings.keys.serper == "key"
        assert settings.keys.scraper is None
        assert settings.research.timeout == 60.0
        assert settings.research.max_attempts == 3
        assert settings.scraper.max_tokens_per_url == 8000

    def test_missing_env_message(self):
        message = missing_env_message("reddit")
        assert "REDDIT_CLIENT_ID and REDDIT_CLIENT_SECRET" in message
        assert "get_reddit_post" in message
