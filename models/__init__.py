"""
Data models for the Research MCP.

Provides Pydantic models for tool input validation. Upstream result types
live in ``models.results`` and settings in ``models.config``.
"""

import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "WebSearchInput",
    "SearchRedditInput",
    "GetRedditPostInput",
    "ScrapeLinksInput",
    "DeepResearchInput",
]

_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _clean_strings(values: List[str]) -> List[str]:
    cleaned = [v.strip() for v in values if v and v.strip()]
    if not cleaned:
        raise ValueError("At least one non-empty value is required")
    return cleaned


class _ToolInput(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra="forbid",
    )


# ══════════════════════════════════════════════════════════════════════════════
# Search
# ══════════════════════════════════════════════════════════════════════════════


class WebSearchInput(_ToolInput):
    """Input model for batched web search."""

    keywords: List[str] = Field(
        ...,
        description=(
            "Search keywords (1-100). Use specific, distinct keywords; "
            "Google operators such as site:, \"exact\" and -exclude work."
        ),
        min_length=1,
        max_length=100,
    )

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, v: List[str]) -> List[str]:
        for keyword in v:
            if len(keyword) > 500:
                raise ValueError("Keyword cannot exceed 500 characters")
        return _clean_strings(v)


class SearchRedditInput(_ToolInput):
    """Input model for Reddit discovery through Google."""

    queries: List[str] = Field(
        ...,
        description=(
            "Distinct queries (max 10). site:reddit.com is added automatically. "
            "More distinct queries give more perspectives."
        ),
        min_length=1,
        max_length=10,
    )

    date_after: Optional[str] = Field(
        default=None,
        description="Only results after this date (YYYY-MM-DD)",
    )

    @field_validator("queries")
    @classmethod
    def validate_queries(cls, v: List[str]) -> List[str]:
        return _clean_strings(v)

    @field_validator("date_after")
    @classmethod
    def validate_date_after(cls, v: Optional[str]) -> Optional[str]:
        if v and not _DATE.match(v):
            raise ValueError("date_after must look like YYYY-MM-DD")
        return v or None


# ══════════════════════════════════════════════════════════════════════════════
# Reddit Posts
# ══════════════════════════════════════════════════════════════════════════════


class GetRedditPostInput(_ToolInput):
    """Input model for fetching Reddit posts with comments."""

    urls: List[str] = Field(
        ...,
        description="Reddit post URLs (2-50). More posts = broader community perspective.",
        min_length=2,
        max_length=50,
    )

    max_comments: Optional[int] = Field(
        default=None,
        description="Override the automatic comment allocation per post",
        ge=1,
        le=500,
    )

    fetch_comments: bool = Field(
        default=True,
        description="Set false for a quick post-only overview",
    )

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: List[str]) -> List[str]:
        return _clean_strings(v)


# ══════════════════════════════════════════════════════════════════════════════
# Scraping
# ══════════════════════════════════════════════════════════════════════════════


class ScrapeLinksInput(_ToolInput):
    """Input model for URL content extraction."""

    urls: List[str] = Field(
        ...,
        description=(
            "URLs to scrape (1-50). 32,000 tokens are shared across all URLs: "
            "3 URLs get ~10K each, 50 URLs ~640 each."
        ),
        min_length=1,
        max_length=50,
    )

    timeout: int = Field(
        default=30,
        description="Timeout in seconds for each URL",
        ge=5,
        le=120,
    )

    use_llm: bool = Field(
        default=False,
        description="Filter content with an LLM (requires OPENROUTER_API_KEY)",
    )

    what_to_extract: Optional[str] = Field(
        default=None,
        description="What the LLM should extract from each page",
        max_length=1000,
    )


# ══════════════════════════════════════════════════════════════════════════════
# Deep Research
# ══════════════════════════════════════════════════════════════════════════════


class DeepResearchInput(_ToolInput):
    """Input model for deep research."""

    deep_research_question: str = Field(
        ...,
        description=(
            "The full research brief: topic and why it matters, what you "
            "already know, scope and priorities, and 3-7 specific questions. "
            "The researcher cannot ask follow-ups."
        ),
        min_length=1,
    )
