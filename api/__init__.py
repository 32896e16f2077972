"""
Upstream API integrations.

Every client takes its key and a settings object, sends each request
through the retrying executor and validates responses with pydantic.
An optional httpx transport can be injected for testing.

Available Upstreams:
─────────────────────────────────────────────────────────────────────────────
    serper       Google Search via Serper.dev (web + Reddit discovery)
    reddit       Reddit OAuth API (posts and comment trees)
    scraper      Scrape.do page fetching with mode fallback
    openrouter   OpenRouter chat completions (deep research, extraction)

Configuration:
─────────────────────────────────────────────────────────────────────────────
Set API keys in environment variables or .env file:

    SERPER_API_KEY                             https://serper.dev
    REDDIT_CLIENT_ID / REDDIT_CLIENT_SECRET    https://www.reddit.com/prefs/apps
    SCRAPEDO_API_KEY                           https://scrape.do
    OPENROUTER_API_KEY                         https://openrouter.ai/keys
"""

from api.openrouter import (
    ExtractionClient,
    ExtractionResult,
    ResearchClient,
    process_content_with_llm,
)
from api.reddit import PostBatchResult, RedditClient, comment_allocation, parse_post_url
from api.scraper import ScraperClient, token_allocation
from api.serper import SearchClient, build_forum_query

__all__ = [
    "SearchClient",
    "build_forum_query",
    "RedditClient",
    "PostBatchResult",
    "comment_allocation",
    "parse_post_url",
    "ScraperClient",
    "token_allocation",
    "ResearchClient",
    "ExtractionClient",
    "ExtractionResult",
    "process_content_with_llm",
]
