#!/usr/bin/env python3
"""
Research MCP Server

An MCP server that fans research requests out to third-party APIs and
returns one synthesized markdown answer per call.

Features:
- Batched Google search with cross-query consensus ranking (Serper)
- Reddit discovery and post fetching with a shared comment budget
- URL scraping with mode fallback and optional LLM extraction (Scrape.do)
- Deep research through a web-searching model (OpenRouter)
- Retries with per-upstream rate-limit delays on every upstream call
"""

import logging
import os
import sys
from typing import List, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import ValidationError

from api.openrouter import ExtractionClient, ResearchClient
from api.reddit import RedditClient
from api.scraper import ScraperClient
from api.serper import SearchClient
from models import (
    DeepResearchInput,
    GetRedditPostInput,
    ScrapeLinksInput,
    SearchRedditInput,
    WebSearchInput,
)
from models.config import (
    SERVER_NAME,
    SERVER_VERSION,
    Settings,
    get_capabilities,
    load_settings,
    missing_env_message,
)
from tools import Progress, ToolResponse
from tools.reddit import get_reddit_post as handle_get_reddit_post
from tools.research import deep_research as handle_deep_research
from tools.scrape import scrape_links as handle_scrape_links
from tools.search import search_reddit as handle_search_reddit
from tools.search import web_search as handle_web_search

logger = logging.getLogger(SERVER_NAME)

# Initialize MCP server
mcp = FastMCP(SERVER_NAME)

settings: Settings = load_settings()

# Reddit tokens are cached on the client, so one client serves every call
_reddit_client: Optional[RedditClient] = None

TOOL_CAPABILITIES = {
    "web_search": "search",
    "search_reddit": "search",
    "get_reddit_post": "reddit",
    "scrape_links": "scraping",
    "deep_research": "deep_research",
}


def get_reddit_client() -> RedditClient:
    global _reddit_client
    if _reddit_client is None:
        _reddit_client = RedditClient(
            settings.keys.reddit_client_id,
            settings.keys.reddit_client_secret,
            settings=settings.reddit,
        )
    return _reddit_client


def _require(capability: str) -> None:
    if not get_capabilities(settings)[capability]:
        raise ToolError(missing_env_message(capability))


def _validate(model, **values):
    try:
        return model(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ToolError(f"## ❌ Error\n\n**INVALID_INPUT:** {problems}") from e


def _progress(ctx: Optional[Context]) -> Optional[Progress]:
    return ctx.info if ctx is not None else None


def _finish(response: ToolResponse) -> str:
    if response.is_error:
        raise ToolError(response.content)
    return response.content


# ============================================================================
# Tools
# ============================================================================


@mcp.tool(
    name="web_search",
    annotations={
        "title": "Batch Web Search",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def web_search(keywords: List[str], ctx: Context = None) -> str:
    """
    Batch web search using Google. Search up to 100 keywords in one call.

    Returns top results per keyword with snippets, related searches, and a
    consensus section ranking URLs that several keywords agree on. Supports
    Google operators (site:, -exclusion, "exact phrase", filetype:).

    Args:
        keywords (List[str]): 1-100 distinct, specific keywords

    Returns:
        str: Markdown with consensus-ranked URLs and per-keyword results
    """
    _require("search")
    params = _validate(WebSearchInput, keywords=keywords)
    client = SearchClient(settings.keys.serper, settings=settings.search)
    return _finish(await handle_web_search(params.keywords, client, _progress(ctx)))


@mcp.tool(
    name="search_reddit",
    annotations={
        "title": "Search Reddit",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def search_reddit(
    queries: List[str],
    date_after: Optional[str] = None,
    ctx: Context = None,
) -> str:
    """
    Search Reddit via Google (10 results per query, max 10 queries).

    site:reddit.com is added automatically. Call get_reddit_post afterwards
    with the URLs you find.

    Args:
        queries (List[str]): Distinct queries; more queries give more perspectives
        date_after (Optional[str]): Only results after this date (YYYY-MM-DD)

    Returns:
        str: Markdown with posts ranked by cross-query agreement
    """
    _require("search")
    params = _validate(SearchRedditInput, queries=queries, date_after=date_after)
    client = SearchClient(settings.keys.serper, settings=settings.search)
    return _finish(
        await handle_search_reddit(params.queries, client, params.date_after, _progress(ctx))
    )


@mcp.tool(
    name="get_reddit_post",
    annotations={
        "title": "Fetch Reddit Posts",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def get_reddit_post(
    urls: List[str],
    max_comments: Optional[int] = None,
    fetch_comments: bool = True,
    ctx: Context = None,
) -> str:
    """
    Fetch 2-50 Reddit posts with their top comments.

    1,000 comments are shared across all posts (2 posts: ~500 each,
    10 posts: 100 each, 50 posts: 20 each), at most 200 per post.

    Args:
        urls (List[str]): Reddit post URLs (2-50)
        max_comments (Optional[int]): Override the automatic per-post allocation
        fetch_comments (bool): Set false for a quick post-only overview

    Returns:
        str: Markdown with each post and its comment tree
    """
    _require("reddit")
    params = _validate(
        GetRedditPostInput,
        urls=urls,
        max_comments=max_comments,
        fetch_comments=fetch_comments,
    )
    return _finish(
        await handle_get_reddit_post(
            params.urls,
            get_reddit_client(),
            params.max_comments,
            params.fetch_comments,
            _progress(ctx),
        )
    )


@mcp.tool(
    name="scrape_links",
    annotations={
        "title": "Scrape URLs",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def scrape_links(
    urls: List[str],
    timeout: int = 30,
    use_llm: bool = False,
    what_to_extract: Optional[str] = None,
    ctx: Context = None,
) -> str:
    """
    Extract content from 1-50 URLs with automatic fallback.

    Fallback order: basic, JavaScript rendering, JavaScript from a US exit
    node. 32,000 tokens are shared across all URLs. With use_llm the pages
    are filtered by an LLM according to what_to_extract.

    Args:
        urls (List[str]): Pages to scrape
        timeout (int): Seconds per URL (5-120)
        use_llm (bool): Enable LLM extraction (requires OPENROUTER_API_KEY)
        what_to_extract (Optional[str]): Extraction instructions for the LLM

    Returns:
        str: Markdown with one section per URL
    """
    _require("scraping")
    params = _validate(
        ScrapeLinksInput,
        urls=urls,
        timeout=timeout,
        use_llm=use_llm,
        what_to_extract=what_to_extract,
    )

    extractor = None
    if params.use_llm:
        if get_capabilities(settings)["llm_extraction"]:
            extractor = ExtractionClient(
                settings.keys.openrouter,
                base_url=settings.research.base_url,
                settings=settings.extraction,
            )
        else:
            logger.warning(
                "[scrape_links] use_llm requested but OPENROUTER_API_KEY not set; "
                "proceeding without LLM extraction"
            )

    client = ScraperClient(settings.keys.scraper, settings=settings.scraper)
    return _finish(
        await handle_scrape_links(
            params.urls,
            client,
            params.timeout,
            params.use_llm,
            params.what_to_extract,
            extractor,
            _progress(ctx),
        )
    )


@mcp.tool(
    name="deep_research",
    annotations={
        "title": "Deep Research",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def deep_research(deep_research_question: str, ctx: Context = None) -> str:
    """
    Evidence-based, multi-perspective research on any topic.

    Brief the researcher fully: topic and why it matters, what you already
    know, desired depth, priorities and 3-7 specific questions. Can take
    many minutes.

    Args:
        deep_research_question (str): The complete research brief

    Returns:
        str: Markdown research report with sources
    """
    _require("deep_research")
    params = _validate(DeepResearchInput, deep_research_question=deep_research_question)
    client = ResearchClient(settings.keys.openrouter, settings=settings.research)
    return _finish(
        await handle_deep_research(params.deep_research_question, client, _progress(ctx))
    )


# ============================================================================
# Startup
# ============================================================================


def validate_environment() -> List[str]:
    """Log which tools are usable; returns the enabled tool names."""
    capabilities = get_capabilities(settings)
    enabled = [tool for tool, cap in TOOL_CAPABILITIES.items() if capabilities[cap]]
    disabled = [tool for tool in TOOL_CAPABILITIES if tool not in enabled]

    if enabled:
        logger.info(f"Enabled tools: {', '.join(enabled)}")
    if disabled:
        logger.warning(f"Disabled tools (missing ENV): {', '.join(disabled)}")
    if capabilities["scraping"] and not capabilities["llm_extraction"]:
        logger.info(
            "scrape_links: LLM extraction (use_llm) disabled; "
            "set OPENROUTER_API_KEY to enable"
        )
    return enabled


def main() -> None:
    # stdout carries the MCP stdio transport
    logging.basicConfig(
        stream=sys.stderr,
        level=os.getenv("LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    validate_environment()
    logger.info(f"{SERVER_NAME} v{SERVER_VERSION} ready")
    mcp.run()


if __name__ == "__main__":
    main()
