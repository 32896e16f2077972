"""Configuration and constants for the Research MCP.

Values come from the environment (optionally a ``.env`` file). Everything
is read once into frozen dataclasses; nothing is reconfigured at runtime.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()

# ══════════════════════════════════════════════════════════════════════════════
# Server
# ══════════════════════════════════════════════════════════════════════════════

SERVER_NAME = "research_mcp"
SERVER_VERSION = "3.0.0"

# ══════════════════════════════════════════════════════════════════════════════
# Ranking
# ══════════════════════════════════════════════════════════════════════════════

# Observed click-through share per search position, position 1 = 100
CTR_WEIGHTS: Dict[int, float] = {
    1: 100.00,
    2: 60.00,
    3: 48.89,
    4: 33.33,
    5: 28.89,
    6: 26.44,
    7: 24.44,
    8: 17.78,
    9: 13.33,
    10: 12.56,
}

WEB_THRESHOLDS = (3, 2, 1)
FORUM_THRESHOLDS = (2, 1)  # Forum queries overlap less than web queries
WEB_MIN_CONSENSUS = 5
FORUM_MIN_CONSENSUS = 3

EXTRACTION_SUFFIX = (
    "Try to answer this information as comprehensive as possible while keeping "
    "info density super high without adding unnecessary words but satisfy the "
    "scope defined by previous instructions even more."
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or default


# ══════════════════════════════════════════════════════════════════════════════
# Per-upstream Settings
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SearchSettings:
    base_url: str = "https://google.serper.dev"
    timeout: float = 30.0
    max_attempts: int = 3
    rate_limit_delays: tuple[float, ...] = (1.0, 2.0, 4.0)
    max_keywords: int = 100
    max_forum_queries: int = 10
    results_per_forum_query: int = 10


@dataclass(frozen=True)
class ScraperSettings:
    base_url: str = "https://api.scrape.do"
    batch_size: int = 30
    max_tokens_budget: int = 32000
    max_tokens_per_url: int = 32000
    min_urls: int = 1
    max_urls: int = 50
    max_attempts: int = 3
    rate_limit_delays: tuple[float, ...] = (2.0, 4.0, 8.0)
    default_timeout: int = 30


@dataclass(frozen=True)
class RedditSettings:
    auth_url: str = "https://www.reddit.com/api/v1/access_token"
    api_url: str = "https://oauth.reddit.com"
    user_agent: str = "research-mcp/3.0"
    batch_size: int = 10
    max_comment_budget: int = 1000
    max_comments_per_post: int = 200
    max_comments_per_request: int = 500
    min_posts: int = 2
    max_posts: int = 50
    max_attempts: int = 5
    rate_limit_delays: tuple[float, ...] = (2.0, 4.0, 8.0, 16.0, 32.0)
    token_safety_margin: float = 60.0
    timeout: float = 30.0


@dataclass(frozen=True)
class ResearchSettings:
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "perplexity/sonar-deep-research"
    timeout: float = 1800.0
    reasoning_effort: str = "high"
    max_search_results: int = 100
    max_attempts: int = 3
    max_tokens: int = 32000


@dataclass(frozen=True)
class ExtractionSettings:
    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 8000
    timeout: float = 120.0


@dataclass(frozen=True)
class ApiKeys:
    serper: Optional[str] = None
    scraper: Optional[str] = None
    reddit_client_id: Optional[str] = None
    reddit_client_secret: Optional[str] = None
    openrouter: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    keys: ApiKeys = field(default_factory=ApiKeys)
    search: SearchSettings = field(default_factory=SearchSettings)
    scraper: ScraperSettings = field(default_factory=ScraperSettings)
    reddit: RedditSettings = field(default_factory=RedditSettings)
    research: ResearchSettings = field(default_factory=ResearchSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    keys = ApiKeys(
        serper=_env_str("SERPER_API_KEY"),
        scraper=_env_str("SCRAPEDO_API_KEY"),
        reddit_client_id=_env_str("REDDIT_CLIENT_ID"),
        reddit_client_secret=_env_str("REDDIT_CLIENT_SECRET"),
        openrouter=_env_str("OPENROUTER_API_KEY"),
    )

    base_url = _env_str("OPENROUTER_BASE_URL", ResearchSettings.base_url)
    research = ResearchSettings(
        base_url=base_url,
        model=_env_str("RESEARCH_MODEL", ResearchSettings.model),
        timeout=_env_int("API_TIMEOUT_MS", 1_800_000) / 1000,
        reasoning_effort=_env_str(
            "DEFAULT_REASONING_EFFORT", ResearchSettings.reasoning_effort
        ),
        max_search_results=_env_int("DEFAULT_MAX_URLS", 100),
        max_attempts=_env_int("DEFAULT_MAX_ATTEMPTS", 3),
    )

    extraction = ExtractionSettings(
        model=_env_str("LLM_EXTRACTION_MODEL", ExtractionSettings.model),
        max_tokens=_env_int("LLM_EXTRACTION_MAX_TOKENS", ExtractionSettings.max_tokens),
    )

    scraper = ScraperSettings(
        max_tokens_per_url=_env_int(
            "SCRAPER_MAX_TOKENS_PER_URL", ScraperSettings.max_tokens_per_url
        ),
    )

    return Settings(
        keys=keys,
        research=research,
        extraction=extraction,
        scraper=scraper,
    )


# ══════════════════════════════════════════════════════════════════════════════
# Capabilities
# ══════════════════════════════════════════════════════════════════════════════

_MISSING_ENV_HELP = {
    "search": ("SERPER_API_KEY", "https://serper.dev", "web_search, search_reddit"),
    "reddit": (
        "REDDIT_CLIENT_ID and REDDIT_CLIENT_SECRET",
        "https://www.reddit.com/prefs/apps",
        "get_reddit_post",
    ),
    "scraping": ("SCRAPEDO_API_KEY", "https://scrape.do", "scrape_links"),
    "deep_research": ("OPENROUTER_API_KEY", "https://openrouter.ai/keys", "deep_research"),
    "llm_extraction": (
        "OPENROUTER_API_KEY",
        "https://openrouter.ai/keys",
        "scrape_links (use_llm)",
    ),
}


def get_capabilities(settings: Settings) -> Dict[str, bool]:
    """Report which tools have the credentials they need."""
    keys = settings.keys
    return {
        "search": bool(keys.serper),
        "reddit": bool(keys.reddit_client_id and keys.reddit_client_secret),
        "scraping": bool(keys.scraper),
        "deep_research": bool(keys.openrouter),
        "llm_extraction": bool(keys.openrouter),
    }


def missing_env_message(capability: str) -> str:
    """Markdown help for a tool whose credentials are missing."""
    env_vars, signup, tools = _MISSING_ENV_HELP.get(
        capability, ("the required API key", "", capability)
    )
    lines = [
        f"# ❌ {tools}: not configured",
        "",
        f"Set **{env_vars}** in your environment or `.env` file to enable this tool.",
    ]
    if signup:
        lines.append(f"Get a key at {signup}")
    return "\n".join(lines)
