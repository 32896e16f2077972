"""
Result types shared between upstream clients, the core and the tools.

Plain dataclasses describe what the clients hand back. The pydantic
models below them describe the upstream JSON payloads; clients validate
every response through them so a shape mismatch surfaces as a parse
error instead of missing fields further down.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    # Client results
    "RawResult",
    "KeywordSearchResult",
    "MultipleSearchResponse",
    "Post",
    "Comment",
    "PostResult",
    "ScrapeResponse",
    "Citation",
    "ResearchUsage",
    "ResearchResponse",
    # Upstream payloads
    "SerperOrganic",
    "SerperRelated",
    "SerperSearchInformation",
    "SerperResponse",
    "RedditToken",
    "RedditThing",
    "RedditListing",
    "ChatCompletion",
]

# ══════════════════════════════════════════════════════════════════════════════
# Search
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RawResult:
    """One upstream hit for one query."""

    title: str
    link: str
    snippet: str
    position: int
    date: Optional[str] = None


@dataclass
class KeywordSearchResult:
    keyword: str
    results: List[RawResult]
    total_results: int
    related: List[str] = field(default_factory=list)


@dataclass
class MultipleSearchResponse:
    searches: List[KeywordSearchResult]
    total_keywords: int
    execution_time_ms: int


# ══════════════════════════════════════════════════════════════════════════════
# Reddit
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class Post:
    title: str
    author: str
    subreddit: str
    body: str
    score: int
    comment_count: int
    url: str


@dataclass
class Comment:
    author: str
    body: str
    score: int
    depth: int
    is_op: bool


@dataclass
class PostResult:
    post: Post
    comments: List[Comment]
    allocated_comments: int
    actual_comments: int


# ══════════════════════════════════════════════════════════════════════════════
# Scraping / Research
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class ScrapeResponse:
    url: str
    content: str
    status_code: int
    credits: int
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class Citation:
    url: str
    title: str
    start_index: Optional[int] = None
    end_index: Optional[int] = None


@dataclass(frozen=True)
class ResearchUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    sources_used: Optional[int] = None


@dataclass
class ResearchResponse:
    id: str
    model: str
    created: int
    content: str
    finish_reason: Optional[str] = None
    usage: Optional[ResearchUsage] = None
    citations: List[Citation] = field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════════
# Upstream Payloads
# ══════════════════════════════════════════════════════════════════════════════


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SerperOrganic(_Payload):
    title: Optional[str] = None
    link: Optional[str] = None
    snippet: Optional[str] = None
    date: Optional[str] = None
    position: Optional[int] = None


class SerperRelated(_Payload):
    query: Optional[str] = None


class SerperSearchInformation(_Payload):
    total_results: Optional[Any] = Field(default=None, alias="totalResults")


class SerperResponse(_Payload):
    organic: List[SerperOrganic] = Field(default_factory=list)
    related_searches: List[SerperRelated] = Field(
        default_factory=list, alias="relatedSearches"
    )
    search_information: Optional[SerperSearchInformation] = Field(
        default=None, alias="searchInformation"
    )


class RedditToken(_Payload):
    access_token: str
    expires_in: float = 3600


class RedditThing(_Payload):
    """A ``{kind, data}`` node of a Reddit listing."""

    kind: str
    data: dict[str, Any] = Field(default_factory=dict)


class _RedditListingData(_Payload):
    children: List[RedditThing] = Field(default_factory=list)


class RedditListing(_Payload):
    kind: str = "Listing"
    data: _RedditListingData = Field(default_factory=_RedditListingData)


class _ChatAnnotationCitation(_Payload):
    url: str = ""
    title: str = ""
    start_index: Optional[int] = None
    end_index: Optional[int] = None


class _ChatAnnotation(_Payload):
    type: str = ""
    url_citation: Optional[_ChatAnnotationCitation] = None


class _ChatMessage(_Payload):
    content: Optional[str] = None
    annotations: List[_ChatAnnotation] = Field(default_factory=list)


class _ChatChoice(_Payload):
    message: _ChatMessage
    finish_reason: Optional[str] = None


class _ChatUsage(_Payload):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    num_sources_used: Optional[int] = None


class ChatCompletion(_Payload):
    id: str = ""
    model: str = ""
    created: int = 0
    choices: List[_ChatChoice] = Field(min_length=1)
    usage: Optional[_ChatUsage] = None
