"""Reddit OAuth API integration.

Fetches posts with their comment trees (most upvoted first) using an
app-only bearer token. Many posts are fetched in batches, with the
comment budget split evenly across them.
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from core.batch import BatchResult, ProgressHook, run_batch
from core.budget import Allocation, allocate
from core.credentials import CredentialCache
from core.errors import ErrorCode, UpstreamError, classify_status
from core.reliability import RetryConfig, execute_with_retry
from models.config import RedditSettings
from models.results import Comment, Post, PostResult, RedditListing, RedditThing, RedditToken

logger = logging.getLogger(__name__)

_POST_URL = re.compile(r"reddit\.com/r/([^/]+)/comments/([a-z0-9]+)", re.IGNORECASE)


@dataclass
class PostBatchResult:
    batch: BatchResult[PostResult]
    allocation: Allocation
    comments_per_post: int


def parse_post_url(url: str) -> Optional[Tuple[str, str]]:
    """Return (subreddit, post_id) for a Reddit post URL."""
    match = _POST_URL.search(url)
    return (match.group(1), match.group(2)) if match else None


def comment_allocation(
    post_count: int, settings: RedditSettings = RedditSettings()
) -> Allocation:
    """Split the global comment budget across ``post_count`` posts."""
    return allocate(
        settings.max_comment_budget, post_count, settings.max_comments_per_post
    )


def extract_comments(
    children: Sequence[RedditThing],
    op_author: str,
    budget: int,
) -> Tuple[List[Comment], int]:
    """
    Flatten a comment tree, best-scored first at every level.

    Walks depth-first with an explicit stack, so replies follow their
    parent. Stops once ``budget`` comments are collected.

    Returns:
        (comments, remaining budget)
    """
    comments: List[Comment] = []
    remaining = budget
    stack: List[Tuple[RedditThing, int]] = [
        (child, 0) for child in reversed(_by_score(children))
    ]

    while stack and remaining > 0:
        node, depth = stack.pop()
        data = node.data
        author = data.get("author")
        if node.kind != "t1" or not author or author == "[deleted]":
            continue

        comments.append(
            Comment(
                author=author,
                body=data.get("body") or "",
                score=int(data.get("score") or 0),
                depth=depth,
                is_op=author == op_author,
            )
        )
        remaining -= 1

        replies = _reply_things(data.get("replies"))
        stack.extend((child, depth + 1) for child in reversed(_by_score(replies)))

    return comments, remaining


def _by_score(children: Sequence[RedditThing]) -> List[RedditThing]:
    return sorted(children, key=lambda c: c.data.get("score") or 0, reverse=True)


def _reply_things(replies: Any) -> List[RedditThing]:
    # "replies" is "" when a comment has none
    if not isinstance(replies, dict):
        return []
    return RedditListing.model_validate(replies).data.children


def parse_post(listing: RedditListing) -> Tuple[Post, str]:
    """Build a Post from the first listing of a comments response."""
    if not listing.data.children:
        raise UpstreamError(classify_status(404, "Post not found"))
    p: Dict[str, Any] = listing.data.children[0].data

    body = p.get("selftext") or ("" if p.get("is_self") else f"[Link: {p.get('url', '')}]")
    author = p.get("author") or "[deleted]"
    post = Post(
        title=p.get("title") or "Untitled",
        author=author,
        subreddit=p.get("subreddit") or "",
        body=body,
        score=int(p.get("score") or 0),
        comment_count=int(p.get("num_comments") or 0),
        url=f"https://reddit.com{p.get('permalink', '')}",
    )
    return post, author


class RedditClient:
    """
    Reddit post fetcher.

    Pass the same ``credentials`` cache to every client for one Reddit app
    so they share a single token.
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        *,
        settings: RedditSettings = RedditSettings(),
        credentials: Optional[CredentialCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not client_id or not client_secret:
            raise ValueError("REDDIT_CLIENT_ID and REDDIT_CLIENT_SECRET are required")
        self.client_id = client_id
        self.client_secret = client_secret
        self.settings = settings
        self._transport = transport
        self.credentials = credentials or CredentialCache(
            self.authenticate,
            safety_margin=settings.token_safety_margin,
            name="Reddit",
        )
        self.retry = RetryConfig(
            name="Reddit",
            max_attempts=settings.max_attempts,
            base_delay=settings.rate_limit_delays[0],
            max_delay=settings.rate_limit_delays[-1],
            rate_limit_delays=settings.rate_limit_delays,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.timeout, transport=self._transport)

    async def authenticate(self) -> Tuple[str, float]:
        """Client-credentials grant; returns (token, expires_in)."""
        basic = base64.b64encode(
            f"{self.client_id}:{self.client_secret}".encode()
        ).decode()
        async with self._client() as client:
            response = await client.post(
                self.settings.auth_url,
                headers={
                    "Authorization": f"Basic {basic}",
                    "Content-Type": "application/x-www-form-urlencoded",
                    "User-Agent": self.settings.user_agent,
                },
                content="grant_type=client_credentials",
            )
        if response.is_error:
            raise UpstreamError(
                classify_status(response.status_code, "Reddit auth failed")
            )
        token = RedditToken.model_validate(response.json())
        return token.access_token, token.expires_in

    async def get_post(self, url: str, max_comments: int = 100) -> PostResult:
        """
        Fetch one post and up to ``max_comments`` comments.

        Raises:
            UpstreamError: for invalid URLs and once retries are exhausted
        """
        parsed = parse_post_url(url)
        if not parsed:
            raise UpstreamError(classify_status(400, f"Invalid Reddit URL: {url}"))
        subreddit, post_id = parsed
        limit = max(1, min(max_comments, self.settings.max_comments_per_request))

        async def attempt() -> Any:
            token = await self.credentials.get_token()
            async with self._client() as client:
                response = await client.get(
                    f"{self.settings.api_url}/r/{subreddit}/comments/{post_id}",
                    params={"sort": "top", "limit": limit, "depth": 10, "raw_json": 1},
                    headers={
                        "Authorization": f"Bearer {token}",
                        "User-Agent": self.settings.user_agent,
                    },
                )
            if response.is_error:
                error = classify_status(response.status_code, "Reddit API error")
                if error.code in (ErrorCode.AUTH_ERROR, ErrorCode.QUOTA_EXCEEDED):
                    self.credentials.invalidate()
                raise UpstreamError(error)
            return response.json()

        data = await execute_with_retry(attempt, self.retry)
        if not isinstance(data, list) or len(data) < 2:
            raise ValueError(f"Unexpected Reddit JSON shape for {url}")

        post_listing = RedditListing.model_validate(data[0])
        comment_listing = RedditListing.model_validate(data[1])
        post, op_author = parse_post(post_listing)

        comments: List[Comment] = []
        if max_comments > 0:
            comments, _ = extract_comments(
                comment_listing.data.children, op_author, max_comments
            )

        return PostResult(
            post=post,
            comments=comments,
            allocated_comments=max_comments,
            actual_comments=post.comment_count,
        )

    async def batch_get_posts(
        self,
        urls: Sequence[str],
        max_comments: Optional[int] = None,
        fetch_comments: bool = True,
        on_batch_complete: Optional[ProgressHook] = None,
    ) -> PostBatchResult:
        """Fetch many posts, ``batch_size`` at a time."""
        allocation = comment_allocation(len(urls), self.settings)
        if fetch_comments:
            per_post = max_comments or allocation.per_target_capped
        else:
            per_post = 0

        logger.info(
            f"[Reddit] Starting batch: {len(urls)} posts, {per_post} comments/post"
        )

        batch = await run_batch(
            urls,
            self.settings.batch_size,
            lambda url: self.get_post(url, per_post),
            on_batch_complete=on_batch_complete,
            label="Reddit",
        )
        return PostBatchResult(
            batch=batch, allocation=allocation, comments_per_post=per_post
        )
