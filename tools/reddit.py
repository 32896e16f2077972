"""Reddit post fetching tool."""

import logging
import math
import time
from typing import List, Optional, Sequence

from api.reddit import RedditClient
from core.errors import StructuredError, classify_error
from models.config import RedditSettings
from models.results import Comment, PostResult
from tools import Progress, ToolResponse, error_response, report

logger = logging.getLogger(__name__)


def format_comments(comments: Sequence[Comment]) -> str:
    parts: List[str] = []
    for c in comments:
        indent = "  " * c.depth
        op = " **[OP]**" if c.is_op else ""
        score = f"+{c.score}" if c.score >= 0 else str(c.score)
        body = "\n".join(f"{indent}  {line}" for line in c.body.split("\n"))
        parts.append(f"{indent}- **u/{c.author}**{op} _({score})_\n{body}\n\n")
    return "".join(parts)


def format_post(result: PostResult, fetch_comments: bool) -> str:
    post = result.post
    md = f"## {post.title}\n\n"
    md += (
        f"**r/{post.subreddit}** • u/{post.author} • ⬆️ {post.score} • "
        f"💬 {post.comment_count} comments\n"
    )
    md += f"🔗 {post.url}\n\n"

    if post.body:
        md += f"### Post Content\n\n{post.body}\n\n"

    if fetch_comments and result.comments:
        md += (
            f"### Top Comments ({len(result.comments)}/{post.comment_count} shown, "
            f"allocated: {result.allocated_comments})\n\n"
        )
        md += format_comments(result.comments)
    elif not fetch_comments:
        md += "_Comments not fetched (fetch_comments=false)_\n\n"
    return md


async def get_reddit_post(
    urls: Sequence[str],
    client: RedditClient,
    max_comments: Optional[int] = None,
    fetch_comments: bool = True,
    progress: Optional[Progress] = None,
) -> ToolResponse:
    """Fetch 2-50 posts with the comment budget split across them."""
    # Outcomes are keyed by URL so a repeat would run twice and report once
    urls = list(dict.fromkeys(urls))
    settings: RedditSettings = client.settings
    if len(urls) < settings.min_posts:
        return ToolResponse(
            content=(
                f"# ❌ Error\n\nMinimum {settings.min_posts} Reddit posts required. "
                f"Received: {len(urls)}"
            ),
            is_error=True,
        )
    if len(urls) > settings.max_posts:
        return ToolResponse(
            content=(
                f"# ❌ Error\n\nMaximum {settings.max_posts} Reddit posts allowed. "
                f"Received: {len(urls)}. Please remove "
                f"{len(urls) - settings.max_posts} URL(s) and retry."
            ),
            is_error=True,
        )

    start = time.monotonic()
    total_batches = math.ceil(len(urls) / settings.batch_size)
    await report(progress, f"Fetching {len(urls)} Reddit post(s) in {total_batches} batch(es)")

    try:
        result = await client.batch_get_posts(urls, max_comments, fetch_comments)
    except Exception as e:
        return error_response("get_reddit_post", classify_error(e), {"total_posts": len(urls)})

    md = f"# Reddit Posts ({len(urls)} posts)\n\n"
    if fetch_comments:
        md += (
            f"**Comment Allocation:** {result.comments_per_post} comments/post "
            f"({len(urls)} posts, {settings.max_comment_budget} total budget)\n"
        )
    else:
        md += "**Comments:** Not fetched (fetch_comments=false)\n"
    md += f"**Status:** 📦 {result.batch.batches_processed} batch(es) processed\n\n---\n\n"

    successful = failed = 0
    for url, outcome in result.batch.outcomes.items():
        if isinstance(outcome, StructuredError):
            failed += 1
            md += f"## ❌ Failed: {url}\n\n_{outcome.message}_\n\n---\n\n"
        else:
            successful += 1
            md += format_post(outcome, fetch_comments) + "\n---\n\n"

    md += f"\n**Summary:** ✅ {successful} successful | ❌ {failed} failed"
    if result.batch.rate_limit_hits > 0:
        md += f" | ⚠️ {result.batch.rate_limit_hits} rate-limited posts"

    await report(progress, f"Reddit fetch complete: {successful} ok, {failed} failed")
    return ToolResponse(
        content=md.strip(),
        metadata={
            "total_posts": len(urls),
            "successful": successful,
            "failed": failed,
            "comments_per_post": result.comments_per_post,
            "batches_processed": result.batch.batches_processed,
            "rate_limit_hits": result.batch.rate_limit_hits,
            "execution_time_ms": int((time.monotonic() - start) * 1000),
        },
        is_error=successful == 0,
    )
