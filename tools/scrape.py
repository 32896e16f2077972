"""
Scrape links tool.

Fetches pages with automatic mode fallback, cleans the HTML and can run
each page through an LLM that keeps only what the caller asked for.
"""

import logging
import math
import time
import urllib.parse
from typing import List, Optional, Sequence

from api.openrouter import ExtractionClient, process_content_with_llm
from api.scraper import ScraperClient, token_allocation
from core.errors import StructuredError, classify_error
from models.config import EXTRACTION_SUFFIX
from tools import Progress, ToolResponse, error_response, report
from utils import format_number, html_to_text, remove_meta_tags

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTION = "Extract the main content and key information from this page."


def is_valid_url(url: str) -> bool:
    try:
        parsed = urllib.parse.urlsplit(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def enhance_instruction(instruction: Optional[str]) -> str:
    return f"{instruction or DEFAULT_INSTRUCTION}\n\n{EXTRACTION_SUFFIX}"


def _failure(urls: Sequence[str], message: str, elapsed_ms: int) -> ToolResponse:
    return ToolResponse(
        content=f"# ❌ Scraping Failed\n\n{message}",
        metadata={
            "total_urls": len(urls),
            "successful": 0,
            "failed": len(urls),
            "total_credits": 0,
            "execution_time_ms": elapsed_ms,
        },
        is_error=True,
    )


async def scrape_links(
    urls: Sequence[str],
    client: ScraperClient,
    timeout: int = 30,
    use_llm: bool = False,
    what_to_extract: Optional[str] = None,
    extractor: Optional[ExtractionClient] = None,
    progress: Optional[Progress] = None,
) -> ToolResponse:
    """
    Scrape URLs and return their cleaned content as one markdown document.

    Args:
        urls: Pages to fetch; malformed ones are reported, not fetched
        client: Scrape.do client
        timeout: Per-URL upstream timeout in seconds
        use_llm: Filter each page through ``extractor``
        what_to_extract: What the LLM should keep
        extractor: Extraction client, None when no key is configured
        progress: Optional progress reporter

    Returns:
        ToolResponse; ``is_error`` only when nothing could be attempted
    """
    start = time.monotonic()

    def elapsed() -> int:
        return int((time.monotonic() - start) * 1000)

    # Outcomes are keyed by URL so a repeat would run twice and report once
    urls = list(dict.fromkeys(urls))
    if not urls:
        return _failure(urls, "No URLs provided", elapsed())

    valid = [u for u in urls if is_valid_url(u)]
    invalid = [u for u in urls if not is_valid_url(u)]
    if not valid:
        return _failure(urls, f"All {len(urls)} URLs are invalid", elapsed())

    settings = client.settings
    allocation = token_allocation(len(valid), settings)
    tokens_per_url = allocation.per_target_capped
    total_batches = math.ceil(len(valid) / settings.batch_size)
    await report(
        progress,
        f"Starting scrape: {len(valid)} URL(s), {tokens_per_url} tokens/URL, "
        f"{total_batches} batch(es)",
    )

    try:
        batch = await client.batch_scrape(valid, timeout)
    except Exception as e:
        return error_response("scrape_links", classify_error(e), {"total_urls": len(urls)})

    instruction = enhance_instruction(what_to_extract) if use_llm else None
    llm_enabled = use_llm and extractor is not None

    successful = failed = total_credits = llm_errors = 0
    sections: List[str] = [f"## {u}\n\n❌ Invalid URL format" for u in invalid]
    failed += len(invalid)

    for index, (url, outcome) in enumerate(batch.outcomes.items(), start=1):
        tag = f"[{index}/{batch.total}]"
        if isinstance(outcome, StructuredError):
            failed += 1
            sections.append(f"## {url}\n\n❌ Failed to scrape: {outcome.message}")
            await report(progress, f"{tag} Failed: {outcome.message}")
            continue
        if not outcome.ok:
            failed += 1
            reason = outcome.content or f"HTTP {outcome.status_code}"
            sections.append(f"## {url}\n\n❌ Failed to scrape: {reason}")
            continue

        successful += 1
        total_credits += outcome.credits
        content = html_to_text(outcome.content)

        if llm_enabled:
            await report(progress, f"{tag} Applying LLM extraction ({tokens_per_url} tokens)...")
            extracted = await process_content_with_llm(
                content, instruction, tokens_per_url, extractor
            )
            if extracted.processed:
                content = extracted.content
            else:
                llm_errors += 1
                await report(
                    progress,
                    f"{tag} LLM extraction skipped: {extracted.error or 'unknown reason'}",
                )

        sections.append(f"## {url}\n\n{remove_meta_tags(content)}")

    await report(
        progress,
        f"Completed: {successful} successful, {failed} failed, {total_credits} credits used",
    )

    allocation_header = (
        f"**Token Allocation:** {format_number(tokens_per_url)} tokens/URL "
        f"({len(urls)} URLs, {format_number(settings.max_tokens_budget)} total budget)"
    )
    status_header = (
        f"**Status:** ✅ {successful} successful | ❌ {failed} failed | "
        f"📦 {batch.batches_processed} batch(es)"
    )
    if llm_errors:
        status_header += f" | ⚠️ {llm_errors} LLM extraction failures"
    if use_llm and extractor is None:
        status_header += " | ℹ️ LLM extraction unavailable (OPENROUTER_API_KEY not set)"

    body = "\n\n---\n\n".join(sections)
    content = (
        f"# Scraped Content ({len(urls)} URLs)\n\n"
        f"{allocation_header}\n{status_header}\n\n---\n\n{body}"
    )
    return ToolResponse(
        content=content,
        metadata={
            "total_urls": len(urls),
            "successful": successful,
            "failed": failed,
            "total_credits": total_credits,
            "execution_time_ms": elapsed(),
            "tokens_per_url": tokens_per_url,
            "total_token_budget": settings.max_tokens_budget,
            "batches_processed": batch.batches_processed,
            "rate_limit_hits": batch.rate_limit_hits,
        },
    )
