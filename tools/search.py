"""
Search tools: batched web search and Reddit discovery.

Both fan one request out to many queries and run the results through the
consensus aggregator, so URLs several queries agree on rise to the top.
"""

import logging
import time
from typing import List, Optional, Sequence

from api.serper import SearchClient
from core.aggregation import (
    AggregationResult,
    RankedRecord,
    aggregate_and_rank,
    build_url_lookup,
    consensus_mark,
    ctr_weight,
    justification,
    lookup_url,
)
from core.errors import classify_error
from models.config import (
    FORUM_MIN_CONSENSUS,
    FORUM_THRESHOLDS,
    WEB_MIN_CONSENSUS,
    WEB_THRESHOLDS,
)
from models.results import KeywordSearchResult
from tools import Progress, ToolResponse, error_response, report
from utils import truncate

logger = logging.getLogger(__name__)

MAX_QUERIES_SHOWN = 15
MAX_CONSENSUS_SHOWN = 20
SNIPPET_LIMIT = 150
DESCRIPTION_LIMIT = 200
RELATED_LIMIT = 5
MAX_FORUM_QUERIES = 10


def _quoted(queries: Sequence[str]) -> str:
    return ", ".join(f'"{q}"' for q in queries)


# ══════════════════════════════════════════════════════════════════════════════
# Web Search
# ══════════════════════════════════════════════════════════════════════════════


def format_consensus(
    ranked: Sequence[RankedRecord],
    keywords: Sequence[str],
    aggregation: AggregationResult,
) -> List[str]:
    lines = [
        f"## The Perfect Search Results (Aggregated from {len(keywords)} Queries)",
        "",
        f"Based on {len(keywords)} distinct searches, we identified "
        f"**{len(ranked)} high-consensus resources**. Here's what the data reveals:",
        "",
    ]
    if aggregation.threshold_note:
        lines += [f"> {aggregation.threshold_note}", ""]

    lines += ["### 🥇 Top Consensus Resources", ""]
    for record in ranked[:MAX_CONSENSUS_SHOWN]:
        star = " ⭐ HIGHEST CONSENSUS" if record.frequency >= 4 else ""
        lines += [
            f"#### #{record.rank}: {record.title} (Score: {record.score:.1f}){star}",
            f"- **Appeared in:** {record.frequency} queries ({_quoted(record.queries)})",
            f"- **Best ranking:** Position {record.best_position}",
            f"- **Description:** {truncate(record.snippet, DESCRIPTION_LIMIT)}",
            f"- **Why it's #{record.rank}:** {justification(record)}",
            f"- **URL:** {record.url}",
            "",
        ]

    by_frequency = sorted(ranked, key=lambda r: r.frequency, reverse=True)[:30]
    top = ", ".join(f"{truncate(r.url, 40)} ({r.frequency}x)" for r in by_frequency)
    lines += [
        "---",
        "",
        "### 📈 Metadata",
        "",
        f"- **Total Queries:** {len(keywords)} ({', '.join(keywords)})",
        f"- **Unique URLs Found:** {aggregation.total_unique_keys} — top by frequency: {top}",
        f"- **Consensus Threshold:** ≥{aggregation.applied_threshold} appearances",
        "",
    ]
    return lines


def format_query_results(
    searches: Sequence[KeywordSearchResult],
    aggregation: AggregationResult,
) -> tuple[List[str], int]:
    """Per-query listing annotated with cross-query consensus."""
    lookup = build_url_lookup(aggregation.ranked)
    per_query = 5 if len(searches) > 10 else 10
    shown = searches[:MAX_QUERIES_SHOWN]
    omitted = len(searches) - len(shown)

    header = "## 📊 Full Search Results by Query"
    if omitted > 0:
        header += f" (showing {len(shown)} of {len(searches)})"
    lines = [header, ""]

    total = 0
    for index, search in enumerate(shown):
        lines += [f'### Query {index + 1}: "{search.keyword}"', ""]

        for offset, result in enumerate(search.results[:per_query]):
            position = offset + 1
            record = lookup_url(result.link, lookup)
            frequency = record.frequency if record else 1
            noun = "searches" if frequency > 1 else "search"
            lines.append(
                f"{position}. **[{result.title}]({result.link})** — Position {position} | "
                f"Score: {ctr_weight(position):.1f} | "
                f"Consensus: {consensus_mark(frequency)} ({frequency} {noun})"
            )
            if result.snippet:
                snippet = truncate(result.snippet, SNIPPET_LIMIT)
                lines.append(
                    f"   - *{result.date}* — {snippet}" if result.date else f"   - {snippet}"
                )
            lines.append("")
            total += 1

        if search.related:
            related = ", ".join(f"`{r}`" for r in search.related[:RELATED_LIMIT])
            lines += [f"*Related:* {related}", ""]

        if index < len(shown) - 1:
            lines += ["---", ""]

    if omitted > 0:
        lines += [
            "",
            "---",
            "",
            f"> *{omitted} additional queries not shown. Consensus URLs above "
            f"include all {len(searches)} queries.*",
        ]
    return lines, total


async def web_search(
    keywords: Sequence[str],
    client: SearchClient,
    progress: Optional[Progress] = None,
) -> ToolResponse:
    """Search every keyword, then rank URLs by cross-query consensus."""
    start = time.monotonic()
    # Repeated keywords would count their own results twice
    unique = list(dict.fromkeys(keywords))
    await report(progress, f"Searching for {len(unique)} keyword(s)")

    try:
        response = await client.search_multiple(unique)
    except Exception as e:
        return error_response(
            "web_search",
            classify_error(e),
            {"total_keywords": len(unique), "total_results": 0},
            tip="Make sure SERPER_API_KEY is set in your environment variables.",
        )

    per_query = {s.keyword: s.results for s in response.searches}
    aggregation = aggregate_and_rank(per_query, WEB_MIN_CONSENSUS, WEB_THRESHOLDS)
    consensus = aggregation.ranked

    if consensus:
        lines = format_consensus(consensus, unique, aggregation)
    else:
        lines = [
            f"## The Perfect Search Results (Aggregated from {response.total_keywords} Queries)",
            "",
            "> *No high-consensus URLs found across searches. Results may be highly diverse.*",
            "",
        ]
    lines += ["---", ""]

    query_lines, total_results = format_query_results(response.searches, aggregation)
    lines += query_lines

    elapsed = int((time.monotonic() - start) * 1000)
    await report(
        progress,
        f"Search completed: {total_results} results, {aggregation.total_unique_keys} "
        f"unique URLs, {len(consensus)} consensus URLs in {elapsed}ms",
    )
    return ToolResponse(
        content="\n".join(lines),
        metadata={
            "total_keywords": response.total_keywords,
            "total_results": total_results,
            "execution_time_ms": elapsed,
            "total_unique_urls": aggregation.total_unique_keys,
            "consensus_url_count": len(consensus),
            "frequency_threshold": aggregation.applied_threshold,
        },
    )


# ══════════════════════════════════════════════════════════════════════════════
# Reddit Search
# ══════════════════════════════════════════════════════════════════════════════


def format_forum_results(
    aggregation: AggregationResult, queries: Sequence[str]
) -> str:
    ranked = aggregation.ranked
    lines = [
        f"# 🔍 Reddit Search Results (Aggregated from {len(queries)} Queries)",
        "",
        f"**Total Unique Posts:** {aggregation.total_unique_keys} | "
        f"**Consensus Threshold:** ≥{aggregation.applied_threshold} appearances",
        "",
    ]
    if aggregation.threshold_note:
        lines += [f"> {aggregation.threshold_note}", ""]

    consensus = [r for r in ranked if r.frequency > 1]
    if consensus:
        lines += [
            "## ⭐ High-Consensus Posts (Multiple Queries)",
            "",
            "*These posts appeared across multiple search queries, indicating high relevance:*",
            "",
        ]
        for record in consensus:
            date = f" • 📅 {record.date}" if record.date else ""
            lines += [
                f"### #{record.rank}: {record.title}",
                f"**Score:** {record.score:.1f} | **Found in:** {record.frequency} "
                f"queries ({_quoted(record.queries)}){date}",
                record.url,
                f"> {record.snippet}",
                "",
            ]
        lines += ["---", ""]

    lines += ["## 📊 All Results (CTR-Ranked)", ""]
    for record in ranked:
        date = f" • 📅 {record.date}" if record.date else ""
        star = " ⭐" if record.frequency > 1 else ""
        lines += [f"**{record.rank}. {record.title}**{star}{date}", record.url, f"> {record.snippet}"]
        if record.frequency > 1:
            lines.append(
                f"_Found in {record.frequency} queries: {_quoted(record.queries)}_"
            )
        lines.append("")

    lines += [
        "---",
        "",
        "### 📈 Search Metadata",
        "",
        f"- **Queries:** {_quoted(queries)}",
        f"- **Unique Posts Found:** {aggregation.total_unique_keys}",
        f"- **High-Consensus Posts:** {len(consensus)}",
        "",
    ]
    return "\n".join(lines)


async def search_reddit(
    queries: Sequence[str],
    client: SearchClient,
    date_after: Optional[str] = None,
    progress: Optional[Progress] = None,
) -> ToolResponse:
    """Find Reddit threads for up to ten queries and rank them by agreement."""
    limited = list(dict.fromkeys(queries))[:MAX_FORUM_QUERIES]
    await report(progress, f"Searching Reddit for {len(limited)} quer(ies)")

    try:
        per_query = await client.search_forum_multiple(limited, date_after)
    except Exception as e:
        return error_response(
            "search_reddit", classify_error(e), {"total_queries": len(limited)}
        )

    aggregation = aggregate_and_rank(per_query, FORUM_MIN_CONSENSUS, FORUM_THRESHOLDS)
    metadata = {
        "total_queries": len(limited),
        "total_unique_urls": aggregation.total_unique_keys,
        "frequency_threshold": aggregation.applied_threshold,
    }

    if not aggregation.ranked:
        suffix = f" after {date_after}" if date_after else ""
        return ToolResponse(
            content=f"# 🔍 Reddit Search Results\n\n_No results found{suffix}._",
            metadata=metadata,
        )
    return ToolResponse(content=format_forum_results(aggregation, limited), metadata=metadata)
