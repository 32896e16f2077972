"""
Multi-query consensus aggregation and ranking.

Results from many parallel queries against one upstream are merged by
normalized URL, scored by position-weighted click-through share and
ranked. Records surfaced by several queries count as consensus; when too
few records reach the agreement threshold, the threshold is lowered step
by step instead of failing.
"""

import logging
import re
import urllib.parse
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from models.config import CTR_WEIGHTS, WEB_THRESHOLDS
from models.results import RawResult

__all__ = [
    "AggregatedRecord",
    "RankedRecord",
    "AggregationResult",
    "normalize_url",
    "ctr_weight",
    "aggregate_results",
    "rank_records",
    "aggregate_and_rank",
    "build_url_lookup",
    "lookup_url",
    "consensus_mark",
    "justification",
]

logger = logging.getLogger(__name__)

_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)

# ══════════════════════════════════════════════════════════════════════════════
# Records
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class AggregatedRecord:
    """All occurrences of one normalized URL across queries."""

    key: str
    url: str
    title: str
    snippet: str
    date: Optional[str] = None
    frequency: int = 0
    positions: list[int] = field(default_factory=list)
    queries: list[str] = field(default_factory=list)
    best_position: int = 0
    total_score: float = 0.0


@dataclass(frozen=True)
class RankedRecord:
    key: str
    url: str
    title: str
    snippet: str
    date: Optional[str]
    rank: int
    score: float
    frequency: int
    positions: tuple[int, ...]
    queries: tuple[str, ...]
    best_position: int
    total_score: float
    is_consensus: bool


@dataclass(frozen=True)
class AggregationResult:
    ranked: list[RankedRecord]
    total_unique_keys: int
    total_queries: int
    applied_threshold: int
    threshold_note: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════════
# Normalization & Weights
# ══════════════════════════════════════════════════════════════════════════════


def normalize_url(url: str) -> str:
    """
    Canonical deduplication key for a URL.

    Scheme and fragment are dropped, the host loses any ``www.`` prefixes,
    the trailing slash is removed, path and query are kept, and the whole
    key is lower-cased. Applying it twice gives the same key.
    """
    raw = url.strip()
    candidate = raw if _SCHEME.match(raw) else f"http://{raw}"
    try:
        parsed = urllib.parse.urlsplit(candidate)
        host = parsed.netloc.lower()
    except ValueError:
        host = ""

    if not host:
        return raw.lower().rstrip("/")

    while host.startswith("www.") and len(host) > 4:
        host = host[4:]
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{host}{path}{query}".lower()


def ctr_weight(position: int) -> float:
    """Click-through weight of a 1-based result position."""
    if 1 <= position <= 10:
        return CTR_WEIGHTS.get(position, 0.0)
    if position > 10:
        return max(0.0, 10 - (position - 10) * 0.5)
    return 0.0


# ══════════════════════════════════════════════════════════════════════════════
# Aggregation
# ══════════════════════════════════════════════════════════════════════════════


def aggregate_results(
    per_query_results: Mapping[str, Sequence[RawResult]],
) -> dict[str, AggregatedRecord]:
    """Merge every (query, result) pair into one record per normalized URL."""
    records: dict[str, AggregatedRecord] = {}

    for query, results in per_query_results.items():
        for result in results:
            key = normalize_url(result.link)
            weight = ctr_weight(result.position)
            existing = records.get(key)

            if existing is None:
                records[key] = AggregatedRecord(
                    key=key,
                    url=result.link,
                    title=result.title,
                    snippet=result.snippet,
                    date=result.date,
                    frequency=1,
                    positions=[result.position],
                    queries=[query],
                    best_position=result.position,
                    total_score=weight,
                )
                continue

            # Metadata follows the best position seen so far
            if result.position < existing.best_position:
                existing.title = result.title
                existing.snippet = result.snippet
                existing.date = result.date or existing.date

            existing.frequency += 1
            existing.positions.append(result.position)
            existing.queries.append(query)
            existing.best_position = min(existing.best_position, result.position)
            existing.total_score += weight

    return records


def rank_records(records: Sequence[AggregatedRecord], threshold: int) -> list[RankedRecord]:
    """Sort by total score (stable), normalize to 0-100 and assign ranks."""
    if not records:
        return []

    ordered = sorted(records, key=lambda r: r.total_score, reverse=True)
    max_score = ordered[0].total_score

    return [
        RankedRecord(
            key=record.key,
            url=record.url,
            title=record.title,
            snippet=record.snippet,
            date=record.date,
            rank=index + 1,
            score=(record.total_score / max_score) * 100 if max_score > 0 else 0.0,
            frequency=record.frequency,
            positions=tuple(record.positions),
            queries=tuple(record.queries),
            best_position=record.best_position,
            total_score=record.total_score,
            is_consensus=record.frequency >= threshold,
        )
        for index, record in enumerate(ordered)
    ]


def aggregate_and_rank(
    per_query_results: Mapping[str, Sequence[RawResult]],
    min_consensus_count: int,
    thresholds: Sequence[int] = WEB_THRESHOLDS,
) -> AggregationResult:
    """
    Aggregate, then rank with an adaptively relaxed agreement threshold.

    Thresholds are tried strictest first. The first one that keeps at least
    ``min_consensus_count`` records wins; the last one is accepted whatever
    it keeps, so this never fails for lack of consensus.

    Args:
        per_query_results: Results per query, in query order
        min_consensus_count: Records wanted before a threshold is accepted
        thresholds: Agreement thresholds, strictest first

    Returns:
        AggregationResult with the ranked records and the applied threshold
    """
    steps = list(thresholds) or [1]
    records = aggregate_results(per_query_results)
    total_queries = len(per_query_results)

    if not records:
        return AggregationResult(
            ranked=[],
            total_unique_keys=0,
            total_queries=total_queries,
            applied_threshold=steps[0],
        )

    ranked: list[RankedRecord] = []
    applied = steps[0]
    for i, threshold in enumerate(steps):
        kept = [r for r in records.values() if r.frequency >= threshold]
        ranked = rank_records(kept, threshold)
        applied = threshold
        if len(ranked) >= min_consensus_count or i == len(steps) - 1:
            break

    note = None
    if applied < steps[0]:
        note = (
            f"Note: Frequency filter lowered to ≥{applied} due to result "
            f"diversity across {total_queries} queries."
        )
        logger.info(
            f"Consensus threshold relaxed from {steps[0]} to {applied} "
            f"({len(ranked)} of {len(records)} URLs kept)"
        )

    return AggregationResult(
        ranked=ranked,
        total_unique_keys=len(records),
        total_queries=total_queries,
        applied_threshold=applied,
        threshold_note=note,
    )


# ══════════════════════════════════════════════════════════════════════════════
# Lookup & Annotation
# ══════════════════════════════════════════════════════════════════════════════


def build_url_lookup(ranked: Sequence[RankedRecord]) -> dict[str, RankedRecord]:
    """Index ranked records by normalized key and by raw lower-cased URL."""
    lookup: dict[str, RankedRecord] = {}
    for record in ranked:
        lookup[record.key] = record
        lookup[record.url.lower()] = record
    return lookup


def lookup_url(url: str, lookup: Mapping[str, RankedRecord]) -> Optional[RankedRecord]:
    return lookup.get(normalize_url(url)) or lookup.get(url.lower())


def consensus_mark(frequency: int, threshold: int = WEB_THRESHOLDS[0]) -> str:
    return "✓" if frequency >= threshold else "✗"


def justification(record: RankedRecord) -> str:
    """One sentence on why a record sits at its rank."""
    if record.frequency >= 4:
        parts = [
            f"Appeared in {record.frequency} different searches showing strong "
            "cross-query relevance"
        ]
    elif record.frequency >= 3:
        parts = [
            f"Found across {record.frequency} searches indicating solid topical coverage"
        ]
    else:
        plural = "es" if record.frequency > 1 else ""
        parts = [f"Appeared in {record.frequency} search{plural}"]

    if record.best_position == 1:
        parts.append("ranked #1 in at least one search")
    elif record.best_position <= 3:
        parts.append(f"best position was top-3 (#{record.best_position})")

    return ", ".join(parts) + "."
