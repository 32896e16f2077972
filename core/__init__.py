"""
Core machinery shared by every tool.

    Error Classifier     Map any upstream fault onto a small error taxonomy
    Reliability          Backoff policy and the retrying request executor
    Credentials          Shared, lazily refreshed bearer token
    Batch                Bounded fan-out of one operation over many targets
    Budget               Per-target share of a fixed comment/token budget
    Aggregation          Cross-query consensus ranking of search results
"""

from core.aggregation import (
    AggregationResult,
    RankedRecord,
    aggregate_and_rank,
    ctr_weight,
    normalize_url,
)
from core.batch import BatchResult, run_batch
from core.budget import Allocation, allocate
from core.credentials import CredentialCache, CredentialState
from core.errors import (
    ErrorCode,
    StructuredError,
    UpstreamError,
    classify_error,
    classify_status,
)
from core.reliability import (
    Outcome,
    RetryConfig,
    calculate_backoff,
    execute_with_retry,
    try_execute,
)

__all__ = [
    # Errors
    "ErrorCode",
    "StructuredError",
    "UpstreamError",
    "classify_error",
    "classify_status",
    # Reliability
    "RetryConfig",
    "Outcome",
    "calculate_backoff",
    "execute_with_retry",
    "try_execute",
    # Credentials
    "CredentialCache",
    "CredentialState",
    # Batch & budget
    "BatchResult",
    "run_batch",
    "Allocation",
    "allocate",
    # Aggregation
    "AggregationResult",
    "RankedRecord",
    "aggregate_and_rank",
    "ctr_weight",
    "normalize_url",
]
