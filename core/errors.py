"""
Error classification.

Maps any fault raised while talking to an upstream (transport failures,
HTTP status codes, timeouts, malformed payloads) onto a small taxonomy
that the retry loop and the tool handlers can act on.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError

__all__ = [
    "ErrorCode",
    "StructuredError",
    "UpstreamError",
    "BackoffCancelled",
    "classify_error",
    "classify_status",
    "MAX_ERROR_MESSAGE_LENGTH",
]

MAX_ERROR_MESSAGE_LENGTH = 500

# ══════════════════════════════════════════════════════════════════════════════
# Taxonomy
# ══════════════════════════════════════════════════════════════════════════════


class ErrorCode(str, Enum):
    """Classified error codes."""

    # Retryable
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    # Caller-actionable
    AUTH_ERROR = "AUTH_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    # Not caller-actionable
    INTERNAL_ERROR = "INTERNAL_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class StructuredError:
    """A classified failure."""

    code: ErrorCode
    message: str
    retryable: bool
    status_code: Optional[int] = None

    @property
    def is_rate_limit(self) -> bool:
        return self.code == ErrorCode.RATE_LIMITED

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class UpstreamError(Exception):
    """Raised once an upstream call has failed for good.

    Carries the final classification so that fan-out collectors can record
    it per target without classifying again.
    """

    def __init__(self, error: StructuredError):
        super().__init__(error.message)
        self.error = error

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    @property
    def status_code(self) -> Optional[int]:
        return self.error.status_code


class BackoffCancelled(Exception):
    """A backoff sleep was interrupted by its cancel signal."""


# ══════════════════════════════════════════════════════════════════════════════
# Status table
# ══════════════════════════════════════════════════════════════════════════════

_STATUS_TABLE: dict[int, tuple[ErrorCode, bool, str]] = {
    400: (ErrorCode.INVALID_INPUT, False, "Bad request"),
    401: (ErrorCode.AUTH_ERROR, False, "Invalid API key"),
    403: (ErrorCode.QUOTA_EXCEEDED, False, "API quota exceeded or access denied"),
    404: (ErrorCode.NOT_FOUND, False, "Resource not found"),
    408: (ErrorCode.TIMEOUT, True, "Upstream request timeout"),
    429: (ErrorCode.RATE_LIMITED, True, "Rate limit exceeded - try again later"),
    500: (ErrorCode.INTERNAL_ERROR, True, "Upstream internal error"),
    502: (ErrorCode.SERVICE_UNAVAILABLE, True, "Bad gateway"),
    503: (ErrorCode.SERVICE_UNAVAILABLE, True, "Service unavailable"),
    504: (ErrorCode.SERVICE_UNAVAILABLE, True, "Gateway timeout"),
}

_NETWORK_MARKERS = re.compile(
    r"ECONNREFUSED|ECONNRESET|ENOTFOUND|EAI_AGAIN|EHOSTUNREACH|"
    r"connection refused|connection reset|getaddrinfo|"
    r"name or service not known|nodename nor servname",
    re.IGNORECASE,
)
_TIMEOUT_MARKERS = re.compile(r"ETIMEDOUT|ECONNABORTED|timed out|timeout", re.IGNORECASE)
_AUTH_MARKERS = re.compile(
    r"api[ _-]?key|unauthori[sz]ed|invalid token|authentication failed|auth failed",
    re.IGNORECASE,
)
_PARSE_MARKERS = re.compile(
    r"json|parse|unexpected token|decode|malformed", re.IGNORECASE
)


def classify_status(status: int, message: Optional[str] = None) -> StructuredError:
    """Classify an HTTP status code."""
    if status in _STATUS_TABLE:
        code, retryable, default_message = _STATUS_TABLE[status]
    elif status >= 500:
        code, retryable, default_message = (
            ErrorCode.SERVICE_UNAVAILABLE,
            True,
            "Upstream server error",
        )
    elif status >= 400:
        code, retryable, default_message = (
            ErrorCode.INVALID_INPUT,
            False,
            "Upstream rejected the request",
        )
    else:
        code, retryable, default_message = (
            ErrorCode.UNKNOWN_ERROR,
            False,
            "Unexpected upstream status",
        )

    text = f"{default_message} (HTTP {status})"
    if message:
        text = f"{text}: {_truncate(message)}"
    return StructuredError(code, _truncate(text), retryable, status)


# ══════════════════════════════════════════════════════════════════════════════
# Classification
# ══════════════════════════════════════════════════════════════════════════════


def classify_error(exc: BaseException) -> StructuredError:
    """
    Map any raised fault to a StructuredError.

    Never raises. Precedence: cancellation, transport faults, timeouts,
    HTTP status, auth text, parse failures, then a bounded fallback.
    """
    try:
        return _classify(exc)
    except Exception:  # pragma: no cover - classification must not fail
        return StructuredError(
            ErrorCode.UNKNOWN_ERROR, "Unclassifiable error", retryable=False
        )


def _classify(exc: BaseException) -> StructuredError:
    if isinstance(exc, UpstreamError):
        return exc.error

    message = _truncate(_message_of(exc))

    # 1. Cancellation / abort
    if isinstance(exc, (asyncio.CancelledError, BackoffCancelled)):
        return StructuredError(
            ErrorCode.TIMEOUT, message or "Request was cancelled", retryable=True
        )

    # 2. Transport faults
    if isinstance(exc, httpx.TimeoutException):
        # httpx timeouts are transport errors too; keep them as timeouts.
        return StructuredError(
            ErrorCode.TIMEOUT, message or "Request timed out", retryable=True
        )
    if isinstance(exc, (httpx.ConnectError, httpx.NetworkError, ConnectionError)):
        return StructuredError(
            ErrorCode.NETWORK_ERROR,
            message or "Network connection failed",
            retryable=True,
        )
    if isinstance(exc, (httpx.TransportError, OSError)) and _NETWORK_MARKERS.search(
        message
    ):
        return StructuredError(ErrorCode.NETWORK_ERROR, message, retryable=True)

    # 3. Timeout markers (message scans only apply when no status is attached;
    # status-error messages embed request URLs)
    status = _status_of(exc)
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)) or (
        status is None and _TIMEOUT_MARKERS.search(message)
    ):
        return StructuredError(
            ErrorCode.TIMEOUT, message or "Request timed out", retryable=True
        )
    if status is None and _NETWORK_MARKERS.search(message):
        return StructuredError(ErrorCode.NETWORK_ERROR, message, retryable=True)

    # 4. HTTP status
    if status is not None:
        return classify_status(status, _response_text(exc))

    # 5. Auth text
    if _AUTH_MARKERS.search(message):
        return StructuredError(ErrorCode.AUTH_ERROR, message, retryable=False)

    # 6. Parse failures
    if isinstance(exc, (json.JSONDecodeError, ValidationError)) or _PARSE_MARKERS.search(
        message
    ):
        return StructuredError(
            ErrorCode.PARSE_ERROR,
            _truncate(message or "Malformed upstream response"),
            retryable=False,
        )

    # 7. Fallback
    return StructuredError(
        ErrorCode.UNKNOWN_ERROR,
        _truncate(message or type(exc).__name__ or "Unknown error occurred"),
        retryable=False,
    )


def _message_of(exc: BaseException) -> str:
    try:
        return str(exc)
    except Exception:
        return type(exc).__name__


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def _response_text(exc: BaseException) -> Optional[str]:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    try:
        text = response.text
    except Exception:
        return None
    if not isinstance(text, str):
        return None
    return text.strip() or None


def _truncate(text: str, limit: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
