import asyncio
import json
import unittest

import httpx
from pydantic import BaseModel, ValidationError

from core.errors import (
    MAX_ERROR_MESSAGE_LENGTH,
    BackoffCancelled,
    ErrorCode,
    UpstreamError,
    classify_error,
    classify_status,
)


def _status_error(status: int, url: str = "https://api.example.com/x") -> httpx.HTTPStatusError:
    request = httpx.Request("GET", url)
    response = httpx.Response(status, request=request, text="upstream said no")
    return httpx.HTTPStatusError(f"HTTP {status} for {url}", request=request, response=response)


class StatusTableTests(unittest.TestCase):
    def test_non_retryable_client_errors(self):
        expected = {
            400: ErrorCode.INVALID_INPUT,
            401: ErrorCode.AUTH_ERROR,
            403: ErrorCode.QUOTA_EXCEEDED,
            404: ErrorCode.NOT_FOUND,
        }
        for status, code in expected.items():
            error = classify_status(status)
            self.assertEqual(error.code, code)
            self.assertFalse(error.retryable)
            self.assertEqual(error.status_code, status)

    def test_retryable_statuses(self):
        expected = {
            408: ErrorCode.TIMEOUT,
            429: ErrorCode.RATE_LIMITED,
            500: ErrorCode.INTERNAL_ERROR,
            502: ErrorCode.SERVICE_UNAVAILABLE,
            503: ErrorCode.SERVICE_UNAVAILABLE,
            504: ErrorCode.SERVICE_UNAVAILABLE,
        }
        for status, code in expected.items():
            error = classify_status(status)
            self.assertEqual(error.code, code)
            self.assertTrue(error.retryable)

    def test_unlisted_statuses_fall_back_by_class(self):
        self.assertEqual(classify_status(599).code, ErrorCode.SERVICE_UNAVAILABLE)
        self.assertTrue(classify_status(599).retryable)
        self.assertEqual(classify_status(418).code, ErrorCode.INVALID_INPUT)
        self.assertFalse(classify_status(418).retryable)

    def test_rate_limit_flag(self):
        self.assertTrue(classify_status(429).is_rate_limit)
        self.assertFalse(classify_status(503).is_rate_limit)


class ClassifyErrorTests(unittest.TestCase):
    def test_cancellation_is_retryable_timeout(self):
        for exc in (asyncio.CancelledError(), BackoffCancelled("stop")):
            error = classify_error(exc)
            self.assertEqual(error.code, ErrorCode.TIMEOUT)
            self.assertTrue(error.retryable)

    def test_transport_faults(self):
        request = httpx.Request("GET", "https://example.com")
        error = classify_error(httpx.ConnectError("connection refused", request=request))
        self.assertEqual(error.code, ErrorCode.NETWORK_ERROR)
        self.assertTrue(error.retryable)

        error = classify_error(ConnectionResetError("reset by peer"))
        self.assertEqual(error.code, ErrorCode.NETWORK_ERROR)

    def test_timeouts(self):
        request = httpx.Request("GET", "https://example.com")
        self.assertEqual(
            classify_error(httpx.ReadTimeout("read timed out", request=request)).code,
            ErrorCode.TIMEOUT,
        )
        self.assertEqual(classify_error(TimeoutError()).code, ErrorCode.TIMEOUT)
        self.assertEqual(
            classify_error(RuntimeError("socket ETIMEDOUT")).code, ErrorCode.TIMEOUT
        )

    def test_http_status_errors_use_status_table(self):
        error = classify_error(_status_error(429))
        self.assertEqual(error.code, ErrorCode.RATE_LIMITED)
        self.assertEqual(error.status_code, 429)

    def test_status_wins_over_timeout_text_in_url(self):
        error = classify_error(_status_error(401, "https://api.scrape.do/?timeout=30000"))
        self.assertEqual(error.code, ErrorCode.AUTH_ERROR)

    def test_upstream_error_passes_through(self):
        original = classify_status(503)
        self.assertIs(classify_error(UpstreamError(original)), original)

    def test_auth_text(self):
        error = classify_error(ValueError("SERPER_API_KEY is required"))
        self.assertEqual(error.code, ErrorCode.AUTH_ERROR)
        self.assertFalse(error.retryable)

    def test_parse_failures(self):
        try:
            json.loads("{not json")
        except json.JSONDecodeError as e:
            self.assertEqual(classify_error(e).code, ErrorCode.PARSE_ERROR)

        class Shape(BaseModel):
            value: int

        with self.assertRaises(ValidationError) as ctx:
            Shape.model_validate({"value": "nope"})
        error = classify_error(ctx.exception)
        self.assertEqual(error.code, ErrorCode.PARSE_ERROR)
        self.assertFalse(error.retryable)

    def test_fallback_truncates_message(self):
        error = classify_error(RuntimeError("x" * 10_000))
        self.assertEqual(error.code, ErrorCode.UNKNOWN_ERROR)
        self.assertFalse(error.retryable)
        self.assertLessEqual(len(error.message), MAX_ERROR_MESSAGE_LENGTH)

    def test_never_raises_on_broken_exceptions(self):
        class Broken(Exception):
            def __str__(self):
                raise RuntimeError("cannot render")

        error = classify_error(Broken())
        self.assertEqual(error.code, ErrorCode.UNKNOWN_ERROR)


if __name__ == "__main__":
    unittest.main()
