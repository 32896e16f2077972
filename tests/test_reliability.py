"""Tests for the backoff policy and the retrying executor."""

import asyncio
import time

import pytest

from core.errors import BackoffCancelled, ErrorCode, UpstreamError, classify_status
from core.reliability import (
    RetryConfig,
    backoff_sleep,
    calculate_backoff,
    execute_with_retry,
    try_execute,
)


class Scripted:
    """Operation that replays a script of statuses (int) or values."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = 0

    async def __call__(self):
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        if isinstance(step, int):
            raise UpstreamError(classify_status(step))
        if isinstance(step, Exception):
            raise step
        return step


class TestCalculateBackoff:
    """Exponential growth, bounded jitter and the cap."""

    def test_without_jitter_doubles(self):
        delays = [calculate_backoff(a, 1.0, 100.0, rng=lambda: 0.0) for a in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_bounded_by_thirty_percent(self):
        assert calculate_backoff(2, 1.0, 100.0, rng=lambda: 0.999) < 4.0 * 1.3
        assert calculate_backoff(2, 1.0, 100.0, rng=lambda: 0.5) == pytest.approx(4.6)

    def test_capped_at_maximum(self):
        assert calculate_backoff(10, 1.0, 30.0, rng=lambda: 0.9) == 30.0

    def test_random_jitter_stays_in_range(self):
        for _ in range(50):
            delay = calculate_backoff(1, 2.0, 60.0)
            assert 4.0 <= delay <= 4.0 * 1.3


class TestRateLimitDelay:
    def test_table_lookup_reuses_last_entry(self):
        config = RetryConfig(rate_limit_delays=(2.0, 4.0, 8.0))
        assert [config.rate_limit_delay(a) for a in range(5)] == [2.0, 4.0, 8.0, 8.0, 8.0]

    def test_empty_table_falls_back_to_backoff(self):
        config = RetryConfig(base_delay=1.0, max_delay=1.0)
        assert config.rate_limit_delay(3) == 1.0


class TestExecuteWithRetry:
    """Attempt counting and delay selection."""

    @pytest.mark.asyncio
    async def test_rate_limited_twice_then_success(self, fake_sleep):
        operation = Scripted(429, 429, "ok")
        config = RetryConfig(name="test", max_attempts=3, rate_limit_delays=(1.0, 2.0, 4.0))

        result = await execute_with_retry(operation, config, sleep=fake_sleep)

        assert result == "ok"
        assert operation.calls == 3
        assert fake_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self, fake_sleep):
        operation = Scripted(401, "never")
        config = RetryConfig(max_attempts=5)

        with pytest.raises(UpstreamError) as info:
            await execute_with_retry(operation, config, sleep=fake_sleep)

        assert info.value.code == ErrorCode.AUTH_ERROR
        assert operation.calls == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_classification(self, fake_sleep):
        operation = Scripted(503)
        config = RetryConfig(max_attempts=3, base_delay=1.0, max_delay=30.0)

        with pytest.raises(UpstreamError) as info:
            await execute_with_retry(operation, config, sleep=fake_sleep)

        assert info.value.code == ErrorCode.SERVICE_UNAVAILABLE
        assert operation.calls == 3
        # No sleep after the final attempt
        assert len(fake_sleep.delays) == 2
        assert 1.0 <= fake_sleep.delays[0] <= 1.3
        assert 2.0 <= fake_sleep.delays[1] <= 2.6

    @pytest.mark.asyncio
    async def test_plain_exceptions_are_classified(self, fake_sleep):
        operation = Scripted(ConnectionRefusedError("connection refused"), {"ok": True})
        result = await execute_with_retry(operation, RetryConfig(), sleep=fake_sleep)
        assert result == {"ok": True}
        assert len(fake_sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_retry_hook_failures_are_ignored(self, fake_sleep):
        seen = []

        def hook(attempt, error, delay):
            seen.append((attempt, error.code, delay))
            raise RuntimeError("hook broke")

        operation = Scripted(429, "ok")
        config = RetryConfig(rate_limit_delays=(5.0,))
        assert await execute_with_retry(operation, config, sleep=fake_sleep, on_retry=hook) == "ok"
        assert seen == [(1, ErrorCode.RATE_LIMITED, 5.0)]

    @pytest.mark.asyncio
    async def test_default_sleep_is_resolved_at_call_time(self, no_backoff):
        operation = Scripted(429, "ok")
        config = RetryConfig(rate_limit_delays=(7.0,))
        assert await execute_with_retry(operation, config) == "ok"
        assert no_backoff.delays == [7.0]


class TestTryExecute:
    @pytest.mark.asyncio
    async def test_success_outcome(self, fake_sleep):
        outcome = await try_execute(Scripted(500, "value"), RetryConfig(), sleep=fake_sleep)
        assert outcome.ok
        assert outcome.value == "value"
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_failure_outcome(self, fake_sleep):
        outcome = await try_execute(Scripted(404), RetryConfig(), sleep=fake_sleep)
        assert not outcome.ok
        assert outcome.error.code == ErrorCode.NOT_FOUND
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_cancelled_backoff_stops_retries(self):
        async def cancelled_sleep(seconds):
            raise BackoffCancelled("shutting down")

        operation = Scripted(503, "unreachable")
        outcome = await try_execute(operation, RetryConfig(), sleep=cancelled_sleep)

        assert outcome.error.code == ErrorCode.TIMEOUT
        assert operation.calls == 1


class TestBackoffSleep:
    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        event = asyncio.Event()
        event.set()
        with pytest.raises(BackoffCancelled):
            await backoff_sleep(10.0, event)

    @pytest.mark.asyncio
    async def test_cancelled_during_wait(self):
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)

        started = time.monotonic()
        with pytest.raises(BackoffCancelled):
            await backoff_sleep(10.0, event)
        assert time.monotonic() - started < 5.0

    @pytest.mark.asyncio
    async def test_completes_without_signal(self):
        await backoff_sleep(0.01, asyncio.Event())
