"""Tests for the batch orchestrator."""

import asyncio

import pytest

from core.batch import run_batch
from core.errors import ErrorCode, StructuredError, UpstreamError, classify_status


class TestRunBatch:
    """Grouping, ordering and per-target failure isolation."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_siblings(self, fake_sleep):
        targets = [f"t{i}" for i in range(10)]

        async def operation(target):
            if target == "t4":
                raise UpstreamError(classify_status(404))
            return target.upper()

        result = await run_batch(targets, 3, operation, sleep=fake_sleep)

        assert list(result.outcomes) == targets
        assert len(result.successes) == 9
        assert result.failures["t4"].code == ErrorCode.NOT_FOUND
        assert result.outcomes["t0"] == "T0"
        assert result.batches_processed == 4
        # Pause between groups only
        assert fake_sleep.delays == [0.5, 0.5, 0.5]

    @pytest.mark.asyncio
    async def test_order_follows_targets_not_completion(self, fake_sleep):
        async def operation(target):
            await asyncio.sleep(0.02 if target == "slow" else 0)
            return target

        result = await run_batch(["slow", "fast"], 10, operation, sleep=fake_sleep)
        assert list(result.outcomes) == ["slow", "fast"]
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch_size(self, fake_sleep):
        in_flight = 0
        peak = 0

        async def operation(target):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return target

        await run_batch([str(i) for i in range(25)], 4, operation, sleep=fake_sleep)
        assert peak == 4

    @pytest.mark.asyncio
    async def test_counts_rate_limit_failures(self, fake_sleep):
        async def operation(target):
            if target.startswith("limited"):
                raise UpstreamError(classify_status(429))
            raise ValueError("malformed JSON payload")

        result = await run_batch(["limited-1", "limited-2", "other"], 5, operation, sleep=fake_sleep)

        assert result.rate_limit_hits == 2
        assert all(isinstance(o, StructuredError) for o in result.outcomes.values())
        assert result.outcomes["other"].code == ErrorCode.PARSE_ERROR

    @pytest.mark.asyncio
    async def test_empty_targets(self, fake_sleep):
        async def operation(target):
            raise AssertionError("should not run")

        result = await run_batch([], 5, operation, sleep=fake_sleep)
        assert result.total == 0
        assert result.batches_processed == 0

    @pytest.mark.asyncio
    async def test_progress_hook(self, fake_sleep):
        calls = []

        def hook(batch_num, total_batches, processed):
            calls.append((batch_num, total_batches, processed))
            raise RuntimeError("progress reporting failed")

        async def operation(target):
            return target

        result = await run_batch(list("abcde"), 2, operation, sleep=fake_sleep, on_batch_complete=hook)

        assert result.total == 5
        assert calls == [(1, 3, 2), (2, 3, 4), (3, 3, 5)]
