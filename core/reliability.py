"""
Reliability utilities: backoff policy and the resilient request executor.

Every upstream call goes through ``execute_with_retry``. Failures are
classified, non-retryable ones stop immediately, rate limits follow the
upstream's own delay table and everything else backs off exponentially
with jitter.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from core.errors import (
    BackoffCancelled,
    ErrorCode,
    StructuredError,
    UpstreamError,
    classify_error,
)

__all__ = [
    "RetryConfig",
    "Outcome",
    "calculate_backoff",
    "backoff_sleep",
    "execute_with_retry",
    "try_execute",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.3

SleepFn = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, StructuredError, float], Any]

# ══════════════════════════════════════════════════════════════════════════════
# Backoff Policy
# ══════════════════════════════════════════════════════════════════════════════


def calculate_backoff(
    attempt: int,
    base: float,
    maximum: float,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Exponential delay with jitter, capped at ``maximum``.

    ``jitter`` is drawn uniformly from ``[0, 0.3 * base * 2**attempt)`` so
    that concurrent targets do not retry in lockstep.
    """
    exponential = base * (2**attempt)
    jitter = rng() * JITTER_RATIO * exponential
    return min(exponential + jitter, maximum)


async def backoff_sleep(
    seconds: float, cancel_event: Optional[asyncio.Event] = None
) -> None:
    """
    Sleep for ``seconds`` unless ``cancel_event`` fires first.

    Raises BackoffCancelled as soon as the event is set; the pending wait
    is torn down with it.
    """
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return

    if cancel_event.is_set():
        raise BackoffCancelled("Backoff cancelled before it started")

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({waiter}, timeout=seconds)
    finally:
        if not waiter.done():
            waiter.cancel()

    if done:
        raise BackoffCancelled(f"Backoff cancelled during {seconds:.1f}s wait")


# ══════════════════════════════════════════════════════════════════════════════
# Resilient Request Executor
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RetryConfig:
    """Per-upstream retry settings."""

    name: str = "upstream"
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    rate_limit_delays: tuple[float, ...] = ()

    def rate_limit_delay(self, attempt: int) -> float:
        """Delay before retrying after a 429 on ``attempt`` (0-based)."""
        if not self.rate_limit_delays:
            return calculate_backoff(attempt, self.base_delay, self.max_delay)
        index = min(attempt, len(self.rate_limit_delays) - 1)
        return self.rate_limit_delays[index]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Tagged result of ``try_execute``."""

    value: Optional[T] = None
    error: Optional[StructuredError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    sleep: Optional[SleepFn] = None,
    on_retry: Optional[RetryHook] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempt budget runs out.

    Args:
        operation: Zero-argument coroutine factory performing one upstream call
        config: Attempt budget and delay tables for this upstream
        sleep: Awaitable sleep used between attempts (defaults to
            ``backoff_sleep``)
        on_retry: Optional hook called with (attempt, error, delay) before
            each retry; failures in the hook are ignored

    Returns:
        Whatever ``operation`` returns on its first successful attempt

    Raises:
        UpstreamError: carrying the last classification, once retries are
            exhausted or a non-retryable error was seen
    """
    outcome = await try_execute(operation, config, sleep=sleep, on_retry=on_retry)
    if outcome.error is not None:
        raise UpstreamError(outcome.error)
    return outcome.value  # type: ignore[return-value]


async def try_execute(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    sleep: Optional[SleepFn] = None,
    on_retry: Optional[RetryHook] = None,
) -> Outcome[T]:
    """Same loop as ``execute_with_retry`` but returns an Outcome instead of raising."""
    sleep = sleep or backoff_sleep
    attempts = max(1, config.max_attempts)
    last_error: Optional[StructuredError] = None

    for attempt in range(attempts):
        try:
            value = await operation()
            if attempt > 0:
                _log(
                    logging.INFO,
                    f"[{config.name}] Succeeded on attempt {attempt + 1}/{attempts}",
                )
            return Outcome(value=value, attempts=attempt + 1)
        except Exception as e:
            last_error = classify_error(e)

        if not last_error.retryable:
            _log(
                logging.WARNING,
                f"[{config.name}] {last_error.code.value} is not retryable, "
                f"giving up after attempt {attempt + 1}: {last_error.message}",
            )
            return Outcome(error=last_error, attempts=attempt + 1)

        if attempt >= attempts - 1:
            break

        if last_error.code == ErrorCode.RATE_LIMITED:
            delay = config.rate_limit_delay(attempt)
        else:
            delay = calculate_backoff(attempt, config.base_delay, config.max_delay)

        _log(
            logging.WARNING,
            f"[{config.name}] {last_error.code.value} on attempt "
            f"{attempt + 1}/{attempts}. Retrying in {delay:.1f}s...",
        )
        _notify(on_retry, attempt + 1, last_error, delay)
        try:
            await sleep(delay)
        except BackoffCancelled as e:
            return Outcome(error=classify_error(e), attempts=attempt + 1)

    _log(
        logging.ERROR,
        f"[{config.name}] Failed after {attempts} attempts: {last_error}",
    )
    return Outcome(error=last_error, attempts=attempts)


def _log(level: int, message: str) -> None:
    try:
        logger.log(level, message)
    except Exception:
        pass


def _notify(
    hook: Optional[RetryHook], attempt: int, error: StructuredError, delay: float
) -> None:
    if hook is None:
        return
    try:
        hook(attempt, error, delay)
    except Exception:
        _log(logging.DEBUG, "Retry hook raised; ignoring")
