"""
Batch orchestration.

Runs one operation per target in fixed-size groups. Each group runs
concurrently; groups run one after another with a short pause between
them, which caps in-flight requests at ``batch_size``.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar, Union

from core.errors import StructuredError, classify_error

__all__ = ["BatchResult", "run_batch", "DEFAULT_BATCH_PAUSE"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_PAUSE = 0.5  # seconds between groups

ProgressHook = Callable[[int, int, int], Any]


@dataclass
class BatchResult(Generic[T]):
    """Per-target outcomes of a batch run, in target order."""

    outcomes: dict[str, Union[T, StructuredError]] = field(default_factory=dict)
    batches_processed: int = 0
    rate_limit_hits: int = 0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def successes(self) -> dict[str, T]:
        return {
            target: outcome
            for target, outcome in self.outcomes.items()
            if not isinstance(outcome, StructuredError)
        }

    @property
    def failures(self) -> dict[str, StructuredError]:
        return {
            target: outcome
            for target, outcome in self.outcomes.items()
            if isinstance(outcome, StructuredError)
        }


async def run_batch(
    targets: Sequence[str],
    batch_size: int,
    operation: Callable[[str], Awaitable[T]],
    *,
    pause: float = DEFAULT_BATCH_PAUSE,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_batch_complete: Optional[ProgressHook] = None,
    label: str = "batch",
) -> BatchResult[T]:
    """
    Run ``operation`` for every target, ``batch_size`` at a time.

    A failing target never cancels its siblings or aborts the run; its
    classified error is stored in the outcome map instead. Retries belong
    inside ``operation``.

    Args:
        targets: Targets in the order results should be reported
        batch_size: Maximum concurrent operations per group
        operation: Coroutine function called once per target
        pause: Seconds to wait between groups (skipped after the last)
        sleep: Awaitable sleep used for the pause
        on_batch_complete: Optional hook (batch_num, total_batches, processed)
        label: Prefix for log lines

    Returns:
        BatchResult with one outcome per distinct target
    """
    result: BatchResult[T] = BatchResult()
    if not targets:
        return result

    size = max(1, batch_size)
    total_batches = math.ceil(len(targets) / size)
    logger.info(
        f"[{label}] Starting: {len(targets)} target(s) in {total_batches} batch(es)"
    )

    for batch_num in range(total_batches):
        group = targets[batch_num * size : (batch_num + 1) * size]
        logger.info(
            f"[{label}] Processing batch {batch_num + 1}/{total_batches} "
            f"({len(group)} targets)"
        )

        settled = await asyncio.gather(
            *(operation(target) for target in group), return_exceptions=True
        )

        for target, outcome in zip(group, settled):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    # KeyboardInterrupt and friends are not per-target failures.
                    raise outcome
                error = classify_error(outcome)
                if error.is_rate_limit:
                    result.rate_limit_hits += 1
                result.outcomes[target] = error
            else:
                result.outcomes[target] = outcome

        result.batches_processed += 1
        _notify(on_batch_complete, batch_num + 1, total_batches, len(result.outcomes))
        logger.info(
            f"[{label}] Completed batch {batch_num + 1}/{total_batches} "
            f"({len(result.outcomes)}/{len(targets)} total)"
        )

        if batch_num < total_batches - 1:
            await sleep(pause)

    return result


def _notify(hook: Optional[ProgressHook], *args: int) -> None:
    if hook is None:
        return
    try:
        hook(*args)
    except Exception:
        logger.debug("Batch progress hook raised; ignoring")
