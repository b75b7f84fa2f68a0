"""pagerescue/resilience/retry.py

Retry with exponential backoff and jitter.

Only errors the caller classifies as retryable loop; anything else propagates
on the first attempt. Knows nothing about documents or providers.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from pagerescue.resilience.cancellation import CancellationToken
from pagerescue.resilience.errors import RetryExhaustedError

T = TypeVar("T")

logger = logging.getLogger("pagerescue.resilience.retry")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    multiplier: float = 2.0
    max_delay_ms: int = 10000
    jitter: float = 0.2  # +/- fraction of the computed delay

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    def base_delay_seconds(self, retry_index: int) -> float:
        """Delay before retry number `retry_index` (0 = first retry), without jitter."""
        delay_ms = min(self.initial_delay_ms * (self.multiplier ** retry_index), self.max_delay_ms)
        return delay_ms / 1000.0

    def delay_seconds(self, retry_index: int, rand: Callable[[float, float], float] = random.uniform) -> float:
        base = self.base_delay_seconds(retry_index)
        if not self.jitter:
            return base
        return max(0.0, base + base * self.jitter * rand(-1.0, 1.0))


def _always(_: BaseException) -> bool:
    return True


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    is_retryable: Callable[[BaseException], bool] = _always,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rand: Callable[[float, float], float] = random.uniform,
    cancel_token: CancellationToken | None = None,
) -> T:
    """
    Run `operation` up to `policy.max_attempts` times.

    Raises the original error if it is not retryable, or RetryExhaustedError
    (with .attempts and .last_error) once every attempt has failed.
    CancelledError is never retried. A cancelled token stops the loop before the
    next attempt or backoff sleep with ExtractionCancelledError.
    """
    policy = policy or RetryPolicy()
    last_err: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not is_retryable(e):
                raise
            last_err = e

            if attempt >= policy.max_attempts:
                break
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            delay = policy.delay_seconds(attempt - 1, rand)
            logger.info(
                "retry.scheduled",
                extra={
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "delay_ms": int(delay * 1000),
                    "error_type": type(e).__name__,
                },
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)

    assert last_err is not None
    raise RetryExhaustedError(last_err, policy.max_attempts) from last_err
