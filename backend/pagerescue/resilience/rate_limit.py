"""pagerescue/resilience/rate_limit.py

Minimum spacing between request starts.

Callers reserve the next free slot under the lock and sleep outside it, so
concurrent callers queue up at `min_interval` spacing without serializing on
the lock while they wait.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Awaitable, Callable


class MinIntervalRateLimiter:
    def __init__(
        self,
        min_interval_seconds: float = 0.5,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: float | None = None

    async def acquire(self) -> float:
        """Wait for this caller's slot. Returns the seconds waited."""
        with self._lock:
            now = self._clock()
            slot = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = slot + self.min_interval_seconds
            wait = slot - now

        if wait > 0:
            await self._sleep(wait)
        return wait
