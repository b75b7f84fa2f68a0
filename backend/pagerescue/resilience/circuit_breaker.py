"""pagerescue/resilience/circuit_breaker.py

Circuit breaker around an async dependency.

  CLOSED    --(N consecutive failures)-->  OPEN
  OPEN      --(cooldown elapsed)-------->  HALF_OPEN
  HALF_OPEN --(M consecutive successes)->  CLOSED
  HALF_OPEN --(any failure)------------->  OPEN

While OPEN, calls raise CircuitOpenError without touching the dependency.
HALF_OPEN admits one trial call at a time; concurrent callers fail fast until the
trial call settles. State lives behind a lock because many documents share
one breaker.
"""

from __future__ import annotations

import asyncio
import threading
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from pagerescue.core import ExtractionCancelledError
from pagerescue.resilience.errors import CircuitOpenError

T = TypeVar("T")

logger = logging.getLogger("pagerescue.resilience.circuit_breaker")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    state: CircuitState
    failure_count: int
    success_count: int
    opened_at: float | None


def _counts_everything(_: BaseException) -> bool:
    return True


class CircuitBreaker:
    def __init__(
        self,
        name: str = "default",
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        success_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
        is_failure: Callable[[BaseException], bool] = _counts_everything,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.success_threshold = success_threshold
        self._clock = clock
        self._is_failure = is_failure

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    def snapshot(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            opened_at=self._opened_at,
        )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
            self._trial_in_flight = False

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        is_trial = self._before_call()
        try:
            result = await operation()
        except (asyncio.CancelledError, ExtractionCancelledError):
            # Abandoned, not failed: says nothing about dependency health.
            self._release_trial(is_trial)
            raise
        except Exception as e:
            if self._is_failure(e):
                self._on_failure(is_trial)
            else:
                self._release_trial(is_trial)
            raise
        self._on_success(is_trial)
        return result

    # ---- transitions ----

    def _before_call(self) -> bool:
        with self._lock:
            if self._state is CircuitState.OPEN:
                elapsed = self._clock() - (self._opened_at or 0.0)
                if elapsed < self.cooldown_seconds:
                    raise CircuitOpenError(self.name, retry_after_seconds=self.cooldown_seconds - elapsed)
                self._transition(CircuitState.HALF_OPEN)
                self._success_count = 0

            if self._state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.name)
                self._trial_in_flight = True
                return True

            return False

    def _on_success(self, is_trial: bool) -> None:
        with self._lock:
            self._failure_count = 0
            if is_trial:
                self._trial_in_flight = False
            # Only trial successes count toward closing.
            if is_trial and self._state is CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._transition(CircuitState.CLOSED)
                    self._success_count = 0

    def _on_failure(self, is_trial: bool) -> None:
        with self._lock:
            self._failure_count += 1
            if is_trial:
                self._trial_in_flight = False

            if self._state is CircuitState.HALF_OPEN:
                self._open()
            elif self._state is CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._open()

    def _release_trial(self, is_trial: bool) -> None:
        if not is_trial:
            return
        with self._lock:
            self._trial_in_flight = False

    def _open(self) -> None:
        self._opened_at = self._clock()
        self._success_count = 0
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        old = self._state
        self._state = new_state
        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            "circuit.transition",
            extra={
                "breaker": self.name,
                "from_state": old.value,
                "to_state": new_state.value,
                "failure_count": self._failure_count,
            },
        )
