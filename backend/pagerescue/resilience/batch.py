"""pagerescue/resilience/batch.py

Bounded-concurrency batch runner.

At most `concurrency` workers pull the next item as soon as they finish the
previous one. Results land in a slot per input index, so output order never
depends on completion order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from pagerescue.resilience.cancellation import CancellationToken

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger("pagerescue.resilience.batch")


@dataclass(frozen=True)
class BatchResult(Generic[T, R]):
    index: int
    item: T
    value: R | None = None
    error: BaseException | None = None
    skipped: bool = False  # never dispatched (cancelled before its turn)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


async def run_batch(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    concurrency: int = 3,
    continue_on_error: bool = True,
    cancel_token: CancellationToken | None = None,
    on_progress: Callable[[int, int], None] | None = None,
) -> list[BatchResult[T, R]]:
    """
    Run `worker` over `items` with at most `concurrency` in flight.

    continue_on_error=True: every failure is captured in its BatchResult.
    continue_on_error=False: the first failure cancels outstanding work and is re-raised.
    A cancel_token is checked before each dispatch; undispatched items come back skipped.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    total = len(items)
    slots: list[BatchResult[T, R] | None] = [None] * total
    if total == 0:
        return []

    next_index = 0
    completed = 0

    def _claim() -> int | None:
        nonlocal next_index
        if cancel_token is not None and cancel_token.cancelled:
            return None
        if next_index >= total:
            return None
        idx = next_index
        next_index += 1
        return idx

    async def _loop() -> None:
        nonlocal completed
        while True:
            idx = _claim()
            if idx is None:
                return
            item = items[idx]
            try:
                value = await worker(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not continue_on_error:
                    raise
                logger.warning(
                    "batch.item_failed",
                    extra={"index": idx, "error_type": type(e).__name__, "error": str(e)},
                )
                slots[idx] = BatchResult(index=idx, item=item, error=e)
            else:
                slots[idx] = BatchResult(index=idx, item=item, value=value)

            completed += 1
            if on_progress is not None:
                on_progress(completed, total)

    tasks = [asyncio.create_task(_loop()) for _ in range(min(concurrency, total))]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    results: list[BatchResult[T, R]] = []
    for idx, slot in enumerate(slots):
        results.append(slot if slot is not None else BatchResult(index=idx, item=items[idx], skipped=True))

    logger.info(
        "batch.done",
        extra={
            "total": total,
            "succeeded": sum(1 for r in results if r.ok),
            "failed": sum(1 for r in results if r.error is not None),
            "skipped": sum(1 for r in results if r.skipped),
            "concurrency": concurrency,
        },
    )
    return results
