"""
Bounded Worker Pool — maps an async worker over a sequence with a fixed
number of concurrent tasks.

Workers race over a shared cursor; each result lands in the slot of its
input index, so output order always matches input order. A failing item
never aborts the pool: its slot holds the error instead of a value.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar
import logging

logger = logging.getLogger(__name__)

I = TypeVar("I")
O = TypeVar("O")

Worker = Callable[[I, int], Awaitable[O]]
ProgressCallback = Callable[[int, int], None]


@dataclass
class PoolOutcome(Generic[O]):
    """Per-item result: either a value or the error the worker raised."""
    index: int
    value: Optional[O] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def map_pool_outcomes(
    items: Sequence[I],
    worker: Worker,
    concurrency: int = 8,
    on_progress: Optional[ProgressCallback] = None,
    delay: float = 0.06,
) -> List[PoolOutcome[O]]:
    """
    Run `worker(item, index)` over `items` with at most `concurrency` in flight.

    After every completion (success or failure) `on_progress(done, total)` fires
    with `done` increasing by one, then that worker sleeps `delay` seconds
    before claiming the next index.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    total = len(items)
    if total == 0:
        return []

    outcomes: List[Optional[PoolOutcome[O]]] = [None] * total
    cursor = 0
    done = 0

    async def runner():
        nonlocal cursor, done
        while cursor < total:
            # Claim and advance with no await in between
            idx = cursor
            cursor += 1
            try:
                value = await worker(items[idx], idx)
                outcomes[idx] = PoolOutcome(index=idx, value=value)
            except Exception as e:
                logger.debug(f"[POOL] Item {idx} failed: {e!r}")
                outcomes[idx] = PoolOutcome(index=idx, error=e)

            done += 1
            if on_progress is not None:
                on_progress(done, total)
            await asyncio.sleep(delay)

    await asyncio.gather(*(runner() for _ in range(min(concurrency, total))))
    return outcomes  # type: ignore[return-value]


async def map_pool(
    items: Sequence[I],
    worker: Worker,
    concurrency: int = 8,
    on_progress: Optional[ProgressCallback] = None,
    delay: float = 0.06,
) -> List[Optional[O]]:
    """Like map_pool_outcomes, collapsed to the value or None per slot."""
    outcomes = await map_pool_outcomes(items, worker, concurrency, on_progress, delay)
    return [o.value if o.ok else None for o in outcomes]
