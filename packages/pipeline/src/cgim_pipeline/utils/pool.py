"""
utils/pool.py — Bounded-concurrency worker pool for async tasks.

At most ``concurrency`` workers are in flight at once; results come back
in input order regardless of completion order. An optional fixed delay is
awaited before each task starts, which with concurrency=1 turns the pool
into a serialized, evenly spaced request loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_pool(
    items: Sequence[T],
    concurrency: int,
    worker: Callable[[T], Awaitable[R]],
    *,
    delay_s: float = 0.0,
) -> list[R]:
    """
    Run worker over items with bounded concurrency.

    Args:
        items:       Work items.
        concurrency: Maximum simultaneous workers (values < 1 mean 1).
        worker:      Async callable applied to each item.
        delay_s:     Pause before each task start (throttling).

    Returns:
        Results aligned with items.
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _run(item: T) -> R:
        async with semaphore:
            if delay_s > 0:
                await asyncio.sleep(delay_s)
            return await worker(item)

    return list(await asyncio.gather(*(_run(item) for item in items)))
