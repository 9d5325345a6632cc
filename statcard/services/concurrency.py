"""Fixed-size worker pool for async units of work."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``limit`` in flight.

    Results keep input order. A worker exception propagates to the caller;
    callers that want per-item isolation catch inside ``worker``.
    """
    if not items:
        return []

    results: list[R] = [None] * len(items)  # type: ignore[list-item]
    cursor = 0

    async def _drain() -> None:
        nonlocal cursor
        while True:
            # read and increment happen without a suspension point in between
            index = cursor
            cursor += 1
            if index >= len(items):
                return
            results[index] = await worker(items[index])

    pool_size = min(max(int(limit), 1), len(items))
    await asyncio.gather(*(_drain() for _ in range(pool_size)))
    return results
