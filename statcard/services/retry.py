"""Retry helper for endpoints that answer "still computing, try later"."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from statcard.crawlers.github.contracts import FetchOutcome

logger = logging.getLogger(__name__)


async def fetch_with_retry(
    unit: Callable[[], Awaitable[FetchOutcome]],
    *,
    max_attempts: int,
    delays: Sequence[float],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> FetchOutcome:
    """Invoke ``unit`` until it stops reporting pending.

    At most ``max_attempts`` retries follow the first call. Exhausting them
    returns the final pending outcome instead of raising, since upstream may
    legitimately need longer than the caller is willing to wait.
    """
    outcome = await unit()
    attempt = 0
    while outcome.is_pending and attempt < max_attempts:
        if delays:
            await sleep(delays[min(attempt, len(delays) - 1)])
        attempt += 1
        outcome = await unit()

    if outcome.is_pending:
        logger.debug("Upstream still computing after retries", extra={"attempts": attempt + 1})
    return outcome
