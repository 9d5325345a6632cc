from __future__ import annotations

import asyncio

import pytest

from statcard.crawlers.github.contracts import Failed, FetchState, Fetched, Pending
from statcard.services.concurrency import run_bounded
from statcard.services.retry import fetch_with_retry


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_retry_exhaustion_reports_pending_after_max_attempts_plus_one_calls() -> None:
    calls: list[int] = []
    sleep = RecordingSleep()

    async def always_pending():
        calls.append(1)
        return Pending()

    outcome = await fetch_with_retry(always_pending, max_attempts=3, delays=(1.0, 2.0), sleep=sleep)

    assert outcome.state == FetchState.PENDING
    assert len(calls) == 4
    assert sleep.delays == [1.0, 2.0, 2.0]


@pytest.mark.asyncio
async def test_retry_stops_once_data_is_ready() -> None:
    responses = [Pending(), Pending(), Fetched(data=["ready"])]
    sleep = RecordingSleep()

    async def unit():
        return responses.pop(0)

    outcome = await fetch_with_retry(unit, max_attempts=5, delays=(0.5,), sleep=sleep)

    assert outcome.is_ok
    assert outcome.data == ["ready"]
    assert sleep.delays == [0.5, 0.5]


@pytest.mark.asyncio
async def test_failed_outcome_is_not_retried() -> None:
    calls: list[int] = []

    async def unit():
        calls.append(1)
        return Failed(error="HTTP 404", status_code=404)

    outcome = await fetch_with_retry(unit, max_attempts=3, delays=(1.0,), sleep=RecordingSleep())

    assert outcome.is_failed
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_run_bounded_preserves_input_order_with_varied_latency() -> None:
    latencies = {"a": 0.05, "b": 0.01, "c": 0.0, "d": 0.02, "e": 0.0}
    completed: list[str] = []

    async def worker(item: str) -> str:
        await asyncio.sleep(latencies[item])
        completed.append(item)
        return item.upper()

    results = await run_bounded(["a", "b", "c", "d", "e"], 2, worker)

    assert results == ["A", "B", "C", "D", "E"]
    assert completed.index("c") < completed.index("a")


@pytest.mark.asyncio
async def test_run_bounded_never_exceeds_limit_and_processes_each_item_once() -> None:
    in_flight = 0
    peak = 0
    seen: list[int] = []

    async def worker(item: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        seen.append(item)
        in_flight -= 1
        return item * 2

    results = await run_bounded(list(range(10)), 3, worker)

    assert results == [item * 2 for item in range(10)]
    assert peak <= 3
    assert sorted(seen) == list(range(10))


@pytest.mark.asyncio
async def test_run_bounded_handles_empty_input_and_propagates_failures() -> None:
    async def worker(item: int) -> int:
        if item == 2:
            raise RuntimeError("worker failed")
        return item

    assert await run_bounded([], 4, worker) == []
    with pytest.raises(RuntimeError, match="worker failed"):
        await run_bounded([1, 2, 3], 2, worker)
