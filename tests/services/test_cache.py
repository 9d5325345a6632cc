from statcard.crawlers.github.contracts import Fetched, Pending
from statcard.services.cache import TTLCache


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_entries_expire_and_are_evicted_on_read() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)

    cache.set("contrib:alice/api", Fetched(data=[]), ttl=60)
    clock.advance(59.9)
    assert cache.get("contrib:alice/api") is not None

    clock.advance(0.2)
    assert cache.get("contrib:alice/api") is None
    assert len(cache) == 0


def test_pending_entry_with_short_ttl_misses_after_expiry() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("contrib:alice/slow", Pending(), ttl=120)
    cache.set("contrib:alice/fast", Fetched(data=[]), ttl=21600)

    clock.advance(120 + 0.001)

    assert cache.get("contrib:alice/slow") is None
    assert cache.get("contrib:alice/fast") is not None


def test_set_overwrites_value_and_expiry() -> None:
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("stats:alice", "old", ttl=10)
    clock.advance(5)
    cache.set("stats:alice", "new", ttl=10)
    clock.advance(8)

    assert cache.get("stats:alice") == "new"
    assert "stats:alice" in cache

    cache.delete("stats:alice")
    assert cache.get("stats:alice") is None
