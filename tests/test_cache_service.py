import re
from datetime import datetime, timezone

import pytest

from newsdesk.services.cache_service import CacheService


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.mark.asyncio
async def test_wrap_invokes_producer_once_within_ttl():
    cache = CacheService()
    calls = []

    async def producer():
        calls.append(1)
        return ["article"]

    first = await cache.wrap("rss", "k", producer)
    second = await cache.wrap("rss", "k", producer)

    assert first == second == ["article"]
    assert len(calls) == 1
    assert cache.get_stats()["hits"] == 1


@pytest.mark.asyncio
async def test_wrap_calls_producer_again_after_expiry():
    clock = FakeClock()
    cache = CacheService(ttls={"rss": 60}, clock=clock)
    calls = []

    async def producer():
        calls.append(1)
        return len(calls)

    assert await cache.wrap("rss", "k", producer) == 1
    clock.advance(59)
    assert await cache.wrap("rss", "k", producer) == 1
    clock.advance(2)
    assert await cache.wrap("rss", "k", producer) == 2


@pytest.mark.asyncio
async def test_wrap_does_not_cache_producer_errors():
    cache = CacheService()
    attempts = []

    async def failing():
        attempts.append(1)
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        await cache.wrap("rss", "k", failing)
    with pytest.raises(RuntimeError):
        await cache.wrap("rss", "k", failing)
    assert len(attempts) == 2
    assert not cache.has("rss", "k")


def test_unknown_class_fails_open():
    cache = CacheService()

    assert cache.set("bogus", "k", 1) is False
    assert cache.get("bogus", "k") is None
    stats = cache.get_stats()
    assert stats["errors"] == 2
    assert stats["misses"] == 1


def test_disabled_cache_is_always_a_miss():
    cache = CacheService(enabled=False)

    assert cache.set("rss", "k", 1) is False
    assert cache.get("rss", "k") is None
    assert cache.get_stats()["enabled"] is False


def test_generate_key_is_deterministic_and_dated():
    day = datetime(2025, 3, 4, 23, 59, tzinfo=timezone.utc)

    a = CacheService.generate_key("feed", {"b": 2, "a": 1}, today=day)
    b = CacheService.generate_key("feed", {"a": 1, "b": 2}, today=day)

    assert a == b
    assert re.fullmatch(r"feed:[0-9a-f]{8}:2025-03-04", a)
    assert CacheService.generate_key("feed", {"a": 2}, today=day) != a


def test_evict_expired_and_flush_class():
    clock = FakeClock()
    cache = CacheService(ttls={"rss": 10, "newsapi": 100}, clock=clock)
    cache.set("rss", "short", 1)
    cache.set("newsapi", "long", 2)

    clock.advance(11)
    assert cache.evict_expired() == 1
    assert cache.keys() == ["newsapi:long"]

    assert cache.flush_class("newsapi") == 1
    assert cache.keys() == []


def test_delete_and_per_call_ttl():
    clock = FakeClock()
    cache = CacheService(clock=clock)
    cache.set("processed", "k", "v", ttl=5)

    assert cache.has("processed", "k")
    clock.advance(5)
    assert not cache.has("processed", "k")

    cache.set("processed", "k2", "v")
    assert cache.delete("processed", "k2") is True
    assert cache.delete("processed", "k2") is False


@pytest.mark.asyncio
async def test_sweeper_starts_and_stops():
    cache = CacheService(check_period=3600)
    cache.start_sweeper()
    assert cache._sweeper is not None

    await cache.stop_sweeper()
    assert cache._sweeper is None
