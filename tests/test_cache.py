"""Unit tests for services.cache."""

from __future__ import annotations

import asyncio

import pytest

from services.cache import CacheSweeper, TTLCache


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(clock=clock)


# ---------------------------------------------------------------------------
# TTLCache
# ---------------------------------------------------------------------------


class TestTTLCache:
    def test_get_missing_returns_none(self, cache: TTLCache) -> None:
        assert cache.get("nope") is None

    def test_value_visible_until_ttl(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("GET /", "A", ttl_seconds=60)
        clock.advance(30)
        assert cache.get("GET /") == "A"
        clock.advance(29.999)
        assert cache.get("GET /") == "A"

    def test_value_gone_after_ttl(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("GET /", "A", ttl_seconds=60)
        clock.advance(61)
        assert cache.get("GET /") is None

    def test_expiry_boundary_is_exclusive(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("k", "v", ttl_seconds=10)
        clock.advance(10)
        assert cache.get("k") is None

    def test_expired_read_removes_entry(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("k", "v", ttl_seconds=1)
        clock.advance(2)
        assert len(cache) == 1
        cache.get("k")
        assert len(cache) == 0

    def test_set_overwrites_value_and_expiry(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("k", "old", ttl_seconds=10)
        clock.advance(5)
        cache.set("k", "new", ttl_seconds=10)
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_delete_expired_only_removes_expired(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("short", 1, ttl_seconds=60)
        cache.set("long", 2, ttl_seconds=3600)
        clock.advance(120)
        assert cache.delete_expired() == 1
        assert "short" not in cache
        assert cache.get("long") == 2

    def test_delete_expired_with_explicit_now(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("k", 1, ttl_seconds=60)
        assert cache.delete_expired(now=clock.now + 60) == 1
        assert len(cache) == 0

    def test_clear(self, cache: TTLCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0


# ---------------------------------------------------------------------------
# CacheSweeper
# ---------------------------------------------------------------------------


class TestCacheSweeper:
    def test_sweep_once_removes_everything_expired(self, cache: TTLCache, clock: FakeClock) -> None:
        for i in range(5):
            cache.set(f"old-{i}", i, ttl_seconds=10)
        cache.set("fresh", "x", ttl_seconds=600)
        clock.advance(300)

        removed = CacheSweeper(cache).sweep_once()

        assert removed == 5
        assert len(cache) == 1
        assert cache.get("fresh") == "x"

    async def test_background_task_sweeps_periodically(self, cache: TTLCache, clock: FakeClock) -> None:
        cache.set("k", "v", ttl_seconds=1)
        clock.advance(5)
        sweeper = CacheSweeper(cache, interval_seconds=0.01)

        sweeper.start()
        assert sweeper.running
        for _ in range(100):
            if len(cache) == 0:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert len(cache) == 0
        assert not sweeper.running

    async def test_start_twice_keeps_one_task(self, cache: TTLCache) -> None:
        sweeper = CacheSweeper(cache, interval_seconds=60)
        sweeper.start()
        task = sweeper._task
        sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()

    async def test_stop_without_start_is_noop(self, cache: TTLCache) -> None:
        await CacheSweeper(cache).stop()
