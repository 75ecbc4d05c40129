"""Tests for the statistics cache."""

import pytest

from gradewise_core.cache import (
    CacheBackendType,
    CacheConfig,
    MemoryCacheBackend,
    RedisCacheBackend,
    StatsCache,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> StatsCache:
    return StatsCache(MemoryCacheBackend(clock=clock), ttl_seconds=30)


class TestStatsCache:
    """Test TTL expiry, invalidation and statistics."""

    @pytest.mark.asyncio
    async def test_get_and_set(self, cache: StatsCache) -> None:
        await cache.set("course:1:overview", {"submissions": 4})
        assert await cache.get("course:1:overview") == {"submissions": 4}
        assert await cache.get("course:1:missing") is None
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1
        assert cache.stats.hit_rate == 0.5

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self, cache: StatsCache, clock: FakeClock) -> None:
        await cache.set("assignment:7:statistics", [1, 2, 3])
        clock.now += 29
        assert await cache.get("assignment:7:statistics") == [1, 2, 3]
        clock.now += 1
        assert await cache.get("assignment:7:statistics") is None
        assert cache.backend.size() == 0

    @pytest.mark.asyncio
    async def test_unread_expired_entries_are_pruned_on_write(self, cache: StatsCache, clock: FakeClock) -> None:
        for course_id in range(5):
            await cache.set(f"course:{course_id}:overview", course_id)
        await cache.backend.set("assignment:1:statistics", "fresh", 120)
        assert cache.backend.size() == 6

        clock.now += 60
        await cache.set("course:9:overview", 9)

        assert cache.backend.size() == 2
        assert await cache.get("assignment:1:statistics") == "fresh"
        assert await cache.get("course:9:overview") == 9

    @pytest.mark.asyncio
    async def test_invalidate_course_only_touches_that_course(self, cache: StatsCache) -> None:
        await cache.set("course:1:overview", 1)
        await cache.set("course:1:leaderboard", 2)
        await cache.set("course:12:overview", 3)
        await cache.set("assignment:1:statistics", 4)

        removed = await cache.invalidate_course(1)

        assert removed == 2
        assert await cache.get("course:1:overview") is None
        assert await cache.get("course:12:overview") == 3
        assert await cache.get("assignment:1:statistics") == 4
        assert cache.stats.invalidations == 2

    @pytest.mark.asyncio
    async def test_invalidate_assignment(self, cache: StatsCache) -> None:
        await cache.set("assignment:7:statistics", 1)
        await cache.set("assignment:70:statistics", 2)

        assert await cache.invalidate_assignment(7) == 1
        assert await cache.get("assignment:70:statistics") == 2

    @pytest.mark.asyncio
    async def test_invalidating_nothing_is_fine(self, cache: StatsCache) -> None:
        assert await cache.invalidate_course(99) == 0

    @pytest.mark.asyncio
    async def test_clear_and_ping(self, cache: StatsCache) -> None:
        await cache.set("a", 1)
        await cache.set("b", 2)
        assert await cache.clear() == 2
        assert await cache.ping() is True

    def test_empty_hit_rate(self) -> None:
        assert StatsCache().stats.hit_rate == 0.0


class TestFromConfig:
    """Test backend selection."""

    def test_memory_backend(self) -> None:
        cache = StatsCache.from_config(CacheConfig(ttl_seconds=5))
        assert isinstance(cache.backend, MemoryCacheBackend)
        assert cache.ttl_seconds == 5

    def test_redis_backend_is_lazy(self) -> None:
        cache = StatsCache.from_config(
            CacheConfig(backend=CacheBackendType.REDIS, redis_url="redis://localhost:6399/0")
        )
        assert isinstance(cache.backend, RedisCacheBackend)
