"""Statistics cache with TTL and prefix invalidation.

Course and assignment statistics are expensive to compute, so they are
cached under string keys such as ``course:12:overview`` or
``assignment:7:statistics``. Whenever the pipeline changes a submission it
invalidates the affected prefixes; readers may see stale data for at most
``ttl_seconds``.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()


class CacheBackendType(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


@dataclass
class CacheConfig:
    """Configuration for the statistics cache."""

    backend: CacheBackendType = CacheBackendType.MEMORY
    redis_url: str = "redis://localhost:6379/0"
    ttl_seconds: int = 30
    key_prefix: str = "gradewise:stats:"


@dataclass
class CacheStats:
    """Cache performance statistics."""

    hits: int = 0
    misses: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class CacheBackend(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...

    async def clear(self) -> int: ...

    async def ping(self) -> bool: ...


@dataclass
class _Entry:
    value: Any
    expires_at: float = field(default=0.0)


class MemoryCacheBackend:
    """Process-local cache backend."""

    def __init__(self, clock: Any = time.monotonic) -> None:
        self._entries: dict[str, _Entry] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def _prune(self, now: float) -> None:
        expired = [k for k, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value``, dropping entries that expired without being read."""
        now = self._clock()
        self._prune(now)
        self._entries[key] = _Entry(value=value, expires_at=now + ttl_seconds)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    async def ping(self) -> bool:
        return True

    def size(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """Redis-backed cache backend for multi-process deployments."""

    def __init__(self, redis_url: str, namespace: str = "gradewise:stats:") -> None:
        self._redis_url = redis_url
        self._namespace = namespace
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Any | None:
        data = await self._get_client().get(f"{self._namespace}{key}")
        return json.loads(data) if data is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._get_client().set(
            f"{self._namespace}{key}", json.dumps(value, default=str), ex=ttl_seconds
        )

    async def delete_prefix(self, prefix: str) -> int:
        client = self._get_client()
        keys = [k async for k in client.scan_iter(match=f"{self._namespace}{prefix}*")]
        if not keys:
            return 0
        return await client.delete(*keys)

    async def clear(self) -> int:
        return await self.delete_prefix("")

    async def ping(self) -> bool:
        return bool(await self._get_client().ping())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class StatsCache:
    """Statistics cache handle injected into the components that need it."""

    def __init__(
        self,
        backend: CacheBackend | None = None,
        ttl_seconds: int = 30,
    ) -> None:
        self.backend = backend or MemoryCacheBackend()
        self.ttl_seconds = ttl_seconds
        self.stats = CacheStats()

    @classmethod
    def from_config(cls, config: CacheConfig) -> StatsCache:
        if config.backend == CacheBackendType.REDIS:
            backend: CacheBackend = RedisCacheBackend(config.redis_url, config.key_prefix)
        else:
            backend = MemoryCacheBackend()
        return cls(backend=backend, ttl_seconds=config.ttl_seconds)

    @staticmethod
    def course_prefix(course_id: int) -> str:
        return f"course:{course_id}:"

    @staticmethod
    def assignment_prefix(assignment_id: int) -> str:
        return f"assignment:{assignment_id}:"

    async def get(self, key: str) -> Any | None:
        value = await self.backend.get(key)
        if value is None:
            self.stats.misses += 1
        else:
            self.stats.hits += 1
        return value

    async def set(self, key: str, value: Any) -> None:
        await self.backend.set(key, value, self.ttl_seconds)

    async def invalidate_prefix(self, prefix: str) -> int:
        removed = await self.backend.delete_prefix(prefix)
        self.stats.invalidations += removed
        if removed:
            logger.debug("Invalidated cache entries", prefix=prefix, count=removed)
        return removed

    async def invalidate_course(self, course_id: int) -> int:
        return await self.invalidate_prefix(self.course_prefix(course_id))

    async def invalidate_assignment(self, assignment_id: int) -> int:
        return await self.invalidate_prefix(self.assignment_prefix(assignment_id))

    async def clear(self) -> int:
        return await self.backend.clear()

    async def ping(self) -> bool:
        return await self.backend.ping()
