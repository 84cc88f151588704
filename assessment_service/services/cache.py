"""Read-through cache for slow-changing lookups.

Only display data goes through here (subject names).  Decision data
(test windows, eligibility sets, attempt records) is read fresh on every
resolution: a stale attempt record would let a learner retake a test.

  Flow:  resolver -> cache -> miss -> document store -> populate -> return
         resolver -> cache -> hit  -> return

Entries expire after SUBJECT_CACHE_TTL seconds.  Subjects are renamed
rarely and a stale name is harmless, so TTL is the only invalidation.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from assessment_service.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests, no TTL enforcement.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)


class RedisCacheService:
    """Redis-backed cache, shared across all API instances."""

    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
