"""Redis connection management.

This module mirrors the pattern in engine.py for PostgreSQL:
when REDIS_URL is configured, we create a real connection pool;
when it's None (local dev, tests), the subject-name cache falls back to
an in-memory dict and no Redis server is needed.

Redis only ever holds cache entries here.  Losing it costs a few extra
subject lookups, never a wrong eligibility decision.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from assessment_service.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # str, not bytes
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured, subject cache is in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        # Keep serving: the app still starts with a degraded cache.
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
