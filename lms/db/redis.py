"""Redis connection for the leaderboard cache.

Redis holds nothing durable: every record lives in the document store,
and a lost cache only costs a rebuild.  When REDIS_URL is unset (local
dev, tests) ``redis_pool`` is None and lms.services.cache falls back to
an in-process dict.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)

redis_pool: aioredis.Redis | None = (  # type: ignore[type-arg]
    aioredis.from_url(
        SETTINGS.redis_url,
        decode_responses=True,  # cached leaderboards are JSON text
        max_connections=20,
    )
    if SETTINGS.redis_url
    else None
)


async def redis_status() -> str:
    """"ok", "degraded" or "not_configured"; never raises."""
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_redis():
    if redis_pool is None:
        logger.info("No REDIS_URL configured — leaderboard cache is in-memory")
        yield
        return

    # Start either way: the cache is optional.
    if await redis_status() == "ok":
        logger.info("Leaderboard cache on Redis: %s", SETTINGS.redis_url)
    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
