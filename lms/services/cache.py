"""Read-through cache for expensive aggregate responses.

Leaderboards fan out over every peer's history, so their responses are
cached for ``LEADERBOARD_CACHE_TTL`` seconds:

  GET  -> cache hit  -> return
       -> cache miss -> build -> populate -> return

Two mechanisms keep the data fresh.  Every entry expires after its TTL,
and any write that can move a score (enrollment, quiz attempt, grade,
opt-in) drops every leaderboard entry through ``invalidate_leaderboards``.
A peer's points depend on other users' writes, so invalidation is
global rather than per user.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from lms.core.metrics import CACHE_OPERATIONS
from lms.db.redis import redis_pool

logger = logging.getLogger(__name__)

LEADERBOARD_PREFIX = "leaderboard:"


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching a glob pattern (e.g. 'leaderboard:*')."""
        ...


class InMemoryCacheService:
    """Process-local cache for dev and tests; TTLs are not enforced."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for k in [k for k in self._store if k.startswith(prefix)]:
            del self._store[k]


class RedisCacheService:
    """Redis-backed cache shared by every API instance."""

    _PREFIX = "lms:cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def delete_pattern(self, pattern: str) -> None:
        # SCAN, not KEYS: KEYS blocks the server for the whole keyspace.
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor, match=f"{self._PREFIX}{pattern}", count=100
            )
            if keys:
                await self._redis.delete(*keys)
            if cursor == 0:
                break


if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()


def leaderboard_key(user_id: str, scope: str, timeframe: str, subject: str | None) -> str:
    return f"{LEADERBOARD_PREFIX}{user_id}:{scope}:{timeframe}:{(subject or '').casefold()}"


async def invalidate_leaderboards() -> None:
    CACHE_OPERATIONS.labels(operation="invalidate").inc()
    try:
        await cache_service.delete_pattern(f"{LEADERBOARD_PREFIX}*")
    except Exception:
        # The write that triggered this already committed; stale boards
        # expire with their TTL.
        logger.exception("Leaderboard cache invalidation failed")
