"""
Redis cache helper with an in-memory fallback.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from core.config import settings
from core.exceptions import CacheError

logger = logging.getLogger(__name__)


class AsyncMemoryCache:
    """In-memory substitute for Redis used when a real instance is unavailable."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[Any, float | None]] = {}

    def _live(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            self._store.pop(key, None)
            return None
        return value

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        value = self._live(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: str) -> None:
        self._store[key] = (value, None)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = (value, time.monotonic() + ttl)

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._store.pop(key, None) is not None)

    async def keys(self, pattern: str) -> list[str]:
        return [key for key in list(self._store) if self._live(key) is not None and fnmatch.fnmatch(key, pattern)]

    async def close(self) -> None:  # pragma: no cover - nothing to close
        pass


class RedisManager:
    """Manage a single Redis connection."""

    def __init__(self) -> None:
        self._redis = None

    async def initialize(self) -> None:
        if self._redis:
            return

        try:
            self._redis = await aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                password=settings.REDIS_PASSWORD,
            )
            await self._redis.ping()
            logger.info("Connected to Redis at %s", settings.REDIS_URL)
        except (RedisConnectionError, OSError) as exc:
            logger.warning("Redis connection failed (%s). Falling back to in-memory cache.", exc)
            self._redis = AsyncMemoryCache()

    def use_memory(self) -> None:
        """Force the in-memory backend (tests, local tooling)."""
        self._redis = AsyncMemoryCache()

    async def get_redis(self):
        if not self._redis:
            await self.initialize()
        return self._redis

    async def close(self) -> None:
        if self._redis:
            await self._redis.close()
            self._redis = None


class CacheManager:
    """JSON helpers on top of Redis."""

    def __init__(self, manager: RedisManager):
        self.manager = manager
        self.default_ttl = settings.CACHE_TTL

    async def get(self, key: str) -> str | None:
        client = await self.manager.get_redis()
        try:
            return await client.get(key)
        except RedisError as exc:
            raise CacheError("Cache read failed", operation="get", cause=exc) from exc

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        client = await self.manager.get_redis()
        try:
            await client.setex(key, ttl or self.default_ttl, value)
        except RedisError as exc:
            raise CacheError("Cache write failed", operation="set", cause=exc) from exc
        return True

    async def delete(self, key: str) -> int:
        client = await self.manager.get_redis()
        return await client.delete(key)

    async def delete_pattern(self, pattern: str) -> int:
        client = await self.manager.get_redis()
        keys = await client.keys(pattern)
        if not keys:
            return 0
        return await client.delete(*keys)

    async def get_json(self, key: str) -> Any | None:
        raw = await self.get(key)
        return json.loads(raw) if raw else None

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return await self.set(key, json.dumps(value, ensure_ascii=False, default=str), ttl)


redis_manager = RedisManager()
cache_manager = CacheManager(redis_manager)


async def get_redis_client():
    return await redis_manager.get_redis()


async def get_cache_manager():
    return cache_manager


async def initialize_cache():
    """Initialize Redis/cache connection."""
    await redis_manager.initialize()


async def cleanup_cache():
    """Close Redis/cache connection."""
    await redis_manager.close()


async def cache_health_check() -> dict[str, Any]:
    """Check Redis/cache health."""
    client = await redis_manager.get_redis()
    alive = bool(await client.ping())
    return {
        "redis": {
            "status": alive,
            "backend": "memory" if isinstance(client, AsyncMemoryCache) else "redis",
        },
        "timestamp": datetime.utcnow().isoformat(),
    }
