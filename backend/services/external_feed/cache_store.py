"""
Website-scoped cache for external feed responses.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from core.cache import CacheManager, cache_manager

logger = logging.getLogger(__name__)

# Seconds
DEFAULT_TTLS = {
    "search": 3600,
    "property": 86400,
    "similar": 21600,
    "locations": 604800,
    "property_types": 604800,
}

KEY_PREFIX = "pwb:external_feed"


def normalize_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """Drop empty values and sort keys so equal queries share a key."""
    if not params:
        return {}
    cleaned = {
        str(key): value
        for key, value in params.items()
        if value is not None and not (hasattr(value, "__len__") and len(value) == 0)
    }
    return dict(sorted(cleaned.items()))


class FeedCacheStore:
    def __init__(self, website: Any, cache: CacheManager | None = None) -> None:
        self.website = website
        self.provider_name = website.external_feed_provider
        self.config = dict(website.external_feed_config or {})
        self.cache = cache or cache_manager

    def cache_key(self, operation: str, params: dict[str, Any] | None) -> str:
        payload = json.dumps(normalize_params(params), sort_keys=True, default=str)
        digest = hashlib.md5(payload.encode("utf-8")).hexdigest()
        return f"{KEY_PREFIX}:{self.website.id}:{self.provider_name}:{operation}:{digest}"

    def ttl_for(self, operation: str) -> int:
        override = self.config.get(f"cache_ttl_{operation}")
        if override:
            return int(override)
        return DEFAULT_TTLS.get(operation, DEFAULT_TTLS["search"])

    async def fetch(
        self,
        operation: str,
        params: dict[str, Any] | None,
        compute: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> dict[str, Any]:
        """Return the cached envelope, computing and storing it on a miss."""
        key = self.cache_key(operation, params)
        cached = await self.cache.get_json(key)
        if cached is not None:
            return cached

        data = await compute()
        envelope = {
            "data": data,
            "cached_at": datetime.now(timezone.utc).isoformat(),
            "provider": self.provider_name,
            "operation": operation,
        }
        await self.cache.set_json(key, envelope, ttl or self.ttl_for(operation))
        return envelope

    async def fetch_data(
        self,
        operation: str,
        params: dict[str, Any] | None,
        compute: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> Any:
        envelope = await self.fetch(operation, params, compute, ttl)
        if isinstance(envelope, dict) and "data" in envelope:
            return envelope["data"]
        return envelope

    async def read(self, operation: str, params: dict[str, Any] | None) -> Any:
        return await self.cache.get_json(self.cache_key(operation, params))

    async def is_cached(self, operation: str, params: dict[str, Any] | None) -> bool:
        return await self.read(operation, params) is not None

    async def invalidate(self, operation: str, params: dict[str, Any] | None) -> None:
        await self.cache.delete(self.cache_key(operation, params))

    async def invalidate_operation(self, operation: str) -> int:
        return await self.cache.delete_pattern(
            f"{KEY_PREFIX}:{self.website.id}:{self.provider_name}:{operation}:*"
        )

    async def invalidate_all(self) -> int:
        deleted = await self.cache.delete_pattern(f"{KEY_PREFIX}:{self.website.id}:*")
        logger.info("[ExternalFeed::%s] Invalidated %s cache entries", self.provider_name, deleted)
        return deleted
