"""
Entry point for external feed operations on a website.

Wraps provider construction, caching and error handling so callers get
empty or error results instead of exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from core.cache import CacheManager
from services.external_feed.base_provider import BaseProvider
from services.external_feed.cache_store import FeedCacheStore
from services.external_feed.errors import FeedConfigurationError, FeedError, FeedPropertyNotFoundError
from services.external_feed.normalized_property import NormalizedProperty
from services.external_feed.registry import ProviderRegistry, registry as default_registry
from services.external_feed.search_result import NormalizedSearchResult

logger = logging.getLogger(__name__)

NUMERIC_PARAMS = (
    "min_price", "max_price", "min_bedrooms", "max_bedrooms", "min_bathrooms",
    "max_bathrooms", "min_area", "max_area", "page", "per_page",
)


class ExternalFeedManager:
    def __init__(
        self,
        website: Any,
        registry: ProviderRegistry | None = None,
        cache: CacheManager | None = None,
        provider: BaseProvider | None = None,
    ) -> None:
        self.website = website
        self.config = dict(website.external_feed_config or {})
        self.registry = registry or default_registry
        self.cache = FeedCacheStore(website, cache)
        self._provider = provider

    @property
    def provider_name(self) -> str | None:
        return self.website.external_feed_provider

    @property
    def provider(self) -> BaseProvider:
        if self._provider is None:
            self._provider = self._build_provider()
        return self._provider

    def _build_provider(self) -> BaseProvider:
        if not self.provider_name:
            raise FeedConfigurationError(f"No external feed provider configured for website {self.website.id}")

        provider_class = self.registry.get(self.provider_name)
        if provider_class is None:
            raise FeedConfigurationError(
                f"Unknown external feed provider: {self.provider_name}. "
                f"Available: {', '.join(self.registry.available_providers())}"
            )
        return provider_class(self.website, self.config)

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.close()

    def is_configured(self) -> bool:
        return bool(self.website.external_feed_enabled and self.provider_name)

    async def is_enabled(self) -> bool:
        if not self.is_configured():
            return False
        try:
            return await self.provider.is_available()
        except FeedError as exc:
            logger.warning("[ExternalFeed::Manager] Provider availability check failed: %s", exc.message)
            return False

    # ==================== Queries ====================

    async def search(self, params: dict[str, Any] | None = None) -> NormalizedSearchResult:
        params = dict(params or {})
        if not self.is_configured():
            return self._empty_result(params)

        try:
            normalized = self.normalize_search_params(params)

            async def compute() -> dict[str, Any]:
                return (await self.provider.search(normalized)).to_dict()

            data = await self.cache.fetch_data("search", normalized, compute)
            return NormalizedSearchResult.from_dict(data)
        except FeedError as exc:
            logger.error("[ExternalFeed::Manager] Search error: %s", exc.message)
            return self._empty_result(params, error_message=exc.message)
        except Exception as exc:
            logger.exception("[ExternalFeed::Manager] Unexpected search error: %s", exc)
            return self._empty_result(params, error_message="An unexpected error occurred")

    async def find(self, reference: str, params: dict[str, Any] | None = None) -> NormalizedProperty | None:
        params = dict(params or {})
        if not self.is_configured():
            return None

        async def compute() -> dict[str, Any] | None:
            prop = await self.provider.find(reference, params)
            return prop.to_dict() if prop else None

        try:
            data = await self.cache.fetch_data("property", {"reference": reference, **params}, compute)
        except FeedPropertyNotFoundError:
            return None
        except FeedError as exc:
            logger.error("[ExternalFeed::Manager] Find error for %s: %s", reference, exc.message)
            return None
        except Exception as exc:
            logger.exception("[ExternalFeed::Manager] Unexpected find error: %s", exc)
            return None
        return NormalizedProperty.from_dict(data) if data else None

    async def similar(
        self, prop: NormalizedProperty | None, params: dict[str, Any] | None = None
    ) -> list[NormalizedProperty]:
        params = dict(params or {})
        if not self.is_configured() or prop is None:
            return []

        async def compute() -> list[dict[str, Any]]:
            return [item.to_dict() for item in await self.provider.similar(prop, params)]

        try:
            data = await self.cache.fetch_data("similar", {"reference": prop.reference, **params}, compute)
        except FeedError as exc:
            logger.error("[ExternalFeed::Manager] Similar error: %s", exc.message)
            return []
        except Exception as exc:
            logger.exception("[ExternalFeed::Manager] Unexpected similar error: %s", exc)
            return []
        return [NormalizedProperty.from_dict(item) for item in data]

    async def locations(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        if not self.is_configured():
            return []
        try:
            return await self.cache.fetch_data("locations", params, lambda: self.provider.locations(params))
        except FeedError as exc:
            logger.error("[ExternalFeed::Manager] Locations error: %s", exc.message)
            return []

    async def property_types(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        if not self.is_configured():
            return []
        try:
            return await self.cache.fetch_data(
                "property_types", params, lambda: self.provider.property_types(params)
            )
        except FeedError as exc:
            logger.error("[ExternalFeed::Manager] Property types error: %s", exc.message)
            return []

    async def filter_options(self, locale: str | None = None) -> dict[str, Any]:
        params = {"locale": locale} if locale else {}
        return {
            "locations": await self.locations(params),
            "property_types": await self.property_types(params),
            "listing_types": [
                {"value": "sale", "label": "For Sale"},
                {"value": "rental", "label": "For Rent"},
            ],
            "sort_options": [
                {"value": "price_asc", "label": "Price (Low to High)"},
                {"value": "price_desc", "label": "Price (High to Low)"},
                {"value": "newest", "label": "Newest First"},
                {"value": "updated", "label": "Recently Updated"},
            ],
            "bedrooms": [{"value": str(n), "label": f"{n}+"} for n in range(1, 7)],
            "bathrooms": [{"value": str(n), "label": f"{n}+"} for n in range(1, 5)],
        }

    async def invalidate_cache(self) -> int:
        return await self.cache.invalidate_all()

    def provider_display_name(self) -> str:
        if not self.is_configured():
            return "Not Configured"
        provider_class = self.registry.get(self.provider_name)
        if provider_class is None:
            return self.provider_name.replace("_", " ").title()
        return provider_class.display_name

    async def provider_status(self) -> dict[str, Any]:
        return {
            "provider": self.provider_name,
            "display_name": self.provider_display_name(),
            "configured": self.is_configured(),
            "enabled": await self.is_enabled(),
        }

    # ==================== Helpers ====================

    def normalize_search_params(self, params: dict[str, Any]) -> dict[str, Any]:
        normalized = dict(params)
        normalized.setdefault("locale", self.website.default_client_locale or "en")
        normalized["listing_type"] = str(normalized.get("listing_type") or "sale")
        normalized.setdefault("page", 1)
        normalized.setdefault("per_page", self.config.get("results_per_page") or 24)

        for key in ("property_types", "features"):
            if isinstance(normalized.get(key), str):
                normalized[key] = [item.strip() for item in normalized[key].split(",") if item.strip()]

        for key in NUMERIC_PARAMS:
            value = normalized.get(key)
            if value in (None, ""):
                normalized.pop(key, None)
                continue
            try:
                normalized[key] = int(value)
            except (TypeError, ValueError):
                normalized.pop(key, None)

        return {key: value for key, value in normalized.items() if value is not None}

    def _empty_result(self, params: dict[str, Any], error_message: str | None = None) -> NormalizedSearchResult:
        return NormalizedSearchResult(
            properties=[],
            total_count=0,
            page=_positive_int(params.get("page"), 1),
            per_page=_positive_int(params.get("per_page"), 24),
            provider=self.provider_name,
            query_params=params,
            error=error_message is not None,
            error_message=error_message,
        )


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def collect_query_params(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Fold query string pairs into a dict; repeated and ``key[]`` names become lists."""
    params: dict[str, Any] = {}
    for key, value in items:
        name = key[:-2] if key.endswith("[]") else key
        if name in params:
            existing = params[name]
            params[name] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            params[name] = [value] if key.endswith("[]") else value
    return params
