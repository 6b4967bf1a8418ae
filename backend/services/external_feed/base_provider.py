"""
Abstract base class for external feed providers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from services.external_feed.errors import FeedConfigurationError
from services.external_feed.normalized_property import NormalizedProperty
from services.external_feed.search_result import NormalizedSearchResult

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """
    A listing source configured per website.

    Subclasses set ``provider_name``, ``display_name`` and
    ``required_config_keys`` and implement the async query methods.
    Search parameters are already normalized by the manager: ``locale``,
    ``listing_type`` (sale/rental), ``property_types``, ``location``,
    ``min_/max_bedrooms``, ``min_/max_bathrooms``, ``min_/max_price``
    (whole units), ``features``, ``sort``, ``page`` and ``per_page``.
    """

    provider_name: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    required_config_keys: ClassVar[tuple[str, ...]] = ()

    def __init__(self, website: Any, config: dict[str, Any] | None) -> None:
        self.website = website
        self.config = dict(config or {})
        self.validate_config()

    def validate_config(self) -> None:
        missing = [key for key in self.required_config_keys if not self.config.get(key)]
        if missing:
            raise FeedConfigurationError(
                f"Missing required configuration for {self.provider_name}: {', '.join(missing)}",
                details={"missing_keys": missing},
            )

    @abstractmethod
    async def search(self, params: dict[str, Any]) -> NormalizedSearchResult: ...

    @abstractmethod
    async def find(self, reference: str, params: dict[str, Any] | None = None) -> NormalizedProperty | None: ...

    @abstractmethod
    async def similar(
        self, prop: NormalizedProperty, params: dict[str, Any] | None = None
    ) -> list[NormalizedProperty]: ...

    @abstractmethod
    async def locations(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def property_types(self, params: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def is_available(self) -> bool: ...

    async def close(self) -> None:
        """Release network resources."""

    # ==================== Helpers ====================

    def config_value(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def config_enabled(self, key: str) -> bool:
        return bool(self.config.get(key))

    @property
    def default_locale(self) -> str:
        return str(self.config.get("default_locale") or "en")

    @property
    def supported_locales(self) -> list[str]:
        return [str(locale) for locale in self.config.get("supported_locales") or ["en"]]

    def locale_supported(self, locale: str) -> bool:
        return str(locale) in self.supported_locales

    @property
    def default_per_page(self) -> int:
        return int(self.config.get("results_per_page") or 24)

    def log(self, level: int, message: str, *args: Any) -> None:
        logger.log(level, f"[ExternalFeed::{self.provider_name}] {message}", *args)
