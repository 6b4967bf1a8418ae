"""
Registry of available feed provider classes.
"""

from __future__ import annotations

import logging

from services.external_feed.base_provider import BaseProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self) -> None:
        self._providers: dict[str, type[BaseProvider]] = {}

    def register(self, provider_class: type[BaseProvider]) -> type[BaseProvider]:
        if not issubclass(provider_class, BaseProvider):
            raise TypeError(f"{provider_class!r} is not a BaseProvider")
        self._providers[provider_class.provider_name] = provider_class
        logger.debug("Registered external feed provider %s", provider_class.provider_name)
        return provider_class

    def get(self, name: str | None) -> type[BaseProvider] | None:
        if not name:
            return None
        return self._providers.get(str(name))

    def available_providers(self) -> list[str]:
        return sorted(self._providers)

    def is_registered(self, name: str | None) -> bool:
        return self.get(name) is not None

    def clear(self) -> None:
        self._providers.clear()


registry = ProviderRegistry()


def register_default_providers(target: ProviderRegistry | None = None) -> ProviderRegistry:
    from services.external_feed.providers.resales_online import ResalesOnlineProvider

    target = target or registry
    target.register(ResalesOnlineProvider)
    return target
