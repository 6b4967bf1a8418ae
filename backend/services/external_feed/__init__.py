"""
External listing feeds (third-party property APIs)
"""

from services.external_feed.base_provider import BaseProvider
from services.external_feed.cache_store import FeedCacheStore
from services.external_feed.errors import (
    FeedAuthenticationError,
    FeedConfigurationError,
    FeedError,
    FeedInvalidResponseError,
    FeedPropertyNotFoundError,
    FeedProviderUnavailableError,
    FeedRateLimitError,
)
from services.external_feed.manager import ExternalFeedManager, collect_query_params
from services.external_feed.normalized_property import NormalizedProperty
from services.external_feed.registry import ProviderRegistry, register_default_providers, registry
from services.external_feed.search_result import NormalizedSearchResult

__all__ = [
    "BaseProvider",
    "ExternalFeedManager",
    "FeedAuthenticationError",
    "FeedCacheStore",
    "FeedConfigurationError",
    "FeedError",
    "FeedInvalidResponseError",
    "FeedPropertyNotFoundError",
    "FeedProviderUnavailableError",
    "FeedRateLimitError",
    "NormalizedProperty",
    "NormalizedSearchResult",
    "ProviderRegistry",
    "register_default_providers",
    "collect_query_params",
    "registry",
]
