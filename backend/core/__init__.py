"""
Core module for PropertyWebBuilder
"""

from core.cache import RedisManager, get_redis_client
from core.config import get_settings, settings

__all__ = [
    "settings",
    "get_settings",
    "RedisManager",
    "get_redis_client",
]
