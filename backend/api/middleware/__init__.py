"""
Middleware module for PropertyWebBuilder
"""

from .tenant import TenantMiddleware

__all__ = [
    "TenantMiddleware",
]
