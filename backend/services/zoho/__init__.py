"""
Zoho CRM lead sync
"""

from services.zoho.client import ZohoClient
from services.zoho.errors import (
    PERMANENT_ERRORS,
    TRANSIENT_ERRORS,
    ZohoApiError,
    ZohoAuthenticationError,
    ZohoConfigurationError,
    ZohoConnectionError,
    ZohoError,
    ZohoNotFoundError,
    ZohoRateLimitError,
    ZohoTimeoutError,
    ZohoValidationError,
)
from services.zoho.lead_sync_service import ACTIVITY_SCORES, LeadSyncService

__all__ = [
    "ACTIVITY_SCORES",
    "PERMANENT_ERRORS",
    "TRANSIENT_ERRORS",
    "LeadSyncService",
    "ZohoApiError",
    "ZohoAuthenticationError",
    "ZohoClient",
    "ZohoConfigurationError",
    "ZohoConnectionError",
    "ZohoError",
    "ZohoNotFoundError",
    "ZohoRateLimitError",
    "ZohoTimeoutError",
    "ZohoValidationError",
]
