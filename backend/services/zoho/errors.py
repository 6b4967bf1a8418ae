"""
Errors raised by the Zoho CRM integration.
"""

from __future__ import annotations

import logging

from core.exceptions import ErrorCode, ExternalServiceError


class ZohoError(ExternalServiceError):
    """Base error for Zoho CRM calls"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("service_name", "zoho_crm")
        super().__init__(message, **kwargs)


class ZohoConfigurationError(ZohoError):
    http_status = 500
    log_level = logging.ERROR
    default_error_code = ErrorCode.CONFIG_MISSING_REQUIRED


class ZohoAuthenticationError(ZohoError):
    log_level = logging.ERROR
    default_error_code = ErrorCode.EXTERNAL_API_AUTHENTICATION


class ZohoRateLimitError(ZohoError):
    http_status = 429
    default_error_code = ErrorCode.EXTERNAL_API_RATE_LIMIT

    def __init__(self, message: str = "Zoho rate limit exceeded", retry_after: int = 60, **kwargs):
        self.retry_after = retry_after
        details = kwargs.pop("details", {})
        details["retry_after"] = retry_after
        super().__init__(message, details=details, **kwargs)


class ZohoValidationError(ZohoError):
    http_status = 422
    default_error_code = ErrorCode.VALIDATION_ERROR


class ZohoNotFoundError(ZohoError):
    http_status = 404
    log_level = logging.INFO
    default_error_code = ErrorCode.EXTERNAL_API_NOT_FOUND


class ZohoApiError(ZohoError):
    pass


class ZohoTimeoutError(ZohoError):
    http_status = 504
    default_error_code = ErrorCode.EXTERNAL_API_TIMEOUT


class ZohoConnectionError(ZohoError):
    http_status = 503
    default_error_code = ErrorCode.EXTERNAL_API_UNAVAILABLE


# Errors a background task should retry
TRANSIENT_ERRORS = (ZohoRateLimitError, ZohoTimeoutError, ZohoConnectionError)

# Errors that will fail the same way on every retry
PERMANENT_ERRORS = (ZohoAuthenticationError, ZohoConfigurationError, ZohoValidationError)
