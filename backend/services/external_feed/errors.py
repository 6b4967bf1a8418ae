"""
Errors raised by external feed providers.
"""

from __future__ import annotations

import logging

from core.exceptions import ErrorCode, ExternalServiceError


class FeedError(ExternalServiceError):
    """Base error for external listing feeds"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("service_name", "external_feed")
        super().__init__(message, **kwargs)


class FeedConfigurationError(FeedError):
    http_status = 500
    log_level = logging.ERROR
    default_error_code = ErrorCode.CONFIG_VALIDATION_ERROR


class FeedAuthenticationError(FeedError):
    default_error_code = ErrorCode.EXTERNAL_API_AUTHENTICATION


class FeedRateLimitError(FeedError):
    http_status = 429
    default_error_code = ErrorCode.EXTERNAL_API_RATE_LIMIT


class FeedPropertyNotFoundError(FeedError):
    http_status = 404
    log_level = logging.INFO
    default_error_code = ErrorCode.EXTERNAL_API_NOT_FOUND


class FeedProviderUnavailableError(FeedError):
    http_status = 503
    default_error_code = ErrorCode.EXTERNAL_API_UNAVAILABLE


class FeedInvalidResponseError(FeedError):
    default_error_code = ErrorCode.EXTERNAL_API_INVALID_RESPONSE
