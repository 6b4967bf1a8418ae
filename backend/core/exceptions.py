"""
Application exception hierarchy for PropertyWebBuilder.

Every error carries a stable error code, an HTTP status and a JSON-serialisable
payload so the API layer can render it without knowing the concrete class.
"""

import functools
import logging
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes"""

    # Configuration errors
    CONFIG_VALIDATION_ERROR = "CONFIG_VALIDATION_ERROR"
    CONFIG_MISSING_REQUIRED = "CONFIG_MISSING_REQUIRED"

    # Database errors
    DATABASE_CONNECTION_ERROR = "DATABASE_CONNECTION_ERROR"
    DATABASE_QUERY_ERROR = "DATABASE_QUERY_ERROR"

    # Cache errors
    CACHE_CONNECTION_ERROR = "CACHE_CONNECTION_ERROR"
    CACHE_OPERATION_ERROR = "CACHE_OPERATION_ERROR"

    # Tenant errors
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    TENANT_MISMATCH = "TENANT_MISMATCH"
    TENANT_CONTEXT_REQUIRED = "TENANT_CONTEXT_REQUIRED"

    # Subscription errors
    SUBSCRIPTION_ERROR = "SUBSCRIPTION_ERROR"
    SUBSCRIPTION_INVALID_TRANSITION = "SUBSCRIPTION_INVALID_TRANSITION"
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"
    PROPERTY_LIMIT_EXCEEDED = "PROPERTY_LIMIT_EXCEEDED"

    # External service errors
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    EXTERNAL_API_AUTHENTICATION = "EXTERNAL_API_AUTHENTICATION"
    EXTERNAL_API_RATE_LIMIT = "EXTERNAL_API_RATE_LIMIT"
    EXTERNAL_API_TIMEOUT = "EXTERNAL_API_TIMEOUT"
    EXTERNAL_API_UNAVAILABLE = "EXTERNAL_API_UNAVAILABLE"
    EXTERNAL_API_INVALID_RESPONSE = "EXTERNAL_API_INVALID_RESPONSE"
    EXTERNAL_API_NOT_FOUND = "EXTERNAL_API_NOT_FOUND"

    # AI Service errors
    AI_SERVICE_UNAVAILABLE = "AI_SERVICE_UNAVAILABLE"
    AI_RATE_LIMIT_EXCEEDED = "AI_RATE_LIMIT_EXCEEDED"
    AI_INVALID_RESPONSE = "AI_INVALID_RESPONSE"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"

    # Resource errors
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    # Generic errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApplicationError(Exception):
    """Base application exception with structured error information"""

    http_status: int = 500
    log_level: int = logging.ERROR
    default_error_code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        error_code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
        correlation_id: str | None = None,
        http_status: int | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause
        self.correlation_id = correlation_id
        if http_status is not None:
            self.http_status = http_status

        super().__init__(self.message)

        self._log_exception()

    def _log_exception(self):
        """Log the exception at the level of its category"""
        logger = logging.getLogger(self.__class__.__module__)
        logger.log(self.log_level, "[%s] %s", self.__class__.__name__, self.to_log_hash())

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
            "correlation_id": self.correlation_id,
        }

    def to_api_response(self) -> dict[str, Any]:
        """Payload rendered by the API error handlers"""
        response: dict[str, Any] = {
            "error": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response

    def to_log_hash(self) -> dict[str, Any]:
        log_data = {
            "error_code": self.error_code.value,
            "message": self.message,
            "http_status": self.http_status,
            "details": self.details,
        }
        if self.correlation_id:
            log_data["correlation_id"] = self.correlation_id
        if self.cause:
            log_data["cause"] = str(self.cause)
        return log_data


class ConfigurationError(ApplicationError):
    """Configuration-related errors"""

    default_error_code = ErrorCode.CONFIG_VALIDATION_ERROR

    def __init__(self, message: str, field_name: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if field_name:
            details["field_name"] = field_name
        super().__init__(message=message, details=details, **kwargs)


class DatabaseError(ApplicationError):
    """Database operation errors"""

    default_error_code = ErrorCode.DATABASE_QUERY_ERROR

    def __init__(self, message: str, operation: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        super().__init__(message=message, details=details, **kwargs)


class CacheError(ApplicationError):
    """Cache operation errors"""

    default_error_code = ErrorCode.CACHE_OPERATION_ERROR

    def __init__(self, message: str, operation: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        super().__init__(message=message, details=details, **kwargs)


class ValidationError(ApplicationError):
    """Input validation errors"""

    http_status = 422
    log_level = logging.WARNING
    default_error_code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        field_value: Any | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field_name:
            details["field_name"] = field_name
        if field_value is not None:
            details["field_value"] = str(field_value)
        super().__init__(message=message, details=details, **kwargs)


class ResourceNotFoundError(ApplicationError):
    """A tenant-scoped record does not exist"""

    http_status = 404
    log_level = logging.INFO
    default_error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        resource_id: Any | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if resource:
            details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        super().__init__(message=message, details=details, **kwargs)


class BusinessLogicError(ApplicationError):
    """Business rule violation errors"""

    http_status = 422
    log_level = logging.WARNING
    default_error_code = ErrorCode.BUSINESS_RULE_VIOLATION

    def __init__(self, message: str, rule: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if rule:
            details["business_rule"] = rule
        super().__init__(message=message, details=details, **kwargs)


class TenantError(ApplicationError):
    """Base class for multi-tenancy errors"""

    http_status = 400
    log_level = logging.WARNING


class TenantNotFoundError(TenantError):
    http_status = 404
    default_error_code = ErrorCode.TENANT_NOT_FOUND

    def __init__(self, message: str = "Website not found", identifier: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if identifier:
            details["identifier"] = identifier
        super().__init__(message=message, details=details, **kwargs)


class TenantMismatchError(TenantError):
    http_status = 403
    default_error_code = ErrorCode.TENANT_MISMATCH

    def __init__(
        self,
        message: str = "Resource belongs to another website",
        expected_website_id: int | None = None,
        actual_website_id: int | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if expected_website_id is not None:
            details["expected_website_id"] = expected_website_id
        if actual_website_id is not None:
            details["actual_website_id"] = actual_website_id
        super().__init__(message=message, details=details, **kwargs)


class TenantContextRequiredError(TenantError):
    http_status = 400
    default_error_code = ErrorCode.TENANT_CONTEXT_REQUIRED

    def __init__(self, message: str = "A website context is required for this operation", **kwargs):
        super().__init__(message=message, **kwargs)


class SubscriptionError(ApplicationError):
    """Billing and plan errors"""

    http_status = 402
    log_level = logging.INFO
    default_error_code = ErrorCode.SUBSCRIPTION_ERROR

    def __init__(self, message: str, subscription_id: int | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if subscription_id is not None:
            details["subscription_id"] = subscription_id
        super().__init__(message=message, details=details, **kwargs)


class PropertyLimitExceededError(SubscriptionError):
    default_error_code = ErrorCode.PROPERTY_LIMIT_EXCEEDED

    def __init__(self, message: str, limit: int | None = None, current_count: int | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if limit is not None:
            details["limit"] = limit
        if current_count is not None:
            details["current_count"] = current_count
        super().__init__(message=message, details=details, **kwargs)


class FeatureNotAvailableError(ApplicationError):
    """The website's plan does not include a feature"""

    http_status = 403
    log_level = logging.INFO
    default_error_code = ErrorCode.FEATURE_NOT_AVAILABLE

    def __init__(self, message: str, feature: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if feature:
            details["feature"] = feature
        super().__init__(message=message, details=details, **kwargs)


class ExternalServiceError(ApplicationError):
    """External API errors"""

    http_status = 502
    log_level = logging.WARNING
    default_error_code = ErrorCode.EXTERNAL_API_ERROR

    def __init__(
        self,
        message: str,
        service_name: str | None = None,
        status_code: int | None = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if service_name:
            details["service_name"] = service_name
        if status_code:
            details["status_code"] = status_code
        self.service_name = service_name
        self.status_code = status_code
        super().__init__(message=message, details=details, **kwargs)

    @property
    def original_error(self) -> Exception | None:
        return self.cause

    def to_log_hash(self) -> dict[str, Any]:
        log_data = super().to_log_hash()
        log_data["service_name"] = self.service_name
        return log_data


# Utility functions for error handling

def handle_database_error(operation: str):
    """Decorator for async database operations"""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ApplicationError:
                raise
            except Exception as e:
                raise DatabaseError(
                    message=f"Database operation failed: {operation}",
                    operation=operation,
                    cause=e,
                ) from e
        return wrapper
    return decorator


def handle_external_api_error(service_name: str):
    """Decorator for async external API calls"""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ApplicationError:
                raise
            except Exception as e:
                raise ExternalServiceError(
                    message=f"External service error: {service_name}",
                    service_name=service_name,
                    cause=e,
                ) from e
        return wrapper
    return decorator


def validate_required_fields(data: dict[str, Any], required_fields: list):
    """Validate required fields in data"""
    missing_fields = []
    for field in required_fields:
        if field not in data or data[field] is None or data[field] == "":
            missing_fields.append(field)

    if missing_fields:
        raise ValidationError(
            message=f"Missing required fields: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields},
        )
