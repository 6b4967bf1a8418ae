"""
Pydantic schemas for PropertyWebBuilder
"""

from .base import BaseSchema, PaginatedResponse, PaginationParams, SuccessResponse
from .marketing import (
    CmaRequest,
    EnquiryForm,
    EnquiryResponse,
    MarketReportResponse,
    SocialPostBatchRequest,
    SocialPostGenerateRequest,
    SocialPostResponse,
    SocialPostScheduleRequest,
)
from .property import FacetItem, PropertyResponse, SearchCriteria, SearchFacets
from .website import (
    CancelSubscriptionRequest,
    ChangePlanRequest,
    CustomDomainRequest,
    DomainVerificationResponse,
    PlanResponse,
    SubdomainReservationResponse,
    SubdomainReserveRequest,
    SubdomainValidateRequest,
    SubdomainValidationResponse,
    SubscriptionStatusResponse,
    WebsiteResponse,
)

__all__ = [
    "BaseSchema",
    "PaginatedResponse",
    "PaginationParams",
    "SuccessResponse",
    "CmaRequest",
    "EnquiryForm",
    "EnquiryResponse",
    "MarketReportResponse",
    "SocialPostBatchRequest",
    "SocialPostGenerateRequest",
    "SocialPostResponse",
    "SocialPostScheduleRequest",
    "FacetItem",
    "PropertyResponse",
    "SearchCriteria",
    "SearchFacets",
    "CancelSubscriptionRequest",
    "ChangePlanRequest",
    "CustomDomainRequest",
    "DomainVerificationResponse",
    "PlanResponse",
    "SubdomainReservationResponse",
    "SubdomainReserveRequest",
    "SubdomainValidateRequest",
    "SubdomainValidationResponse",
    "SubscriptionStatusResponse",
    "WebsiteResponse",
]
