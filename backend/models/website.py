"""
Website, subscription and subdomain schemas
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from models.base import BaseSchema


class WebsiteResponse(BaseSchema):
    id: int
    slug: str
    subdomain: str | None = None
    custom_domain: str | None = None
    custom_domain_verified: bool = False
    company_display_name: str | None = None
    default_currency: str = "EUR"
    default_client_locale: str = "en"
    supported_locales: list[str] = Field(default_factory=list)
    site_type: str | None = None
    external_feed_enabled: bool = False
    primary_url: str


class CustomDomainRequest(BaseModel):
    domain: str = Field(..., min_length=3, max_length=253)


class DomainVerificationResponse(BaseModel):
    domain: str
    verified: bool
    record_name: str
    expected_value: str | None = None


class PlanResponse(BaseSchema):
    name: str
    display_name: str
    price_cents: int
    price_currency: str
    billing_interval: str
    trial_days: int
    property_limit: int | None = None
    features: list[str] = Field(default_factory=list)


class SubscriptionStatusResponse(BaseModel):
    status: str
    has_subscription: bool = False
    plan_name: str | None = None
    plan_slug: str | None = None
    in_good_standing: bool = False
    allows_access: bool = False
    trial_days_remaining: int | None = None
    trial_ending_soon: bool = False
    current_period_ends_at: datetime | None = None
    cancel_at_period_end: bool = False
    property_limit: int | None = None
    remaining_properties: int | None = None
    features: list[str] = Field(default_factory=list)


class ChangePlanRequest(BaseModel):
    plan_name: str = Field(..., min_length=1)


class CancelSubscriptionRequest(BaseModel):
    at_period_end: bool = True
    reason: str | None = Field(None, max_length=500)


class SubdomainValidateRequest(BaseModel):
    name: str
    email: EmailStr | None = None


class SubdomainValidationResponse(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    normalized: str


class SubdomainReserveRequest(BaseModel):
    email: EmailStr
    name: str | None = None
    minutes: int = Field(5, ge=1, le=60)


class SubdomainReservationResponse(BaseModel):
    name: str
    reserved_until: datetime | None = None
