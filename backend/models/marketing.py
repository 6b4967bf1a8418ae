"""
Enquiry, social post and market report schemas
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field

from models.base import BaseSchema


class EnquiryForm(BaseModel):
    """Public contact form"""

    email: EmailStr
    name: str | None = Field(None, max_length=200)
    phone: str | None = Field(None, max_length=50)
    title: str | None = Field(None, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
    property_id: int | None = None
    locale: str | None = None


class EnquiryResponse(BaseModel):
    success: bool = True
    contact_id: int
    message_id: int


class SocialPostGenerateRequest(BaseModel):
    property_id: int
    platform: str = "instagram"
    post_type: str = "feed"
    category: str = "just_listed"
    locale: str = "en"


class SocialPostBatchRequest(BaseModel):
    property_id: int
    platforms: list[str] = Field(default_factory=lambda: ["instagram", "facebook", "linkedin"])
    category: str = "just_listed"
    locale: str = "en"


class SocialPostScheduleRequest(BaseModel):
    scheduled_at: datetime


class SocialPostResponse(BaseSchema):
    id: int
    platform: str
    post_type: str
    caption: str
    hashtags: str | None = None
    selected_photos: list[Any] = Field(default_factory=list)
    status: str
    scheduled_at: datetime | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None


class CmaRequest(BaseModel):
    property_id: int
    radius_km: float = Field(2.0, gt=0, le=50)
    months_back: int = Field(6, ge=1, le=36)
    max_comparables: int = Field(10, ge=1, le=50)
    title: str | None = None


class MarketReportResponse(BaseSchema):
    id: int
    reference_number: str
    report_type: str
    title: str
    status: str
    city: str | None = None
    comparable_properties: list[Any] = Field(default_factory=list)
    market_statistics: dict[str, Any] = Field(default_factory=dict)
    ai_insights: dict[str, Any] = Field(default_factory=dict)
    suggested_price_low_cents: int | None = None
    suggested_price_high_cents: int | None = None
    suggested_price_currency: str | None = None
    share_token: str | None = None
    view_count: int = 0
    generated_at: datetime | None = None
