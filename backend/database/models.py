"""
ORM models for the multi-tenant website platform.

Tenant-owned rows carry ``website_id``. Money is stored as integer cents
alongside an ISO currency code.
"""

from __future__ import annotations

import math
import re
import secrets
import string
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.config import settings
from core.exceptions import BusinessLogicError, ErrorCode, SubscriptionError
from database.base import Base, TimestampMixin, utcnow

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def format_cents(cents: int | None, currency: str | None) -> str | None:
    """``1234500, "EUR"`` -> ``"€12,345"``."""
    if cents is None:
        return None
    symbol = CURRENCY_SYMBOLS.get(currency or "", currency or "")
    return f"{symbol}{round(cents / 100):,}"


class Website(TimestampMixin, Base):
    """One agency site (the tenant)."""

    __tablename__ = "websites"

    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    subdomain: Mapped[str | None] = mapped_column(String(63), unique=True, nullable=True, index=True)
    custom_domain: Mapped[str | None] = mapped_column(String(253), unique=True, nullable=True, index=True)
    custom_domain_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    custom_domain_verification_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    custom_domain_verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    company_display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    main_logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    owner_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    default_currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    default_client_locale: Mapped[str] = mapped_column(String(10), default="en", nullable=False)
    supported_locales: Mapped[list] = mapped_column(JSON, default=lambda: ["en"], nullable=False)
    site_type: Mapped[str] = mapped_column(String(50), default="residential", nullable=False)

    external_feed_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    external_feed_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    external_feed_config: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    ntfy_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ntfy_server_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ntfy_topic_prefix: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ntfy_access_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ntfy_notify_inquiries: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ntfy_notify_listings: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ntfy_notify_users: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ntfy_notify_security: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def primary_url(self) -> str:
        if self.custom_domain and self.custom_domain_verified:
            return f"https://{self.custom_domain}"
        return f"https://{self.subdomain or self.slug}.{settings.BASE_DOMAIN}"

    def accepts_locale(self, locale: str) -> bool:
        return locale in (self.supported_locales or [self.default_client_locale])

    def ntfy_channel_enabled(self, channel: str) -> bool:
        flag = {
            "inquiries": self.ntfy_notify_inquiries,
            "listings": self.ntfy_notify_listings,
            "users": self.ntfy_notify_users,
            "security": self.ntfy_notify_security,
            "admin": True,
        }.get(channel)
        return bool(self.ntfy_enabled and flag)

    def __repr__(self) -> str:
        return f"<Website(id={self.id}, slug={self.slug})>"


class RealtyAsset(TimestampMixin, Base):
    """Physical property; prices live on the sale/rental listings."""

    __tablename__ = "realty_assets"

    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id"), nullable=False, index=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    street_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    prop_type_key: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    prop_state_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    count_bedrooms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    count_bathrooms: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    count_garages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    constructed_area: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    plot_area: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    year_construction: Mapped[int | None] = mapped_column(Integer, nullable=True)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    images: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    features: Mapped[list["Feature"]] = relationship(
        back_populates="realty_asset", lazy="selectin", cascade="all, delete-orphan"
    )
    sale_listing: Mapped["SaleListing | None"] = relationship(
        back_populates="realty_asset", lazy="selectin", uselist=False, cascade="all, delete-orphan"
    )
    rental_listing: Mapped["RentalListing | None"] = relationship(
        back_populates="realty_asset", lazy="selectin", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def feature_keys(self) -> list[str]:
        return [f.feature_key for f in self.features]

    @property
    def for_sale(self) -> bool:
        listing = self.sale_listing
        return bool(listing and listing.visible and not listing.archived)

    @property
    def for_rent(self) -> bool:
        listing = self.rental_listing
        return bool(listing and listing.visible and not listing.archived)

    @property
    def price_cents(self) -> int | None:
        if self.for_sale:
            return self.sale_listing.price_sale_current_cents
        if self.for_rent:
            return self.rental_listing.price_rental_monthly_current_cents
        return None

    @property
    def currency(self) -> str | None:
        if self.for_sale:
            return self.sale_listing.currency
        if self.for_rent:
            return self.rental_listing.currency
        return None

    @property
    def primary_image_url(self) -> str | None:
        return self.images[0] if self.images else None

    def __repr__(self) -> str:
        return f"<RealtyAsset(id={self.id}, reference={self.reference})>"


class Feature(Base):
    __tablename__ = "features"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    realty_asset_id: Mapped[int] = mapped_column(ForeignKey("realty_assets.id"), nullable=False, index=True)
    feature_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    realty_asset: Mapped[RealtyAsset] = relationship(back_populates="features")


class SaleListing(TimestampMixin, Base):
    __tablename__ = "sale_listings"

    realty_asset_id: Mapped[int] = mapped_column(ForeignKey("realty_assets.id"), unique=True, nullable=False)
    price_sale_current_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reserved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    furnished: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    highlighted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    realty_asset: Mapped[RealtyAsset] = relationship(back_populates="sale_listing")


class RentalListing(TimestampMixin, Base):
    __tablename__ = "rental_listings"

    realty_asset_id: Mapped[int] = mapped_column(ForeignKey("realty_assets.id"), unique=True, nullable=False)
    price_rental_monthly_current_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    for_rent_short_term: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    for_rent_long_term: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    furnished: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    realty_asset: Mapped[RealtyAsset] = relationship(back_populates="rental_listing")


class Contact(TimestampMixin, Base):
    __tablename__ = "contacts"

    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id"), nullable=False, index=True)
    primary_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    primary_phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.primary_email or "Unknown"


class Message(TimestampMixin, Base):
    __tablename__ = "messages"

    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id"), nullable=False, index=True)
    contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id"), nullable=True, index=True)
    realty_asset_id: Mapped[int | None] = mapped_column(ForeignKey("realty_assets.id"), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    origin_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    origin_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    locale: Mapped[str | None] = mapped_column(String(10), nullable=True)
    delivery_success: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class User(TimestampMixin, Base):
    """Website owner account; carries the CRM lead linkage."""

    __tablename__ = "users"

    website_id: Mapped[int | None] = mapped_column(ForeignKey("websites.id"), nullable=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_names: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_names: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone_number_primary: Mapped[str | None] = mapped_column(String(50), nullable=True)
    user_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict, nullable=False)

    @property
    def zoho_lead_id(self) -> str | None:
        return (self.user_metadata or {}).get("zoho_lead_id")


class Plan(TimestampMixin, Base):
    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price_currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    billing_interval: Mapped[str] = mapped_column(String(10), default="month", nullable=False)
    trial_days: Mapped[int] = mapped_column(Integer, default=14, nullable=False)
    property_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    features: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def unlimited_properties(self) -> bool:
        return self.property_limit is None

    def has_feature(self, feature_key: str) -> bool:
        return feature_key in (self.features or [])


class Subscription(TimestampMixin, Base):
    """Billing state for one website."""

    __tablename__ = "subscriptions"

    STATUSES = ("trialing", "active", "past_due", "canceled", "expired")

    # event -> (allowed source states, target state)
    TRANSITIONS: dict[str, tuple[tuple[str, ...], str]] = {
        "activate": (("trialing", "past_due", "canceled"), "active"),
        "expire_trial": (("trialing",), "expired"),
        "mark_past_due": (("active",), "past_due"),
        "cancel": (("active", "trialing", "past_due"), "canceled"),
        "expire": (("canceled", "past_due"), "expired"),
        "reactivate": (("canceled", "expired"), "active"),
    }

    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id"), unique=True, nullable=False)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="trialing", nullable=False, index=True)
    trial_ends_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    current_period_starts_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    current_period_ends_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    extra_data: Mapped[dict] = mapped_column("metadata", JSON, default=dict, nullable=False)

    plan: Mapped[Plan] = relationship(lazy="selectin")
    website: Mapped[Website] = relationship(lazy="selectin")

    def may(self, event: str) -> bool:
        sources, _target = self.TRANSITIONS[event]
        if self.status not in sources:
            return False
        if event == "expire_trial":
            return self.trial_ended()
        return True

    def fire(self, event: str) -> str:
        """Apply a state transition or raise ``SubscriptionError``."""
        if event not in self.TRANSITIONS:
            raise SubscriptionError(f"Unknown subscription event: {event}", subscription_id=self.id)
        if not self.may(event):
            raise SubscriptionError(
                f"Cannot {event} a subscription that is {self.status}",
                subscription_id=self.id,
                error_code=ErrorCode.SUBSCRIPTION_INVALID_TRANSITION,
                details={"event": event, "status": self.status},
            )
        previous = self.status
        self.status = self.TRANSITIONS[event][1]
        return previous

    @property
    def is_trialing(self) -> bool:
        return self.status == "trialing"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def in_good_standing(self) -> bool:
        return self.status in ("trialing", "active")

    def allows_access(self) -> bool:
        return self.status in ("trialing", "active", "past_due")

    def trial_ended(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.trial_ends_at is not None and self.trial_ends_at < now

    def trial_days_remaining(self, now: datetime | None = None) -> int | None:
        if not self.is_trialing or self.trial_ends_at is None:
            return None
        now = now or utcnow()
        days = math.ceil((self.trial_ends_at - now) / timedelta(days=1))
        return max(days, 0)

    def trial_ending_soon(self, days: int = 3, now: datetime | None = None) -> bool:
        remaining = self.trial_days_remaining(now)
        return self.is_trialing and remaining is not None and remaining <= days

    def within_property_limit(self, count: int) -> bool:
        return self.plan.unlimited_properties or count <= self.plan.property_limit

    def has_feature(self, feature_key: str) -> bool:
        return self.plan.has_feature(feature_key)

    def set_billing_period(self, now: datetime | None = None) -> None:
        now = now or utcnow()
        interval = timedelta(days=365) if self.plan.billing_interval == "year" else timedelta(days=30)
        self.current_period_starts_at = now
        self.current_period_ends_at = now + interval


class SubscriptionEvent(TimestampMixin, Base):
    __tablename__ = "subscription_events"

    subscription_id: Mapped[int] = mapped_column(ForeignKey("subscriptions.id"), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    event_metadata: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)


class AiGenerationRequest(TimestampMixin, Base):
    """Audit row for every LLM call made on behalf of a website."""

    __tablename__ = "ai_generation_requests"

    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id"), nullable=False, index=True)
    request_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    ai_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ai_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    input_data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    output_data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class SocialMediaPost(TimestampMixin, Base):
    __tablename__ = "social_media_posts"

    PLATFORMS = ("instagram", "facebook", "linkedin", "twitter", "tiktok")
    POST_TYPES = ("feed", "story", "reel", "thread", "article")
    STATUSES = ("draft", "scheduled", "published", "failed")

    CAPTION_LIMITS = {
        "instagram": 2200,
        "facebook": 63_206,
        "linkedin": 3000,
        "twitter": 280,
        "tiktok": 2200,
    }

    HASHTAG_LIMITS: dict[str, int | None] = {
        "instagram": 30,
        "facebook": None,  # unlimited
        "linkedin": 5,
        "twitter": 3,
        "tiktok": 8,
    }

    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id"), nullable=False, index=True)
    ai_generation_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("ai_generation_requests.id"), nullable=True
    )
    postable_type: Mapped[str] = mapped_column(String(50), default="RealtyAsset", nullable=False)
    postable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    post_type: Mapped[str] = mapped_column(String(20), default="feed", nullable=False)
    caption: Mapped[str] = mapped_column(Text, nullable=False)
    hashtags: Mapped[str | None] = mapped_column(Text, nullable=True)
    selected_photos: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    link_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def validation_errors(self) -> list[str]:
        errors = []
        if self.platform not in self.PLATFORMS:
            errors.append(f"platform must be one of {', '.join(self.PLATFORMS)}")
        if self.post_type not in self.POST_TYPES:
            errors.append(f"post_type must be one of {', '.join(self.POST_TYPES)}")
        if (self.status or "draft") not in self.STATUSES:
            errors.append(f"status must be one of {', '.join(self.STATUSES)}")
        if not (self.caption or "").strip():
            errors.append("caption can't be blank")
        limit = self.CAPTION_LIMITS.get(self.platform)
        if limit and self.caption and len(self.caption) > limit:
            errors.append(f"caption exceeds {limit} character limit for {self.platform}")
        return errors

    def full_caption(self) -> str:
        return "\n\n".join(part for part in (self.caption, self.hashtags) if part and part.strip())

    def hashtag_count(self) -> int:
        if not self.hashtags:
            return 0
        return len(re.findall(r"#\w+", self.hashtags))

    def within_hashtag_limit(self) -> bool:
        limit = self.HASHTAG_LIMITS.get(self.platform)
        if limit is None:
            return True
        return self.hashtag_count() <= limit

    def character_count(self) -> int:
        return len(self.full_caption())

    def schedule(self, at: datetime) -> None:
        if self.status == "published":
            raise BusinessLogicError("Published posts cannot be rescheduled", rule="social_post_schedule")
        self.scheduled_at = at
        self.status = "scheduled"

    def publish(self) -> None:
        self.status = "published"
        self.published_at = utcnow()

    def mark_failed(self, error: str | None = None) -> None:
        self.status = "failed"
        self.error_message = error


def _reference_number() -> str:
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"CMA-{utcnow():%Y%m%d}-{suffix}"


class MarketReport(TimestampMixin, Base):
    __tablename__ = "market_reports"

    REPORT_TYPES = ("cma", "market_report")
    STATUSES = ("draft", "generating", "completed", "shared")

    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id"), nullable=False, index=True)
    realty_asset_id: Mapped[int | None] = mapped_column(ForeignKey("realty_assets.id"), nullable=True)
    ai_generation_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("ai_generation_requests.id"), nullable=True
    )
    report_type: Mapped[str] = mapped_column(String(20), default="cma", nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    reference_number: Mapped[str] = mapped_column(String(30), default=_reference_number, nullable=False)

    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    radius_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    subject_details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    comparable_properties: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    market_statistics: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    ai_insights: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    branding: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    suggested_price_low_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    suggested_price_high_cents: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    suggested_price_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    share_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True, index=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_viewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    generated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    shared_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def mark_generating(self) -> None:
        self.status = "generating"

    def mark_completed(
        self,
        insights: dict | None = None,
        statistics: dict | None = None,
        comparables: list | None = None,
        suggested_price: dict | None = None,
    ) -> None:
        self.status = "completed"
        self.generated_at = utcnow()
        if insights:
            self.ai_insights = insights
        if statistics:
            self.market_statistics = statistics
        if comparables:
            self.comparable_properties = comparables
        if suggested_price:
            self.suggested_price_low_cents = suggested_price.get("low_cents")
            self.suggested_price_high_cents = suggested_price.get("high_cents")
            self.suggested_price_currency = suggested_price.get("currency") or "USD"

    def mark_shared(self) -> None:
        self.status = "shared"
        self.shared_at = utcnow()
        self.share_token = secrets.token_urlsafe(16)

    def record_view(self) -> None:
        self.view_count = (self.view_count or 0) + 1
        self.last_viewed_at = utcnow()

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_shared(self) -> bool:
        return self.status == "shared"

    @property
    def pdf_filename(self) -> str:
        return f"{self.report_type}_{self.reference_number}.pdf"

    def suggested_price_range(self) -> dict[str, Any] | None:
        if self.suggested_price_low_cents is None or self.suggested_price_high_cents is None:
            return None
        return {
            "low": self.suggested_price_low_cents,
            "high": self.suggested_price_high_cents,
            "currency": self.suggested_price_currency,
            "formatted_low": format_cents(self.suggested_price_low_cents, self.suggested_price_currency),
            "formatted_high": format_cents(self.suggested_price_high_cents, self.suggested_price_currency),
        }

    def insight(self, key: str, default: Any = None) -> Any:
        return (self.ai_insights or {}).get(key, default)

    @property
    def executive_summary(self) -> str | None:
        return self.insight("executive_summary")

    @property
    def strengths(self) -> list:
        return self.insight("strengths") or []

    @property
    def considerations(self) -> list:
        return self.insight("considerations") or []

    @property
    def comparable_count(self) -> int:
        return len(self.comparable_properties or [])

    @property
    def company_name(self) -> str | None:
        return (self.branding or {}).get("company_name")


class SubdomainPoolEntry(TimestampMixin, Base):
    """Pre-generated subdomain names handed out at signup."""

    __tablename__ = "subdomains"

    STATES = ("available", "reserved", "allocated", "released")

    name: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    aasm_state: Mapped[str] = mapped_column(String(20), default="available", nullable=False, index=True)
    reserved_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    reserved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    reserved_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    website_id: Mapped[int | None] = mapped_column(ForeignKey("websites.id"), nullable=True)

    def can_reserve(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.aasm_state == "available" and (self.reserved_until is None or self.reserved_until < now)

    def can_allocate(self) -> bool:
        return self.aasm_state in ("available", "reserved")
