"""
Provider-independent property record.

Every feed provider maps its payload into ``NormalizedProperty`` so the rest
of the application never sees provider-specific field names. Prices and fees
are integer cents.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any

from database.base import utcnow

SOLD_STATUSES = ("sold", "rented")


@dataclass(eq=False)
class NormalizedProperty:
    # Identity
    reference: str | None = None
    provider: str | None = None
    provider_url: str | None = None

    # Text
    title: str | None = None
    description: str | None = None

    # Location
    country: str | None = None
    region: str | None = None
    area: str | None = None
    city: str | None = None
    address: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    # Listing
    listing_type: str = "sale"
    status: str = "available"

    # Price
    price: int | None = None
    currency: str = "EUR"
    price_qualifier: str | None = None
    original_price: int | None = None
    rental_period: str | None = None

    # Classification
    property_type: str | None = None
    property_type_raw: str | None = None
    property_subtype: str | None = None

    # Size
    bedrooms: int | None = None
    bathrooms: float | None = None
    built_area: int | None = None
    plot_area: int | None = None
    terrace_area: int | None = None
    year_built: int | None = None

    # Extras
    energy_rating: str | None = None
    energy_consumption: float | None = None
    orientation: str | None = None
    features: list[str] = field(default_factory=list)
    features_by_category: dict[str, list[str]] = field(default_factory=dict)
    images: list[dict[str, Any]] = field(default_factory=list)
    virtual_tour_url: str | None = None
    video_url: str | None = None

    # Annual fees
    community_fees: int | None = None
    ibi_tax: int | None = None
    garbage_tax: int | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    fetched_at: datetime = field(default_factory=utcnow)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, NormalizedProperty)
            and self.provider == other.provider
            and self.reference == other.reference
        )

    def __hash__(self) -> int:
        return hash((self.provider, self.reference))

    # ==================== Price ====================

    def price_in_units(self, area_type: str | None = None) -> float | None:
        """Price in major units, or per square metre for ``built``/``plot``."""
        if self.price is None:
            return None
        units = self.price / 100
        if area_type == "built":
            return units / self.built_area if self.built_area else None
        if area_type == "plot":
            return units / self.plot_area if self.plot_area else None
        return units

    def formatted_price(self) -> str | None:
        if self.price is None:
            return None
        return f"{self.currency or 'EUR'} {round(self.price / 100):,}"

    def is_price_reduced(self) -> bool:
        return self.original_price is not None and self.price is not None and self.price < self.original_price

    def price_reduction_amount(self) -> int | None:
        if not self.is_price_reduced():
            return None
        return self.original_price - self.price

    def price_reduction_percent(self) -> float | None:
        if not self.is_price_reduced():
            return None
        return round((self.original_price - self.price) / self.original_price * 100, 1)

    # ==================== Status ====================

    def is_available(self) -> bool:
        return self.status in (None, "available")

    def is_reserved(self) -> bool:
        return self.status == "reserved"

    def is_sold(self) -> bool:
        return self.status in SOLD_STATUSES

    def is_for_sale(self) -> bool:
        return self.listing_type == "sale"

    def is_for_rent(self) -> bool:
        return self.listing_type == "rental"

    # ==================== Media and location ====================

    def primary_image_url(self) -> str | None:
        return self.images[0].get("url") if self.images else None

    def image_urls(self, limit: int | None = None) -> list[str]:
        urls = [image.get("url") for image in self.images if image.get("url")]
        return urls[:limit] if limit else urls

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def full_location(self) -> str:
        return ", ".join(part for part in (self.city, self.area, self.region, self.country) if part)

    def short_location(self) -> str:
        return ", ".join(part for part in (self.city, self.region) if part)

    def has_feature(self, feature: str) -> bool:
        needle = feature.lower()
        return any(needle in str(item).lower() for item in self.features)

    def features_for(self, category: str) -> list[str]:
        return self.features_by_category.get(category, [])

    # ==================== Serialisation ====================

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("created_at", "updated_at", "fetched_at"):
            if isinstance(data[key], datetime):
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NormalizedProperty:
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        for key in ("created_at", "updated_at", "fetched_at"):
            if isinstance(values.get(key), str):
                values[key] = datetime.fromisoformat(values[key])
        if values.get("fetched_at") is None:
            values.pop("fetched_at", None)
        return cls(**values)

    def summary(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "title": self.title,
            "property_type": self.property_type,
            "location": self.short_location(),
            "price": self.formatted_price(),
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "built_area": self.built_area,
            "image_url": self.primary_image_url(),
            "status": self.status,
        }
