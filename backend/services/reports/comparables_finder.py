"""
Comparable property search for CMA reports.

Candidates come from the same website, inside a bounding box around the
subject. Each one gets a similarity score (100 minus deductions) and a set
of price adjustments that bring its price in line with the subject.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import RealtyAsset, RentalListing, SaleListing, Website

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
KM_PER_DEGREE = 111.0

# cents per unit of difference
ADJUSTMENT_FACTORS = {
    "bedroom": 1_500_000,
    "bathroom": 1_000_000,
    "sqft": 15_000,
    "year_built": 100_000,
    "garage": 800_000,
}

SIMILARITY_WEIGHTS = {
    "property_type": 20,
    "bedrooms": 15,
    "bathrooms": 10,
    "size": 20,
    "location": 20,
    "year": 10,
    "features": 5,
}

DEFAULT_OPTIONS = {
    "radius_km": 2,
    "months_back": 6,
    "max_comparables": 10,
    "min_similarity_score": 50,
}


@dataclass
class ComparablesResult:
    comparables: list[dict[str, Any]] = field(default_factory=list)
    total_found: int = 0
    search_criteria: dict[str, Any] = field(default_factory=dict)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 2)


class ComparablesFinder:
    def __init__(self, session: AsyncSession, subject: RealtyAsset, website: Website, **options: Any) -> None:
        self.session = session
        self.subject = subject
        self.website = website
        self.options = {**DEFAULT_OPTIONS, **{k: v for k, v in options.items() if v is not None}}

    async def find(self) -> ComparablesResult:
        candidates = await self.find_candidates()
        scored = [self.score(candidate) for candidate in candidates]
        filtered = [c for c in scored if c["similarity_score"] >= self.options["min_similarity_score"]]
        filtered.sort(key=lambda c: -c["similarity_score"])

        logger.info(
            "Found %s comparable(s) for asset %s (%s candidates)",
            len(filtered),
            self.subject.id,
            len(candidates),
        )
        return ComparablesResult(
            comparables=filtered[: int(self.options["max_comparables"])],
            total_found=len(candidates),
            search_criteria=self.search_criteria(),
        )

    @property
    def has_coordinates(self) -> bool:
        return self.subject.latitude is not None and self.subject.longitude is not None

    def candidate_query(self):
        subject = self.subject
        query = select(RealtyAsset).where(
            RealtyAsset.website_id == self.website.id,
            RealtyAsset.visible.is_(True),
            RealtyAsset.id != subject.id,
        )

        if self.has_coordinates:
            radius = float(self.options["radius_km"])
            lat_delta = radius / KM_PER_DEGREE
            lng_delta = radius / (KM_PER_DEGREE * math.cos(math.radians(subject.latitude)))
            query = query.where(
                RealtyAsset.latitude.between(subject.latitude - lat_delta, subject.latitude + lat_delta),
                RealtyAsset.longitude.between(subject.longitude - lng_delta, subject.longitude + lng_delta),
            )

        if subject.prop_type_key:
            query = query.where(RealtyAsset.prop_type_key == subject.prop_type_key)

        if subject.for_sale:
            query = query.join(SaleListing, SaleListing.realty_asset_id == RealtyAsset.id).where(
                SaleListing.visible.is_(True), SaleListing.archived.is_(False)
            )
        elif subject.for_rent:
            query = query.join(RentalListing, RentalListing.realty_asset_id == RealtyAsset.id).where(
                RentalListing.visible.is_(True), RentalListing.archived.is_(False)
            )

        area = float(subject.constructed_area or 0)
        if area > 0:
            query = query.where(RealtyAsset.constructed_area.between(area * 0.7, area * 1.3))

        bedrooms = int(subject.count_bedrooms or 0)
        if bedrooms > 0:
            query = query.where(RealtyAsset.count_bedrooms.between(bedrooms - 1, bedrooms + 1))

        return query

    async def find_candidates(self) -> list[RealtyAsset]:
        result = await self.session.execute(self.candidate_query())
        return list(result.scalars().unique().all())

    def distance_to(self, asset: RealtyAsset) -> float | None:
        if not self.has_coordinates or asset.latitude is None or asset.longitude is None:
            return None
        return haversine_km(self.subject.latitude, self.subject.longitude, asset.latitude, asset.longitude)

    def similarity(self, asset: RealtyAsset) -> float:
        subject = self.subject
        score = 100.0

        if asset.prop_type_key != subject.prop_type_key:
            score -= SIMILARITY_WEIGHTS["property_type"]

        bedroom_diff = abs(int(subject.count_bedrooms or 0) - int(asset.count_bedrooms or 0))
        score -= min(bedroom_diff * 3, SIMILARITY_WEIGHTS["bedrooms"])

        bathroom_diff = abs(float(subject.count_bathrooms or 0) - float(asset.count_bathrooms or 0))
        score -= min(bathroom_diff * 5, SIMILARITY_WEIGHTS["bathrooms"])

        subject_area = float(subject.constructed_area or 0)
        asset_area = float(asset.constructed_area or 0)
        if subject_area > 0 and asset_area > 0:
            size_diff_pct = abs(1 - asset_area / subject_area) * 100
            score -= min(size_diff_pct / 5, SIMILARITY_WEIGHTS["size"])

        distance = self.distance_to(asset)
        if distance is not None:
            score -= min(distance * 4, SIMILARITY_WEIGHTS["location"])

        if (subject.year_construction or 0) > 0 and (asset.year_construction or 0) > 0:
            year_diff = abs(subject.year_construction - asset.year_construction)
            score -= min(year_diff // 5, SIMILARITY_WEIGHTS["year"])

        return max(round(score, 1), 0)

    def adjustments(self, asset: RealtyAsset) -> dict[str, dict[str, Any]]:
        subject = self.subject
        adjustments: dict[str, dict[str, Any]] = {}

        bedroom_diff = int(subject.count_bedrooms or 0) - int(asset.count_bedrooms or 0)
        if bedroom_diff != 0:
            adjustments["bedrooms"] = {
                "difference": bedroom_diff,
                "adjustment_cents": bedroom_diff * ADJUSTMENT_FACTORS["bedroom"],
            }

        bathroom_diff = float(subject.count_bathrooms or 0) - float(asset.count_bathrooms or 0)
        if abs(bathroom_diff) >= 0.5:
            adjustments["bathrooms"] = {
                "difference": bathroom_diff,
                "adjustment_cents": round(bathroom_diff * ADJUSTMENT_FACTORS["bathroom"]),
            }

        subject_area = float(subject.constructed_area or 0)
        asset_area = float(asset.constructed_area or 0)
        if subject_area > 0 and asset_area > 0:
            size_diff = subject_area - asset_area
            if abs(size_diff) > 10:
                adjustments["size"] = {
                    "difference": round(size_diff),
                    "adjustment_cents": round(size_diff * ADJUSTMENT_FACTORS["sqft"]),
                }

        if (subject.year_construction or 0) > 0 and (asset.year_construction or 0) > 0:
            year_diff = subject.year_construction - asset.year_construction
            if abs(year_diff) > 5:
                adjustments["year_built"] = {
                    "difference": year_diff,
                    "adjustment_cents": year_diff * ADJUSTMENT_FACTORS["year_built"],
                }

        garage_diff = int(subject.count_garages or 0) - int(asset.count_garages or 0)
        if garage_diff != 0:
            adjustments["garages"] = {
                "difference": garage_diff,
                "adjustment_cents": garage_diff * ADJUSTMENT_FACTORS["garage"],
            }

        return adjustments

    @staticmethod
    def adjusted_price(price_cents: int | None, adjustments: dict[str, dict[str, Any]]) -> int | None:
        if not price_cents or price_cents <= 0:
            return None
        return price_cents + sum(adj["adjustment_cents"] for adj in adjustments.values())

    def score(self, asset: RealtyAsset) -> dict[str, Any]:
        adjustments = self.adjustments(asset)
        price_cents = asset.price_cents if (asset.price_cents or 0) > 0 else None
        return {
            "id": asset.id,
            "reference": asset.reference,
            "address": ", ".join(p for p in (asset.street_address, asset.city, asset.postal_code) if p),
            "city": asset.city,
            "property_type": asset.prop_type_key,
            "bedrooms": asset.count_bedrooms,
            "bathrooms": asset.count_bathrooms,
            "constructed_area": asset.constructed_area,
            "year_built": asset.year_construction,
            "garages": asset.count_garages,
            "price_cents": price_cents,
            "currency": asset.currency or "USD",
            "similarity_score": self.similarity(asset),
            "adjustments": adjustments,
            "adjusted_price_cents": self.adjusted_price(price_cents, adjustments),
            "distance_km": self.distance_to(asset),
            "photo_url": asset.primary_image_url,
        }

    def search_criteria(self) -> dict[str, Any]:
        subject = self.subject
        return {
            "radius_km": self.options["radius_km"],
            "months_back": self.options["months_back"],
            "max_comparables": self.options["max_comparables"],
            "property_type": subject.prop_type_key,
            "bedrooms": subject.count_bedrooms,
            "bathrooms": subject.count_bathrooms,
            "size_sqft": subject.constructed_area,
            "location": {
                "city": subject.city,
                "region": subject.region,
                "latitude": subject.latitude,
                "longitude": subject.longitude,
            },
        }
