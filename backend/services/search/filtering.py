"""
Database filtering for the public property search.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Select, and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Feature, RealtyAsset, RentalListing, SaleListing, Website
from models.base import PaginatedResponse, PaginationParams
from models.property import PropertyResponse

logger = logging.getLogger(__name__)

OPERATIONS = ("buy", "rent")


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip() or value.strip().lower() == "none"
    if isinstance(value, list | tuple):
        return not value
    return False


def listing_for(operation: str):
    """Listing model and its price column for ``buy``/``rent``."""
    if operation == "rent":
        return RentalListing, RentalListing.price_rental_monthly_current_cents
    return SaleListing, SaleListing.price_sale_current_cents


class PropertyFilterService:
    """Compose search conditions for one website and operation."""

    def base_query(self, website: Website, operation: str = "buy") -> Select:
        """Visible assets with an active listing for ``operation``."""
        listing, _price = listing_for(operation)
        return (
            select(RealtyAsset)
            .join(listing, listing.realty_asset_id == RealtyAsset.id)
            .where(
                RealtyAsset.website_id == website.id,
                RealtyAsset.visible.is_(True),
                listing.visible.is_(True),
                listing.archived.is_(False),
            )
        )

    def conditions(self, criteria: Mapping[str, Any], operation: str = "buy") -> list:
        _listing, price = listing_for(operation)
        clauses = []

        property_type = criteria.get("property_type")
        if not _blank(property_type):
            clauses.append(
                or_(
                    RealtyAsset.prop_type_key == property_type,
                    RealtyAsset.prop_type_key.like(f"%.{property_type}"),
                )
            )

        property_state = criteria.get("property_state")
        if not _blank(property_state):
            clauses.append(
                or_(
                    RealtyAsset.prop_state_key == property_state,
                    RealtyAsset.prop_state_key.like(f"%.{property_state}"),
                )
            )

        # Prices arrive in whole currency units
        if not _blank(criteria.get("price_min")):
            clauses.append(price >= int(criteria["price_min"]) * 100)
        if not _blank(criteria.get("price_max")):
            clauses.append(price <= int(criteria["price_max"]) * 100)

        if not _blank(criteria.get("bedrooms")):
            clauses.append(RealtyAsset.count_bedrooms >= int(criteria["bedrooms"]))
        if not _blank(criteria.get("bathrooms")):
            clauses.append(RealtyAsset.count_bathrooms >= int(criteria["bathrooms"]))

        for feature in criteria.get("features") or []:
            if _blank(feature):
                continue
            clauses.append(
                exists().where(
                    Feature.realty_asset_id == RealtyAsset.id,
                    or_(Feature.feature_key == feature, Feature.feature_key.like(f"%.{feature}")),
                )
            )

        if not _blank(criteria.get("zone")):
            clauses.append(func.lower(func.replace(RealtyAsset.region, " ", "-")) == criteria["zone"])
        if not _blank(criteria.get("locality")):
            clauses.append(func.lower(func.replace(RealtyAsset.city, " ", "-")) == criteria["locality"])

        return clauses

    def filtered_query(self, website: Website, criteria: Mapping[str, Any], operation: str = "buy") -> Select:
        clauses = self.conditions(criteria, operation)
        query = self.base_query(website, operation)
        if clauses:
            query = query.where(and_(*clauses))
        return query

    def apply_sort(self, query: Select, sort: str | None, operation: str = "buy") -> Select:
        _listing, price = listing_for(operation)
        if sort == "price-asc":
            return query.order_by(price.asc(), RealtyAsset.id)
        if sort == "price-desc":
            return query.order_by(price.desc(), RealtyAsset.id)
        if sort == "oldest":
            return query.order_by(RealtyAsset.created_at.asc(), RealtyAsset.id)
        return query.order_by(RealtyAsset.created_at.desc(), RealtyAsset.id.desc())

    async def search(
        self,
        session: AsyncSession,
        website: Website,
        criteria: Mapping[str, Any],
        operation: str = "buy",
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse:
        """
        Run a filtered, sorted and paginated search.

        Args:
            session: Database session
            website: Tenant whose properties are searched
            criteria: Output of ``SearchParamsService.from_url_params``
            operation: ``buy`` (sale listings) or ``rent`` (rental listings)
            pagination: Page and size; ``criteria["page"]`` is used when omitted
        """
        if operation not in OPERATIONS:
            operation = "buy"
        pagination = pagination or PaginationParams(page=criteria.get("page") or 1)

        query = self.filtered_query(website, criteria, operation)
        total = await session.scalar(select(func.count()).select_from(query.subquery()))

        query = self.apply_sort(query, criteria.get("sort"), operation)
        query = query.offset(pagination.offset).limit(pagination.size)
        result = await session.execute(query)
        assets = result.scalars().unique().all()

        logger.debug("Search for website %s (%s) matched %s properties", website.id, operation, total)
        items = [PropertyResponse.model_validate(asset) for asset in assets]
        return PaginatedResponse.create(items=items, total=total or 0, page=pagination.page, size=pagination.size)
