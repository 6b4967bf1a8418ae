"""
Facet counts for the property search sidebar.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Feature, RealtyAsset, Website
from models.property import FacetItem, SearchFacets
from services.search.filtering import PropertyFilterService

ROOM_BUCKETS = range(1, 7)


def humanize_key(global_key: str) -> str:
    """``features.private_pool`` -> ``Private Pool``"""
    return global_key.split(".")[-1].replace("_", " ").replace("-", " ").title()


def _sorted(items: list[FacetItem]) -> list[FacetItem]:
    return sorted(items, key=lambda item: (-item.count, item.label.lower()))


class SearchFacetsService:
    """Counts over the filtered base set of a search."""

    def __init__(self, filter_service: PropertyFilterService | None = None) -> None:
        self.filter_service = filter_service or PropertyFilterService()

    async def calculate(
        self,
        session: AsyncSession,
        website: Website,
        criteria: Mapping[str, Any] | None = None,
        operation: str = "buy",
    ) -> SearchFacets:
        ids = self.filter_service.filtered_query(website, criteria or {}, operation).with_only_columns(
            RealtyAsset.id
        )
        id_subquery = ids.scalar_subquery()

        return SearchFacets(
            property_types=await self._column_counts(session, RealtyAsset.prop_type_key, id_subquery),
            property_states=await self._column_counts(session, RealtyAsset.prop_state_key, id_subquery),
            features=await self._feature_counts(session, id_subquery),
            bedrooms=await self._room_buckets(session, RealtyAsset.count_bedrooms, "bedrooms", id_subquery),
            bathrooms=await self._room_buckets(session, RealtyAsset.count_bathrooms, "bathrooms", id_subquery),
        )

    async def _column_counts(self, session: AsyncSession, column, id_subquery) -> list[FacetItem]:
        result = await session.execute(
            select(column, func.count())
            .where(RealtyAsset.id.in_(id_subquery), column.is_not(None))
            .group_by(column)
        )
        return _sorted(
            [
                FacetItem(global_key=key, value=key, label=humanize_key(key), count=count)
                for key, count in result.all()
            ]
        )

    async def _feature_counts(self, session: AsyncSession, id_subquery) -> list[FacetItem]:
        result = await session.execute(
            select(Feature.feature_key, func.count(func.distinct(Feature.realty_asset_id)))
            .where(Feature.realty_asset_id.in_(id_subquery))
            .group_by(Feature.feature_key)
        )
        return _sorted(
            [
                FacetItem(global_key=key, value=key, label=humanize_key(key), count=count)
                for key, count in result.all()
            ]
        )

    async def _room_buckets(self, session: AsyncSession, column, name: str, id_subquery) -> list[FacetItem]:
        result = await session.execute(select(column).where(RealtyAsset.id.in_(id_subquery)))
        values = [value or 0 for value in result.scalars()]
        items = [
            FacetItem(
                global_key=f"{name}.{n}_plus",
                value=str(n),
                label=f"{n}+",
                count=sum(1 for value in values if value >= n),
            )
            for n in ROOM_BUCKETS
        ]
        return _sorted(items)
