"""
Property search for the current website.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Query, Request

from api.dependencies import CurrentWebsite, DbSession
from core.exceptions import ResourceNotFoundError
from core.tenant import ensure_tenant_owns
from database.models import RealtyAsset
from models.base import PaginationParams
from models.property import PropertyResponse, SearchFacets
from services.search import PropertyFilterService, SearchFacetsService, SearchParamsService

router = APIRouter()

Operation = Literal["buy", "rent"]


def _criteria(request: Request) -> dict[str, Any]:
    return SearchParamsService().from_url_params(request.query_params)


@router.get("/search/{operation}")
async def search_properties(
    operation: Operation,
    request: Request,
    website: CurrentWebsite,
    session: DbSession,
    locale: str | None = Query(None, description="Locale used for the canonical URL"),
    size: int = Query(24, ge=1, le=100, description="Page size"),
) -> dict[str, Any]:
    """Filtered, sorted and paginated search over buy or rent listings."""
    params = SearchParamsService()
    criteria = _criteria(request)
    pagination = PaginationParams(page=criteria.get("page") or 1, size=size)

    results = await PropertyFilterService().search(session, website, criteria, operation, pagination)
    return {
        "results": results,
        "criteria": criteria,
        "canonical_url": params.canonical_url(
            criteria, locale or website.default_client_locale, operation, host=request.headers.get("host")
        ),
    }


@router.get("/facets/{operation}", response_model=SearchFacets)
async def search_facets(
    operation: Operation,
    request: Request,
    website: CurrentWebsite,
    session: DbSession,
) -> SearchFacets:
    return await SearchFacetsService().calculate(session, website, _criteria(request), operation)


@router.get("/canonical-url/{operation}")
async def canonical_url(
    operation: Operation,
    request: Request,
    website: CurrentWebsite,
    locale: str | None = Query(None),
) -> dict[str, str]:
    url = SearchParamsService().canonical_url(
        _criteria(request), locale or website.default_client_locale, operation, host=request.headers.get("host")
    )
    return {"canonical_url": url}


@router.get("/{property_id}", response_model=PropertyResponse)
async def get_property_detail(property_id: int, website: CurrentWebsite, session: DbSession) -> PropertyResponse:
    asset = await session.get(RealtyAsset, property_id)
    if asset is None or not asset.visible:
        raise ResourceNotFoundError("Property not found", resource="property", resource_id=property_id)
    ensure_tenant_owns(asset)
    return PropertyResponse.model_validate(asset)
