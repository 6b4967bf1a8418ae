"""
External listings served from the website's configured feed provider.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import CurrentWebsite, get_feed_registry
from core.exceptions import ResourceNotFoundError
from services.external_feed import ExternalFeedManager, ProviderRegistry, collect_query_params

router = APIRouter()


async def get_feed_manager(
    website: CurrentWebsite,
    registry: Annotated[ProviderRegistry, Depends(get_feed_registry)],
) -> AsyncIterator[ExternalFeedManager]:
    manager = ExternalFeedManager(website, registry=registry)
    try:
        yield manager
    finally:
        await manager.close()


FeedManager = Annotated[ExternalFeedManager, Depends(get_feed_manager)]


@router.get("/")
async def search_listings(request: Request, manager: FeedManager) -> dict[str, Any]:
    """Search the feed; query parameters are passed through to the provider."""
    params = collect_query_params(request.query_params.multi_items())
    result = await manager.search(params)
    return result.to_dict()


@router.get("/filter-options")
async def filter_options(manager: FeedManager, locale: str | None = Query(None)) -> dict[str, Any]:
    return await manager.filter_options(locale)


@router.get("/locations")
async def locations(manager: FeedManager, locale: str | None = Query(None)) -> dict[str, Any]:
    return {"locations": await manager.locations({"locale": locale} if locale else None)}


@router.get("/property-types")
async def property_types(manager: FeedManager, locale: str | None = Query(None)) -> dict[str, Any]:
    return {"property_types": await manager.property_types({"locale": locale} if locale else None)}


@router.get("/status")
async def provider_status(manager: FeedManager) -> dict[str, Any]:
    return await manager.provider_status()


@router.post("/cache/invalidate")
async def invalidate_cache(manager: FeedManager) -> dict[str, Any]:
    return {"success": True, "invalidated": await manager.invalidate_cache()}


@router.get("/{reference}")
async def listing_detail(
    reference: str,
    manager: FeedManager,
    listing_type: str = Query("sale"),
    locale: str | None = Query(None),
) -> dict[str, Any]:
    params: dict[str, Any] = {"listing_type": listing_type}
    if locale:
        params["locale"] = locale
    listing = await manager.find(reference, params)
    if listing is None:
        raise ResourceNotFoundError("Listing not found", resource="external_listing", resource_id=reference)
    return {"listing": listing.to_dict()}


@router.get("/{reference}/similar")
async def similar_listings(
    reference: str,
    manager: FeedManager,
    listing_type: str = Query("sale"),
    limit: int = Query(6, ge=1, le=24),
    locale: str | None = Query(None),
) -> dict[str, Any]:
    listing = await manager.find(reference, {"listing_type": listing_type, **({"locale": locale} if locale else {})})
    if listing is None:
        raise ResourceNotFoundError("Listing not found", resource="external_listing", resource_id=reference)
    options: dict[str, Any] = {"limit": limit}
    if locale:
        options["locale"] = locale
    similar = await manager.similar(listing, options)
    return {"similar": [item.summary() for item in similar]}
