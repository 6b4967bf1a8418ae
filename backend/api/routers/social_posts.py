"""
AI-generated social media posts for listings.
"""

from __future__ import annotations

from datetime import timezone
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from api.dependencies import CurrentWebsite, DbSession, get_ai_service
from core.exceptions import ResourceNotFoundError
from core.tenant import ensure_tenant_owns
from database.models import RealtyAsset, SocialMediaPost
from models.marketing import (
    SocialPostBatchRequest,
    SocialPostGenerateRequest,
    SocialPostResponse,
    SocialPostScheduleRequest,
)
from services.ai_service import AIService
from services.social_post_generator import Result, SocialPostGenerator

router = APIRouter()


async def _load_asset(session, property_id: int) -> RealtyAsset:
    asset = await session.get(RealtyAsset, property_id)
    if asset is None:
        raise ResourceNotFoundError("Property not found", resource="property", resource_id=property_id)
    return ensure_tenant_owns(asset)


async def _load_post(session, post_id: int) -> SocialMediaPost:
    post = await session.get(SocialMediaPost, post_id)
    if post is None:
        raise ResourceNotFoundError("Post not found", resource="social_post", resource_id=post_id)
    return ensure_tenant_owns(post)


def _result_payload(result: Result) -> dict[str, Any]:
    return {
        "success": result.success,
        "error": result.error,
        "post": SocialPostResponse.model_validate(result.post) if result.post else None,
        "compliance": result.compliance,
    }


@router.post("/generate")
async def generate_post(
    payload: SocialPostGenerateRequest,
    website: CurrentWebsite,
    session: DbSession,
    ai_service: AIService = Depends(get_ai_service),
) -> dict[str, Any]:
    asset = await _load_asset(session, payload.property_id)
    result = await SocialPostGenerator(session, ai_service).generate(
        website,
        asset,
        payload.platform,
        post_type=payload.post_type,
        category=payload.category,
        locale=payload.locale,
    )
    return _result_payload(result)


@router.post("/batch")
async def generate_batch(
    payload: SocialPostBatchRequest,
    website: CurrentWebsite,
    session: DbSession,
    ai_service: AIService = Depends(get_ai_service),
) -> dict[str, Any]:
    asset = await _load_asset(session, payload.property_id)
    results = await SocialPostGenerator(session, ai_service).generate_batch(
        website, asset, payload.platforms, category=payload.category, locale=payload.locale
    )
    return {"results": [_result_payload(result) for result in results]}


@router.get("/", response_model=list[SocialPostResponse])
async def list_posts(
    website: CurrentWebsite,
    session: DbSession,
    status: str | None = Query(None),
    platform: str | None = Query(None),
    property_id: int | None = Query(None),
) -> list[SocialPostResponse]:
    query = select(SocialMediaPost).where(SocialMediaPost.website_id == website.id)
    if status:
        query = query.where(SocialMediaPost.status == status)
    if platform:
        query = query.where(SocialMediaPost.platform == platform.lower())
    if property_id is not None:
        query = query.where(SocialMediaPost.postable_id == property_id)
    result = await session.execute(query.order_by(SocialMediaPost.created_at.desc(), SocialMediaPost.id.desc()))
    return [SocialPostResponse.model_validate(post) for post in result.scalars().all()]


@router.post("/{post_id}/schedule", response_model=SocialPostResponse)
async def schedule_post(
    post_id: int,
    payload: SocialPostScheduleRequest,
    website: CurrentWebsite,
    session: DbSession,
) -> SocialPostResponse:
    post = await _load_post(session, post_id)
    scheduled_at = payload.scheduled_at
    if scheduled_at.tzinfo is not None:
        scheduled_at = scheduled_at.astimezone(timezone.utc).replace(tzinfo=None)
    post.schedule(scheduled_at)
    await session.commit()
    return SocialPostResponse.model_validate(post)


@router.post("/{post_id}/publish", response_model=SocialPostResponse)
async def publish_post(post_id: int, website: CurrentWebsite, session: DbSession) -> SocialPostResponse:
    post = await _load_post(session, post_id)
    post.publish()
    await session.commit()
    return SocialPostResponse.model_validate(post)
