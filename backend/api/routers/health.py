"""
Health endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import text

from api.dependencies import DbSession, get_ai_service
from core.cache import cache_health_check
from core.config import settings
from services.ai_service import AIService

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    services: dict[str, Any] = Field(default_factory=dict)


def _get_model_info(provider: str) -> dict[str, str]:
    model_map = {
        "anthropic": settings.ANTHROPIC_MODEL_ID,
        "bedrock": settings.BEDROCK_MODEL_ID,
    }
    return {
        "provider": provider,
        "model": model_map.get(provider, "N/A"),
    }


async def _database_status(session) -> dict[str, Any]:
    await session.execute(text("SELECT 1"))
    return {"status": True}


@router.get("/", response_model=HealthResponse)
async def health_check(session: DbSession, ai_service: AIService = Depends(get_ai_service)) -> HealthResponse:
    cache_status = await cache_health_check()

    services = {
        "database": await _database_status(session),
        "cache": cache_status["redis"],
        "ai_service": {
            "status": ai_service.is_ready(),
            **_get_model_info(ai_service.provider),
        },
    }

    # AI is optional; an unconfigured provider degrades rather than fails
    core_healthy = services["database"]["status"] and services["cache"]["status"]
    if not core_healthy:
        status = "unhealthy"
    elif not services["ai_service"]["status"]:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(status=status, timestamp=datetime.utcnow().isoformat(), services=services)


@router.get("/cache", response_model=dict[str, Any])
async def cache_health() -> dict[str, Any]:
    return await cache_health_check()


@router.get("/ai", response_model=dict[str, Any])
async def ai_health(ai_service: AIService = Depends(get_ai_service)) -> dict[str, Any]:
    return {
        "status": ai_service.is_ready(),
        "timestamp": datetime.utcnow().isoformat(),
        **_get_model_info(ai_service.provider),
    }
