"""
Comparative Market Analysis reports.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import select

from api.dependencies import CurrentWebsite, DbSession, get_ai_service
from core.exceptions import BusinessLogicError, ResourceNotFoundError
from core.tenant import ensure_tenant_owns
from database.models import MarketReport, RealtyAsset
from models.marketing import CmaRequest, MarketReportResponse
from services.ai_service import AIService
from services.reports import CmaGenerator

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_report(session, report_id: int) -> MarketReport:
    report = await session.get(MarketReport, report_id)
    if report is None:
        raise ResourceNotFoundError("Report not found", resource="market_report", resource_id=report_id)
    return ensure_tenant_owns(report)


@router.post("/")
async def generate_cma(
    payload: CmaRequest,
    website: CurrentWebsite,
    session: DbSession,
    ai_service: AIService = Depends(get_ai_service),
) -> dict[str, Any]:
    asset = await session.get(RealtyAsset, payload.property_id)
    if asset is None:
        raise ResourceNotFoundError("Property not found", resource="property", resource_id=payload.property_id)
    ensure_tenant_owns(asset)

    result = await CmaGenerator(
        session,
        ai_service,
        website,
        asset,
        radius_km=payload.radius_km,
        months_back=payload.months_back,
        max_comparables=payload.max_comparables,
        title=payload.title,
    ).generate()

    return {
        "success": result.success,
        "error": result.error,
        "report": MarketReportResponse.model_validate(result.report) if result.report else None,
    }


@router.get("/shared/{share_token}", response_model=MarketReportResponse)
async def view_shared_report(share_token: str, session: DbSession) -> MarketReportResponse:
    """Public view of a shared report; each call counts as a view."""
    report = await session.scalar(select(MarketReport).where(MarketReport.share_token == share_token))
    if report is None or not report.is_shared:
        raise ResourceNotFoundError("Report not found", resource="market_report", resource_id=share_token)
    report.record_view()
    await session.commit()
    return MarketReportResponse.model_validate(report)


@router.get("/{report_id}", response_model=MarketReportResponse)
async def get_report(report_id: int, website: CurrentWebsite, session: DbSession) -> MarketReportResponse:
    return MarketReportResponse.model_validate(await _load_report(session, report_id))


@router.post("/{report_id}/share", response_model=MarketReportResponse)
async def share_report(report_id: int, website: CurrentWebsite, session: DbSession) -> MarketReportResponse:
    report = await _load_report(session, report_id)
    if report.is_shared:
        return MarketReportResponse.model_validate(report)
    if not report.is_completed:
        raise BusinessLogicError("Only completed reports can be shared", details={"status": report.status})

    report.mark_shared()
    await session.commit()
    logger.info("[CMA] Report %s shared", report.reference_number)
    return MarketReportResponse.model_validate(report)
