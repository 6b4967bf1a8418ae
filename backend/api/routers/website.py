"""
Current website details, custom domains and notification checks.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from api.dependencies import CurrentWebsite, DbSession, get_ntfy_service
from core.exceptions import ValidationError
from database.models import Website
from models.website import CustomDomainRequest, DomainVerificationResponse, WebsiteResponse
from services.ntfy_service import NtfyService
from services.subscription_service import SubscriptionService
from services.tenant_service import TenantService, normalize_domain

router = APIRouter()

CUSTOM_DOMAIN_FEATURE = "custom_domain"


def _website_response(website: Website) -> WebsiteResponse:
    fields = {name: getattr(website, name) for name in WebsiteResponse.model_fields if name != "primary_url"}
    return WebsiteResponse(**fields, primary_url=website.primary_url())


def _tenant_service(request: Request, session) -> TenantService:
    return TenantService(session, txt_lookup=getattr(request.app.state, "txt_lookup", None))


def _verification_response(service: TenantService, website: Website) -> DomainVerificationResponse:
    return DomainVerificationResponse(
        domain=website.custom_domain,
        verified=website.custom_domain_verified,
        record_name=service.verification_record_name(website),
        expected_value=website.custom_domain_verification_token,
    )


@router.get("/", response_model=WebsiteResponse)
async def website_info(website: CurrentWebsite) -> WebsiteResponse:
    return _website_response(website)


@router.post("/custom-domain", response_model=DomainVerificationResponse)
async def set_custom_domain(
    payload: CustomDomainRequest, request: Request, website: CurrentWebsite, session: DbSession
) -> DomainVerificationResponse:
    """Attach a custom domain; it stays unverified until the TXT record is found."""
    await SubscriptionService(session).require_feature(website, CUSTOM_DOMAIN_FEATURE)

    service = _tenant_service(request, session)
    errors = await service.validate_custom_domain(payload.domain, exclude_id=website.id)
    if errors:
        raise ValidationError(errors[0], field_name="domain", details={"errors": errors})

    domain = normalize_domain(payload.domain)
    if domain != website.custom_domain:
        website.custom_domain = domain
        website.custom_domain_verified = False
        website.custom_domain_verified_at = None
        website.custom_domain_verification_token = service.generate_verification_token()
        await session.commit()
    return _verification_response(service, website)


@router.post("/custom-domain/verify", response_model=DomainVerificationResponse)
async def verify_custom_domain(request: Request, website: CurrentWebsite, session: DbSession) -> DomainVerificationResponse:
    if not website.custom_domain:
        raise ValidationError("No custom domain configured", field_name="domain")
    service = _tenant_service(request, session)
    await service.verify_custom_domain(website)
    return _verification_response(service, website)


@router.post("/ntfy/test")
async def test_ntfy(website: CurrentWebsite, ntfy: NtfyService = Depends(get_ntfy_service)) -> dict[str, Any]:
    return await ntfy.test_configuration(website)
