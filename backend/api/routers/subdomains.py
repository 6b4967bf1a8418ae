"""
Subdomain suggestions and reservations used during signup.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from api.dependencies import DbSession
from core.exceptions import BusinessLogicError
from models.website import (
    SubdomainReservationResponse,
    SubdomainReserveRequest,
    SubdomainValidateRequest,
    SubdomainValidationResponse,
)
from services.subdomain_service import SubdomainGenerator, SubdomainPoolService

router = APIRouter()


@router.get("/suggest")
async def suggest_subdomains(session: DbSession, count: int = Query(5, ge=1, le=20)) -> dict[str, Any]:
    return {"suggestions": await SubdomainGenerator(session).generate_batch(count)}


@router.post("/validate", response_model=SubdomainValidationResponse)
async def validate_subdomain(payload: SubdomainValidateRequest, session: DbSession) -> SubdomainValidationResponse:
    email = str(payload.email) if payload.email else None
    return SubdomainValidationResponse(**await SubdomainGenerator(session).validate_custom_name(payload.name, email))


@router.post("/reserve", response_model=SubdomainReservationResponse)
async def reserve_subdomain(payload: SubdomainReserveRequest, session: DbSession) -> SubdomainReservationResponse:
    """Reserve a specific pool name, or a random one when no name is given."""
    pool = SubdomainPoolService(session)
    email = str(payload.email)

    if payload.name:
        validation = await SubdomainGenerator(session).validate_custom_name(payload.name, email)
        if not validation["valid"]:
            raise BusinessLogicError(
                f"Subdomain {validation['normalized']} {validation['errors'][0]}",
                rule="subdomain_available",
                details={"errors": validation["errors"]},
            )
        entry = await pool.reserve_specific(validation["normalized"], email, minutes=payload.minutes)
        if entry is None:
            raise BusinessLogicError(
                f"Subdomain {validation['normalized']} is not available for reservation",
                rule="subdomain_available",
            )
    else:
        entry = await pool.reserve_for_email(email, minutes=payload.minutes)

    return SubdomainReservationResponse(name=entry.name, reserved_until=entry.reserved_until)


@router.get("/stats")
async def pool_stats(session: DbSession) -> dict[str, int]:
    return await SubdomainPoolService(session).stats()
