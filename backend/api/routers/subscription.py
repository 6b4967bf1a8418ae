"""
Subscription status and self-service plan management for the current website.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import select

from api.dependencies import CurrentWebsite, DbSession, JobQueue, get_job_queue
from core.exceptions import ResourceNotFoundError
from database.models import Plan, Subscription, Website
from jobs.tasks import send_platform_notification
from models.website import (
    CancelSubscriptionRequest,
    ChangePlanRequest,
    PlanResponse,
    SubscriptionStatusResponse,
)
from services.subscription_service import SubscriptionService

router = APIRouter()

Jobs = Annotated[JobQueue, Depends(get_job_queue)]


async def _require_subscription(service: SubscriptionService, website: Website) -> Subscription:
    subscription = await service.find_for_website(website)
    if subscription is None:
        raise ResourceNotFoundError("No subscription for this website", resource="subscription")
    return subscription


@router.get("/", response_model=SubscriptionStatusResponse)
async def subscription_status(website: CurrentWebsite, session: DbSession) -> SubscriptionStatusResponse:
    return SubscriptionStatusResponse(**await SubscriptionService(session).status_for(website))


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(session: DbSession) -> list[PlanResponse]:
    result = await session.execute(select(Plan).where(Plan.active.is_(True)).order_by(Plan.position, Plan.id))
    return [PlanResponse.model_validate(plan) for plan in result.scalars().all()]


@router.post("/change-plan", response_model=SubscriptionStatusResponse)
async def change_plan(
    payload: ChangePlanRequest, website: CurrentWebsite, session: DbSession, jobs: Jobs
) -> SubscriptionStatusResponse:
    service = SubscriptionService(session)
    subscription = await _require_subscription(service, website)
    new_plan = await service.find_plan(payload.plan_name)
    if new_plan is None:
        raise ResourceNotFoundError("Plan not found", resource="plan", resource_id=payload.plan_name)

    old_plan_id = subscription.plan_id
    await service.change_plan(subscription, new_plan)
    jobs.enqueue(
        send_platform_notification,
        "plan_changed",
        subscription.id,
        {"old_plan_id": old_plan_id, "new_plan_id": new_plan.id},
    )
    return SubscriptionStatusResponse(**await service.status_for(website))


@router.post("/cancel", response_model=SubscriptionStatusResponse)
async def cancel_subscription(
    payload: CancelSubscriptionRequest, website: CurrentWebsite, session: DbSession, jobs: Jobs
) -> SubscriptionStatusResponse:
    service = SubscriptionService(session)
    subscription = await _require_subscription(service, website)
    await service.cancel(subscription, at_period_end=payload.at_period_end, reason=payload.reason)
    jobs.enqueue(send_platform_notification, "subscription_canceled", subscription.id, {"reason": payload.reason})
    return SubscriptionStatusResponse(**await service.status_for(website))
