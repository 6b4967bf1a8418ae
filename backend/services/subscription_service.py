"""
Subscription lifecycle: trials, activation, cancellation, plan changes and
the daily expiry sweeps.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import FeatureNotAvailableError, PropertyLimitExceededError, SubscriptionError
from database.base import utcnow
from database.models import Plan, RealtyAsset, Subscription, SubscriptionEvent, Website

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_for_website(self, website: Website) -> Subscription | None:
        result = await self.session.execute(select(Subscription).where(Subscription.website_id == website.id))
        return result.scalar_one_or_none()

    async def default_plan(self) -> Plan | None:
        result = await self.session.execute(
            select(Plan).where(Plan.name == settings.DEFAULT_PLAN_NAME, Plan.active.is_(True))
        )
        plan = result.scalar_one_or_none()
        if plan is not None:
            return plan
        result = await self.session.execute(
            select(Plan).where(Plan.active.is_(True)).order_by(Plan.position, Plan.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def find_plan(self, name: str) -> Plan | None:
        result = await self.session.execute(select(Plan).where(Plan.name == name, Plan.active.is_(True)))
        return result.scalar_one_or_none()

    async def property_count(self, website_id: int) -> int:
        result = await self.session.execute(
            select(func.count(RealtyAsset.id)).where(RealtyAsset.website_id == website_id)
        )
        return int(result.scalar_one())

    def record_event(self, subscription: Subscription, event_type: str, **metadata: Any) -> SubscriptionEvent:
        event = SubscriptionEvent(subscription_id=subscription.id, event_type=event_type, event_metadata=metadata)
        self.session.add(event)
        logger.info("Subscription %s: %s %s", subscription.id, event_type, metadata or "")
        return event

    async def create_trial(
        self, website: Website, plan: Plan | None = None, trial_days: int | None = None
    ) -> Subscription:
        plan = plan or await self.default_plan()
        if plan is None:
            raise SubscriptionError("No plan specified and no default plan available")

        existing = await self.find_for_website(website)
        if existing is not None:
            if existing.allows_access():
                raise SubscriptionError(
                    "Website already has an active subscription", subscription_id=existing.id
                )
            await self.session.delete(existing)
            await self.session.flush()

        days = trial_days if trial_days is not None else plan.trial_days
        now = utcnow()
        subscription = Subscription(
            website_id=website.id,
            plan_id=plan.id,
            status="trialing",
            trial_ends_at=now + timedelta(days=days),
            current_period_starts_at=now,
            current_period_ends_at=now + timedelta(days=days),
        )
        self.session.add(subscription)
        await self.session.flush()
        self.record_event(subscription, "trial_started", plan_id=plan.id, plan_name=plan.name, trial_days=days)
        await self.session.commit()
        await self.session.refresh(subscription, attribute_names=["plan", "website"])
        return subscription

    async def activate(self, subscription: Subscription, external_id: str | None = None) -> Subscription:
        if subscription.is_active:
            raise SubscriptionError("Subscription is already active", subscription_id=subscription.id)

        event = "reactivate" if subscription.status == "expired" else "activate"
        previous = subscription.fire(event)
        subscription.set_billing_period()
        subscription.cancel_at_period_end = False
        subscription.canceled_at = None
        if external_id:
            subscription.external_id = external_id

        self.record_event(subscription, "activated", previous_status=previous, external_id=external_id)
        await self.session.commit()
        return subscription

    async def cancel(
        self, subscription: Subscription, at_period_end: bool = True, reason: str | None = None
    ) -> Subscription:
        if subscription.status == "canceled":
            raise SubscriptionError("Subscription is already canceled", subscription_id=subscription.id)
        if not subscription.may("cancel"):
            raise SubscriptionError(
                f"Cannot cancel subscription in {subscription.status} state", subscription_id=subscription.id
            )

        if at_period_end:
            subscription.cancel_at_period_end = True
            ends_at = subscription.current_period_ends_at
            self.record_event(
                subscription,
                "cancellation_scheduled",
                reason=reason,
                cancel_at=ends_at.isoformat() if ends_at else None,
            )
        else:
            subscription.fire("cancel")
            subscription.canceled_at = utcnow()
            self.record_event(subscription, "canceled", reason=reason, immediate=True)

        await self.session.commit()
        return subscription

    async def change_plan(self, subscription: Subscription, new_plan: Plan) -> Subscription:
        old_plan = subscription.plan
        if old_plan.id == new_plan.id:
            raise SubscriptionError("New plan is the same as current plan", subscription_id=subscription.id)
        if subscription.status == "canceled":
            raise SubscriptionError("Cannot change plan for canceled subscription", subscription_id=subscription.id)

        if new_plan.property_limit is not None:
            count = await self.property_count(subscription.website_id)
            if count > new_plan.property_limit:
                raise PropertyLimitExceededError(
                    f"Cannot downgrade: you have {count} properties but new plan allows only "
                    f"{new_plan.property_limit}",
                    limit=new_plan.property_limit,
                    current_count=count,
                )

        subscription.plan_id = new_plan.id
        subscription.plan = new_plan
        self.record_event(
            subscription,
            "plan_changed",
            old_plan_id=old_plan.id,
            old_plan_name=old_plan.name,
            new_plan_id=new_plan.id,
            new_plan_name=new_plan.name,
        )
        await self.session.commit()
        return subscription

    async def expire_ended_trials(self) -> dict[str, Any]:
        result = await self.session.execute(
            select(Subscription).where(Subscription.status == "trialing", Subscription.trial_ends_at < utcnow())
        )
        expired, errors = [], []
        for subscription in result.scalars().all():
            try:
                subscription.fire("expire_trial")
            except SubscriptionError as exc:
                errors.append(f"Subscription {subscription.id}: {exc.message}")
                continue
            self.record_event(subscription, "trial_expired")
            expired.append(subscription.id)

        await self.session.commit()
        return {"expired_count": len(expired), "subscription_ids": expired, "errors": errors}

    async def expire_ended_subscriptions(self) -> dict[str, Any]:
        """Expire subscriptions whose scheduled cancellation has reached the period end."""
        result = await self.session.execute(
            select(Subscription).where(
                Subscription.cancel_at_period_end.is_(True),
                Subscription.current_period_ends_at < utcnow(),
            )
        )
        expired, errors = [], []
        for subscription in result.scalars().all():
            try:
                if subscription.status in ("active", "trialing"):
                    subscription.fire("cancel")
                    subscription.canceled_at = utcnow()
                subscription.fire("expire")
            except SubscriptionError as exc:
                errors.append(f"Subscription {subscription.id}: {exc.message}")
                continue
            self.record_event(subscription, "expired", reason="period_ended")
            expired.append(subscription.id)

        await self.session.commit()
        return {"expired_count": len(expired), "subscription_ids": expired, "errors": errors}

    async def status_for(self, website: Website) -> dict[str, Any]:
        subscription = await self.find_for_website(website)
        if subscription is None:
            return {"status": "none", "has_subscription": False}

        plan = subscription.plan
        remaining = None
        if plan.property_limit is not None:
            remaining = max(plan.property_limit - await self.property_count(website.id), 0)

        return {
            "status": subscription.status,
            "has_subscription": True,
            "plan_name": plan.display_name,
            "plan_slug": plan.name,
            "in_good_standing": subscription.in_good_standing(),
            "allows_access": subscription.allows_access(),
            "trial_days_remaining": subscription.trial_days_remaining(),
            "trial_ending_soon": subscription.trial_ending_soon(),
            "current_period_ends_at": subscription.current_period_ends_at,
            "cancel_at_period_end": subscription.cancel_at_period_end,
            "property_limit": plan.property_limit,
            "remaining_properties": remaining,
            "features": plan.features or [],
        }

    async def require_feature(self, website: Website, feature: str) -> None:
        subscription = await self.find_for_website(website)
        if subscription is None or not subscription.allows_access() or not subscription.has_feature(feature):
            raise FeatureNotAvailableError(
                f"Your plan does not include '{feature}'. Upgrade to access this feature.",
                feature=feature,
            )

    async def trials_ending_in(self, days: int) -> list[Subscription]:
        """Trialing subscriptions whose trial ends ``days`` days from now (calendar day)."""
        target = (utcnow() + timedelta(days=days)).date()
        result = await self.session.execute(select(Subscription).where(Subscription.status == "trialing"))
        return [
            s for s in result.scalars().all() if s.trial_ends_at is not None and s.trial_ends_at.date() == target
        ]
