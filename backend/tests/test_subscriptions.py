"""Tests for the subscription lifecycle service."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from core.exceptions import FeatureNotAvailableError, PropertyLimitExceededError, SubscriptionError
from database.base import utcnow
from database.models import Subscription, SubscriptionEvent
from services.subscription_service import SubscriptionService


async def event_types(session, subscription):
    result = await session.execute(
        select(SubscriptionEvent.event_type)
        .where(SubscriptionEvent.subscription_id == subscription.id)
        .order_by(SubscriptionEvent.id)
    )
    return list(result.scalars())


class TestCreateTrial:
    async def test_uses_default_plan(self, session, website, plans):
        subscription = await SubscriptionService(session).create_trial(website)

        assert subscription.status == "trialing"
        assert subscription.plan.name == "starter"
        assert subscription.trial_days_remaining() == 14
        assert await event_types(session, subscription) == ["trial_started"]

    async def test_custom_trial_length(self, session, website, plans):
        subscription = await SubscriptionService(session).create_trial(website, plans["professional"], trial_days=7)
        assert subscription.plan.name == "professional"
        assert subscription.trial_days_remaining() == 7

    async def test_refuses_when_access_is_allowed(self, session, website, trial_subscription):
        with pytest.raises(SubscriptionError, match="already has an active subscription"):
            await SubscriptionService(session).create_trial(website)

    async def test_replaces_an_expired_subscription(self, session, website, plans, trial_subscription):
        trial_subscription.status = "expired"
        await session.commit()

        subscription = await SubscriptionService(session).create_trial(website, plans["starter"])

        assert subscription.id != trial_subscription.id
        remaining = (await session.execute(select(Subscription))).scalars().all()
        assert [s.id for s in remaining] == [subscription.id]

    async def test_requires_a_plan(self, session, website):
        with pytest.raises(SubscriptionError, match="no default plan"):
            await SubscriptionService(session).create_trial(website)


class TestTransitions:
    async def test_activate_sets_billing_period(self, session, trial_subscription):
        subscription = await SubscriptionService(session).activate(trial_subscription, external_id="sub_123")

        assert subscription.status == "active"
        assert subscription.external_id == "sub_123"
        period = subscription.current_period_ends_at - subscription.current_period_starts_at
        assert period == timedelta(days=30)
        assert "activated" in await event_types(session, subscription)

    async def test_activate_twice_fails(self, session, trial_subscription):
        service = SubscriptionService(session)
        await service.activate(trial_subscription)
        with pytest.raises(SubscriptionError, match="already active"):
            await service.activate(trial_subscription)

    async def test_expired_subscription_is_reactivated(self, session, trial_subscription):
        trial_subscription.status = "expired"
        subscription = await SubscriptionService(session).activate(trial_subscription)
        assert subscription.status == "active"

    async def test_cancel_at_period_end_keeps_status(self, session, trial_subscription):
        subscription = await SubscriptionService(session).cancel(trial_subscription, reason="too expensive")

        assert subscription.status == "trialing"
        assert subscription.cancel_at_period_end
        assert await event_types(session, subscription) == ["cancellation_scheduled"]

    async def test_immediate_cancel(self, session, trial_subscription):
        service = SubscriptionService(session)
        subscription = await service.cancel(trial_subscription, at_period_end=False)

        assert subscription.status == "canceled"
        assert subscription.canceled_at is not None
        with pytest.raises(SubscriptionError, match="already canceled"):
            await service.cancel(subscription)

    async def test_cannot_cancel_expired(self, session, trial_subscription):
        trial_subscription.status = "expired"
        with pytest.raises(SubscriptionError, match="Cannot cancel subscription in expired state"):
            await SubscriptionService(session).cancel(trial_subscription)


class TestChangePlan:
    async def test_downgrade_over_limit_raises(self, session, website, plans, trial_subscription, asset_factory):
        for index in range(3):
            await asset_factory(website, reference=f"P{index}")

        with pytest.raises(PropertyLimitExceededError) as exc_info:
            await SubscriptionService(session).change_plan(trial_subscription, plans["starter"])

        assert exc_info.value.http_status == 402
        assert trial_subscription.plan.name == "professional"

    async def test_downgrade_within_limit(self, session, website, plans, trial_subscription, asset_factory):
        await asset_factory(website)

        subscription = await SubscriptionService(session).change_plan(trial_subscription, plans["starter"])

        assert subscription.plan_id == plans["starter"].id
        assert "plan_changed" in await event_types(session, subscription)

    async def test_same_plan_rejected(self, session, plans, trial_subscription):
        with pytest.raises(SubscriptionError, match="same as current plan"):
            await SubscriptionService(session).change_plan(trial_subscription, plans["professional"])

    async def test_canceled_subscription_rejected(self, session, plans, trial_subscription):
        trial_subscription.status = "canceled"
        with pytest.raises(SubscriptionError, match="canceled subscription"):
            await SubscriptionService(session).change_plan(trial_subscription, plans["starter"])


class TestSweeps:
    async def test_expire_ended_trials(self, session, trial_subscription):
        trial_subscription.trial_ends_at = utcnow() - timedelta(hours=1)
        await session.commit()

        result = await SubscriptionService(session).expire_ended_trials()

        assert result == {"expired_count": 1, "subscription_ids": [trial_subscription.id], "errors": []}
        assert trial_subscription.status == "expired"

    async def test_running_trials_are_left_alone(self, session, trial_subscription):
        result = await SubscriptionService(session).expire_ended_trials()
        assert result["expired_count"] == 0
        assert trial_subscription.status == "trialing"

    async def test_expire_ended_subscriptions_cancels_then_expires(self, session, trial_subscription):
        trial_subscription.status = "active"
        trial_subscription.cancel_at_period_end = True
        trial_subscription.current_period_ends_at = utcnow() - timedelta(minutes=5)
        await session.commit()

        result = await SubscriptionService(session).expire_ended_subscriptions()

        assert result["subscription_ids"] == [trial_subscription.id]
        assert trial_subscription.status == "expired"
        assert trial_subscription.canceled_at is not None

    async def test_trials_ending_in(self, session, trial_subscription):
        service = SubscriptionService(session)
        assert await service.trials_ending_in(3) == []

        trial_subscription.trial_ends_at = utcnow() + timedelta(days=3)
        await session.commit()
        assert [s.id for s in await service.trials_ending_in(3)] == [trial_subscription.id]


class TestStatusAndFeatures:
    async def test_status_without_subscription(self, session, website):
        assert await SubscriptionService(session).status_for(website) == {"status": "none", "has_subscription": False}

    async def test_status_with_limited_plan(self, session, website, plans, asset_factory):
        service = SubscriptionService(session)
        await service.create_trial(website, plans["starter"])
        await asset_factory(website)

        status = await service.status_for(website)

        assert status["plan_slug"] == "starter"
        assert status["property_limit"] == 2
        assert status["remaining_properties"] == 1
        assert status["in_good_standing"]
        assert not status["trial_ending_soon"]
        assert status["features"] == ["social_posts"]

    async def test_require_feature(self, session, website, trial_subscription):
        service = SubscriptionService(session)
        await service.require_feature(website, "cma_reports")

        with pytest.raises(FeatureNotAvailableError) as exc_info:
            await service.require_feature(website, "api_access")
        assert exc_info.value.http_status == 403

    async def test_require_feature_without_access(self, session, website, trial_subscription):
        trial_subscription.status = "expired"
        await session.commit()
        with pytest.raises(FeatureNotAvailableError):
            await SubscriptionService(session).require_feature(website, "cma_reports")
