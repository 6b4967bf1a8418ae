"""
Celery tasks for background job processing.

Queues:
- notifications: ntfy pushes (website and platform level)
- zoho_sync: Zoho CRM lead lifecycle
- maintenance: subscription expiry and subdomain pool housekeeping

Each task body is an ``async`` function taking ids, so it can be awaited
directly in tests; the Celery task wraps it with retry/discard handling.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import httpx
from celery import Task
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ApplicationError
from database.models import Contact, Message, Plan, RealtyAsset, Subscription, User, Website
from database.session import get_session_maker
from jobs.celery_app import celery_app
from services.ntfy_service import NtfyService, PlatformNtfyService
from services.subdomain_service import SubdomainPoolService
from services.subscription_service import SubscriptionService
from services.zoho import (
    PERMANENT_ERRORS,
    LeadSyncService,
    ZohoConnectionError,
    ZohoRateLimitError,
    ZohoTimeoutError,
)

logger = logging.getLogger(__name__)

ZOHO_MAX_RETRIES = 5
ZOHO_BACKOFF_BASE = 30
ZOHO_BACKOFF_MAX = 3600
NTFY_MAX_RETRIES = 2  # three attempts in total
REMINDER_DAYS = (3, 2, 1, 0)

WEBSITE_NOTIFICATION_TYPES = ("inquiry", "listing_change", "user_event", "security_event", "admin")
PLATFORM_NOTIFICATION_TYPES = (
    "user_signup",
    "email_verified",
    "provisioning_complete",
    "provisioning_failed",
    "trial_started",
    "subscription_activated",
    "trial_expired",
    "subscription_canceled",
    "plan_changed",
    "payment_failed",
    "system_alert",
)

SessionFactory = Callable[[], Any]


class CallbackTask(Task):
    """Base task with logging on completion."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {task_id} failed: {exc}")

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Task {task_id} completed successfully")


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create an event loop.

    Celery workers have no running loop, so one is created on first use and
    reused so pooled database connections stay bound to it.
    """
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
        return loop
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        return loop


def run_async(coro: Awaitable[Any]) -> Any:
    return get_event_loop().run_until_complete(coro)


@asynccontextmanager
async def session_scope(session_factory: SessionFactory | None = None):
    factory = session_factory or get_session_maker()
    async with factory() as session:
        yield session


def zoho_backoff(retries: int) -> int:
    return min(ZOHO_BACKOFF_BASE * (2 ** retries), ZOHO_BACKOFF_MAX)


def run_zoho_task(task: Task, label: str, body: Callable[[], Awaitable[Any]]) -> Any:
    """
    Run a Zoho task body, retrying transient failures and discarding
    permanent ones.
    """
    try:
        return run_async(body())
    except ZohoRateLimitError as exc:
        logger.warning("[%s] Rate limited, retrying in %ss", label, exc.retry_after)
        raise task.retry(exc=exc, countdown=exc.retry_after, max_retries=ZOHO_MAX_RETRIES)
    except (ZohoTimeoutError, ZohoConnectionError) as exc:
        countdown = zoho_backoff(task.request.retries)
        logger.warning("[%s] %s, retrying in %ss", label, exc.message, countdown)
        raise task.retry(exc=exc, countdown=countdown, max_retries=ZOHO_MAX_RETRIES)
    except PERMANENT_ERRORS as exc:
        logger.error("[%s] Discarded: %s", label, exc.message)
        return {"status": "discarded", "error": exc.message}


def is_disabled_error(exc: Exception) -> bool:
    message = str(exc)
    return "not enabled" in message or "not configured" in message


def run_ntfy_task(task: Task, label: str, body: Callable[[], Awaitable[Any]]) -> Any:
    try:
        return run_async(body())
    except httpx.TransportError as exc:
        logger.warning("[%s] Transport error: %s", label, exc)
        raise task.retry(exc=exc, countdown=2 ** (task.request.retries + 1), max_retries=NTFY_MAX_RETRIES)
    except ApplicationError as exc:
        if is_disabled_error(exc):
            logger.debug("[%s] Discarded: %s", label, exc.message)
            return {"status": "discarded", "error": exc.message}
        raise


async def _owner_user(session: AsyncSession, website_id: int) -> User | None:
    website = await session.get(Website, website_id)
    if website is None:
        return None
    query = select(User).where(User.website_id == website_id)
    if website.owner_email:
        owner = await session.scalar(query.where(User.email == website.owner_email))
        if owner is not None:
            return owner
    return await session.scalar(query.order_by(User.id).limit(1))


@asynccontextmanager
async def lead_sync(session: AsyncSession, service: LeadSyncService | None = None):
    service = service or LeadSyncService(session)
    try:
        yield service
    finally:
        await service.client.close()


# ---------------------------------------------------------------------------
# Zoho CRM
# ---------------------------------------------------------------------------


async def _sync_lead_signup(
    user_id: int,
    request_info: dict[str, Any] | None = None,
    session_factory: SessionFactory | None = None,
    service: LeadSyncService | None = None,
) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        user = await session.get(User, user_id)
        if user is None:
            return {"status": "skipped", "reason": "user not found"}
        async with lead_sync(session, service) as sync:
            lead_id = await sync.create_lead_from_signup(user, request_info=request_info)
        return {"status": "success" if lead_id else "skipped", "lead_id": lead_id}


async def _sync_lead_activity(
    user_id: int | None,
    activity_type: str,
    details: dict[str, Any] | None = None,
    website_id: int | None = None,
    session_factory: SessionFactory | None = None,
    service: LeadSyncService | None = None,
) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        if user_id is not None:
            user = await session.get(User, user_id)
        elif website_id is not None:
            user = await _owner_user(session, website_id)
        else:
            user = None
        if user is None:
            return {"status": "skipped", "reason": "user not found"}
        async with lead_sync(session, service) as sync:
            logged = await sync.log_activity(user, activity_type, details or {})
        return {"status": "success" if logged else "skipped", "activity": activity_type}


async def _sync_lead_plan(
    user_id: int,
    subscription_id: int,
    session_factory: SessionFactory | None = None,
    service: LeadSyncService | None = None,
) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        user = await session.get(User, user_id)
        subscription = await session.get(Subscription, subscription_id)
        if user is None or subscription is None:
            return {"status": "skipped", "reason": "record not found"}
        async with lead_sync(session, service) as sync:
            updated = await sync.update_lead_plan_selected(user, subscription)
        return {"status": "success" if updated else "skipped"}


async def _sync_lead_website(
    user_id: int,
    website_id: int,
    plan_id: int | None = None,
    session_factory: SessionFactory | None = None,
    service: LeadSyncService | None = None,
) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        user = await session.get(User, user_id)
        website = await session.get(Website, website_id)
        plan = await session.get(Plan, plan_id) if plan_id is not None else None
        if user is None or website is None:
            return {"status": "skipped", "reason": "record not found"}
        async with lead_sync(session, service) as sync:
            updated = await sync.update_lead_website_created(user, website, plan)
        return {"status": "success" if updated else "skipped"}


async def _convert_lead(
    user_id: int,
    subscription_id: int,
    session_factory: SessionFactory | None = None,
    service: LeadSyncService | None = None,
) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        user = await session.get(User, user_id)
        subscription = await session.get(Subscription, subscription_id)
        if user is None or subscription is None:
            return {"status": "skipped", "reason": "record not found"}
        async with lead_sync(session, service) as sync:
            result = await sync.convert_lead_to_customer(user, subscription)
        return {"status": "success" if result else "skipped", "result": result}


async def _mark_lead_lost(
    user_id: int,
    reason: str,
    session_factory: SessionFactory | None = None,
    service: LeadSyncService | None = None,
) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        user = await session.get(User, user_id)
        if user is None:
            return {"status": "skipped", "reason": "user not found"}
        async with lead_sync(session, service) as sync:
            marked = await sync.mark_lead_lost(user, reason)
        return {"status": "success" if marked else "skipped"}


async def _trial_reminders(
    session_factory: SessionFactory | None = None,
    service: LeadSyncService | None = None,
) -> dict[str, Any]:
    sent: dict[str, int] = {}
    async with session_scope(session_factory) as session:
        subscriptions = SubscriptionService(session)
        async with lead_sync(session, service) as sync:
            for days in REMINDER_DAYS:
                count = 0
                for subscription in await subscriptions.trials_ending_in(days):
                    user = await _owner_user(session, subscription.website_id)
                    if user is not None and await sync.update_trial_ending(user, days):
                        count += 1
                sent[str(days)] = count
    logger.info("Trial reminders sent: %s", sent)
    return {"status": "success", "sent": sent}


@celery_app.task(bind=True, base=CallbackTask, name="jobs.tasks.sync_lead_signup", max_retries=ZOHO_MAX_RETRIES)
def sync_lead_signup(self, user_id: int, request_info: dict[str, Any] | None = None) -> Any:
    return run_zoho_task(self, "ZohoSyncSignup", lambda: _sync_lead_signup(user_id, request_info))


@celery_app.task(bind=True, base=CallbackTask, name="jobs.tasks.sync_lead_activity", max_retries=ZOHO_MAX_RETRIES)
def sync_lead_activity(
    self,
    user_id: int | None,
    activity_type: str,
    details: dict[str, Any] | None = None,
    website_id: int | None = None,
) -> Any:
    return run_zoho_task(
        self,
        "ZohoSyncActivity",
        lambda: _sync_lead_activity(user_id, activity_type, details, website_id=website_id),
    )


@celery_app.task(bind=True, base=CallbackTask, name="jobs.tasks.sync_lead_plan", max_retries=ZOHO_MAX_RETRIES)
def sync_lead_plan(self, user_id: int, subscription_id: int) -> Any:
    return run_zoho_task(self, "ZohoSyncPlan", lambda: _sync_lead_plan(user_id, subscription_id))


@celery_app.task(bind=True, base=CallbackTask, name="jobs.tasks.sync_lead_website", max_retries=ZOHO_MAX_RETRIES)
def sync_lead_website(self, user_id: int, website_id: int, plan_id: int | None = None) -> Any:
    return run_zoho_task(self, "ZohoSyncWebsite", lambda: _sync_lead_website(user_id, website_id, plan_id))


@celery_app.task(bind=True, base=CallbackTask, name="jobs.tasks.convert_lead", max_retries=ZOHO_MAX_RETRIES)
def convert_lead(self, user_id: int, subscription_id: int) -> Any:
    return run_zoho_task(self, "ZohoConvertLead", lambda: _convert_lead(user_id, subscription_id))


@celery_app.task(bind=True, base=CallbackTask, name="jobs.tasks.mark_lead_lost", max_retries=ZOHO_MAX_RETRIES)
def mark_lead_lost(self, user_id: int, reason: str) -> Any:
    return run_zoho_task(self, "ZohoMarkLeadLost", lambda: _mark_lead_lost(user_id, reason))


@celery_app.task(bind=True, base=CallbackTask, name="jobs.tasks.trial_reminders", max_retries=ZOHO_MAX_RETRIES)
def trial_reminders(self) -> Any:
    return run_zoho_task(self, "ZohoTrialReminders", lambda: _trial_reminders())


# ---------------------------------------------------------------------------
# ntfy
# ---------------------------------------------------------------------------


async def _send_ntfy_notification(
    notification_type: str,
    website_id: int,
    record_id: int | None = None,
    options: dict[str, Any] | None = None,
    session_factory: SessionFactory | None = None,
    service: NtfyService | None = None,
) -> dict[str, Any]:
    options = options or {}
    if notification_type not in WEBSITE_NOTIFICATION_TYPES:
        logger.warning("[NtfyNotification] Unknown type: %s", notification_type)
        return {"status": "ignored", "reason": f"unknown type {notification_type}"}

    ntfy = service or NtfyService()
    async with session_scope(session_factory) as session:
        website = await session.get(Website, website_id)
        if website is None:
            return {"status": "skipped", "reason": "website not found"}

        if notification_type == "inquiry":
            message = await session.get(Message, record_id)
            if message is None:
                return {"status": "skipped", "reason": "message not found"}
            contact = await session.get(Contact, message.contact_id) if message.contact_id else None
            sent = await ntfy.notify_inquiry(website, message, contact)
        elif notification_type == "listing_change":
            asset = await session.get(RealtyAsset, record_id)
            if asset is None:
                return {"status": "skipped", "reason": "property not found"}
            sent = await ntfy.notify_listing_change(
                website, asset, options.get("event", "updated"), options.get("listing_kind", "Sale")
            )
        elif notification_type == "user_event":
            user = await session.get(User, record_id)
            if user is None:
                return {"status": "skipped", "reason": "user not found"}
            sent = await ntfy.notify_user_event(website, user, options.get("event", "updated"))
        elif notification_type == "security_event":
            sent = await ntfy.notify_security_event(
                website, options.get("event_type", "unknown"), options.get("details") or {}
            )
        else:
            sent = await ntfy.notify_admin(
                website,
                options.get("title", "Notification"),
                options.get("message", ""),
                priority=int(options.get("priority", 3)),
                tags=options.get("tags"),
                click_url=options.get("click_url"),
            )

    return {"status": "sent" if sent else "not_sent", "type": notification_type}


async def _send_platform_notification(
    notification_type: str,
    record_id: int | str | None = None,
    options: dict[str, Any] | None = None,
    session_factory: SessionFactory | None = None,
    service: PlatformNtfyService | None = None,
) -> dict[str, Any]:
    options = options or {}
    if notification_type not in PLATFORM_NOTIFICATION_TYPES:
        logger.warning("[PlatformNotification] Unknown type: %s", notification_type)
        return {"status": "ignored", "reason": f"unknown type {notification_type}"}

    platform = service or PlatformNtfyService()
    platform.ensure_enabled()

    if notification_type == "system_alert":
        sent = await platform.notify_system_alert(
            str(record_id or options.get("title") or "System Alert"),
            options.get("message", ""),
            priority=int(options.get("priority", 5)),
        )
        return {"status": "sent" if sent else "not_sent", "type": notification_type}

    async with session_scope(session_factory) as session:
        if notification_type in ("user_signup", "email_verified"):
            user = await session.get(User, record_id)
            if user is None:
                return {"status": "skipped", "reason": "user not found"}
            if notification_type == "user_signup":
                sent = await platform.notify_user_signup(user, reserved_subdomain=options.get("subdomain"))
            else:
                sent = await platform.notify_email_verified(user)
        elif notification_type in ("provisioning_complete", "provisioning_failed"):
            website = await session.get(Website, record_id)
            if website is None:
                return {"status": "skipped", "reason": "website not found"}
            if notification_type == "provisioning_complete":
                sent = await platform.notify_provisioning_complete(website)
            else:
                sent = await platform.notify_provisioning_failed(website, options.get("error") or "Unknown error")
        else:
            subscription = await session.get(Subscription, record_id)
            if subscription is None:
                return {"status": "skipped", "reason": "subscription not found"}
            if notification_type == "trial_started":
                sent = await platform.notify_trial_started(subscription)
            elif notification_type == "subscription_activated":
                sent = await platform.notify_subscription_activated(subscription)
            elif notification_type == "trial_expired":
                sent = await platform.notify_trial_expired(subscription)
            elif notification_type == "subscription_canceled":
                sent = await platform.notify_subscription_canceled(subscription, reason=options.get("reason"))
            elif notification_type == "payment_failed":
                sent = await platform.notify_payment_failed(subscription, error_details=options.get("error_details"))
            else:
                old_plan = await session.get(Plan, options.get("old_plan_id"))
                new_plan = await session.get(Plan, options.get("new_plan_id"))
                if old_plan is None or new_plan is None:
                    return {"status": "skipped", "reason": "plan not found"}
                sent = await platform.notify_plan_changed(subscription, old_plan, new_plan)

    return {"status": "sent" if sent else "not_sent", "type": notification_type}


@celery_app.task(
    bind=True, base=CallbackTask, name="jobs.tasks.send_ntfy_notification", max_retries=NTFY_MAX_RETRIES
)
def send_ntfy_notification(
    self,
    notification_type: str,
    website_id: int,
    record_id: int | None = None,
    options: dict[str, Any] | None = None,
) -> Any:
    return run_ntfy_task(
        self,
        "NtfyNotification",
        lambda: _send_ntfy_notification(notification_type, website_id, record_id, options),
    )


@celery_app.task(
    bind=True, base=CallbackTask, name="jobs.tasks.send_platform_notification", max_retries=NTFY_MAX_RETRIES
)
def send_platform_notification(
    self,
    notification_type: str,
    record_id: int | str | None = None,
    options: dict[str, Any] | None = None,
) -> Any:
    return run_ntfy_task(
        self,
        "PlatformNotification",
        lambda: _send_platform_notification(notification_type, record_id, options),
    )


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


async def _expire_ended_trials(session_factory: SessionFactory | None = None) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        return await SubscriptionService(session).expire_ended_trials()


async def _expire_ended_subscriptions(session_factory: SessionFactory | None = None) -> dict[str, Any]:
    async with session_scope(session_factory) as session:
        return await SubscriptionService(session).expire_ended_subscriptions()


async def _release_expired_subdomains(session_factory: SessionFactory | None = None) -> int:
    async with session_scope(session_factory) as session:
        return await SubdomainPoolService(session).release_expired_reservations()


@celery_app.task(name="jobs.tasks.expire_ended_trials")
def expire_ended_trials() -> dict[str, Any]:
    result = run_async(_expire_ended_trials())
    for subscription_id in result["subscription_ids"]:
        send_platform_notification.delay("trial_expired", subscription_id)
    logger.info("Expired %s trial(s)", result["expired_count"])
    return {**result, "timestamp": datetime.utcnow().isoformat()}


@celery_app.task(name="jobs.tasks.expire_ended_subscriptions")
def expire_ended_subscriptions() -> dict[str, Any]:
    result = run_async(_expire_ended_subscriptions())
    logger.info("Expired %s subscription(s)", result["expired_count"])
    return {**result, "timestamp": datetime.utcnow().isoformat()}


@celery_app.task(name="jobs.tasks.release_expired_subdomains")
def release_expired_subdomains() -> dict[str, Any]:
    released = run_async(_release_expired_subdomains())
    return {"status": "success", "released": released, "timestamp": datetime.utcnow().isoformat()}
