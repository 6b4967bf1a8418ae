"""
Push notifications through ntfy (https://ntfy.sh or a self-hosted server).

Each website publishes to its own topics, ``{prefix}-{channel}``, and can
switch channels on and off. Platform-wide events (signups, provisioning,
billing) go to a single operator topic through ``PlatformNtfyService``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from core.config import settings
from core.exceptions import ConfigurationError
from database.models import Contact, Message, Plan, RealtyAsset, Subscription, User, Website

logger = logging.getLogger(__name__)

CHANNEL_INQUIRIES = "inquiries"
CHANNEL_LISTINGS = "listings"
CHANNEL_USERS = "users"
CHANNEL_SECURITY = "security"
CHANNEL_ADMIN = "admin"

PRIORITY_MIN = 1
PRIORITY_LOW = 2
PRIORITY_DEFAULT = 3
PRIORITY_HIGH = 4
PRIORITY_URGENT = 5

DEFAULT_SERVER_URL = "https://ntfy.sh"
NTFY_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

LISTING_EVENTS = {
    "published": ("{kind} Listing Published", "{name} is now live", ["house", "white_check_mark"]),
    "archived": ("{kind} Listing Archived", "{name} has been archived", ["house", "file_folder"]),
    "sold": ("Property Sold!", "{name} has been marked as sold", ["house", "moneybag", "tada"]),
    "rented": ("Property Rented!", "{name} has been rented", ["house", "key", "tada"]),
    "price_changed": ("Price Updated", "{name} price has been changed", ["house", "chart_with_upwards_trend"]),
}

USER_EVENTS = {
    "registered": ("New User Registration", "{name} has registered", ["bust_in_silhouette", "wave"]),
    "activated": ("User Activated", "{name} account has been activated", ["bust_in_silhouette", "white_check_mark"]),
    "deactivated": ("User Deactivated", "{name} account has been deactivated", ["bust_in_silhouette", "no_entry"]),
}


class NotificationDisabledError(ConfigurationError):
    """Notifications are switched off or missing configuration"""


def build_headers(
    title: str | None = None,
    priority: int = PRIORITY_DEFAULT,
    tags: list[str] | None = None,
    click_url: str | None = None,
    actions: list[dict[str, str]] | None = None,
    access_token: str | None = None,
) -> dict[str, str]:
    headers = {"Content-Type": "text/plain; charset=utf-8"}
    if title:
        headers["Title"] = title
    if priority != PRIORITY_DEFAULT:
        headers["Priority"] = str(priority)
    if tags:
        headers["Tags"] = ",".join(tags)
    if click_url:
        headers["Click"] = click_url
    if actions:
        headers["Actions"] = format_actions(actions)
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def format_actions(actions: list[dict[str, str]]) -> str:
    """``[{"type": "view", "label": "Open", "url": ...}]`` -> ``view, Open, https://...``"""
    formatted = []
    for action in actions:
        parts = [action.get("type", "view"), action.get("label", "")]
        if action.get("url"):
            parts.append(action["url"])
        formatted.append(", ".join(parts))
    return "; ".join(formatted)


def _person_name(user: User) -> str:
    name = " ".join(p for p in (user.first_names, user.last_names) if p)
    return name or user.email


class _NtfyPublisher:
    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def _post(self, server_url: str, topic: str, message: str, headers: dict[str, str]) -> bool:
        """
        POST ``message`` to ``{server_url}/{topic}``.

        Non-2xx responses return False. Transport errors propagate so the
        calling task can retry.
        """
        url = f"{server_url.rstrip('/')}/{topic}"
        body = message.encode("utf-8")
        if self._client is not None:
            response = await self._client.post(url, content=body, headers=headers, timeout=NTFY_TIMEOUT)
        else:
            async with httpx.AsyncClient(timeout=NTFY_TIMEOUT) as client:
                response = await client.post(url, content=body, headers=headers)

        if response.is_success:
            logger.info("[Ntfy] Notification sent to %s", topic)
            return True
        logger.error("[Ntfy] Failed to send notification to %s: %s", topic, response.status_code)
        return False


class NtfyService(_NtfyPublisher):
    """Website-level notifications."""

    @staticmethod
    def topic_for(website: Website, channel: str) -> str:
        prefix = website.ntfy_topic_prefix or f"pwb-{website.id}"
        return f"{prefix}-{channel}"

    @staticmethod
    def admin_url(website: Website, path: str) -> str:
        return f"{website.primary_url()}/site_admin/{path.lstrip('/')}"

    async def publish(
        self,
        website: Website | None,
        channel: str,
        message: str,
        title: str | None = None,
        priority: int = PRIORITY_DEFAULT,
        tags: list[str] | None = None,
        click_url: str | None = None,
        actions: list[dict[str, str]] | None = None,
    ) -> bool:
        if website is None or not website.ntfy_enabled or not message:
            return False

        headers = build_headers(
            title=title,
            priority=priority,
            tags=tags,
            click_url=click_url,
            actions=actions,
            access_token=website.ntfy_access_token,
        )
        server_url = website.ntfy_server_url or DEFAULT_SERVER_URL
        return await self._post(server_url, self.topic_for(website, channel), message, headers)

    @staticmethod
    def inquiry_body(message: Message, contact: Contact | None) -> str:
        parts = []
        if contact is not None:
            if contact.first_name:
                parts.append(f"From: {contact.first_name}")
            if contact.primary_email:
                parts.append(f"Email: {contact.primary_email}")
            if contact.primary_phone_number:
                parts.append(f"Phone: {contact.primary_phone_number}")
        parts.append("")
        if message.content:
            content = message.content
            parts.append(content if len(content) <= 200 else content[:197] + "...")
        return "\n".join(parts)

    async def notify_inquiry(self, website: Website, message: Message, contact: Contact | None = None) -> bool:
        if not website.ntfy_channel_enabled(CHANNEL_INQUIRIES):
            return False
        return await self.publish(
            website,
            CHANNEL_INQUIRIES,
            self.inquiry_body(message, contact),
            title=f"New Inquiry: {message.title or 'Property Inquiry'}",
            priority=PRIORITY_HIGH,
            tags=["house", "incoming_envelope"],
            click_url=self.admin_url(website, f"messages/{message.id}"),
        )

    async def notify_listing_change(
        self, website: Website, asset: RealtyAsset, event: str, listing_kind: str = "Sale"
    ) -> bool:
        if not website.ntfy_channel_enabled(CHANNEL_LISTINGS):
            return False

        name = asset.title or asset.reference or f"Property #{asset.id}"
        title, body, tags = LISTING_EVENTS.get(event, ("Listing Updated", "{name} has been updated", ["house"]))
        return await self.publish(
            website,
            CHANNEL_LISTINGS,
            body.format(name=name),
            title=title.format(kind=listing_kind),
            priority=PRIORITY_HIGH if event == "published" else PRIORITY_DEFAULT,
            tags=tags,
            click_url=self.admin_url(website, f"props/{asset.id}"),
        )

    async def notify_user_event(self, website: Website, user: User, event: str) -> bool:
        if not website.ntfy_channel_enabled(CHANNEL_USERS):
            return False

        title, body, tags = USER_EVENTS.get(
            event, ("User Update", "{name} account has been updated", ["bust_in_silhouette"])
        )
        return await self.publish(
            website,
            CHANNEL_USERS,
            body.format(name=_person_name(user)),
            title=title,
            tags=tags,
            click_url=self.admin_url(website, "users"),
        )

    @staticmethod
    def security_content(event_type: str, details: dict[str, Any]) -> tuple[str, str, int, list[str]]:
        email = details.get("email") or "unknown"
        if event_type == "login_failed":
            return (
                "Failed Login Attempt",
                f"Failed login for {email} from {details.get('ip') or 'unknown IP'}",
                PRIORITY_HIGH,
                ["warning", "lock"],
            )
        if event_type == "account_locked":
            return (
                "Account Locked",
                f"Account {email} has been locked due to multiple failed attempts",
                PRIORITY_URGENT,
                ["rotating_light", "lock"],
            )
        if event_type == "password_reset_requested":
            return (
                "Password Reset Requested",
                f"Password reset requested for {email}",
                PRIORITY_DEFAULT,
                ["key", "email"],
            )
        if event_type == "suspicious_activity":
            return (
                "Suspicious Activity Detected",
                details.get("message") or "Unusual activity detected",
                PRIORITY_URGENT,
                ["rotating_light", "warning"],
            )
        return "Security Event", f"Security event: {event_type}", PRIORITY_DEFAULT, ["shield"]

    async def notify_security_event(
        self, website: Website, event_type: str, details: dict[str, Any] | None = None
    ) -> bool:
        if not website.ntfy_channel_enabled(CHANNEL_SECURITY):
            return False
        title, body, priority, tags = self.security_content(event_type, details or {})
        return await self.publish(website, CHANNEL_SECURITY, body, title=title, priority=priority, tags=tags)

    async def notify_admin(
        self,
        website: Website,
        title: str,
        message: str,
        priority: int = PRIORITY_DEFAULT,
        tags: list[str] | None = None,
        click_url: str | None = None,
    ) -> bool:
        if not website.ntfy_enabled:
            return False
        return await self.publish(
            website,
            CHANNEL_ADMIN,
            message,
            title=title,
            priority=priority,
            tags=tags or ["bell"],
            click_url=click_url,
        )

    async def test_configuration(self, website: Website) -> dict[str, Any]:
        if not website.ntfy_enabled:
            return {"success": False, "message": "ntfy is not enabled"}
        if not website.ntfy_topic_prefix:
            return {"success": False, "message": "Topic prefix is required"}

        try:
            sent = await self.publish(
                website,
                "test",
                f"This is a test from {website.company_display_name or website.subdomain}",
                title="Test Notification",
                tags=["white_check_mark", "test_tube"],
            )
        except httpx.HTTPError as exc:
            logger.warning("[Ntfy] Test notification for website %s failed: %s", website.id, exc)
            sent = False

        if sent:
            return {"success": True, "message": "Test notification sent successfully"}
        return {"success": False, "message": "Failed to send test notification"}


class PlatformNtfyService(_NtfyPublisher):
    """Operator notifications on ``NTFY_PLATFORM_TOPIC``."""

    def ensure_enabled(self) -> None:
        if not settings.NTFY_ENABLED:
            raise NotificationDisabledError("Platform ntfy notifications are not enabled", field_name="NTFY_ENABLED")
        if not settings.NTFY_PLATFORM_TOPIC:
            raise NotificationDisabledError("Platform ntfy topic is not configured", field_name="NTFY_PLATFORM_TOPIC")

    async def publish(
        self,
        title: str,
        message: str,
        priority: int = PRIORITY_DEFAULT,
        tags: list[str] | None = None,
        click_url: str | None = None,
    ) -> bool:
        self.ensure_enabled()
        headers = build_headers(
            title=title,
            priority=priority,
            tags=tags,
            click_url=click_url,
            access_token=settings.NTFY_ACCESS_TOKEN,
        )
        return await self._post(settings.NTFY_SERVER_URL or DEFAULT_SERVER_URL, settings.NTFY_PLATFORM_TOPIC, message, headers)

    async def notify_user_signup(self, user: User, reserved_subdomain: str | None = None) -> bool:
        lines = [f"Email: {user.email}"]
        if reserved_subdomain:
            lines.append(f"Subdomain: {reserved_subdomain}")
        return await self.publish("New Signup", "\n".join(lines), tags=["tada", "bust_in_silhouette"])

    async def notify_email_verified(self, user: User) -> bool:
        return await self.publish("Email Verified", f"{user.email} verified their email", tags=["white_check_mark"])

    async def notify_provisioning_complete(self, website: Website) -> bool:
        return await self.publish(
            "Website Provisioned",
            f"{website.subdomain or website.slug} is live at {website.primary_url()}",
            tags=["rocket"],
            click_url=website.primary_url(),
        )

    async def notify_provisioning_failed(self, website: Website, error: str) -> bool:
        return await self.publish(
            "Provisioning Failed",
            f"{website.subdomain or website.slug}: {error}",
            priority=PRIORITY_HIGH,
            tags=["x", "warning"],
        )

    @staticmethod
    def _subscription_label(subscription: Subscription) -> str:
        website = subscription.website
        site = (website.subdomain or website.slug) if website is not None else f"website #{subscription.website_id}"
        plan = subscription.plan.display_name if subscription.plan is not None else "unknown plan"
        return f"{site} ({plan})"

    async def notify_trial_started(self, subscription: Subscription) -> bool:
        body = f"{self._subscription_label(subscription)} started a trial"
        if subscription.trial_ends_at:
            body += f", ends {subscription.trial_ends_at:%Y-%m-%d}"
        return await self.publish("Trial Started", body, tags=["hourglass_flowing_sand"])

    async def notify_subscription_activated(self, subscription: Subscription) -> bool:
        return await self.publish(
            "Subscription Activated",
            f"{self._subscription_label(subscription)} is now a paying customer",
            priority=PRIORITY_HIGH,
            tags=["moneybag", "tada"],
        )

    async def notify_trial_expired(self, subscription: Subscription) -> bool:
        return await self.publish(
            "Trial Expired",
            f"{self._subscription_label(subscription)} trial expired without converting",
            tags=["hourglass", "x"],
        )

    async def notify_subscription_canceled(self, subscription: Subscription, reason: str | None = None) -> bool:
        body = f"{self._subscription_label(subscription)} canceled"
        if reason:
            body += f"\nReason: {reason}"
        return await self.publish("Subscription Canceled", body, priority=PRIORITY_HIGH, tags=["wave", "x"])

    async def notify_plan_changed(self, subscription: Subscription, old_plan: Plan, new_plan: Plan) -> bool:
        direction = "Upgrade" if new_plan.price_cents > old_plan.price_cents else "Downgrade"
        return await self.publish(
            f"Plan {direction}",
            f"{self._subscription_label(subscription)}: {old_plan.display_name} -> {new_plan.display_name}",
            tags=["arrow_up" if direction == "Upgrade" else "arrow_down"],
        )

    async def notify_payment_failed(self, subscription: Subscription, error_details: str | None = None) -> bool:
        body = f"Payment failed for {self._subscription_label(subscription)}"
        if error_details:
            body += f"\n{error_details}"
        return await self.publish("Payment Failed", body, priority=PRIORITY_URGENT, tags=["credit_card", "warning"])

    async def notify_system_alert(self, title: str, message: str = "", priority: int = PRIORITY_URGENT) -> bool:
        return await self.publish(title, message or title, priority=priority, tags=["rotating_light"])
