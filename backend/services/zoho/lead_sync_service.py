"""
Sync signups and their lifecycle to Zoho CRM Leads.

Lifecycle:
    signup -> website created -> plan selected -> activity (scored)
    -> trial ending -> converted (customer) | lost

The Zoho lead id is stored in ``User.metadata["zoho_lead_id"]``. Zoho
errors propagate so the calling task can decide whether to retry.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from database.base import utcnow
from database.models import Plan, Subscription, User, Website
from services.zoho.client import ZohoClient
from services.zoho.errors import ZohoNotFoundError

logger = logging.getLogger(__name__)

ACTIVITY_SCORES = {
    "first_property": 20,
    "property_added": 10,
    "five_properties": 30,
    "ten_properties": 20,
    "logo_uploaded": 15,
    "theme_customized": 15,
    "page_created": 10,
    "inquiry_received": 25,
    "team_member_added": 20,
    "login": 5,
}
DEFAULT_ACTIVITY_SCORE = 5
MAX_LEAD_SCORE = 100
HOT_THRESHOLD = 70
ENGAGED_THRESHOLD = 40

INDUSTRY_BY_SITE_TYPE = {
    "residential": "Residential Real Estate",
    "commercial": "Commercial Real Estate",
    "vacation_rental": "Vacation Rentals",
    "property_management": "Property Management",
    "mixed": "Real Estate",
}


def lead_name_from_email(email: str) -> str:
    local_part = email.split("@", 1)[0]
    return " ".join(word.capitalize() for word in re.split(r"[._\-+]", local_part) if word)


def industry_for(site_type: str | None) -> str:
    return INDUSTRY_BY_SITE_TYPE.get(str(site_type or ""), "Real Estate")


def annual_value(plan: Plan | None) -> float:
    if plan is None:
        return 0
    price = plan.price_cents / 100.0
    return price if plan.billing_interval == "year" else price * 12


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None and v != ""}


class LeadSyncService:
    def __init__(self, session: AsyncSession, client: ZohoClient | None = None) -> None:
        self.session = session
        self.client = client or ZohoClient()

    @property
    def available(self) -> bool:
        return self.client.configured

    async def _store_metadata(self, user: User, **values: Any) -> None:
        # reassign so the JSON column is flagged dirty
        user.user_metadata = {**(user.user_metadata or {}), **values}
        await self.session.commit()

    async def create_lead_from_signup(self, user: User, request_info: dict[str, Any] | None = None) -> str | None:
        if not self.available:
            return None
        request_info = request_info or {}

        description = [f"Signed up for PWB trial on {utcnow():%Y-%m-%d %H:%M} UTC"]
        if request_info.get("utm_source"):
            description.append(f"Source: {request_info['utm_source']}")
        if request_info.get("utm_campaign"):
            description.append(f"Campaign: {request_info['utm_campaign']}")

        payload = {
            "data": [
                _compact(
                    {
                        "Email": user.email,
                        "Last_Name": lead_name_from_email(user.email),
                        "First_Name": user.first_names,
                        "Phone": user.phone_number_primary,
                        "Lead_Source": "Website Signup",
                        "Lead_Status": "New",
                        "PWB_User_ID": str(user.id),
                        "Signup_IP": request_info.get("ip"),
                        "UTM_Source": request_info.get("utm_source"),
                        "UTM_Medium": request_info.get("utm_medium"),
                        "UTM_Campaign": request_info.get("utm_campaign"),
                        "Description": "\n".join(description),
                    }
                )
            ]
        }

        response = await self.client.post("/Leads", payload)
        try:
            lead_id = response["data"][0]["details"]["id"]
        except (KeyError, IndexError, TypeError):
            logger.warning("[Zoho] No lead ID returned for user %s: %s", user.id, response)
            return None

        await self._store_metadata(user, zoho_lead_id=lead_id, zoho_synced_at=utcnow().isoformat())
        logger.info("[Zoho] Created lead %s for user %s", lead_id, user.id)
        return lead_id

    async def update_lead_website_created(self, user: User, website: Website, plan: Plan | None = None) -> bool:
        if not self.available:
            return False

        lead_id = user.zoho_lead_id or await self.create_lead_from_signup(user)
        if not lead_id:
            return False

        today = utcnow().date()
        trial_days = plan.trial_days if plan is not None else 30
        payload = {
            "data": [
                _compact(
                    {
                        "Lead_Status": "Configured",
                        "PWB_Subdomain": website.subdomain,
                        "Industry": industry_for(website.site_type),
                        "Plan_Selected": plan.display_name if plan is not None else "Starter",
                        "Annual_Value": str(annual_value(plan)),
                        "Trial_Start_Date": today.isoformat(),
                        "Trial_End_Date": (today + timedelta(days=trial_days)).isoformat(),
                        "PWB_Website_ID": str(website.id),
                    }
                )
            ]
        }
        await self.client.put(f"/Leads/{lead_id}", payload)
        logger.info("[Zoho] Updated lead %s with website %s", lead_id, website.id)
        return True

    async def update_lead_plan_selected(self, user: User, subscription: Subscription) -> bool:
        if not self.available or not user.zoho_lead_id:
            return False

        plan = subscription.plan
        payload = {
            "data": [
                _compact(
                    {
                        "Plan_Selected": plan.display_name,
                        "Annual_Value": str(annual_value(plan)),
                        "Subscription_Status": subscription.status,
                        "Trial_End_Date": subscription.trial_ends_at.date().isoformat()
                        if subscription.trial_ends_at
                        else None,
                    }
                )
            ]
        }
        await self.client.put(f"/Leads/{user.zoho_lead_id}", payload)
        logger.info("[Zoho] Lead %s plan updated to %s", user.zoho_lead_id, plan.display_name)
        return True

    @staticmethod
    def activity_note(activity_type: str, details: dict[str, Any]) -> str:
        timestamp = f"{utcnow():%Y-%m-%d %H:%M} UTC"
        if activity_type in ("first_property", "property_added"):
            text = f"Added property: {details.get('title')} (REF: {details.get('reference')})"
        elif activity_type == "five_properties":
            text = f"Milestone: Added 5 properties to their website\nTotal properties: {details.get('total_count')}"
        elif activity_type == "ten_properties":
            text = f"Milestone: Added 10 properties to their website\nTotal properties: {details.get('total_count')}"
        elif activity_type == "logo_uploaded":
            text = "Uploaded company logo - actively customizing their site"
        elif activity_type == "theme_customized":
            text = f"Customized website theme: {details.get('theme_name')}"
        elif activity_type == "page_created":
            text = f"Created new page: {details.get('page_title')}"
        elif activity_type == "inquiry_received":
            text = f"Received customer inquiry - site is generating leads!\nInquiry from: {details.get('contact_email')}"
        elif activity_type == "team_member_added":
            text = f"Added team member: {details.get('email')}\nRole: {details.get('role')}"
        elif activity_type == "login":
            text = f"User logged in\nSign-in count: {details.get('sign_in_count')}"
        else:
            text = f"Activity: {activity_type}\n{json.dumps(details, default=str)}"
        return f"{text}\nTime: {timestamp}"

    @staticmethod
    def next_engagement(current_score: int, current_status: str | None, activity_type: str) -> tuple[int, str | None]:
        """New (score, status); status is None when it should not change."""
        score = min(current_score + ACTIVITY_SCORES.get(activity_type, DEFAULT_ACTIVITY_SCORE), MAX_LEAD_SCORE)
        if current_status in ("Lost", "Converted"):
            return score, None
        if score >= HOT_THRESHOLD:
            return score, "Hot"
        if score >= ENGAGED_THRESHOLD and current_status != "Hot":
            return score, "Engaged"
        return score, None

    async def log_activity(self, user: User, activity_type: str, details: dict[str, Any] | None = None) -> bool:
        if not self.available or not user.zoho_lead_id:
            return False
        details = details or {}
        lead_id = user.zoho_lead_id

        await self.client.post(
            "/Notes",
            {
                "data": [
                    {
                        "Note_Title": f"Activity: {activity_type.replace('_', ' ').title()}",
                        "Note_Content": self.activity_note(activity_type, details),
                        "Parent_Id": lead_id,
                        "se_module": "Leads",
                    }
                ]
            },
        )

        lead_response = await self.client.get(f"/Leads/{lead_id}")
        lead = (lead_response.get("data") or [{}])[0] if isinstance(lead_response, dict) else {}
        score, status = self.next_engagement(int(lead.get("Lead_Score") or 0), lead.get("Lead_Status"), activity_type)

        update: dict[str, Any] = {"Lead_Score": str(score), "Last_Activity_Date": utcnow().isoformat()}
        if details.get("total_count") and "propert" in activity_type:
            update["Properties_Count"] = str(details["total_count"])
        if status:
            update["Lead_Status"] = status

        await self.client.put(f"/Leads/{lead_id}", {"data": [update]})
        logger.info("[Zoho] Logged activity '%s' for lead %s", activity_type, lead_id)
        return True

    async def update_trial_ending(self, user: User, days_remaining: int) -> bool:
        if not self.available or not user.zoho_lead_id:
            return False
        payload = {
            "data": [
                {
                    "Lead_Status": "Trial Ending",
                    "Trial_Days_Left": str(days_remaining),
                    "Last_Activity_Date": utcnow().isoformat(),
                }
            ]
        }
        await self.client.put(f"/Leads/{user.zoho_lead_id}", payload)
        logger.info("[Zoho] Lead %s trial ending in %s days", user.zoho_lead_id, days_remaining)
        return True

    async def convert_lead_to_customer(self, user: User, subscription: Subscription) -> dict[str, Any] | None:
        if not self.available or not user.zoho_lead_id:
            return None

        website = subscription.website
        plan = subscription.plan
        company = (website.company_display_name if website is not None else None) or user.email
        payload = {
            "data": [
                {
                    "overwrite": True,
                    "notify_lead_owner": True,
                    "notify_new_entity_owner": True,
                    "Deals": _compact(
                        {
                            "Deal_Name": f"{company} - {plan.display_name}",
                            "Stage": "Closed Won",
                            "Amount": annual_value(plan),
                            "Closing_Date": utcnow().date().isoformat(),
                            "PWB_Plan": plan.display_name,
                            "PWB_Website_ID": str(website.id) if website is not None else None,
                            "Subscription_Status": "active",
                        }
                    ),
                }
            ]
        }

        response = await self.client.post(f"/Leads/{user.zoho_lead_id}/actions/convert", payload)
        converted = (response.get("data") or [{}])[0] if isinstance(response, dict) else {}
        if not converted.get("Contacts"):
            logger.warning("[Zoho] Lead conversion returned unexpected response: %s", response)
            return None

        result = {
            "contact_id": converted.get("Contacts"),
            "account_id": converted.get("Accounts"),
            "deal_id": converted.get("Deals"),
        }
        await self._store_metadata(
            user,
            zoho_contact_id=result["contact_id"],
            zoho_account_id=result["account_id"],
            zoho_deal_id=result["deal_id"],
            zoho_converted_at=utcnow().isoformat(),
        )
        logger.info("[Zoho] Converted lead %s to customer: %s", user.zoho_lead_id, result)
        return result

    async def mark_lead_lost(self, user: User, reason: str) -> bool:
        if not self.available or not user.zoho_lead_id:
            return False
        now = utcnow()
        payload = {
            "data": [
                {
                    "Lead_Status": "Lost",
                    "Lost_Reason": reason,
                    "Lost_Date": now.date().isoformat(),
                    "Last_Activity_Date": now.isoformat(),
                }
            ]
        }
        await self.client.put(f"/Leads/{user.zoho_lead_id}", payload)
        logger.info("[Zoho] Lead %s marked as lost: %s", user.zoho_lead_id, reason)
        return True

    async def find_lead_by_email(self, email: str) -> str | None:
        if not self.available:
            return None
        try:
            response = await self.client.get("/Leads/search", {"email": email})
        except ZohoNotFoundError:
            return None
        if not isinstance(response, dict) or not response.get("data"):
            return None
        return response["data"][0].get("id")
