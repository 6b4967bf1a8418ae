"""Tests for the Zoho CRM client and lead sync."""

from datetime import timedelta

import httpx
import pytest

from conftest import FakeZohoApi, make_zoho_client
from core.cache import cache_manager
from database.base import utcnow
from database.models import Plan
from services.zoho import (
    LeadSyncService,
    ZohoApiError,
    ZohoAuthenticationError,
    ZohoConfigurationError,
    ZohoConnectionError,
    ZohoNotFoundError,
    ZohoRateLimitError,
    ZohoTimeoutError,
    ZohoValidationError,
)
from services.zoho.client import CACHE_KEY, extract_error_details
from services.zoho.lead_sync_service import annual_value, industry_for, lead_name_from_email


class TestZohoClient:
    async def test_token_is_refreshed_once_and_cached(self, zoho_api):
        client = make_zoho_client(zoho_api)

        await client.get("/Leads/L1")
        await client.get("/Leads/L2")

        token_requests = [r for r in zoho_api.requests if r.url.path == "/oauth/v2/token"]
        assert len(token_requests) == 1
        assert token_requests[0].url.params["grant_type"] == "refresh_token"
        assert token_requests[0].url.params["refresh_token"] == "refresh-token"
        assert zoho_api.requests[-1].headers["Authorization"] == "Zoho-oauthtoken tok-1"
        assert await cache_manager.get(CACHE_KEY) == "tok-1"

    async def test_failed_refresh_raises_authentication_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_code"})

        client = make_zoho_client(FakeZohoApi(), http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(ZohoAuthenticationError, match="invalid_code"):
            await client.refresh_access_token()

    async def test_unconfigured_client(self, zoho_api):
        client = make_zoho_client(zoho_api, client_id="", refresh_token="")
        assert not client.configured
        with pytest.raises(ZohoConfigurationError):
            await client.get("/Leads")
        assert zoho_api.requests == []

    async def test_unauthorized_clears_cached_token(self, zoho_api):
        zoho_api.routes[("GET", "/Leads/L1")] = httpx.Response(401, json={"code": "INVALID_TOKEN"})
        client = make_zoho_client(zoho_api)

        with pytest.raises(ZohoAuthenticationError):
            await client.get("/Leads/L1")
        assert await cache_manager.get(CACHE_KEY) is None

    async def test_rate_limit_carries_retry_after(self, zoho_api):
        zoho_api.routes[("GET", "/Leads")] = httpx.Response(429, headers={"Retry-After": "120"})

        with pytest.raises(ZohoRateLimitError) as exc_info:
            await make_zoho_client(zoho_api).get("/Leads")
        assert exc_info.value.retry_after == 120

    @pytest.mark.parametrize("header", ["Wed, 21 Oct 2015 07:28:00 GMT", "soon", "0"])
    async def test_unusable_retry_after_defaults_to_a_minute(self, zoho_api, header):
        zoho_api.routes[("GET", "/Leads")] = httpx.Response(429, headers={"Retry-After": header})

        with pytest.raises(ZohoRateLimitError) as exc_info:
            await make_zoho_client(zoho_api).get("/Leads")
        assert exc_info.value.retry_after == 60

    @pytest.mark.parametrize(
        "status,error",
        [(400, ZohoValidationError), (404, ZohoNotFoundError), (500, ZohoApiError)],
    )
    async def test_status_errors(self, zoho_api, status, error):
        zoho_api.routes[("POST", "/Leads")] = httpx.Response(status, json={"data": [{"message": "invalid email"}]})

        with pytest.raises(error):
            await make_zoho_client(zoho_api).post("/Leads", {"data": []})

    async def test_validation_error_includes_details(self, zoho_api):
        zoho_api.routes[("POST", "/Leads")] = httpx.Response(400, json={"data": [{"message": "invalid email"}]})

        with pytest.raises(ZohoValidationError, match="invalid email"):
            await make_zoho_client(zoho_api).post("/Leads", {"data": []})

    @pytest.mark.parametrize(
        "exc,error",
        [(httpx.ConnectError("refused"), ZohoConnectionError), (httpx.ReadTimeout("slow"), ZohoTimeoutError)],
    )
    async def test_transport_errors(self, zoho_api, exc, error):
        zoho_api.routes[("GET", "/Leads")] = exc
        with pytest.raises(error):
            await make_zoho_client(zoho_api).get("/Leads")

    def test_extract_error_details(self):
        assert extract_error_details({"data": [{"message": "bad"}]}) == "bad"
        assert extract_error_details({"message": "oops"}) == "oops"
        assert extract_error_details("plain") == "plain"


class TestLeadHelpers:
    def test_lead_name_from_email(self):
        assert lead_name_from_email("john.doe+pwb@example.com") == "John Doe Pwb"

    def test_industry(self):
        assert industry_for("vacation_rental") == "Vacation Rentals"
        assert industry_for(None) == "Real Estate"

    def test_annual_value(self):
        assert annual_value(Plan(price_cents=2900, billing_interval="month")) == 348.0
        assert annual_value(Plan(price_cents=29000, billing_interval="year")) == 290.0
        assert annual_value(None) == 0

    @pytest.mark.parametrize(
        "score,status,activity,expected",
        [
            (30, "New", "login", (35, None)),
            (30, "New", "property_added", (40, "Engaged")),
            (45, "Hot", "login", (50, None)),
            (60, "Engaged", "property_added", (70, "Hot")),
            (95, "Lost", "inquiry_received", (100, None)),
            (0, "New", "unknown_activity", (5, None)),
        ],
    )
    def test_next_engagement(self, score, status, activity, expected):
        assert LeadSyncService.next_engagement(score, status, activity) == expected


class TestLeadSyncService:
    async def test_create_lead_from_signup(self, session, owner, zoho_api):
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        lead_id = await service.create_lead_from_signup(
            owner, {"ip": "10.0.0.1", "utm_source": "google", "utm_campaign": "spring"}
        )

        assert lead_id == "L1"
        assert owner.zoho_lead_id == "L1"
        assert "zoho_synced_at" in owner.user_metadata
        lead = zoho_api.json("POST", "/Leads")["data"][0]
        assert lead["Email"] == "owner@costahomes.test"
        assert lead["Last_Name"] == "Owner"
        assert lead["First_Name"] == "Ana"
        assert lead["Signup_IP"] == "10.0.0.1"
        assert "Phone" not in lead
        assert "Source: google\nCampaign: spring" in lead["Description"]

    async def test_unconfigured_sync_is_a_no_op(self, session, owner, zoho_api):
        service = LeadSyncService(session, make_zoho_client(zoho_api, client_secret=""))
        assert await service.create_lead_from_signup(owner) is None
        assert not await service.log_activity(owner, "login")
        assert zoho_api.requests == []

    async def test_missing_lead_id_in_response(self, session, owner):
        api = FakeZohoApi({("POST", "/Leads"): {"data": [{"status": "error"}]}})
        assert await LeadSyncService(session, make_zoho_client(api)).create_lead_from_signup(owner) is None
        assert owner.zoho_lead_id is None

    async def test_website_created_creates_lead_first(self, session, owner, website, plans, zoho_api):
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        assert await service.update_lead_website_created(owner, website, plans["professional"])

        update = zoho_api.json("PUT", "/Leads/L1")["data"][0]
        assert update["Lead_Status"] == "Configured"
        assert update["PWB_Subdomain"] == "costa-homes"
        assert update["Industry"] == "Residential Real Estate"
        assert update["Plan_Selected"] == "Professional"
        assert update["Annual_Value"] == "1188.0"
        today = utcnow().date()
        assert update["Trial_End_Date"] == (today + timedelta(days=14)).isoformat()

    async def test_plan_selected_requires_lead(self, session, owner, trial_subscription, zoho_api):
        service = LeadSyncService(session, make_zoho_client(zoho_api))
        assert not await service.update_lead_plan_selected(owner, trial_subscription)

        owner.user_metadata = {"zoho_lead_id": "L9"}
        assert await service.update_lead_plan_selected(owner, trial_subscription)
        update = zoho_api.json("PUT", "/Leads/L9")["data"][0]
        assert update["Subscription_Status"] == "trialing"
        assert update["Trial_End_Date"] == trial_subscription.trial_ends_at.date().isoformat()

    async def test_log_activity_scores_lead(self, session, owner, zoho_api):
        owner.user_metadata = {"zoho_lead_id": "L1"}
        zoho_api.routes[("GET", "/Leads/L1")] = {"data": [{"Lead_Score": "50", "Lead_Status": "New"}]}
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        assert await service.log_activity(owner, "inquiry_received", {"contact_email": "buyer@example.com"})

        note = zoho_api.json("POST", "/Notes")["data"][0]
        assert note["Note_Title"] == "Activity: Inquiry Received"
        assert note["Parent_Id"] == "L1"
        assert "Inquiry from: buyer@example.com" in note["Note_Content"]
        update = zoho_api.json("PUT", "/Leads/L1")["data"][0]
        assert update["Lead_Score"] == "75"
        assert update["Lead_Status"] == "Hot"

    async def test_property_activity_records_count(self, session, owner, zoho_api):
        owner.user_metadata = {"zoho_lead_id": "L1"}
        zoho_api.routes[("GET", "/Leads/L1")] = {"data": [{}]}
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        await service.log_activity(owner, "five_properties", {"total_count": 5})

        update = zoho_api.json("PUT", "/Leads/L1")["data"][0]
        assert update["Properties_Count"] == "5"
        assert "Lead_Status" not in update

    async def test_convert_lead(self, session, owner, trial_subscription, zoho_api):
        owner.user_metadata = {"zoho_lead_id": "L1"}
        zoho_api.routes[("POST", "/Leads/L1/actions/convert")] = {
            "data": [{"Contacts": "C1", "Accounts": "A1", "Deals": "D1"}]
        }
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        result = await service.convert_lead_to_customer(owner, trial_subscription)

        assert result == {"contact_id": "C1", "account_id": "A1", "deal_id": "D1"}
        assert owner.user_metadata["zoho_deal_id"] == "D1"
        deal = zoho_api.json("POST", "/Leads/L1/actions/convert")["data"][0]["Deals"]
        assert deal["Deal_Name"] == "Costa Homes - Professional"
        assert deal["Amount"] == 1188.0

    async def test_convert_with_unexpected_response(self, session, owner, trial_subscription, zoho_api):
        owner.user_metadata = {"zoho_lead_id": "L1"}
        service = LeadSyncService(session, make_zoho_client(zoho_api))
        assert await service.convert_lead_to_customer(owner, trial_subscription) is None

    async def test_mark_lead_lost_and_trial_ending(self, session, owner, zoho_api):
        owner.user_metadata = {"zoho_lead_id": "L1"}
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        assert await service.update_trial_ending(owner, 2)
        assert zoho_api.json("PUT", "/Leads/L1")["data"][0]["Trial_Days_Left"] == "2"

        assert await service.mark_lead_lost(owner, "trial_expired")
        lost = zoho_api.json("PUT", "/Leads/L1")["data"][0]
        assert lost["Lead_Status"] == "Lost"
        assert lost["Lost_Reason"] == "trial_expired"

    async def test_errors_propagate(self, session, owner, zoho_api):
        owner.user_metadata = {"zoho_lead_id": "L1"}
        zoho_api.routes[("PUT", "/Leads/L1")] = httpx.Response(400, json={"message": "bad field"})
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        with pytest.raises(ZohoValidationError):
            await service.mark_lead_lost(owner, "other")

    async def test_find_lead_by_email(self, session, zoho_api):
        service = LeadSyncService(session, make_zoho_client(zoho_api))

        zoho_api.routes[("GET", "/Leads/search")] = {"data": [{"id": "L5"}]}
        assert await service.find_lead_by_email("a@b.test") == "L5"
        assert zoho_api.calls("GET", "/Leads/search")[0].url.params["email"] == "a@b.test"

        zoho_api.routes[("GET", "/Leads/search")] = httpx.Response(204)
        assert await service.find_lead_by_email("a@b.test") is None

        zoho_api.routes[("GET", "/Leads/search")] = httpx.Response(404)
        assert await service.find_lead_by_email("a@b.test") is None
