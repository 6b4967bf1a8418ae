"""HTTP-level tests for the public API."""

from typing import Any

import httpx
import pytest

from api.dependencies import get_job_queue
from api.main import app
from conftest import FakeAIService
from core.config import settings
from database.models import SubdomainPoolEntry
from services.external_feed import register_default_providers
from services.ntfy_service import NtfyService

API = "/api/v1"
TENANT = {"X-Website-Slug": "costa-homes"}


class RecordingJobQueue:
    def __init__(self) -> None:
        self.jobs: list[tuple[str, tuple, dict[str, Any]]] = []

    def enqueue(self, task, *args: Any, **kwargs: Any) -> bool:
        self.jobs.append((task.name, args, kwargs))
        return True

    def names(self) -> list[str]:
        return [name for name, _, _ in self.jobs]


@pytest.fixture
def jobs():
    return RecordingJobQueue()


@pytest.fixture
def ai():
    return FakeAIService()


@pytest.fixture
async def client(engine, jobs, ai):
    app.state.ai_service = ai
    app.state.ntfy_service = NtfyService()
    app.state.feed_registry = register_default_providers()
    app.dependency_overrides[get_job_queue] = lambda: jobs
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


class TestTenantResolution:
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "Welcome to the PropertyWebBuilder API"

    async def test_unknown_tenant_without_fallback(self, client, monkeypatch, website):
        monkeypatch.setattr(settings, "TENANT_FALLBACK_TO_DEFAULT", False)
        response = await client.get(f"{API}/website/", headers={"X-Website-Slug": "nobody"})

        assert response.status_code == 404
        assert response.json()["error"] == "TENANT_NOT_FOUND"

    async def test_header_selects_website(self, client, website, other_website):
        response = await client.get(f"{API}/website/", headers={"X-Website-Slug": "north-realty"})

        assert response.status_code == 200
        assert response.json()["slug"] == "north-realty"
        assert response.json()["primary_url"] == "https://north-realty.propertywebbuilder.com"
        assert response.headers["X-Website-Slug"] == "north-realty"

    async def test_subdomain_host_selects_website(self, client, website, other_website):
        response = await client.get(f"{API}/website/", headers={"Host": "costa-homes.propertywebbuilder.com"})
        assert response.json()["slug"] == "costa-homes"


class TestProperties:
    async def test_search_and_detail(self, client, website, other_website, asset_factory):
        mine = await asset_factory(website, reference="MINE")
        theirs = await asset_factory(other_website, reference="THEIRS")

        response = await client.get(f"{API}/properties/search/buy", headers=TENANT)
        assert response.status_code == 200
        body = response.json()
        assert [item["reference"] for item in body["results"]["items"]] == ["MINE"]
        assert body["results"]["total"] == 1

        detail = await client.get(f"{API}/properties/{mine.id}", headers=TENANT)
        assert detail.json()["reference"] == "MINE"

        foreign = await client.get(f"{API}/properties/{theirs.id}", headers=TENANT)
        assert foreign.status_code == 403
        assert foreign.json()["error"] == "TENANT_MISMATCH"

    async def test_missing_property(self, client, website):
        response = await client.get(f"{API}/properties/9999", headers=TENANT)
        assert response.status_code == 404
        assert response.json()["success"] is False


class TestEnquiries:
    async def test_submit_enquiry_enqueues_jobs(self, client, website, jobs):
        response = await client.post(
            f"{API}/enquiries/",
            headers=TENANT,
            json={"email": "buyer@example.com", "name": "Maria Garcia", "message": "Still available?"},
        )

        assert response.status_code == 201
        body = response.json()
        assert jobs.names() == ["jobs.tasks.send_ntfy_notification", "jobs.tasks.sync_lead_activity"]
        assert jobs.jobs[0][1] == ("inquiry", website.id, body["message_id"])
        assert jobs.jobs[1][2] == {"website_id": website.id}

    async def test_invalid_enquiry(self, client, website, jobs):
        response = await client.post(f"{API}/enquiries/", headers=TENANT, json={"email": "nope", "message": "x"})
        assert response.status_code == 422
        assert jobs.jobs == []


class TestSubscriptionApi:
    async def test_status_and_plan_change(self, client, website, trial_subscription, jobs):
        status = await client.get(f"{API}/subscription/", headers=TENANT)
        assert status.json()["plan_slug"] == "professional"
        assert status.json()["status"] == "trialing"

        changed = await client.post(f"{API}/subscription/change-plan", headers=TENANT, json={"plan_name": "starter"})

        assert changed.status_code == 200
        assert changed.json()["plan_slug"] == "starter"
        assert jobs.names() == ["jobs.tasks.send_platform_notification"]
        assert jobs.jobs[0][1][0] == "plan_changed"

    async def test_unknown_plan(self, client, website, trial_subscription):
        response = await client.post(f"{API}/subscription/change-plan", headers=TENANT, json={"plan_name": "gold"})
        assert response.status_code == 404

    async def test_no_subscription(self, client, website):
        status = await client.get(f"{API}/subscription/", headers=TENANT)
        assert status.json()["status"] == "none"
        assert status.json()["has_subscription"] is False

        cancel = await client.post(f"{API}/subscription/cancel", headers=TENANT, json={})
        assert cancel.status_code == 404

    async def test_list_plans(self, client, plans):
        response = await client.get(f"{API}/subscription/plans")
        assert [plan["name"] for plan in response.json()] == ["starter", "professional"]


class TestCustomDomains:
    async def test_requires_plan_feature(self, client, website):
        response = await client.post(f"{API}/website/custom-domain", headers=TENANT, json={"domain": "costahomes.es"})
        assert response.status_code == 403
        assert response.json()["error"] == "FEATURE_NOT_AVAILABLE"

    async def test_sets_unverified_domain(self, client, website, trial_subscription):
        response = await client.post(
            f"{API}/website/custom-domain", headers=TENANT, json={"domain": "https://CostaHomes.es/"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["domain"] == "costahomes.es"
        assert body["verified"] is False
        assert body["record_name"] == "_pwb-verification.costahomes.es"
        assert len(body["expected_value"]) == 32


class TestSubdomainsApi:
    async def test_validate(self, client, engine):
        response = await client.post(f"{API}/subdomains/validate", json={"name": "admin"})
        assert response.json()["valid"] is False

    async def test_reserve_from_empty_pool(self, client, engine):
        response = await client.post(f"{API}/subdomains/reserve", json={"email": "ana@example.com"})
        assert response.status_code == 503

    async def test_reserve_and_stats(self, client, session):
        session.add(SubdomainPoolEntry(name="sunny-meadow-42"))
        await session.commit()

        response = await client.post(f"{API}/subdomains/reserve", json={"email": "ana@example.com"})
        assert response.json()["name"] == "sunny-meadow-42"

        stats = await client.get(f"{API}/subdomains/stats")
        assert stats.json()["reserved"] == 1


class TestMarketingApi:
    async def test_generate_social_post(self, client, website, asset_factory, ai):
        asset = await asset_factory(website)
        ai.responses.append('{"caption": "Bright flat near the beach.", "hashtags": "#marbella"}')

        response = await client.post(f"{API}/social-posts/generate", headers=TENANT, json={"property_id": asset.id})

        body = response.json()
        assert body["success"] is True
        assert body["post"]["platform"] == "instagram"
        assert body["post"]["status"] == "draft"

        listed = await client.get(f"{API}/social-posts/", headers=TENANT)
        assert [post["id"] for post in listed.json()] == [body["post"]["id"]]

    async def test_cma_report_share_flow(self, client, website, asset_factory):
        asset = await asset_factory(website)

        created = await client.post(f"{API}/reports/cma/", headers=TENANT, json={"property_id": asset.id})
        report = created.json()["report"]
        assert created.json()["success"] is True
        assert report["status"] == "completed"

        shared = await client.post(f"{API}/reports/cma/{report['id']}/share", headers=TENANT)
        token = shared.json()["share_token"]
        assert token

        viewed = await client.get(f"{API}/reports/cma/shared/{token}")
        assert viewed.json()["view_count"] == 1

        missing = await client.get(f"{API}/reports/cma/shared/not-a-token")
        assert missing.status_code == 404


class TestExternalListingsApi:
    async def test_unconfigured_feed(self, client, website):
        search = await client.get(f"{API}/external-listings/", headers=TENANT)
        assert search.json()["properties"] == []
        assert search.json()["error"] is False

        status = await client.get(f"{API}/external-listings/status", headers=TENANT)
        assert status.json() == {
            "provider": None,
            "display_name": "Not Configured",
            "configured": False,
            "enabled": False,
        }

        detail = await client.get(f"{API}/external-listings/REF-1", headers=TENANT)
        assert detail.status_code == 404


class TestNotificationsApi:
    async def test_ntfy_test_on_disabled_site(self, client, website):
        response = await client.post(f"{API}/website/ntfy/test", headers=TENANT)
        assert response.json() == {"success": False, "message": "ntfy is not enabled"}
