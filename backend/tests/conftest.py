"""Shared fixtures: a throwaway SQLite database, seeded tenants and fakes."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

import httpx
import pytest

from core.cache import redis_manager
from database.base import utcnow
from database.models import (
    Feature,
    Plan,
    RealtyAsset,
    RentalListing,
    SaleListing,
    Subscription,
    User,
    Website,
)
from database.session import close_db, get_session_maker, init_db, reset_engine
from services.zoho import ZohoClient


class FakeAIService:
    """Stands in for ``AIService``; returns queued responses in order."""

    provider = "anthropic"
    model_id = "claude-test"

    def __init__(self, responses: list[str] | None = None, error: Exception | None = None) -> None:
        self.responses = list(responses or [])
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def is_ready(self) -> bool:
        return True

    async def generate_text(self, prompt: str, system_prompt: str | None = None, max_tokens: int | None = None):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt})
        if self.error is not None:
            raise self.error
        text = self.responses.pop(0) if self.responses else "{}"
        return {"text": text, "model_used": "claude-test", "provider": "anthropic"}


@pytest.fixture(autouse=True)
def memory_cache():
    redis_manager.use_memory()
    yield
    redis_manager._redis = None


@pytest.fixture
async def engine(tmp_path):
    engine = await reset_engine(f"sqlite+aiosqlite:///{tmp_path / 'pwb-test.db'}")
    await init_db()
    yield engine
    await close_db()


@pytest.fixture
def session_factory(engine):
    return get_session_maker()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def plans(session) -> dict[str, Plan]:
    starter = Plan(
        name="starter",
        display_name="Starter",
        price_cents=2900,
        price_currency="USD",
        trial_days=14,
        property_limit=2,
        features=["social_posts"],
        position=1,
    )
    professional = Plan(
        name="professional",
        display_name="Professional",
        price_cents=9900,
        price_currency="USD",
        trial_days=14,
        property_limit=None,
        features=["social_posts", "cma_reports", "custom_domain"],
        position=2,
    )
    session.add_all([starter, professional])
    await session.commit()
    return {"starter": starter, "professional": professional}


@pytest.fixture
async def website(session) -> Website:
    website = Website(
        slug="costa-homes",
        subdomain="costa-homes",
        company_display_name="Costa Homes",
        owner_email="owner@costahomes.test",
        default_currency="EUR",
        supported_locales=["en", "es"],
    )
    session.add(website)
    await session.commit()
    return website


@pytest.fixture
async def other_website(session) -> Website:
    website = Website(slug="north-realty", subdomain="north-realty", company_display_name="North Realty")
    session.add(website)
    await session.commit()
    return website


@pytest.fixture
async def owner(session, website) -> User:
    user = User(website_id=website.id, email="owner@costahomes.test", first_names="Ana", last_names="Lopez")
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def trial_subscription(session, website, plans) -> Subscription:
    now = utcnow()
    subscription = Subscription(
        website_id=website.id,
        plan_id=plans["professional"].id,
        status="trialing",
        trial_ends_at=now + timedelta(days=10),
        current_period_starts_at=now,
        current_period_ends_at=now + timedelta(days=10),
    )
    session.add(subscription)
    await session.commit()
    await session.refresh(subscription, attribute_names=["plan", "website"])
    return subscription


@pytest.fixture
def asset_factory(session):
    """Create a property with a sale (default) or rental listing."""

    async def create(website: Website, *, price_cents: int | None = 30_000_000, rental: bool = False,
                     features: tuple[str, ...] = (), **fields: Any) -> RealtyAsset:
        values = {
            "reference": "REF-1",
            "title": "Sea view apartment",
            "street_address": "1 Calle Mar",
            "city": "Marbella",
            "region": "Malaga",
            "country": "Spain",
            "latitude": 36.5100,
            "longitude": -4.8850,
            "prop_type_key": "apartment",
            "count_bedrooms": 2,
            "count_bathrooms": 2,
            "count_garages": 1,
            "constructed_area": 100.0,
            "year_construction": 2010,
            "images": ["https://img.test/1.jpg", "https://img.test/2.jpg"],
        }
        values.update(fields)
        asset = RealtyAsset(website_id=website.id, **values)
        asset.features = [Feature(feature_key=key) for key in features]
        if price_cents is not None:
            if rental:
                asset.rental_listing = RentalListing(price_rental_monthly_current_cents=price_cents, currency="EUR")
            else:
                asset.sale_listing = SaleListing(price_sale_current_cents=price_cents, currency="EUR")
        session.add(asset)
        await session.commit()
        await session.refresh(asset, attribute_names=["features", "sale_listing", "rental_listing"])
        return asset

    return create


@pytest.fixture
def fake_ai():
    return FakeAIService()


class FakeZohoApi:
    """MockTransport handler for the Zoho accounts and CRM endpoints."""

    def __init__(self, routes: dict[tuple[str, str], Any] | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})

        route = self.routes.get((request.method, request.url.path.removeprefix("/crm/v3")))
        if callable(route):
            route = route(request)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route if route is not None else {"data": [{"status": "success"}]})

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == f"/crm/v3{path}"]

    def json(self, method: str, path: str, index: int = -1) -> dict[str, Any]:
        return json.loads(self.calls(method, path)[index].content)


def make_zoho_client(api: FakeZohoApi, **overrides: Any) -> ZohoClient:
    values = {
        "client_id": "client-id",
        "client_secret": "client-secret",
        "refresh_token": "refresh-token",
        "api_domain": "https://zoho.test",
        "accounts_url": "https://accounts.zoho.test",
        "http_client": httpx.AsyncClient(transport=httpx.MockTransport(api)),
    }
    values.update(overrides)
    return ZohoClient(**values)


@pytest.fixture
def zoho_api():
    return FakeZohoApi({("POST", "/Leads"): {"data": [{"details": {"id": "L1"}}]}})
