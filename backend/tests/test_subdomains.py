"""Tests for subdomain generation and the subdomain pool."""

import random
from datetime import timedelta

import pytest

from core.exceptions import BusinessLogicError
from database.base import utcnow
from database.models import SubdomainPoolEntry, Website
from services.subdomain_service import (
    NAME_FORMAT,
    SubdomainGenerator,
    SubdomainPoolEmptyError,
    SubdomainPoolExhaustedError,
    SubdomainPoolService,
)


@pytest.fixture
async def pool(session):
    entries = [SubdomainPoolEntry(name=name) for name in ("sunny-meadow-42", "quiet-harbor-17")]
    session.add_all(entries)
    await session.commit()
    return entries


class TestSubdomainGenerator:
    def test_names_follow_pattern(self):
        generator = SubdomainGenerator(None, rng=random.Random(7))
        for _ in range(20):
            name = generator.generate()
            assert NAME_FORMAT.match(name)
            adjective, noun, number = name.split("-")
            assert 10 <= int(number) <= 99

    async def test_generate_unique_skips_taken_names(self, session):
        first = SubdomainGenerator(session, rng=random.Random(1)).generate()
        session.add(SubdomainPoolEntry(name=first))
        await session.commit()

        name = await SubdomainGenerator(session, rng=random.Random(1)).generate_unique()

        assert name != first

    async def test_populate_pool(self, session):
        generator = SubdomainGenerator(session, rng=random.Random(3))

        created = await generator.populate_pool(25, batch_size=10)

        assert created == 25
        assert (await SubdomainPoolService(session).stats())["available"] == 25
        assert await generator.ensure_pool_minimum(10) == 0
        assert await generator.ensure_pool_minimum(30) == 5

    @pytest.mark.parametrize(
        "name,error",
        [
            ("", "can't be blank"),
            ("-bad", "can only contain lowercase letters, numbers, and hyphens (no leading/trailing hyphens)"),
            ("ab", "must be at least 3 characters"),
            ("a" * 41, "must be 40 characters or fewer"),
            ("admin", "is reserved and cannot be used"),
        ],
    )
    async def test_invalid_custom_names(self, session, name, error):
        result = await SubdomainGenerator(session).validate_custom_name(name)
        assert not result["valid"]
        assert error in result["errors"]

    async def test_custom_name_conflicts(self, session, website, pool):
        generator = SubdomainGenerator(session)
        assert (await generator.validate_custom_name("Costa-Homes"))["errors"] == ["is already taken"]

        service = SubdomainPoolService(session)
        service.reserve(pool[0], "ana@example.com")
        await session.commit()

        assert (await generator.validate_custom_name("sunny-meadow-42"))["errors"] == ["is not available"]
        result = await generator.validate_custom_name(" Sunny-Meadow-42 ", reserved_by_email="ANA@example.com")
        assert result == {"valid": True, "errors": [], "normalized": "sunny-meadow-42"}


class TestTransitions:
    def test_reserve_then_allocate(self):
        entry = SubdomainPoolEntry(name="sunny-meadow-42", aasm_state="available")
        website = Website(id=5, slug="x")
        service = SubdomainPoolService(None)

        service.reserve(entry, " Ana@Example.com ", minutes=10)
        assert entry.aasm_state == "reserved"
        assert entry.reserved_by_email == "ana@example.com"
        assert entry.reserved_until - entry.reserved_at == timedelta(minutes=10)

        service.allocate(entry, website)
        assert entry.aasm_state == "allocated"
        assert entry.website_id == 5
        assert entry.reserved_by_email is None
        assert website.subdomain == "sunny-meadow-42"

    def test_release_and_make_available(self):
        entry = SubdomainPoolEntry(name="sunny-meadow-42", aasm_state="allocated", website_id=5)
        service = SubdomainPoolService(None)

        service.release(entry)
        assert entry.aasm_state == "released"
        assert entry.website_id is None

        service.make_available(entry)
        assert entry.aasm_state == "available"

    @pytest.mark.parametrize(
        "state,action",
        [("allocated", "reserve"), ("released", "allocate"), ("available", "release"), ("reserved", "make_available")],
    )
    def test_invalid_transitions(self, state, action):
        entry = SubdomainPoolEntry(name="sunny-meadow-42", aasm_state=state)
        service = SubdomainPoolService(None)
        method = getattr(service, action)
        args = {"reserve": ("a@b.test",), "allocate": (Website(id=1, slug="x"),)}.get(action, ())

        with pytest.raises(BusinessLogicError, match="cannot be"):
            method(entry, *args)


class TestSubdomainPoolService:
    async def test_empty_pool(self, session):
        with pytest.raises(SubdomainPoolEmptyError) as exc_info:
            await SubdomainPoolService(session).reserve_for_email("a@b.test")
        assert exc_info.value.http_status == 503

    async def test_exhausted_pool(self, session, pool):
        service = SubdomainPoolService(session)
        await service.reserve_for_email("a@b.test")
        await service.reserve_for_email("c@d.test")

        with pytest.raises(SubdomainPoolExhaustedError):
            await service.reserve_for_email("e@f.test")

    async def test_reservation_is_reused_for_same_email(self, session, pool):
        service = SubdomainPoolService(session)

        first = await service.reserve_for_email("Ana@example.com")
        second = await service.reserve_for_email("ana@example.com")

        assert first.id == second.id
        assert (await service.stats())["reserved"] == 1

    async def test_expired_reservation_is_replaced(self, session, pool):
        service = SubdomainPoolService(session)
        entry = await service.reserve_for_email("ana@example.com")
        entry.reserved_until = utcnow() - timedelta(minutes=1)
        await session.commit()

        renewed = await service.reserve_for_email("ana@example.com")

        assert renewed.aasm_state == "reserved"
        assert renewed.reserved_until > utcnow()
        assert (await service.stats())["reserved"] == 1

    async def test_reserve_specific(self, session, pool):
        service = SubdomainPoolService(session)

        entry = await service.reserve_specific("quiet-harbor-17", "ana@example.com")
        assert entry.reserved_by_email == "ana@example.com"
        assert await service.reserve_specific("quiet-harbor-17", "ana@example.com") is entry
        assert await service.reserve_specific("quiet-harbor-17", "bob@example.com") is None
        assert await service.reserve_specific("missing-name-10", "ana@example.com") is None
        assert not await service.is_name_available("quiet-harbor-17")
        assert await service.is_name_available("sunny-meadow-42")

    async def test_allocate_by_email_and_release(self, session, pool):
        website = Website(slug="new-agency", company_display_name="New Agency")
        session.add(website)
        await session.commit()
        service = SubdomainPoolService(session)
        reserved = await service.reserve_for_email("ana@example.com")

        entry = await service.allocate_to_website("ana@example.com", website)

        assert entry.id == reserved.id
        assert entry.aasm_state == "allocated"
        assert website.subdomain == entry.name

        await service.release_for_website(website)
        assert entry.aasm_state == "released"

    async def test_allocate_unknown_returns_none(self, session, website, pool):
        assert await SubdomainPoolService(session).allocate_to_website("nobody@example.com", website) is None

    async def test_release_expired_reservations(self, session, pool):
        service = SubdomainPoolService(session)
        for entry, minutes in zip(pool, (-5, 5)):
            service.reserve(entry, f"user{minutes}@example.com")
            entry.reserved_until = utcnow() + timedelta(minutes=minutes)
        await session.commit()

        assert await service.release_expired_reservations() == 1

        stats = await service.stats()
        assert stats["available"] == 1
        assert stats["reserved"] == 1
        assert stats["total"] == 2
