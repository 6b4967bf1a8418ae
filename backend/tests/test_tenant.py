"""Tests for tenant resolution and the current-website context."""

import pytest

from core.config import settings
from core.exceptions import TenantContextRequiredError, TenantMismatchError, TenantNotFoundError
from core.tenant import current_website, ensure_tenant_owns, require_current_website, tenant_scope
from database.models import Message, Website
from services.tenant_service import (
    TenantService,
    extract_subdomain_from_host,
    is_platform_domain,
    normalize_domain,
)


class TestDomainHelpers:
    def test_normalize_domain(self):
        assert normalize_domain("HTTPS://Www.Example.COM:8443/path?q=1") == "www.example.com"
        assert normalize_domain(None) == ""

    def test_platform_domain(self):
        assert is_platform_domain("acme.propertywebbuilder.com")
        assert is_platform_domain("localhost:3000")
        assert not is_platform_domain("notpropertywebbuilder.com")

    def test_extract_subdomain(self):
        assert extract_subdomain_from_host("acme.propertywebbuilder.com") == "acme"
        assert extract_subdomain_from_host("a.b.pwb.localhost") == "a"
        assert extract_subdomain_from_host("example.com") is None

    @pytest.mark.parametrize("domain", ["www.acme.com", "https://WWW.Acme.com/", "acme.com"])
    def test_verification_record_name_drops_www(self, domain):
        website = Website(custom_domain=domain)
        assert TenantService(None).verification_record_name(website) == "_pwb-verification.acme.com"


class TestTenantService:
    async def test_resolve_by_header_slug(self, session, website, other_website):
        resolved = await TenantService(session).resolve(header_slug="north-realty", host="costa-homes.localhost")
        assert resolved.id == other_website.id

    async def test_resolve_by_subdomain_host_case_insensitive(self, session, website, other_website):
        resolved = await TenantService(session).resolve(host="North-Realty.propertywebbuilder.com")
        assert resolved.id == other_website.id

    async def test_resolve_by_custom_domain_with_www(self, session, website, other_website):
        other_website.custom_domain = "northrealty.es"
        await session.commit()

        resolved = await TenantService(session).resolve(host="www.northrealty.es")
        assert resolved.id == other_website.id

    async def test_falls_back_to_default_website(self, session, website, other_website):
        resolved = await TenantService(session).resolve(host="unknown.example.org")
        assert resolved.id == website.id

    async def test_raises_without_fallback(self, session, website, monkeypatch):
        monkeypatch.setattr(settings, "TENANT_FALLBACK_TO_DEFAULT", False)
        with pytest.raises(TenantNotFoundError) as exc_info:
            await TenantService(session).resolve(header_slug="missing")
        assert exc_info.value.http_status == 404

    async def test_verify_custom_domain(self, session, website):
        website.custom_domain = "costahomes.es"
        website.custom_domain_verification_token = "token-123"
        await session.commit()
        lookups = []

        async def txt_lookup(name):
            lookups.append(name)
            return ["unrelated", "token-123"]

        assert await TenantService(session, txt_lookup=txt_lookup).verify_custom_domain(website)
        assert lookups == ["_pwb-verification.costahomes.es"]
        assert website.custom_domain_verified
        assert website.custom_domain_verified_at is not None

    async def test_verify_custom_domain_mismatch(self, session, website):
        website.custom_domain = "costahomes.es"
        website.custom_domain_verification_token = "token-123"

        async def txt_lookup(name):
            return ["other"]

        assert not await TenantService(session, txt_lookup=txt_lookup).verify_custom_domain(website)
        assert not website.custom_domain_verified

    async def test_validate_subdomain(self, session, website):
        service = TenantService(session)
        assert await service.validate_subdomain("fresh-name") == []
        assert "Subdomain is reserved" in await service.validate_subdomain("admin")
        assert "Subdomain is already taken" in await service.validate_subdomain("costa-homes")
        assert await service.validate_subdomain("costa-homes", exclude_id=website.id) == []
        assert await service.validate_subdomain("-bad") == [
            "Subdomain can only contain lowercase letters, numbers, and hyphens"
        ]

    async def test_validate_custom_domain(self, session, website):
        service = TenantService(session)
        assert "Custom domain must be a fully qualified domain name" in await service.validate_custom_domain("intranet")
        assert "Custom domain cannot be a platform domain" in await service.validate_custom_domain(
            "x.propertywebbuilder.com"
        )


class TestTenantContext:
    def test_require_current_website_without_context(self):
        with pytest.raises(TenantContextRequiredError):
            require_current_website()

    def test_scope_and_ownership(self, website, other_website):
        with tenant_scope(website):
            assert current_website() is website
            assert ensure_tenant_owns(Message(website_id=website.id)) is not None
            with pytest.raises(TenantMismatchError):
                ensure_tenant_owns(Message(website_id=other_website.id))
        assert current_website() is None
