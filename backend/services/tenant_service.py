"""
Tenant resolution: map a request (header slug or host) to a Website.
"""

from __future__ import annotations

import logging
import re
import secrets
from collections.abc import Awaitable, Callable

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import TenantNotFoundError
from database.base import utcnow
from database.models import Website

logger = logging.getLogger(__name__)

RESERVED_SUBDOMAINS = frozenset(
    {"www", "api", "admin", "app", "mail", "ftp", "smtp", "pop", "imap", "ns1", "ns2", "localhost", "staging", "test"}
)
SUBDOMAIN_FORMAT = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
MAX_CUSTOM_DOMAIN_LENGTH = 253
VERIFICATION_PREFIX = "_pwb-verification"

TxtLookup = Callable[[str], Awaitable[list[str]]]


def normalize_domain(domain: str | None) -> str:
    """Strip protocol, path and port; lowercase."""
    if not domain:
        return ""
    value = domain.strip().lower()
    value = re.sub(r"^[a-z][a-z0-9+.-]*://", "", value)
    value = value.split("/", 1)[0]
    value = value.split(":", 1)[0]
    return value.rstrip(".")


def platform_domains() -> list[str]:
    return settings.platform_domain_list


def is_platform_domain(host: str | None) -> bool:
    host = normalize_domain(host)
    if not host:
        return False
    return any(host == domain or host.endswith(f".{domain}") for domain in platform_domains())


def extract_subdomain_from_host(host: str | None) -> str | None:
    """First label of a host under a platform domain, e.g. ``acme`` for ``acme.propertywebbuilder.com``."""
    host = normalize_domain(host)
    for domain in platform_domains():
        suffix = f".{domain}"
        if host.endswith(suffix):
            prefix = host[: -len(suffix)]
            return prefix.split(".")[0] or None
    return None


async def dns_over_https_txt(name: str) -> list[str]:
    """Resolve TXT records through a DNS-over-HTTPS JSON endpoint."""
    timeout = httpx.Timeout(10.0, connect=5.0)
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(settings.DNS_OVER_HTTPS_URL, params={"name": name, "type": "TXT"})
        response.raise_for_status()
        payload = response.json()
    return [answer.get("data", "").strip('"') for answer in payload.get("Answer", []) if answer.get("type") == 16]


class TenantService:
    """Lookups that resolve the current website."""

    def __init__(self, session: AsyncSession, txt_lookup: TxtLookup | None = None) -> None:
        self.session = session
        self._txt_lookup = txt_lookup or dns_over_https_txt

    async def find_by_slug(self, slug: str | None) -> Website | None:
        if not slug:
            return None
        result = await self.session.execute(select(Website).where(Website.slug == slug.strip()))
        return result.scalar_one_or_none()

    async def find_by_subdomain(self, subdomain: str | None) -> Website | None:
        if not subdomain:
            return None
        result = await self.session.execute(
            select(Website).where(func.lower(Website.subdomain) == subdomain.strip().lower())
        )
        return result.scalar_one_or_none()

    async def find_by_custom_domain(self, domain: str | None) -> Website | None:
        normalized = normalize_domain(domain)
        if not normalized:
            return None
        candidates = {normalized}
        if normalized.startswith("www."):
            candidates.add(normalized[4:])
        else:
            candidates.add(f"www.{normalized}")
        result = await self.session.execute(
            select(Website).where(func.lower(Website.custom_domain).in_(candidates)).order_by(Website.id)
        )
        return result.scalars().first()

    async def find_by_host(self, host: str | None) -> Website | None:
        host = normalize_domain(host)
        if not host:
            return None
        if not is_platform_domain(host):
            website = await self.find_by_custom_domain(host)
            if website:
                return website
        return await self.find_by_subdomain(extract_subdomain_from_host(host))

    async def default_website(self) -> Website | None:
        result = await self.session.execute(select(Website).order_by(Website.id).limit(1))
        return result.scalar_one_or_none()

    async def resolve(self, header_slug: str | None = None, host: str | None = None) -> Website:
        """
        Resolve the tenant for a request.

        Order: header slug (slug, then subdomain), host, then the default
        website when fallback is enabled.
        """
        if header_slug:
            website = await self.find_by_slug(header_slug) or await self.find_by_subdomain(header_slug)
            if website:
                return website
            logger.debug("No website for header slug %s", header_slug)

        website = await self.find_by_host(host)
        if website:
            return website

        if settings.TENANT_FALLBACK_TO_DEFAULT:
            website = await self.default_website()
            if website:
                return website

        raise TenantNotFoundError(identifier=header_slug or normalize_domain(host) or None)

    # ==================== Custom domains ====================

    @staticmethod
    def generate_verification_token() -> str:
        return secrets.token_hex(16)

    def verification_record_name(self, website: Website) -> str:
        domain = normalize_domain(website.custom_domain)
        if domain.startswith("www."):
            domain = domain[4:]
        return f"{VERIFICATION_PREFIX}.{domain}"

    async def verify_custom_domain(self, website: Website) -> bool:
        """Check the TXT record and mark the domain verified when it matches."""
        if not website.custom_domain or not website.custom_domain_verification_token:
            return False

        record_name = self.verification_record_name(website)
        try:
            records = await self._txt_lookup(record_name)
        except httpx.HTTPError as exc:
            logger.warning("TXT lookup failed for %s: %s", record_name, exc)
            return False

        if website.custom_domain_verification_token not in records:
            return False

        website.custom_domain_verified = True
        website.custom_domain_verified_at = utcnow()
        await self.session.commit()
        logger.info("Custom domain verified for website %s: %s", website.id, website.custom_domain)
        return True

    async def validate_subdomain(self, subdomain: str | None, exclude_id: int | None = None) -> list[str]:
        errors: list[str] = []
        value = (subdomain or "").strip().lower()
        if not value:
            return ["Subdomain can't be blank"]
        if not 2 <= len(value) <= 63:
            errors.append("Subdomain must be between 2 and 63 characters")
        if not SUBDOMAIN_FORMAT.match(value):
            errors.append("Subdomain can only contain lowercase letters, numbers, and hyphens")
        if value in RESERVED_SUBDOMAINS:
            errors.append("Subdomain is reserved")
        existing = await self.find_by_subdomain(value)
        if existing and existing.id != exclude_id:
            errors.append("Subdomain is already taken")
        return errors

    async def validate_custom_domain(self, domain: str | None, exclude_id: int | None = None) -> list[str]:
        errors: list[str] = []
        value = normalize_domain(domain)
        if not value:
            return errors
        if len(value) > MAX_CUSTOM_DOMAIN_LENGTH:
            errors.append(f"Custom domain must be {MAX_CUSTOM_DOMAIN_LENGTH} characters or fewer")
        if "." not in value:
            errors.append("Custom domain must be a fully qualified domain name")
        if is_platform_domain(value):
            errors.append("Custom domain cannot be a platform domain")
        existing = await self.find_by_custom_domain(value)
        if existing and existing.id != exclude_id:
            errors.append("Custom domain is already in use")
        return errors
