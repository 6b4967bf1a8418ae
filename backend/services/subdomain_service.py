"""
Subdomain name generation and the pre-generated subdomain pool.

Names look like ``sunny-meadow-42``. The pool hands them out at signup:
an entry is reserved for an email for a few minutes, then allocated to
the website created for that email.
"""

from __future__ import annotations

import logging
import random
import re
from datetime import timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import BusinessLogicError, ErrorCode
from database.base import utcnow
from database.models import SubdomainPoolEntry, Website
from services.tenant_service import RESERVED_SUBDOMAINS

logger = logging.getLogger(__name__)

ADJECTIVES = (
    "amber ancient autumn azure bright calm clear coral cosmic crimson crystal dapper dawn dusk "
    "ember fading fallen fierce fiery gentle gilded golden graceful hidden icy jade keen lively "
    "lunar midnight misty noble ocean pearl polished pristine proud quiet radiant rapid royal "
    "rustic sacred serene shadow shining silent silver smooth snowy solar starry steady still "
    "stormy summer sunny swift twilight violet wandering warm wild winter wispy wooden young zesty"
).split()

NOUNS = (
    "bay beach bluff brook canyon cave cliff cloud coast cove creek delta dune field forest garden "
    "glade glen grove harbor haven hill hollow horizon inlet island lagoon lake landing meadow mesa "
    "mist moon mountain oasis ocean orchard passage path peak pine plains pond prairie rain reef "
    "ridge river rock sand shadow shore sky slope spring star stone storm stream summit sun sunset "
    "surf tide trail tree valley view village vista water wave willow wind wood"
).split()

NAME_FORMAT = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
POOL_NAME_MIN_LENGTH = 5
CUSTOM_NAME_MIN_LENGTH = 3
MAX_NAME_LENGTH = 40
DEFAULT_RESERVATION_MINUTES = 5


class SubdomainPoolError(BusinessLogicError):
    http_status = 503

    def __init__(self, message: str, **kwargs):
        super().__init__(message, rule="subdomain_pool", **kwargs)


class SubdomainPoolEmptyError(SubdomainPoolError):
    """The pool has never been populated"""


class SubdomainPoolExhaustedError(SubdomainPoolError):
    """Every pool entry is reserved or allocated"""


class SubdomainGenerator:
    """Random ``adjective-noun-NN`` names that are not yet taken."""

    def __init__(self, session: AsyncSession, rng: random.Random | None = None) -> None:
        self.session = session
        self.rng = rng or random.Random()

    def generate(self) -> str:
        return f"{self.rng.choice(ADJECTIVES)}-{self.rng.choice(NOUNS)}-{self.rng.randint(10, 99)}"

    async def _taken(self, names: set[str]) -> set[str]:
        if not names:
            return set()
        pool = await self.session.execute(select(SubdomainPoolEntry.name).where(SubdomainPoolEntry.name.in_(names)))
        sites = await self.session.execute(select(Website.subdomain).where(func.lower(Website.subdomain).in_(names)))
        return set(pool.scalars()) | {name.lower() for name in sites.scalars() if name}

    async def generate_unique(self, max_attempts: int = 100) -> str:
        for _ in range(max_attempts):
            name = self.generate()
            if not await self._taken({name}):
                return name
        raise SubdomainPoolError("Could not generate a unique subdomain")

    async def generate_batch(self, count: int) -> list[str]:
        """Up to ``count`` unique names, none of which exist yet."""
        names: set[str] = set()
        attempts = 0
        while len(names) < count and attempts < count * 10:
            attempts += 1
            names.add(self.generate())
        available = names - await self._taken(names)
        return sorted(available)[:count]

    async def populate_pool(self, count: int = 1000, batch_size: int = 100) -> int:
        created = 0
        while created < count:
            batch = await self.generate_batch(min(batch_size, count - created))
            if not batch:
                break
            self.session.add_all(SubdomainPoolEntry(name=name) for name in batch)
            await self.session.commit()
            created += len(batch)
        logger.info("Added %s subdomains to the pool", created)
        return created

    async def ensure_pool_minimum(self, minimum: int = 100) -> int:
        available = await self.session.scalar(
            select(func.count()).select_from(SubdomainPoolEntry).where(SubdomainPoolEntry.aasm_state == "available")
        )
        if available >= minimum:
            return 0
        return await self.populate_pool(minimum - available)

    async def validate_custom_name(self, name: str | None, reserved_by_email: str | None = None) -> dict:
        """
        Validate a user-chosen subdomain.

        Returns:
            ``{"valid": bool, "errors": [...], "normalized": str}``
        """
        normalized = (name or "").strip().lower()
        errors: list[str] = []

        if not normalized:
            errors.append("can't be blank")
        else:
            if not NAME_FORMAT.match(normalized):
                errors.append(
                    "can only contain lowercase letters, numbers, and hyphens (no leading/trailing hyphens)"
                )
            if len(normalized) < CUSTOM_NAME_MIN_LENGTH:
                errors.append(f"must be at least {CUSTOM_NAME_MIN_LENGTH} characters")
            if len(normalized) > MAX_NAME_LENGTH:
                errors.append(f"must be {MAX_NAME_LENGTH} characters or fewer")
            if normalized in RESERVED_SUBDOMAINS:
                errors.append("is reserved and cannot be used")

        if not errors:
            website = await self.session.scalar(
                select(Website.id).where(func.lower(Website.subdomain) == normalized)
            )
            if website is not None:
                errors.append("is already taken")
            else:
                entry = await self.session.scalar(
                    select(SubdomainPoolEntry).where(SubdomainPoolEntry.name == normalized)
                )
                if entry is not None:
                    if entry.aasm_state == "allocated":
                        errors.append("is already taken")
                    elif entry.aasm_state == "reserved" and (
                        not reserved_by_email or entry.reserved_by_email != reserved_by_email.lower()
                    ):
                        errors.append("is not available")

        return {"valid": not errors, "errors": errors, "normalized": normalized}


class SubdomainPoolService:
    """State transitions and reservations for pool entries."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ==================== Transitions ====================

    @staticmethod
    def _validate_name(entry: SubdomainPoolEntry) -> None:
        if not POOL_NAME_MIN_LENGTH <= len(entry.name) <= MAX_NAME_LENGTH:
            raise BusinessLogicError(
                f"Subdomain must be between {POOL_NAME_MIN_LENGTH} and {MAX_NAME_LENGTH} characters",
                rule="subdomain_length",
            )

    def reserve(self, entry: SubdomainPoolEntry, email: str, minutes: int = DEFAULT_RESERVATION_MINUTES) -> None:
        if not entry.can_reserve():
            raise BusinessLogicError(
                f"Subdomain {entry.name} cannot be reserved from state {entry.aasm_state}",
                rule="subdomain_transition",
                error_code=ErrorCode.BUSINESS_RULE_VIOLATION,
            )
        now = utcnow()
        entry.aasm_state = "reserved"
        entry.reserved_at = now
        entry.reserved_until = now + timedelta(minutes=minutes)
        entry.reserved_by_email = email.strip().lower()

    def allocate(self, entry: SubdomainPoolEntry, website: Website) -> None:
        if not entry.can_allocate():
            raise BusinessLogicError(
                f"Subdomain {entry.name} cannot be allocated from state {entry.aasm_state}",
                rule="subdomain_transition",
            )
        entry.aasm_state = "allocated"
        entry.website_id = website.id
        entry.reserved_at = None
        entry.reserved_until = None
        entry.reserved_by_email = None
        website.subdomain = entry.name

    def release(self, entry: SubdomainPoolEntry) -> None:
        if entry.aasm_state not in ("reserved", "allocated"):
            raise BusinessLogicError(
                f"Subdomain {entry.name} cannot be released from state {entry.aasm_state}",
                rule="subdomain_transition",
            )
        entry.aasm_state = "released"
        entry.website_id = None
        entry.reserved_at = None
        entry.reserved_until = None
        entry.reserved_by_email = None

    def make_available(self, entry: SubdomainPoolEntry) -> None:
        if entry.aasm_state != "released":
            raise BusinessLogicError(
                f"Subdomain {entry.name} cannot be made available from state {entry.aasm_state}",
                rule="subdomain_transition",
            )
        entry.aasm_state = "available"

    # ==================== Queries ====================

    async def find(self, name: str) -> SubdomainPoolEntry | None:
        return await self.session.scalar(
            select(SubdomainPoolEntry).where(SubdomainPoolEntry.name == name.strip().lower())
        )

    async def is_name_available(self, name: str) -> bool:
        entry = await self.find(name)
        return entry is not None and entry.can_reserve()

    async def _count(self, state: str | None = None) -> int:
        query = select(func.count()).select_from(SubdomainPoolEntry)
        if state:
            query = query.where(SubdomainPoolEntry.aasm_state == state)
        return await self.session.scalar(query)

    async def stats(self) -> dict[str, int]:
        return {state: await self._count(state) for state in SubdomainPoolEntry.STATES} | {
            "total": await self._count()
        }

    # ==================== Reservations ====================

    async def reserve_for_email(self, email: str, minutes: int = DEFAULT_RESERVATION_MINUTES) -> SubdomainPoolEntry:
        """
        Reserve a random available name for ``email``.

        An unexpired reservation for the same email is returned as-is;
        expired ones are released first.
        """
        email = email.strip().lower()
        now = utcnow()

        result = await self.session.execute(
            select(SubdomainPoolEntry).where(
                SubdomainPoolEntry.aasm_state == "reserved",
                SubdomainPoolEntry.reserved_by_email == email,
            )
        )
        for entry in result.scalars():
            if entry.reserved_until and entry.reserved_until > now:
                return entry
            self.release(entry)
            self.make_available(entry)

        candidates = await self.session.execute(
            select(SubdomainPoolEntry)
            .where(
                SubdomainPoolEntry.aasm_state == "available",
                or_(SubdomainPoolEntry.reserved_until.is_(None), SubdomainPoolEntry.reserved_until < now),
            )
            .order_by(func.random())
            .limit(1)
        )
        entry = candidates.scalar_one_or_none()
        if entry is None:
            await self.session.commit()
            if await self._count() == 0:
                raise SubdomainPoolEmptyError("Subdomain pool is empty; run the populate task")
            raise SubdomainPoolExhaustedError("No subdomains available in the pool")

        self.reserve(entry, email, minutes)
        await self.session.commit()
        logger.info("Reserved subdomain %s for %s", entry.name, email)
        return entry

    async def reserve_specific(
        self, name: str, email: str, minutes: int = DEFAULT_RESERVATION_MINUTES
    ) -> SubdomainPoolEntry | None:
        entry = await self.find(name)
        if entry is None:
            return None
        if entry.aasm_state == "reserved" and entry.reserved_by_email == email.strip().lower():
            return entry
        if not entry.can_reserve():
            return None
        self.reserve(entry, email, minutes)
        await self.session.commit()
        return entry

    async def allocate_to_website(self, name_or_email: str, website: Website) -> SubdomainPoolEntry | None:
        """Allocate by subdomain name, or by the email holding a reservation."""
        value = name_or_email.strip().lower()
        if "@" in value:
            entry = await self.session.scalar(
                select(SubdomainPoolEntry).where(
                    SubdomainPoolEntry.aasm_state == "reserved",
                    SubdomainPoolEntry.reserved_by_email == value,
                )
            )
        else:
            entry = await self.find(value)
        if entry is None:
            return None
        self.allocate(entry, website)
        await self.session.commit()
        return entry

    async def release_for_website(self, website: Website) -> None:
        entry = await self.session.scalar(
            select(SubdomainPoolEntry).where(SubdomainPoolEntry.website_id == website.id)
        )
        if entry is not None:
            self.release(entry)
            await self.session.commit()

    async def release_expired_reservations(self) -> int:
        now = utcnow()
        result = await self.session.execute(
            select(SubdomainPoolEntry).where(
                SubdomainPoolEntry.aasm_state == "reserved",
                SubdomainPoolEntry.reserved_until < now,
            )
        )
        count = 0
        for entry in result.scalars():
            self.release(entry)
            self.make_available(entry)
            count += 1
        await self.session.commit()
        if count:
            logger.info("Released %s expired subdomain reservations", count)
        return count

    async def populate(self, count: int, generator: SubdomainGenerator | None = None) -> int:
        generator = generator or SubdomainGenerator(self.session)
        return await generator.populate_pool(count)
