"""
Public enquiry (contact form) handling.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ResourceNotFoundError
from database.models import Contact, Message, RealtyAsset, Website
from models.marketing import EnquiryForm

logger = logging.getLogger(__name__)


class ContactService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_or_create_contact(self, website: Website, form: EnquiryForm) -> Contact:
        email = str(form.email).strip().lower()
        result = await self.session.execute(
            select(Contact).where(Contact.website_id == website.id, func.lower(Contact.primary_email) == email)
        )
        contact = result.scalars().first()

        first_name, _, last_name = (form.name or "").strip().partition(" ")
        if contact is None:
            contact = Contact(
                website_id=website.id,
                primary_email=email,
                first_name=first_name or None,
                last_name=last_name or None,
                primary_phone_number=form.phone,
            )
            self.session.add(contact)
            await self.session.flush()
            logger.info("Created contact %s for website %s", contact.id, website.id)
        else:
            # fill gaps, never overwrite what the agent already has
            contact.first_name = contact.first_name or first_name or None
            contact.last_name = contact.last_name or last_name or None
            contact.primary_phone_number = contact.primary_phone_number or form.phone
        return contact

    async def record_enquiry(
        self, website: Website, form: EnquiryForm, origin_ip: str | None = None
    ) -> tuple[Contact, Message]:
        """Store a contact form submission for ``website``."""
        asset_id = None
        if form.property_id is not None:
            asset = await self.session.get(RealtyAsset, form.property_id)
            if asset is None or asset.website_id != website.id:
                raise ResourceNotFoundError("Property not found", resource="property", resource_id=form.property_id)
            asset_id = asset.id

        contact = await self.find_or_create_contact(website, form)
        message = Message(
            website_id=website.id,
            contact_id=contact.id,
            realty_asset_id=asset_id,
            title=form.title,
            content=form.message,
            origin_email=str(form.email),
            origin_ip=origin_ip,
            locale=form.locale or website.default_client_locale,
        )
        self.session.add(message)
        await self.session.commit()
        logger.info("Recorded enquiry %s from contact %s", message.id, contact.id)
        return contact, message
