"""Tests for enquiry recording."""

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from core.exceptions import ResourceNotFoundError
from database.models import Contact, Message
from models.marketing import EnquiryForm
from services.contact_service import ContactService


def enquiry(**fields) -> EnquiryForm:
    values = {"email": "Buyer@Example.com", "name": "Maria Garcia Ruiz", "message": "Is it still available?"}
    values.update(fields)
    return EnquiryForm(**values)


class TestContactService:
    async def test_records_contact_and_message(self, session, website):
        contact, message = await ContactService(session).record_enquiry(website, enquiry(), origin_ip="10.1.1.1")

        assert contact.primary_email == "buyer@example.com"
        assert contact.first_name == "Maria"
        assert contact.last_name == "Garcia Ruiz"
        assert message.contact_id == contact.id
        assert message.origin_ip == "10.1.1.1"
        assert message.locale == "en"
        assert message.realty_asset_id is None

    async def test_existing_contact_is_reused_without_overwriting(self, session, website):
        session.add(Contact(website_id=website.id, primary_email="buyer@example.com", first_name="Mari"))
        await session.commit()

        contact, _ = await ContactService(session).record_enquiry(website, enquiry(phone="+34 611"))

        assert contact.first_name == "Mari"
        assert contact.last_name == "Garcia Ruiz"
        assert contact.primary_phone_number == "+34 611"
        assert await session.scalar(select(func.count()).select_from(Contact)) == 1

    async def test_contacts_are_scoped_to_website(self, session, website, other_website):
        service = ContactService(session)
        first, _ = await service.record_enquiry(website, enquiry())
        second, _ = await service.record_enquiry(other_website, enquiry())

        assert first.id != second.id
        assert await session.scalar(select(func.count()).select_from(Message)) == 2

    async def test_links_property(self, session, website, asset_factory):
        asset = await asset_factory(website)

        _, message = await ContactService(session).record_enquiry(website, enquiry(property_id=asset.id, locale="es"))

        assert message.realty_asset_id == asset.id
        assert message.locale == "es"

    async def test_other_tenants_property_is_not_found(self, session, website, other_website, asset_factory):
        asset = await asset_factory(other_website)

        with pytest.raises(ResourceNotFoundError):
            await ContactService(session).record_enquiry(website, enquiry(property_id=asset.id))

    def test_form_validation(self):
        with pytest.raises(ValidationError):
            enquiry(email="not-an-email")
        with pytest.raises(ValidationError):
            enquiry(message="")
