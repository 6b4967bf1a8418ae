"""
Public contact form.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from api.dependencies import CurrentWebsite, DbSession, JobQueue, get_job_queue
from jobs.tasks import send_ntfy_notification, sync_lead_activity
from models.marketing import EnquiryForm, EnquiryResponse
from services.contact_service import ContactService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=EnquiryResponse, status_code=status.HTTP_201_CREATED)
async def submit_enquiry(
    form: EnquiryForm,
    request: Request,
    website: CurrentWebsite,
    session: DbSession,
    jobs: Annotated[JobQueue, Depends(get_job_queue)],
) -> EnquiryResponse:
    origin_ip = request.client.host if request.client else None
    contact, message = await ContactService(session).record_enquiry(website, form, origin_ip=origin_ip)

    jobs.enqueue(send_ntfy_notification, "inquiry", website.id, message.id)
    jobs.enqueue(
        sync_lead_activity,
        None,
        "inquiry_received",
        {"message_id": message.id, "property_id": form.property_id, "contact_email": contact.primary_email},
        website_id=website.id,
    )
    return EnquiryResponse(contact_id=contact.id, message_id=message.id)
