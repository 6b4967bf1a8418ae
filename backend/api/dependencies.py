"""
Dependency helpers: services stored on the FastAPI application state,
database sessions, the current tenant and the background job queue.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import Depends, Request
from kombu.exceptions import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.tenant import set_current_website
from database.models import Website
from database.session import get_db
from services.tenant_service import TenantService

if TYPE_CHECKING:
    from celery import Task

    from services.ai_service import AIService
    from services.external_feed import ProviderRegistry
    from services.ntfy_service import NtfyService

logger = logging.getLogger(__name__)

DbSession = Annotated[AsyncSession, Depends(get_db)]


def _get_service(request: Request, attr: str) -> Any:
    service = getattr(request.app.state, attr, None)
    if service is None:
        raise RuntimeError(f"{attr} is not initialised on application state.")
    return service


def get_ai_service(request: Request) -> "AIService":
    return _get_service(request, "ai_service")


def get_ntfy_service(request: Request) -> "NtfyService":
    return _get_service(request, "ntfy_service")


def get_feed_registry(request: Request) -> "ProviderRegistry":
    return _get_service(request, "feed_registry")


def get_job_queue(request: Request) -> "JobQueue":
    return _get_service(request, "job_queue")


async def get_current_website(request: Request, session: DbSession) -> Website:
    """Resolve the tenant for this request and make it the current website."""
    website = await TenantService(session).resolve(
        header_slug=getattr(request.state, "tenant_slug", None),
        host=getattr(request.state, "tenant_host", None),
    )
    request.state.website_slug = website.slug
    set_current_website(website)
    return website


CurrentWebsite = Annotated[Website, Depends(get_current_website)]


class JobQueue:
    """Thin wrapper over Celery ``delay`` that never fails the request."""

    def enqueue(self, task: "Task", *args: Any, **kwargs: Any) -> bool:
        try:
            task.delay(*args, **kwargs)
            return True
        except OperationalError as exc:
            logger.error("Could not enqueue %s: %s", task.name, exc)
            return False
