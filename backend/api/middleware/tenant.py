"""
Tenant middleware for PropertyWebBuilder
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """Copy the tenant identifiers of a request onto ``request.state``.

    Resolution against the database happens in the ``get_current_website``
    dependency; this only records what the client sent.
    """

    def __init__(self, app, header_name: str | None = None):
        super().__init__(app)
        self.header_name = header_name or settings.TENANT_HEADER

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.tenant_slug = request.headers.get(self.header_name) or None
        request.state.tenant_host = request.headers.get("x-forwarded-host") or request.headers.get("host")

        response = await call_next(request)

        slug = getattr(request.state, "website_slug", None)
        if slug:
            response.headers[self.header_name] = slug
        return response
