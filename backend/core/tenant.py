"""
Current-tenant context.

The resolved website for a request (or a background task) is held in a
context variable so service code can scope queries without threading the
website through every call.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from core.exceptions import TenantContextRequiredError, TenantMismatchError

if TYPE_CHECKING:
    from database.models import Website

_current_website: ContextVar["Website | None"] = ContextVar("current_website", default=None)


def set_current_website(website: "Website | None"):
    return _current_website.set(website)


def reset_current_website(token) -> None:
    _current_website.reset(token)


def current_website() -> "Website | None":
    return _current_website.get()


def require_current_website() -> "Website":
    website = _current_website.get()
    if website is None:
        raise TenantContextRequiredError()
    return website


@contextmanager
def tenant_scope(website: "Website") -> Iterator["Website"]:
    """Run a block with ``website`` as the current tenant."""
    token = _current_website.set(website)
    try:
        yield website
    finally:
        _current_website.reset(token)


def ensure_tenant_owns(record: Any) -> Any:
    """Raise when ``record`` belongs to a website other than the current one."""
    website = require_current_website()
    owner_id = getattr(record, "website_id", None)
    if owner_id is not None and owner_id != website.id:
        raise TenantMismatchError(
            expected_website_id=website.id,
            actual_website_id=owner_id,
        )
    return record
