"""
Zoho CRM v3 HTTP client with OAuth refresh-token handling.

The short-lived access token is cached (``zoho_crm_access_token``) and
refreshed five minutes before Zoho expires it.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from core.cache import CacheManager, cache_manager
from core.config import settings
from services.zoho.errors import (
    ZohoApiError,
    ZohoAuthenticationError,
    ZohoConfigurationError,
    ZohoConnectionError,
    ZohoNotFoundError,
    ZohoRateLimitError,
    ZohoTimeoutError,
    ZohoValidationError,
)

logger = logging.getLogger(__name__)

CACHE_KEY = "zoho_crm_access_token"
TOKEN_REFRESH_BUFFER = 300
DEFAULT_TOKEN_TTL = 3600
API_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
TOKEN_TIMEOUT = httpx.Timeout(15.0)


def extract_error_details(body: Any) -> str:
    if not isinstance(body, dict):
        return str(body)
    data = body.get("data")
    if isinstance(data, list) and data:
        first = data[0]
        return str(first.get("message") or first) if isinstance(first, dict) else str(first)
    return str(body.get("message") or body.get("error") or body)


def parse_retry_after(value: str | None, default: int = 60) -> int:
    """Seconds from a Retry-After header; HTTP-date and junk values fall back to the default."""
    try:
        seconds = int(value) if value else 0
    except ValueError:
        return default
    return seconds if seconds > 0 else default


class ZohoClient:
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        api_domain: str | None = None,
        accounts_url: str | None = None,
        cache: CacheManager | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.client_id = client_id if client_id is not None else settings.ZOHO_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.ZOHO_CLIENT_SECRET
        self.refresh_token = refresh_token if refresh_token is not None else settings.ZOHO_REFRESH_TOKEN
        self.api_domain = (api_domain or settings.ZOHO_API_DOMAIN).rstrip("/")
        self.accounts_url = (accounts_url or settings.ZOHO_ACCOUNTS_URL).rstrip("/")
        self.cache = cache or cache_manager
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    @property
    def api_base_url(self) -> str:
        return f"{self.api_domain}/crm/v3"

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=API_TIMEOUT)
        return self._http

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ZohoConfigurationError(
                "Zoho CRM is not configured. Set ZOHO_CLIENT_ID, ZOHO_CLIENT_SECRET, and ZOHO_REFRESH_TOKEN"
            )

    async def access_token(self) -> str:
        cached = await self.cache.get(CACHE_KEY)
        if cached:
            return cached
        return await self.refresh_access_token()

    async def refresh_access_token(self) -> str:
        logger.info("[Zoho] Refreshing access token")
        try:
            response = await self._client().post(
                f"{self.accounts_url}/oauth/v2/token",
                params={
                    "refresh_token": self.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                },
                timeout=TOKEN_TIMEOUT,
            )
        except httpx.TimeoutException as exc:
            raise ZohoTimeoutError(f"Zoho token refresh timeout: {exc}", cause=exc) from exc
        except httpx.TransportError as exc:
            raise ZohoConnectionError(f"Zoho token refresh connection failed: {exc}", cause=exc) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            error = (data.get("error") or data.get("error_description")) if isinstance(data, dict) else None
            raise ZohoAuthenticationError(f"Zoho token refresh failed: {error or 'Unknown error'}")

        expires_in = int(data.get("expires_in") or DEFAULT_TOKEN_TTL) - TOKEN_REFRESH_BUFFER
        await self.cache.set(CACHE_KEY, token, ttl=max(expires_in, 1))
        logger.info("[Zoho] Access token refreshed, expires in %ss", expires_in)
        return token

    async def request(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        self.ensure_configured()
        token = await self.access_token()
        try:
            response = await self._client().request(
                method,
                f"{self.api_base_url}/{endpoint.lstrip('/')}",
                json=body,
                params=params or None,
                headers={"Authorization": f"Zoho-oauthtoken {token}"},
            )
        except httpx.TimeoutException as exc:
            raise ZohoTimeoutError(f"Zoho API timeout: {exc}", cause=exc) from exc
        except httpx.TransportError as exc:
            raise ZohoConnectionError(f"Zoho API connection failed: {exc}", cause=exc) from exc

        return await self.handle_response(response)

    async def handle_response(self, response: httpx.Response) -> Any:
        status = response.status_code
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = response.text

        if 200 <= status < 300:
            return body
        if status == 401:
            await self.cache.delete(CACHE_KEY)
            raise ZohoAuthenticationError("Zoho authentication failed (401)", status_code=status)
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise ZohoRateLimitError(retry_after=retry_after, status_code=status)
        if status == 400:
            raise ZohoValidationError(f"Zoho validation error: {extract_error_details(body)}", status_code=status)
        if status == 404:
            raise ZohoNotFoundError("Zoho resource not found", status_code=status)
        raise ZohoApiError(f"Zoho API error ({status}): {extract_error_details(body)}", status_code=status)

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: dict[str, Any]) -> Any:
        return await self.request("POST", endpoint, body=body)

    async def put(self, endpoint: str, body: dict[str, Any]) -> Any:
        return await self.request("PUT", endpoint, body=body)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)
