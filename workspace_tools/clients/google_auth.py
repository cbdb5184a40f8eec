"""
Google OAuth access-token manager.

Exchanges the saved refresh token for short-lived access tokens and caches
the current one. Concurrent callers share a single refresh.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from workspace_tools.clients.base import error_details
from workspace_tools.config import GoogleConfig
from workspace_tools.errors import NotAuthenticated

logger = logging.getLogger(__name__)

# Refresh this many seconds before the token actually expires.
EXPIRY_MARGIN_SECONDS = 60


def _coerce_expires_in(value: Any) -> int:
    if isinstance(value, bool):
        return 3600
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 3600


class GoogleTokenManager:
    """Produces a valid bearer token or raises NotAuthenticated."""

    def __init__(self, config: GoogleConfig, http_client: httpx.AsyncClient | None = None):
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._lock = asyncio.Lock()
        self._access_token: str | None = config.access_token
        self._expires_at: float | None = (
            config.token_expiry_ms / 1000.0 - EXPIRY_MARGIN_SECONDS
            if config.access_token and config.token_expiry_ms
            else None
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _is_fresh(self) -> bool:
        return (
            self._access_token is not None
            and self._expires_at is not None
            and time.time() < self._expires_at
        )

    async def get_valid_credential(self, force_refresh: bool = False) -> str:
        if not force_refresh and self._is_fresh():
            return self._access_token

        async with self._lock:
            if not force_refresh and self._is_fresh():
                return self._access_token
            await self._refresh()
            return self._access_token

    async def _refresh(self) -> None:
        logger.debug("Refreshing Google access token")
        try:
            response = await self._client.post(
                self._config.token_url,
                data={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "refresh_token": self._config.refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
                timeout=self._config.http_timeout,
            )
        except httpx.HTTPError as e:
            raise NotAuthenticated(f"Google token refresh request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            code, message = error_details(payload, response)
            raise NotAuthenticated(f"Google token refresh failed ({response.status_code}, {code}): {message}")

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            raise NotAuthenticated("Google token response is missing an access_token")

        ttl = max(_coerce_expires_in(payload.get("expires_in")) - EXPIRY_MARGIN_SECONDS, 30)
        self._access_token = access_token.strip()
        self._expires_at = time.time() + ttl
        logger.info(f"Google access token refreshed, valid for {ttl}s")
