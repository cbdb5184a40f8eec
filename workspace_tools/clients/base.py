"""
Shared async HTTP plumbing for the external service clients.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from workspace_tools.errors import RemoteServiceError

logger = logging.getLogger(__name__)


def path_id(value: Any, safe: str = "") -> str:
    """
    Encode a caller-supplied identifier as a single URL path segment.

    ``/``, ``?`` and ``#`` are percent-encoded, and a bare ``.`` or ``..``
    is escaped so it cannot be read as a dot segment.
    """
    encoded = quote(str(value), safe=safe)
    if encoded in (".", ".."):
        encoded = encoded.replace(".", "%2E")
    return encoded


def _compact(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if not params:
        return None
    compacted = {k: v for k, v in params.items() if v is not None}
    return compacted or None


def error_details(payload: Any, response: httpx.Response) -> tuple[str | None, str]:
    """
    Extract (upstream code, message) from an error response.

    Handles Notion bodies ({"object": "error", "code", "message"}), Google
    bodies ({"error": {"status", "message", "errors": [{"reason"}]}}) and
    OAuth bodies ({"error", "error_description"}).
    """
    code: str | None = None
    message: str | None = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            reasons = [e.get("reason") for e in error.get("errors") or [] if isinstance(e, dict)]
            code = error.get("status") or next((r for r in reasons if r), None)
            message = error.get("message")
        elif isinstance(error, str):
            code = error
            message = payload.get("error_description")
        elif payload.get("code"):
            code = str(payload["code"])
            message = payload.get("message")

    if not message:
        text = response.text.strip()
        message = " ".join(text.split())[:200] if text else response.reason_phrase or "Request failed"
    return code, message


class ServiceClient:
    """
    Base for one external REST API.

    Subclasses set ``service`` and override ``_auth_headers``. Every call
    goes through ``_request`` which raises RemoteServiceError with the
    upstream status and code on failure. Identifiers interpolated into
    paths go through ``path_id``.
    """

    service = "remote"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _auth_headers(self) -> dict[str, str]:
        return {}

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {**self._headers, **(await self._auth_headers())}
        try:
            response = await self._client.request(
                method=method,
                url=self._url(path),
                json=json_body,
                params=_compact(params),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise RemoteServiceError(
                f"Request to {path} timed out after {self.timeout}s",
                service=self.service,
                upstream_code="timeout",
                path=path,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(
                f"Failed to reach {self.base_url}: {exc}",
                service=self.service,
                upstream_code="connection_error",
                path=path,
            ) from exc

        if response.content:
            try:
                payload: Any = response.json()
            except ValueError:
                payload = response.text
        else:
            payload = {}

        if response.status_code >= 400:
            code, message = error_details(payload, response)
            logger.warning(f"{self.service} {method} {path} failed: {response.status_code} {code}")
            raise RemoteServiceError(
                message,
                service=self.service,
                status_code=response.status_code,
                upstream_code=code,
                path=path,
            )
        return payload
