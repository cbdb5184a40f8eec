"""
Async client for the Google Calendar v3 REST API.
"""

from __future__ import annotations

from typing import Any

import httpx

from workspace_tools.clients.base import ServiceClient, path_id
from workspace_tools.clients.google_auth import GoogleTokenManager
from workspace_tools.config import GoogleConfig


def _cal(calendar_id: str) -> str:
    # Calendar ids are email-like; "@" stays readable in the path.
    return path_id(calendar_id, safe="@")


class CalendarClient(ServiceClient):
    service = "Google Calendar"

    def __init__(
        self,
        config: GoogleConfig,
        tokens: GoogleTokenManager,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(config.calendar_base_url, timeout=config.http_timeout, http_client=http_client)
        self._tokens = tokens

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._tokens.get_valid_credential()
        return {"Authorization": f"Bearer {token}"}

    async def list_calendars(self) -> dict[str, Any]:
        return await self._request("GET", "/users/me/calendarList")

    async def list_events(
        self,
        calendar_id: str,
        *,
        time_min: str | None = None,
        time_max: str | None = None,
        query: str | None = None,
        time_zone: str | None = None,
        max_results: int = 10,
        page_token: str | None = None,
        fields: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/calendars/{_cal(calendar_id)}/events",
            params={
                "timeMin": time_min,
                "timeMax": time_max,
                "q": query,
                "timeZone": time_zone,
                "maxResults": max_results,
                "pageToken": page_token,
                "singleEvents": True,
                "orderBy": "startTime",
                "fields": fields,
            },
        )

    async def get_event(self, calendar_id: str, event_id: str, *, fields: str | None = None) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/calendars/{_cal(calendar_id)}/events/{path_id(event_id)}",
            params={"fields": fields},
        )

    async def insert_event(
        self,
        calendar_id: str,
        body: dict[str, Any],
        *,
        send_updates: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/calendars/{_cal(calendar_id)}/events",
            json_body=body,
            params={"sendUpdates": send_updates},
        )

    async def patch_event(
        self,
        calendar_id: str,
        event_id: str,
        body: dict[str, Any],
        *,
        send_updates: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/calendars/{_cal(calendar_id)}/events/{path_id(event_id)}",
            json_body=body,
            params={"sendUpdates": send_updates},
        )

    async def delete_event(self, calendar_id: str, event_id: str, *, send_updates: str | None = None) -> Any:
        return await self._request(
            "DELETE",
            f"/calendars/{_cal(calendar_id)}/events/{path_id(event_id)}",
            params={"sendUpdates": send_updates},
        )

    async def freebusy(
        self,
        time_min: str,
        time_max: str,
        calendar_ids: list[str],
        *,
        time_zone: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "timeMin": time_min,
            "timeMax": time_max,
            "items": [{"id": cid} for cid in calendar_ids],
        }
        if time_zone:
            body["timeZone"] = time_zone
        return await self._request("POST", "/freeBusy", json_body=body)

    async def colors(self) -> dict[str, Any]:
        return await self._request("GET", "/colors")
