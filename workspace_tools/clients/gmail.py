"""
Async client for the Gmail v1 REST API, scoped to the authenticated user.
"""

from __future__ import annotations

from typing import Any

import httpx

from workspace_tools.clients.base import ServiceClient, path_id
from workspace_tools.clients.google_auth import GoogleTokenManager
from workspace_tools.config import GoogleConfig


class GmailClient(ServiceClient):
    service = "Gmail"

    def __init__(
        self,
        config: GoogleConfig,
        tokens: GoogleTokenManager,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(f"{config.gmail_base_url}/users/me", timeout=config.http_timeout, http_client=http_client)
        self._tokens = tokens

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._tokens.get_valid_credential()
        return {"Authorization": f"Bearer {token}"}

    # ── Messages ──────────────────────────────────────────

    async def list_messages(self, **params: Any) -> dict[str, Any]:
        return await self._request("GET", "/messages", params=params)

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "full",
        metadata_headers: list[str] | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/messages/{path_id(message_id)}",
            params={"format": format, "metadataHeaders": metadata_headers},
        )

    async def send_message(self, raw: str, *, thread_id: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"raw": raw}
        if thread_id:
            body["threadId"] = thread_id
        return await self._request("POST", "/messages/send", json_body=body)

    async def modify_message(
        self,
        message_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/messages/{path_id(message_id)}/modify",
            json_body={"addLabelIds": add_label_ids or [], "removeLabelIds": remove_label_ids or []},
        )

    async def trash_message(self, message_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/messages/{path_id(message_id)}/trash")

    async def delete_message(self, message_id: str) -> Any:
        return await self._request("DELETE", f"/messages/{path_id(message_id)}")

    async def batch_modify_messages(
        self,
        ids: list[str],
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> Any:
        return await self._request(
            "POST",
            "/messages/batchModify",
            json_body={"ids": ids, "addLabelIds": add_label_ids or [], "removeLabelIds": remove_label_ids or []},
        )

    async def batch_delete_messages(self, ids: list[str]) -> Any:
        return await self._request("POST", "/messages/batchDelete", json_body={"ids": ids})

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict[str, Any]:
        return await self._request(
            "GET", f"/messages/{path_id(message_id)}/attachments/{path_id(attachment_id)}"
        )

    # ── Threads ───────────────────────────────────────────

    async def list_threads(self, **params: Any) -> dict[str, Any]:
        return await self._request("GET", "/threads", params=params)

    async def get_thread(self, thread_id: str, *, format: str = "full") -> dict[str, Any]:
        return await self._request("GET", f"/threads/{path_id(thread_id)}", params={"format": format})

    async def modify_thread(
        self,
        thread_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/threads/{path_id(thread_id)}/modify",
            json_body={"addLabelIds": add_label_ids or [], "removeLabelIds": remove_label_ids or []},
        )

    async def trash_thread(self, thread_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/threads/{path_id(thread_id)}/trash")

    async def untrash_thread(self, thread_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/threads/{path_id(thread_id)}/untrash")

    async def delete_thread(self, thread_id: str) -> Any:
        return await self._request("DELETE", f"/threads/{path_id(thread_id)}")

    # ── Drafts ────────────────────────────────────────────

    async def list_drafts(self, **params: Any) -> dict[str, Any]:
        return await self._request("GET", "/drafts", params=params)

    async def get_draft(self, draft_id: str, *, format: str = "full") -> dict[str, Any]:
        return await self._request("GET", f"/drafts/{path_id(draft_id)}", params={"format": format})

    async def create_draft(self, raw: str) -> dict[str, Any]:
        return await self._request("POST", "/drafts", json_body={"message": {"raw": raw}})

    async def send_draft(self, draft_id: str) -> dict[str, Any]:
        return await self._request("POST", "/drafts/send", json_body={"id": draft_id})

    async def delete_draft(self, draft_id: str) -> Any:
        return await self._request("DELETE", f"/drafts/{path_id(draft_id)}")

    # ── Labels ────────────────────────────────────────────

    async def list_labels(self) -> dict[str, Any]:
        return await self._request("GET", "/labels")

    async def get_label(self, label_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/labels/{path_id(label_id)}")

    async def create_label(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/labels", json_body=body)

    async def update_label(self, label_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/labels/{path_id(label_id)}", json_body=body)

    async def delete_label(self, label_id: str) -> Any:
        return await self._request("DELETE", f"/labels/{path_id(label_id)}")

    # ── Profile ───────────────────────────────────────────

    async def get_profile(self) -> dict[str, Any]:
        return await self._request("GET", "/profile")
