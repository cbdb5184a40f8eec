"""
Async client for the Notion REST API.

One method per remote operation. Bodies are passed through as the API
expects them; shaping results is the capability's job.
"""

from __future__ import annotations

from typing import Any

import httpx

from workspace_tools.clients.base import ServiceClient, path_id
from workspace_tools.config import NotionConfig


class NotionClient(ServiceClient):
    service = "Notion"

    def __init__(self, config: NotionConfig, http_client: httpx.AsyncClient | None = None):
        super().__init__(
            config.base_url,
            timeout=config.http_timeout,
            headers={
                "Notion-Version": config.notion_version,
                "Content-Type": "application/json",
            },
            http_client=http_client,
        )
        self._token = config.token

    async def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    # ── Databases ─────────────────────────────────────────

    async def query_database(
        self,
        database_id: str,
        *,
        filter: dict[str, Any] | None = None,
        sorts: list[dict[str, Any]] | None = None,
        start_cursor: str | None = None,
        page_size: int = 10,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"page_size": page_size}
        if filter:
            body["filter"] = filter
        if sorts:
            body["sorts"] = sorts
        if start_cursor:
            body["start_cursor"] = start_cursor
        return await self._request("POST", f"/databases/{path_id(database_id)}/query", json_body=body)

    async def get_database(self, database_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/databases/{path_id(database_id)}")

    async def create_database(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/databases", json_body=body)

    async def update_database(self, database_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/databases/{path_id(database_id)}", json_body=body)

    # ── Pages ─────────────────────────────────────────────

    async def create_page(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/pages", json_body=body)

    async def get_page(self, page_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/pages/{path_id(page_id)}")

    async def update_page(self, page_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/pages/{path_id(page_id)}", json_body=body)

    async def get_page_property(
        self,
        page_id: str,
        property_id: str,
        *,
        start_cursor: str | None = None,
        page_size: int | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/pages/{path_id(page_id)}/properties/{path_id(property_id)}",
            params={"start_cursor": start_cursor, "page_size": page_size},
        )

    # ── Blocks ────────────────────────────────────────────

    async def get_block_children(
        self,
        block_id: str,
        *,
        start_cursor: str | None = None,
        page_size: int = 100,
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/blocks/{path_id(block_id)}/children",
            params={"start_cursor": start_cursor, "page_size": page_size},
        )

    async def append_block_children(self, block_id: str, children: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/blocks/{path_id(block_id)}/children", json_body={"children": children}
        )

    async def get_block(self, block_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/blocks/{path_id(block_id)}")

    async def update_block(self, block_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"/blocks/{path_id(block_id)}", json_body=body)

    async def delete_block(self, block_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/blocks/{path_id(block_id)}")

    # ── Users ─────────────────────────────────────────────

    async def get_user(self, user_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/users/{path_id(user_id)}")

    async def list_users(self, *, start_cursor: str | None = None, page_size: int = 100) -> dict[str, Any]:
        return await self._request("GET", "/users", params={"start_cursor": start_cursor, "page_size": page_size})

    async def get_self(self) -> dict[str, Any]:
        return await self._request("GET", "/users/me")

    # ── Comments ──────────────────────────────────────────

    async def list_comments(
        self,
        block_id: str,
        *,
        start_cursor: str | None = None,
        page_size: int = 10,
    ) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/comments",
            params={"block_id": block_id, "start_cursor": start_cursor, "page_size": page_size},
        )

    async def create_comment(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/comments", json_body=body)

    # ── Search ────────────────────────────────────────────

    async def search(
        self,
        *,
        query: str | None = None,
        filter: dict[str, Any] | None = None,
        sort: dict[str, Any] | None = None,
        start_cursor: str | None = None,
        page_size: int = 10,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"page_size": page_size}
        if query:
            body["query"] = query
        if filter:
            body["filter"] = filter
        if sort:
            body["sort"] = sort
        if start_cursor:
            body["start_cursor"] = start_cursor
        return await self._request("POST", "/search", json_body=body)
