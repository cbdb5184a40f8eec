"""
Notion capability server: ``use_notion``.

One capability multiplexing the Notion REST API: databases, pages, blocks,
users, comments and search.

Enrichment applied before create calls:
  - database_id resolved from the ``database`` alias or NOTION_DEFAULT_DATABASE
  - empty people fields filled with NOTION_USER_ID
  - ``title`` written into the database's title property (looked up once)

Launch:
    python -m workspace_tools.servers.notion

Test:
    echo '{"version":"2.0","id":1,"method":"list-capabilities","params":{}}' | python -m workspace_tools.servers.notion
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import httpx

from workspace_tools.actions import ActionTable
from workspace_tools.capability import CapabilityHandler, collection, page_size
from workspace_tools.clients.notion import NotionClient
from workspace_tools.config import NotionConfig, load_notion_config
from workspace_tools.errors import ConfigurationError, InvalidArguments
from workspace_tools.normalize import (
    TitlePropertyResolver,
    apply_title,
    auto_assign_people,
    is_empty,
    resolve_identifier,
)
from workspace_tools.server import StdioCapabilityServer, configure_logging

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
CHILDREN_LIMIT = 100
MAX_PAGE_SIZE = 100

# Actions whose database_id may come from an alias or the configured default.
DATABASE_ACTIONS = ("query_database", "get_database", "update_database", "create_item", "create_page")
CREATE_ACTIONS = ("create_page", "create_item")


def plain_text(rich_text: Any) -> str:
    parts = []
    for fragment in rich_text or []:
        if not isinstance(fragment, dict):
            continue
        text = fragment.get("plain_text")
        if text is None:
            text = (fragment.get("text") or {}).get("content", "")
        parts.append(text)
    return "".join(parts)


def object_title(obj: dict[str, Any]) -> str:
    """Title of a page or database object."""
    if obj.get("object") == "database":
        return plain_text(obj.get("title"))
    for prop in (obj.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            return plain_text(prop.get("title"))
    return ""


def rich_text(content: str) -> list[dict[str, Any]]:
    return [{"type": "text", "text": {"content": content}}]


def paragraph_block(content: str) -> dict[str, Any]:
    return {
        "object": "block",
        "type": "paragraph",
        "paragraph": {"rich_text": rich_text(content)},
    }


def summarize_page(page: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": page.get("id"),
        "title": object_title(page),
        "url": page.get("url"),
        "properties": page.get("properties", {}),
    }


def _page_parent(value: Any) -> dict[str, Any]:
    # A bare string parent is taken to be a page id.
    if isinstance(value, str):
        return {"type": "page_id", "page_id": value}
    return value


class NotionCapability(CapabilityHandler):
    name = "use_notion"
    description = (
        "Work with a Notion workspace: query and manage databases, create and update "
        "pages, read and edit blocks, list users, comment, and search."
    )
    parameters = {
        "database_id": {"type": "string", "description": "Database id"},
        "database": {"type": "string", "description": "Database alias configured via NOTION_DB_* (e.g. 'meetings')"},
        "page_id": {"type": "string", "description": "Page id"},
        "block_id": {"type": "string", "description": "Block id (a page id is also a block id)"},
        "user_id": {"type": "string", "description": "User id"},
        "property_id": {"type": "string", "description": "Property id"},
        "title": {"type": "string", "description": "Title for a new page, item or database"},
        "properties": {"type": "object", "description": "Notion property values or database property schema"},
        "children": {"type": "array", "description": "Block objects to append or create with a page"},
        "content": {"type": "string", "description": "Plain text for a paragraph block or a comment"},
        "parent": {"type": ["object", "string"], "description": "Parent object, e.g. {'page_id': '...'}"},
        "query": {"type": "string", "description": "Search text"},
        "filter": {"type": "object", "description": "Query or search filter"},
        "sorts": {"type": ["array", "object"], "description": "Query sorts (array) or search sort (object)"},
        "limit": {"type": "integer", "description": "Maximum results (default 10, 100 for children and users)"},
        "start_cursor": {"type": "string", "description": "Pagination cursor from a previous call"},
        "block": {"type": "object", "description": "Block fields for update_block, e.g. {'paragraph': {...}}"},
        "archived": {"type": "boolean", "description": "Archive (true) or restore (false) a page or block"},
        "icon": {"type": "object", "description": "Page icon object"},
        "cover": {"type": "object", "description": "Page cover object"},
    }
    actions = ActionTable()

    def __init__(
        self,
        config: NotionConfig,
        client: NotionClient,
        titles: TitlePropertyResolver | None = None,
    ):
        self.config = config
        self.client = client
        self.titles = titles or TitlePropertyResolver(client.get_database, fallback=config.title_property)

    # ── Pipeline hooks ────────────────────────────────────

    def resolve(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        if action not in DATABASE_ACTIONS:
            return args
        if action == "create_page" and not is_empty(args.get("parent")):
            return args
        args["database_id"] = resolve_identifier(
            args.get("database_id"),
            args.get("database"),
            self.config.database_aliases,
            default=self.config.default_database_id,
        )
        return args

    async def normalize(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        if action not in CREATE_ACTIONS:
            return args

        properties = auto_assign_people(
            args.get("properties"),
            self.config.user_id,
            self.config.auto_assign_properties,
            self.config.allow_multi_role_assignment,
        )

        if args.get("title"):
            database_id = self._parent_database(action, args)
            key = await self.titles.resolve(database_id) if database_id else "title"
            properties = apply_title(properties, key, args["title"])

        args["properties"] = properties
        return args

    def _parent_database(self, action: str, args: dict[str, Any]) -> str | None:
        parent = args.get("parent")
        if action == "create_page" and isinstance(parent, dict):
            return parent.get("database_id")
        return args.get("database_id")

    def _parent(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        if action == "create_page" and not is_empty(args.get("parent")):
            return _page_parent(args["parent"])
        return {"database_id": args["database_id"]}

    # ── Databases ─────────────────────────────────────────

    @actions.action("query_database", required=["database_id"])
    async def query_database(self, args):
        """Query a database with optional filter and sorts."""
        response = await self.client.query_database(
            args["database_id"],
            filter=args.get("filter"),
            sorts=args.get("sorts") if isinstance(args.get("sorts"), list) else None,
            start_cursor=args.get("start_cursor"),
            page_size=page_size(args.get("limit"), DEFAULT_LIMIT, MAX_PAGE_SIZE),
        )
        pages = [summarize_page(p) for p in response.get("results", [])]
        return collection(pages, has_more=response.get("has_more"), next_cursor=response.get("next_cursor"))

    @actions.action("get_database", required=["database_id"])
    async def get_database(self, args):
        """Database title, url and property schema."""
        database = await self.client.get_database(args["database_id"])
        return {
            "id": database.get("id"),
            "title": object_title(database),
            "url": database.get("url"),
            "properties": [
                {"name": name, "type": prop.get("type"), "id": prop.get("id")}
                for name, prop in (database.get("properties") or {}).items()
            ],
        }

    @actions.action("create_database", required=["parent", "title"])
    async def create_database(self, args):
        """Create a database under a page."""
        body = {
            "parent": _page_parent(args["parent"]),
            "title": rich_text(args["title"]),
            "properties": args.get("properties") or {"Name": {"title": {}}},
        }
        database = await self.client.create_database(body)
        return {"id": database.get("id"), "url": database.get("url"), "created_time": database.get("created_time")}

    @actions.action("update_database", required=["database_id"])
    async def update_database(self, args):
        """Rename a database or change its property schema."""
        body: dict[str, Any] = {}
        if args.get("title"):
            body["title"] = rich_text(args["title"])
        if not is_empty(args.get("properties")):
            body["properties"] = args["properties"]
        if not body:
            raise InvalidArguments(
                "action 'update_database' needs 'title' or 'properties'", parameter="properties"
            )
        database = await self.client.update_database(args["database_id"], body)
        return {"id": database.get("id"), "updated": True, "url": database.get("url")}

    # ── Pages ─────────────────────────────────────────────

    async def _create(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "parent": self._parent(action, args),
            "properties": args.get("properties") or {},
        }
        if not is_empty(args.get("children")):
            body["children"] = args["children"]
        elif args.get("content"):
            body["children"] = [paragraph_block(args["content"])]
        for key in ("icon", "cover"):
            if not is_empty(args.get(key)):
                body[key] = args[key]

        page = await self.client.create_page(body)
        return {
            "id": page.get("id"),
            "title": args.get("title") or object_title(page),
            "url": page.get("url"),
            "created_time": page.get("created_time"),
        }

    @actions.action("create_page", required=[("parent", "database_id")])
    async def create_page(self, args):
        """Create a page under a page or database parent."""
        return await self._create("create_page", args)

    @actions.action("create_item", required=["database_id"])
    async def create_item(self, args):
        """Create a database item; 'title' goes into the database's title property."""
        return await self._create("create_item", args)

    @actions.action("get_page", required=["page_id"])
    async def get_page(self, args):
        return await self.client.get_page(args["page_id"])

    @actions.action("update_page", required=["page_id"])
    async def update_page(self, args):
        """Update page properties, icon, cover or archived state."""
        body: dict[str, Any] = {}
        if not is_empty(args.get("properties")):
            body["properties"] = args["properties"]
        for key in ("icon", "cover", "archived"):
            if args.get(key) is not None:
                body[key] = args[key]
        if not body:
            raise InvalidArguments(
                "action 'update_page' needs 'properties', 'archived', 'icon' or 'cover'", parameter="properties"
            )
        page = await self.client.update_page(args["page_id"], body)
        return {"id": page.get("id"), "updated": True, "url": page.get("url")}

    @actions.action("get_page_property", required=["page_id", "property_id"])
    async def get_page_property(self, args):
        return await self.client.get_page_property(
            args["page_id"],
            args["property_id"],
            start_cursor=args.get("start_cursor"),
            page_size=page_size(args.get("limit"), CHILDREN_LIMIT, MAX_PAGE_SIZE) if args.get("limit") else None,
        )

    # ── Blocks ────────────────────────────────────────────

    @actions.action("get_block_children", required=["block_id"])
    async def get_block_children(self, args):
        response = await self.client.get_block_children(
            args["block_id"],
            start_cursor=args.get("start_cursor"),
            page_size=page_size(args.get("limit"), CHILDREN_LIMIT, MAX_PAGE_SIZE),
        )
        return collection(
            response.get("results", []),
            has_more=response.get("has_more"),
            next_cursor=response.get("next_cursor"),
        )

    @actions.action("append_block_children", required=[("block_id", "page_id"), ("children", "content")])
    async def append_block_children(self, args):
        """Append blocks; 'content' alone becomes one paragraph."""
        target = args.get("block_id") or args["page_id"]
        children = args.get("children") or [paragraph_block(args["content"])]
        await self.client.append_block_children(target, children)
        return {"success": True, "block_id": target, "blocks_added": len(children)}

    @actions.action("get_block", required=["block_id"])
    async def get_block(self, args):
        return await self.client.get_block(args["block_id"])

    @actions.action("update_block", required=["block_id", "block"])
    async def update_block(self, args):
        body = dict(args["block"])
        if args.get("archived") is not None:
            body["archived"] = args["archived"]
        block = await self.client.update_block(args["block_id"], body)
        return {"id": block.get("id", args["block_id"]), "updated": True}

    @actions.action("delete_block", required=["block_id"])
    async def delete_block(self, args):
        await self.client.delete_block(args["block_id"])
        return {"id": args["block_id"], "deleted": True}

    # ── Users ─────────────────────────────────────────────

    @actions.action("get_user", required=["user_id"])
    async def get_user(self, args):
        return await self.client.get_user(args["user_id"])

    @actions.action("list_users")
    async def list_users(self, args):
        response = await self.client.list_users(
            start_cursor=args.get("start_cursor"),
            page_size=page_size(args.get("limit"), CHILDREN_LIMIT, MAX_PAGE_SIZE),
        )
        return collection(
            response.get("results", []),
            has_more=response.get("has_more"),
            next_cursor=response.get("next_cursor"),
        )

    @actions.action("get_self")
    async def get_self(self, args):
        """The integration's bot user."""
        return await self.client.get_self()

    # ── Comments ──────────────────────────────────────────

    @actions.action("get_comments", required=["block_id"])
    async def get_comments(self, args):
        response = await self.client.list_comments(
            args["block_id"],
            start_cursor=args.get("start_cursor"),
            page_size=page_size(args.get("limit"), DEFAULT_LIMIT, MAX_PAGE_SIZE),
        )
        return collection(
            response.get("results", []),
            has_more=response.get("has_more"),
            next_cursor=response.get("next_cursor"),
        )

    @actions.action("create_comment", required=["content", ("parent", "page_id")])
    async def create_comment(self, args):
        """Comment on a page."""
        parent = args.get("parent")
        if is_empty(parent):
            parent = {"page_id": args["page_id"]}
        elif isinstance(parent, str):
            parent = {"page_id": parent}
        comment = await self.client.create_comment({"parent": parent, "rich_text": rich_text(args["content"])})
        return {"id": comment.get("id"), "created": True, "created_time": comment.get("created_time")}

    # ── Search ────────────────────────────────────────────

    @actions.action("search")
    async def search(self, args):
        """Search pages and databases shared with the integration."""
        sort = args.get("sorts") if isinstance(args.get("sorts"), dict) else None
        response = await self.client.search(
            query=args.get("query"),
            filter=args.get("filter"),
            sort=sort,
            start_cursor=args.get("start_cursor"),
            page_size=page_size(args.get("limit"), DEFAULT_LIMIT, MAX_PAGE_SIZE),
        )
        items = [
            {
                "id": obj.get("id"),
                "type": obj.get("object"),
                "title": object_title(obj),
                "url": obj.get("url"),
            }
            for obj in response.get("results", [])
        ]
        return collection(items, has_more=response.get("has_more"), next_cursor=response.get("next_cursor"))


def build_server(config: NotionConfig, http_client: httpx.AsyncClient | None = None) -> StdioCapabilityServer:
    client = NotionClient(config, http_client)
    server = StdioCapabilityServer(name="workspace-notion")
    server.register(NotionCapability(config, client))
    server.on_shutdown(client.close)
    return server


def main() -> None:
    configure_logging()
    try:
        config = load_notion_config()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(f"Notion configuration: {config.summary()}")
    build_server(config).run()


if __name__ == "__main__":
    main()
