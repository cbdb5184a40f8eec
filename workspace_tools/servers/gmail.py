"""
Gmail capability: ``use_gmail``.

Messages, threads, drafts, labels, attachments and profile for the
authenticated user. send_message and create_draft accept either a
pre-encoded ``raw`` message or ``to``/``cc``/``bcc``/``subject``/``body``,
which are encoded deterministically.
"""

from __future__ import annotations

from typing import Any

from workspace_tools.actions import ActionTable
from workspace_tools.capability import CapabilityHandler, collection, page_size
from workspace_tools.clients.gmail import GmailClient
from workspace_tools.errors import InvalidArguments
from workspace_tools.normalize import build_raw_message, is_empty

DEFAULT_LIMIT = 10
MAX_RESULTS = 500

COMPOSE_ACTIONS = ("send_message", "create_draft")


def _first(args: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if not is_empty(args.get(key)):
            return args[key]
    return None


def _label_changes(args: dict[str, Any], action: str) -> tuple[list, list]:
    add, remove = args.get("addLabelIds") or [], args.get("removeLabelIds") or []
    if not add and not remove:
        raise InvalidArguments(
            f"action '{action}' needs 'addLabelIds' or 'removeLabelIds'", parameter="addLabelIds"
        )
    return add, remove


class GmailCapability(CapabilityHandler):
    name = "use_gmail"
    description = (
        "Use Gmail: list, read, send, label, trash and delete messages and threads; "
        "manage drafts and labels; fetch attachments and the mailbox profile."
    )
    parameters = {
        "id": {"type": "string", "description": "Id of the message, thread, draft, label or attachment"},
        "messageId": {"type": "string", "description": "Message id"},
        "threadId": {"type": "string", "description": "Thread id (send_message: reply within thread)"},
        "draftId": {"type": "string", "description": "Draft id"},
        "labelId": {"type": "string", "description": "Label id"},
        "attachmentId": {"type": "string", "description": "Attachment id"},
        "maxResults": {"type": "integer", "description": "Maximum results (default 10)"},
        "pageToken": {"type": "string", "description": "Pagination token from a previous call"},
        "q": {"type": "string", "description": "Gmail search query, e.g. 'from:alice is:unread'"},
        "labelIds": {"type": "array", "description": "Only return items with all of these labels"},
        "includeSpamTrash": {"type": "boolean", "description": "Include SPAM and TRASH"},
        "to": {"type": ["array", "string"], "description": "Recipients"},
        "cc": {"type": ["array", "string"], "description": "Cc recipients"},
        "bcc": {"type": ["array", "string"], "description": "Bcc recipients"},
        "subject": {"type": "string", "description": "Subject"},
        "body": {"type": "string", "description": "Plain-text body"},
        "raw": {"type": "string", "description": "Complete RFC 2822 message, base64url encoded"},
        "name": {"type": "string", "description": "Label name"},
        "labelListVisibility": {"type": "string", "enum": ["labelShow", "labelShowIfUnread", "labelHide"]},
        "messageListVisibility": {"type": "string", "enum": ["show", "hide"]},
        "color": {"type": "object", "description": "{textColor, backgroundColor}"},
        "addLabelIds": {"type": "array", "description": "Labels to add"},
        "removeLabelIds": {"type": "array", "description": "Labels to remove"},
        "ids": {"type": "array", "description": "Message ids for batch actions"},
        "format": {"type": "string", "enum": ["minimal", "full", "raw", "metadata"], "description": "Response format"},
        "metadataHeaders": {"type": "array", "description": "Headers to include with format=metadata"},
    }
    actions = ActionTable()

    def __init__(self, client: GmailClient):
        self.client = client

    async def normalize(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        if action in COMPOSE_ACTIONS:
            args["raw"] = build_raw_message(args)
        return args

    def _list_params(self, args: dict[str, Any]) -> dict[str, Any]:
        return {
            "maxResults": page_size(args.get("maxResults"), DEFAULT_LIMIT, MAX_RESULTS),
            "pageToken": args.get("pageToken"),
            "q": args.get("q"),
            "labelIds": args.get("labelIds"),
            "includeSpamTrash": args.get("includeSpamTrash"),
        }

    def _collection(self, response: dict[str, Any], key: str) -> dict[str, Any]:
        return collection(
            response.get(key, []),
            has_more=bool(response.get("nextPageToken")),
            next_cursor=response.get("nextPageToken"),
            result_size_estimate=response.get("resultSizeEstimate"),
        )

    # ── Messages ──────────────────────────────────────────

    @actions.action("list_messages")
    async def list_messages(self, args):
        """Message ids matching q / labelIds."""
        return self._collection(await self.client.list_messages(**self._list_params(args)), "messages")

    @actions.action("get_message", required=[("id", "messageId")])
    async def get_message(self, args):
        return await self.client.get_message(
            _first(args, "id", "messageId"),
            format=args.get("format") or "full",
            metadata_headers=args.get("metadataHeaders"),
        )

    @actions.action("send_message", required=[("raw", "to")])
    async def send_message(self, args):
        """Send a message built from to/cc/bcc/subject/body, or a raw one."""
        message = await self.client.send_message(args["raw"], thread_id=args.get("threadId"))
        return {
            "id": message.get("id"),
            "threadId": message.get("threadId"),
            "labelIds": message.get("labelIds", []),
            "sent": True,
        }

    @actions.action("modify_message", required=[("id", "messageId")])
    async def modify_message(self, args):
        add, remove = _label_changes(args, "modify_message")
        message = await self.client.modify_message(_first(args, "id", "messageId"), add, remove)
        return {"id": message.get("id"), "labelIds": message.get("labelIds", []), "updated": True}

    @actions.action("trash_message", required=[("id", "messageId")])
    async def trash_message(self, args):
        message = await self.client.trash_message(_first(args, "id", "messageId"))
        return {"id": message.get("id"), "trashed": True, "labelIds": message.get("labelIds", [])}

    @actions.action("delete_message", required=[("id", "messageId")])
    async def delete_message(self, args):
        """Permanently delete a message (skips trash)."""
        message_id = _first(args, "id", "messageId")
        await self.client.delete_message(message_id)
        return {"id": message_id, "deleted": True}

    @actions.action("batch_modify_messages", required=["ids"])
    async def batch_modify_messages(self, args):
        add, remove = _label_changes(args, "batch_modify_messages")
        await self.client.batch_modify_messages(args["ids"], add, remove)
        return {"modified": args["ids"], "count": len(args["ids"])}

    @actions.action("batch_delete_messages", required=["ids"])
    async def batch_delete_messages(self, args):
        await self.client.batch_delete_messages(args["ids"])
        return {"deleted": args["ids"], "count": len(args["ids"])}

    @actions.action("get_attachment", required=["messageId", ("attachmentId", "id")])
    async def get_attachment(self, args):
        """Attachment body (base64url data) of a message part."""
        return await self.client.get_attachment(args["messageId"], _first(args, "attachmentId", "id"))

    # ── Threads ───────────────────────────────────────────

    @actions.action("list_threads")
    async def list_threads(self, args):
        return self._collection(await self.client.list_threads(**self._list_params(args)), "threads")

    @actions.action("get_thread", required=[("id", "threadId")])
    async def get_thread(self, args):
        return await self.client.get_thread(_first(args, "id", "threadId"), format=args.get("format") or "full")

    @actions.action("modify_thread", required=[("id", "threadId")])
    async def modify_thread(self, args):
        add, remove = _label_changes(args, "modify_thread")
        thread = await self.client.modify_thread(_first(args, "id", "threadId"), add, remove)
        return {"id": thread.get("id"), "updated": True}

    @actions.action("trash_thread", required=[("id", "threadId")])
    async def trash_thread(self, args):
        thread = await self.client.trash_thread(_first(args, "id", "threadId"))
        return {"id": thread.get("id"), "trashed": True}

    @actions.action("untrash_thread", required=[("id", "threadId")])
    async def untrash_thread(self, args):
        thread = await self.client.untrash_thread(_first(args, "id", "threadId"))
        return {"id": thread.get("id"), "trashed": False}

    @actions.action("delete_thread", required=[("id", "threadId")])
    async def delete_thread(self, args):
        thread_id = _first(args, "id", "threadId")
        await self.client.delete_thread(thread_id)
        return {"id": thread_id, "deleted": True}

    # ── Drafts ────────────────────────────────────────────

    @actions.action("list_drafts")
    async def list_drafts(self, args):
        return self._collection(await self.client.list_drafts(**self._list_params(args)), "drafts")

    @actions.action("get_draft", required=[("id", "draftId")])
    async def get_draft(self, args):
        return await self.client.get_draft(_first(args, "id", "draftId"), format=args.get("format") or "full")

    @actions.action("create_draft", required=[("raw", "to")])
    async def create_draft(self, args):
        draft = await self.client.create_draft(args["raw"])
        return {"id": draft.get("id"), "message": draft.get("message", {}), "created": True}

    @actions.action("send_draft", required=[("id", "draftId")])
    async def send_draft(self, args):
        message = await self.client.send_draft(_first(args, "id", "draftId"))
        return {
            "id": message.get("id"),
            "threadId": message.get("threadId"),
            "labelIds": message.get("labelIds", []),
            "sent": True,
        }

    @actions.action("delete_draft", required=[("id", "draftId")])
    async def delete_draft(self, args):
        draft_id = _first(args, "id", "draftId")
        await self.client.delete_draft(draft_id)
        return {"id": draft_id, "deleted": True}

    # ── Labels ────────────────────────────────────────────

    def _label_body(self, args: dict[str, Any]) -> dict[str, Any]:
        return {
            key: args[key]
            for key in ("name", "labelListVisibility", "messageListVisibility", "color")
            if not is_empty(args.get(key))
        }

    @actions.action("list_labels")
    async def list_labels(self, args):
        response = await self.client.list_labels()
        return collection(response.get("labels", []))

    @actions.action("get_label", required=[("id", "labelId")])
    async def get_label(self, args):
        return await self.client.get_label(_first(args, "id", "labelId"))

    @actions.action("create_label", required=["name"])
    async def create_label(self, args):
        label = await self.client.create_label(self._label_body(args))
        return {"id": label.get("id"), "name": label.get("name"), "created": True}

    @actions.action("update_label", required=[("id", "labelId")])
    async def update_label(self, args):
        body = self._label_body(args)
        if not body:
            raise InvalidArguments("action 'update_label' has no fields to update", parameter="name")
        label = await self.client.update_label(_first(args, "id", "labelId"), body)
        return {"id": label.get("id"), "updated": True, "label": label}

    @actions.action("delete_label", required=[("id", "labelId")])
    async def delete_label(self, args):
        label_id = _first(args, "id", "labelId")
        await self.client.delete_label(label_id)
        return {"id": label_id, "deleted": True}

    # ── Profile ───────────────────────────────────────────

    @actions.action("get_profile")
    async def get_profile(self, args):
        """Email address and message/thread counts of the mailbox."""
        return await self.client.get_profile()
