"""Tests for the use_gmail capability against a recording stub client."""

from __future__ import annotations

import base64

import pytest

from tests.conftest import RecordingClient, args_without, requirement_cases
from workspace_tools.servers.gmail import GmailCapability


def _decode(raw: str) -> str:
    return base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode("utf-8")


@pytest.mark.asyncio
async def test_send_message_builds_raw_from_fields():
    client = RecordingClient({"send_message": {"id": "M1", "threadId": "T1", "labelIds": ["SENT"]}})
    result = await GmailCapability(client).invoke(
        {"action": "send_message", "to": ["a@x.com"], "subject": "S", "body": "B"}
    )
    assert result.value == {"id": "M1", "threadId": "T1", "labelIds": ["SENT"], "sent": True}
    [(args, _)] = client.called("send_message")
    assert _decode(args[0]) == (
        "To: a@x.com\r\nSubject: S\r\nContent-Type: text/plain; charset=utf-8\r\nMIME-Version: 1.0\r\n\r\nB"
    )


@pytest.mark.asyncio
async def test_identical_sends_encode_identically():
    client = RecordingClient({"send_message": {"id": "M"}})
    capability = GmailCapability(client)
    for _ in range(2):
        await capability.invoke({"action": "send_message", "to": ["a@x.com"], "subject": "S", "body": "B"})
    first, second = [args[0] for args, _ in client.called("send_message")]
    assert first == second


@pytest.mark.asyncio
async def test_create_draft_passes_raw_through():
    client = RecordingClient({"create_draft": {"id": "D1", "message": {"id": "M1"}}})
    result = await GmailCapability(client).invoke({"action": "create_draft", "raw": "UkFX"})
    assert result.value["created"] is True
    assert client.called("create_draft")[0][0][0] == "UkFX"


@pytest.mark.asyncio
async def test_id_alternatives_message_names_both():
    client = RecordingClient()
    result = await GmailCapability(client).invoke({"action": "get_message"})
    assert result.message == "parameter 'id or messageId' is required for action 'get_message'"
    assert client.calls == []


@pytest.mark.asyncio
async def test_message_id_alias_accepted():
    client = RecordingClient({"get_message": {"id": "M1"}})
    await GmailCapability(client).invoke({"action": "get_message", "messageId": "M1", "format": "metadata"})
    [(args, kwargs)] = client.called("get_message")
    assert args[0] == "M1"
    assert kwargs["format"] == "metadata"


@pytest.mark.asyncio
async def test_list_messages_shape_and_default_limit():
    client = RecordingClient({
        "list_messages": {"messages": [{"id": "M1"}], "nextPageToken": "p2", "resultSizeEstimate": 40}
    })
    result = await GmailCapability(client).invoke({"action": "list_messages", "q": "is:unread"})
    assert result.value["items"] == [{"id": "M1"}]
    assert result.value["has_more"] is True
    assert result.value["next_cursor"] == "p2"
    kwargs = client.called("list_messages")[0][1]
    assert kwargs["maxResults"] == 10
    assert kwargs["q"] == "is:unread"


@pytest.mark.asyncio
async def test_modify_requires_a_label_change():
    client = RecordingClient()
    result = await GmailCapability(client).invoke({"action": "modify_message", "id": "M1"})
    assert result.kind.value == "ValidationError"
    assert client.calls == []


@pytest.mark.asyncio
async def test_delete_returns_confirmation():
    client = RecordingClient({"delete_message": {}})
    result = await GmailCapability(client).invoke({"action": "delete_message", "id": "M1"})
    assert result.value == {"id": "M1", "deleted": True}


@pytest.mark.asyncio
async def test_attachment_uses_message_and_attachment_ids():
    client = RecordingClient({"get_attachment": {"size": 3, "data": "YWJj"}})
    await GmailCapability(client).invoke({"action": "get_attachment", "messageId": "M1", "id": "A1"})
    assert client.called("get_attachment")[0][0] == ("M1", "A1")


@pytest.mark.asyncio
async def test_batch_delete():
    client = RecordingClient({"batch_delete_messages": {}})
    result = await GmailCapability(client).invoke({"action": "batch_delete_messages", "ids": ["a", "b"]})
    assert result.value == {"deleted": ["a", "b"], "count": 2}


@pytest.mark.asyncio
async def test_update_label_sends_only_supplied_fields():
    client = RecordingClient({"update_label": {"id": "L1", "name": "New"}})
    await GmailCapability(client).invoke({"action": "update_label", "labelId": "L1", "name": "New"})
    assert client.called("update_label")[0][0] == ("L1", {"name": "New"})


def test_action_set_is_complete():
    assert len(GmailCapability.actions) == 26


@pytest.mark.asyncio
async def test_header_injection_is_rejected_before_sending():
    client = RecordingClient()
    result = await GmailCapability(client).invoke(
        {"action": "send_message", "to": ["a@x.com"], "subject": "Hi\r\nBcc: everyone@x.com", "body": "B"}
    )
    assert result.kind.value == "ValidationError"
    assert "subject" in result.message
    assert client.calls == []


@pytest.mark.asyncio
async def test_non_ascii_subject_is_sent_as_encoded_word():
    client = RecordingClient({"send_message": {"id": "M1"}})
    await GmailCapability(client).invoke(
        {"action": "send_message", "to": "a@x.com", "subject": "Réunion", "body": "à demain"}
    )
    text = _decode(client.called("send_message")[0][0][0])
    assert "Réunion" not in text
    assert "\r\nSubject: =?utf-8?" in text
    assert text.endswith("\r\n\r\nà demain")


SAMPLE = {
    "id": "X1",
    "messageId": "M1",
    "attachmentId": "A1",
    "raw": "UkFX",
    "ids": ["M1", "M2"],
    "name": "Receipts",
}


@pytest.mark.asyncio
@pytest.mark.parametrize("action, omitted", requirement_cases(GmailCapability.actions))
async def test_each_missing_requirement_is_named_and_makes_no_calls(action, omitted):
    client = RecordingClient()
    args = args_without(GmailCapability.actions, action, omitted, SAMPLE)
    result = await GmailCapability(client).invoke(args)
    assert result.code == "MissingParameter"
    assert result.message == f"parameter '{' or '.join(omitted)}' is required for action '{action}'"
    assert client.calls == []
