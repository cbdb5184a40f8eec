"""Tests for argument normalization and enrichment helpers."""

from __future__ import annotations

import base64
from email.header import decode_header, make_header

import pytest

from workspace_tools.errors import InvalidArguments, RemoteServiceError
from workspace_tools.normalize import (
    TitlePropertyResolver,
    apply_title,
    auto_assign_people,
    build_message_text,
    build_raw_message,
    encode_raw_message,
    is_empty,
    resolve_identifier,
    to_event_time,
)

BINDINGS = {"work": "ALIAS-ID"}


def test_is_empty_values():
    for value in (None, "", [], {}):
        assert is_empty(value)
    for value in ("x", [1], {"a": 1}, 0, False):
        assert not is_empty(value)


def test_identifier_resolution_order():
    assert resolve_identifier("EXPLICIT", "work", BINDINGS, "DEFAULT", "primary") == "EXPLICIT"
    assert resolve_identifier(None, "work", BINDINGS, "DEFAULT", "primary") == "ALIAS-ID"
    assert resolve_identifier(None, None, BINDINGS, "DEFAULT", "primary") == "DEFAULT"
    assert resolve_identifier(None, None, BINDINGS, None, "primary") == "primary"


def test_unknown_alias_falls_through_without_raising():
    assert resolve_identifier(None, "nope", BINDINGS, "DEFAULT", "primary") == "DEFAULT"
    assert resolve_identifier(None, "nope", BINDINGS, None, "primary") == "primary"
    assert resolve_identifier(None, "nope", BINDINGS) is None


def test_alias_labels_are_case_and_separator_insensitive():
    bindings = {"issue_tracker": "DB-ISSUES"}
    assert resolve_identifier(None, "Issue Tracker", bindings) == "DB-ISSUES"
    assert resolve_identifier(None, "issue-tracker", bindings) == "DB-ISSUES"


def test_default_may_be_an_alias_label():
    assert resolve_identifier(None, None, BINDINGS, default="work") == "ALIAS-ID"


def test_message_text_has_fixed_header_order_and_crlf():
    text = build_message_text(to=["a@x.com", "b@x.com"], cc="c@x.com", subject="S", body="B")
    assert text == (
        "To: a@x.com, b@x.com\r\n"
        "Cc: c@x.com\r\n"
        "Subject: S\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "MIME-Version: 1.0\r\n"
        "\r\n"
        "B"
    )


def test_message_encoding_is_deterministic():
    args = {"to": ["a@x.com"], "subject": "S", "body": "B"}
    first = build_raw_message(args)
    second = build_raw_message(dict(args))
    assert first == second
    assert "=" not in first
    padded = first + "=" * (-len(first) % 4)
    assert base64.urlsafe_b64decode(padded).decode("utf-8").startswith("To: a@x.com\r\n")


def test_raw_message_wins_over_structured_fields():
    assert build_raw_message({"raw": "UkFX", "to": ["a@x.com"]}) == "UkFX"


def test_line_breaks_in_headers_are_rejected():
    with pytest.raises(InvalidArguments) as excinfo:
        build_message_text(to="a@x.com", subject="Hi\r\nBcc: victim@x.com", body="B")
    assert excinfo.value.parameter == "subject"

    with pytest.raises(InvalidArguments) as excinfo:
        build_message_text(to=["a@x.com", "b@x.com\nCc: c@x.com"])
    assert excinfo.value.parameter == "to"

    with pytest.raises(InvalidArguments):
        build_raw_message({"to": "a@x.com", "bcc": "d@x.com\r"})


def test_non_ascii_subject_is_encoded_word():
    text = build_message_text(to="a@x.com", subject="Grüße café", body="Hallo")
    [subject_line] = [line for line in text.split("\r\n") if line.startswith("Subject: ")]
    encoded = subject_line[len("Subject: "):]
    assert encoded.isascii()
    assert encoded.startswith("=?utf-8?")
    assert str(make_header(decode_header(encoded))) == "Grüße café"
    assert build_message_text(to="a@x.com", subject="Grüße café", body="Hallo") == text


def test_encode_uses_urlsafe_alphabet():
    encoded = encode_raw_message("??>>")
    assert "+" not in encoded and "/" not in encoded


def test_people_field_with_entry_is_untouched():
    props = {"DRI": {"people": [{"id": "U1"}]}}
    assert auto_assign_people(props, "U2") == {"DRI": {"people": [{"id": "U1"}]}}


def test_empty_people_field_gets_acting_user():
    props = {"Watch": {"people": []}}
    assert auto_assign_people(props, "U2") == {"Watch": {"people": [{"id": "U2"}]}}


def test_auto_assign_never_adds_keys_and_does_not_mutate_input():
    props = {"Watch": {"people": []}}
    result = auto_assign_people(props, "U2", allowlist=["Owner"])
    assert set(result) == {"Watch"}
    assert props == {"Watch": {"people": []}}


def test_allowlisted_empty_value_is_filled():
    result = auto_assign_people({"Owner": None, "Notes": None}, "U2", allowlist=["Owner"])
    assert result == {"Owner": {"people": [{"id": "U2"}]}, "Notes": None}


def test_without_acting_user_nothing_changes():
    assert auto_assign_people({"Watch": {"people": []}}, None) == {"Watch": {"people": []}}


def test_single_role_policy_assigns_at_most_once():
    props = {"Watch": {"people": []}, "Reviewer": {"people": []}}
    result = auto_assign_people(props, "U2", allow_multi_role=False)
    assigned = [k for k, v in result.items() if v["people"]]
    assert assigned == ["Watch"]


def test_single_role_policy_skips_when_user_already_assigned():
    props = {"DRI": {"people": [{"id": "U2"}]}, "Watch": {"people": []}}
    result = auto_assign_people(props, "U2", allow_multi_role=False)
    assert result["Watch"] == {"people": []}


def test_multi_role_policy_fills_every_empty_field():
    props = {"DRI": {"people": [{"id": "U2"}]}, "Watch": {"people": []}}
    result = auto_assign_people(props, "U2", allow_multi_role=True)
    assert result["Watch"] == {"people": [{"id": "U2"}]}


def test_apply_title_respects_existing_value():
    existing = {"Name": {"title": [{"text": {"content": "Keep"}}]}}
    assert apply_title(existing, "Name", "New") == existing
    assert apply_title({}, "Name", "New") == {"Name": {"title": [{"text": {"content": "New"}}]}}


@pytest.mark.asyncio
async def test_title_resolver_caches_per_database():
    calls = []

    async def fetch(database_id):
        calls.append(database_id)
        return {"properties": {"Status": {"type": "select"}, "Name": {"type": "title"}}}

    resolver = TitlePropertyResolver(fetch)
    assert await resolver.resolve("D1") == "Name"
    assert await resolver.resolve("D1") == "Name"
    assert calls == ["D1"]
    assert resolver.cached("D1") == "Name"


@pytest.mark.asyncio
async def test_title_resolver_falls_back_and_does_not_cache_failures():
    calls = []

    async def fetch(database_id):
        calls.append(database_id)
        raise RemoteServiceError("boom", service="Notion", status_code=503)

    resolver = TitlePropertyResolver(fetch, fallback="Title")
    assert await resolver.resolve("D1") == "Title"
    assert await resolver.resolve("D1") == "Title"
    assert len(calls) == 2
    assert resolver.cached("D1") is None


def test_event_time_conversion():
    assert to_event_time("2025-03-01") == {"date": "2025-03-01"}
    assert to_event_time("2025-03-01T10:00:00", "Europe/Berlin") == {
        "dateTime": "2025-03-01T10:00:00",
        "timeZone": "Europe/Berlin",
    }
    assert to_event_time({"date": "2025-03-01"}) == {"date": "2025-03-01"}
