"""Tests for the use_google_calendar capability against a recording stub client."""

from __future__ import annotations

import pytest

from tests.conftest import RecordingClient, args_without, requirement_cases
from workspace_tools.config import GoogleConfig
from workspace_tools.servers.google_calendar import CalendarCapability

START = "2025-03-01T10:00:00Z"
END = "2025-03-01T11:00:00Z"
INSERTED = {"id": "E1", "htmlLink": "https://calendar/E1", "created": "2025-02-01T00:00:00Z"}


def _busy(*periods, calendar="primary"):
    return {"calendars": {calendar: {"busy": [{"start": s, "end": e} for s, e in periods]}}}


def _event_args(**extra):
    args = {"action": "create-event", "summary": "Standup", "start": START, "end": END}
    args.update(extra)
    return args


@pytest.mark.asyncio
async def test_calendar_id_resolution_order():
    config = GoogleConfig(
        client_id="c",
        client_secret="s",
        refresh_token="r",
        calendar_aliases={"work": "WORK-ID"},
        default_calendar_id="DEFAULT-ID",
    )
    client = RecordingClient({"list_events": {"items": []}})
    capability = CalendarCapability(config, client)

    await capability.invoke({"action": "list-events", "calendarId": "EXPLICIT", "calendarAlias": "work"})
    await capability.invoke({"action": "list-events", "calendarAlias": "work"})
    await capability.invoke({"action": "list-events", "calendarAlias": "missing"})
    await capability.invoke({"action": "list-events"})

    ids = [args[0] for args, _ in client.called("list_events")]
    assert ids == ["EXPLICIT", "WORK-ID", "DEFAULT-ID", "DEFAULT-ID"]


@pytest.mark.asyncio
async def test_primary_is_the_final_fallback(google_config):
    client = RecordingClient({"list_events": {"items": []}})
    result = await CalendarCapability(google_config, client).invoke({"action": "list-events"})
    assert result.is_ok
    assert client.called("list_events")[0][0][0] == "primary"


@pytest.mark.asyncio
async def test_list_events_merges_calendars_in_start_order(google_config):
    def list_events(calendar_id, **kwargs):
        hours = {"A": ["09", "12"], "B": ["10"]}[calendar_id]
        return {"items": [{"id": f"{calendar_id}{h}", "start": {"dateTime": f"2025-03-01T{h}:00:00Z"}} for h in hours]}

    client = RecordingClient({"list_events": list_events})
    result = await CalendarCapability(google_config, client).invoke(
        {"action": "list-events", "calendarId": ["A", "B"]}
    )
    assert [e["id"] for e in result.value["items"]] == ["A09", "B10", "A12"]
    assert [e["calendarId"] for e in result.value["items"]] == ["A", "B", "A"]
    assert result.value["next_cursor"] is None


@pytest.mark.asyncio
async def test_create_event_annotates_conflicts(google_config):
    client = RecordingClient({
        "freebusy": _busy(("2025-03-01T10:30:00Z", "2025-03-01T11:30:00Z")),
        "insert_event": INSERTED,
    })
    result = await CalendarCapability(google_config, client).invoke(_event_args())
    assert result.is_ok
    assert result.value["id"] == "E1"
    assert result.value["url"] == "https://calendar/E1"
    assert result.value["conflicts"] == [
        {"calendarId": "primary", "start": "2025-03-01T10:30:00Z", "end": "2025-03-01T11:30:00Z"}
    ]
    [(args, kwargs)] = client.called("insert_event")
    assert args[0] == "primary"
    assert args[1]["start"] == {"dateTime": START, "timeZone": "UTC"}


@pytest.mark.asyncio
async def test_adjacent_busy_period_is_not_a_conflict(google_config):
    client = RecordingClient({
        "freebusy": _busy(("2025-03-01T09:00:00Z", START)),
        "insert_event": INSERTED,
    })
    result = await CalendarCapability(google_config, client).invoke(_event_args())
    assert result.value["conflicts"] == []


@pytest.mark.asyncio
async def test_block_policy_rejects_conflicting_event(google_config):
    config = google_config.model_copy(update={"conflict_policy": "block"})
    client = RecordingClient({
        "freebusy": _busy(("2025-03-01T10:30:00Z", "2025-03-01T11:30:00Z")),
        "insert_event": INSERTED,
    })
    result = await CalendarCapability(config, client).invoke(_event_args())
    assert not result.is_ok
    assert result.kind.value == "ValidationError"
    assert result.code == "ConflictDetected"
    assert client.called("insert_event") == []


@pytest.mark.asyncio
async def test_conflict_check_can_be_disabled_per_call(google_config):
    client = RecordingClient({"insert_event": INSERTED})
    result = await CalendarCapability(google_config, client).invoke(_event_args(checkConflicts=False))
    assert result.is_ok
    assert client.called("freebusy") == []


@pytest.mark.asyncio
async def test_duplicate_suppression_returns_existing_event(google_config):
    existing = {
        "id": "E0",
        "summary": "Standup",
        "start": {"dateTime": "2025-03-01T10:00:00+00:00"},
        "end": {"dateTime": END},
    }
    client = RecordingClient({"list_events": {"items": [existing]}, "insert_event": INSERTED})
    result = await CalendarCapability(google_config, client).invoke(_event_args(allowDuplicates=False))
    assert result.value["id"] == "E0"
    assert result.value["duplicate"] is True
    assert client.called("insert_event") == []


@pytest.mark.asyncio
async def test_end_before_start_is_rejected(google_config):
    client = RecordingClient()
    result = await CalendarCapability(google_config, client).invoke(_event_args(start=END, end=START))
    assert result.code == "InvalidParameter"
    assert client.calls == []


@pytest.mark.asyncio
async def test_all_day_event(google_config):
    client = RecordingClient({"freebusy": {"calendars": {}}, "insert_event": INSERTED})
    result = await CalendarCapability(google_config, client).invoke(
        _event_args(start="2025-03-01", end="2025-03-02")
    )
    assert result.is_ok
    [(args, _)] = client.called("insert_event")
    assert args[1]["start"] == {"date": "2025-03-01"}


@pytest.mark.asyncio
async def test_this_and_following_scope_is_rejected_without_calls(google_config):
    client = RecordingClient()
    result = await CalendarCapability(google_config, client).invoke({
        "action": "update-event",
        "eventId": "E1",
        "summary": "New",
        "modificationScope": "thisAndFollowing",
    })
    assert result.code == "UnsupportedScope"
    assert client.calls == []


@pytest.mark.asyncio
async def test_update_all_targets_recurring_series(google_config):
    client = RecordingClient({
        "get_event": {"id": "SERIES_20250301T100000Z", "recurringEventId": "SERIES"},
        "patch_event": {"id": "SERIES", "htmlLink": "link"},
    })
    result = await CalendarCapability(google_config, client).invoke({
        "action": "update-event",
        "eventId": "SERIES_20250301T100000Z",
        "summary": "Renamed",
        "modificationScope": "all",
    })
    assert result.value["updated"] is True
    [(args, _)] = client.called("patch_event")
    assert args[1] == "SERIES"
    assert args[2] == {"summary": "Renamed"}


@pytest.mark.asyncio
async def test_delete_event_confirmation(google_config):
    client = RecordingClient({"delete_event": {}})
    result = await CalendarCapability(google_config, client).invoke(
        {"action": "delete-event", "calendarAlias": "work", "eventId": "E1"}
    )
    assert result.value == {"id": "E1", "deleted": True}
    assert client.called("delete_event")[0][0][0] == "work@group.calendar.google.com"


@pytest.mark.asyncio
async def test_get_freebusy_shape(google_config):
    client = RecordingClient({"freebusy": _busy((START, END), calendar="work@group.calendar.google.com")})
    result = await CalendarCapability(google_config, client).invoke({
        "action": "get-freebusy",
        "timeMin": START,
        "timeMax": END,
        "calendarsToCheck": ["work"],
    })
    assert result.value["calendars"]["work@group.calendar.google.com"]["busy"] == [{"start": START, "end": END}]
    assert client.called("freebusy")[0][0][2] == ["work@group.calendar.google.com"]


@pytest.mark.asyncio
async def test_get_current_time_uses_configured_zone(google_config):
    result = await CalendarCapability(google_config, RecordingClient()).invoke({"action": "get-current-time"})
    assert result.value["timeZone"] == "UTC"
    assert result.value["offset"] == "+0000"


@pytest.mark.asyncio
async def test_unknown_time_zone_is_validation_error(google_config):
    result = await CalendarCapability(google_config, RecordingClient()).invoke(
        {"action": "get-current-time", "timeZone": "Mars/Olympus"}
    )
    assert result.kind.value == "ValidationError"


SAMPLE = {
    "calendarId": "primary",
    "eventId": "E1",
    "query": "standup",
    "summary": "Standup",
    "start": START,
    "end": END,
    "timeMin": START,
    "timeMax": END,
}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "action, omitted", requirement_cases(CalendarCapability.actions, skip=[("calendarId",)])
)
async def test_each_missing_requirement_is_named_and_makes_no_calls(google_config, action, omitted):
    client = RecordingClient()
    args = args_without(CalendarCapability.actions, action, omitted, SAMPLE)
    result = await CalendarCapability(google_config, client).invoke(args)
    assert result.code == "MissingParameter"
    assert result.message == f"parameter '{' or '.join(omitted)}' is required for action '{action}'"
    assert client.calls == []
