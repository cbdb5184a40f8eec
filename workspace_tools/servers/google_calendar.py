"""
Google Calendar capability: ``use_google_calendar``.

Calendar ids resolve as: explicit ``calendarId``, then ``calendarAlias``
through GOOGLE_CALENDAR_ALIASES, then GOOGLE_CALENDAR_DEFAULT_ID, then
"primary".

create-event checks free/busy first (read-only). Overlaps are reported in
``conflicts``; with GOOGLE_CALENDAR_CONFLICT_POLICY=block they reject the
request instead. ``allowDuplicates: false`` returns an existing event with
the same summary, start and end rather than creating another.

Served together with Gmail by ``python -m workspace_tools.servers.google``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from workspace_tools.actions import ActionTable
from workspace_tools.capability import CapabilityHandler, collection, page_size
from workspace_tools.clients.google_calendar import CalendarClient
from workspace_tools.config import GoogleConfig
from workspace_tools.errors import InvalidArguments
from workspace_tools.normalize import is_empty, lookup_alias, resolve_identifier, to_event_time

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_RESULTS = 2500
DUPLICATE_SCAN_LIMIT = 50

# Actions that do not address a calendar.
CALENDARLESS_ACTIONS = ("get-current-time", "list-calendars", "list-colors")

EVENT_FIELDS = ("summary", "description", "location", "attendees", "recurrence", "colorId", "visibility")


def _zone(name: str | None) -> ZoneInfo | None:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidArguments(f"Unknown time zone: '{name}'", parameter="timeZone") from e


def _parse(value: str, tz: ZoneInfo | None = None) -> datetime:
    """Parse an RFC 3339 / ISO date or datetime into an aware datetime."""
    try:
        if len(value) == 10:
            parsed = datetime.fromisoformat(value)
        else:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidArguments(f"Invalid date/time: '{value}'", parameter="start") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz or timezone.utc)
    return parsed


def _event_instant(event_time: dict[str, Any], tz: ZoneInfo | None) -> datetime:
    value = event_time.get("dateTime") or event_time.get("date")
    if not isinstance(value, str):
        raise InvalidArguments("event times need a 'dateTime' or 'date'", parameter="start")
    zone = _zone(event_time.get("timeZone")) or tz
    return _parse(value, zone)


def _event_sort_key(event: dict[str, Any]) -> str:
    start = event.get("start") or {}
    return start.get("dateTime") or start.get("date") or ""


def _fields(value: Any) -> str | None:
    if isinstance(value, list):
        return ",".join(value) or None
    return value


class CalendarCapability(CapabilityHandler):
    name = "use_google_calendar"
    description = (
        "Manage Google Calendar: list calendars, list and search events, create, update "
        "and delete events, check free/busy, and get the current time."
    )
    parameters = {
        "calendarId": {"type": ["string", "array"], "description": "Calendar id, or several for list-events"},
        "calendarAlias": {"type": "string", "description": "Calendar alias from GOOGLE_CALENDAR_ALIASES"},
        "eventId": {"type": "string", "description": "Event id"},
        "summary": {"type": "string", "description": "Event title"},
        "description": {"type": "string", "description": "Event description"},
        "location": {"type": "string", "description": "Event location"},
        "start": {"type": ["string", "object"], "description": "Start: ISO datetime, or YYYY-MM-DD for all-day"},
        "end": {"type": ["string", "object"], "description": "End: ISO datetime, or YYYY-MM-DD for all-day"},
        "attendees": {"type": "array", "description": "[{email, displayName?, optional?}]"},
        "timeMin": {"type": "string", "description": "Lower bound (RFC 3339)"},
        "timeMax": {"type": "string", "description": "Upper bound (RFC 3339)"},
        "query": {"type": "string", "description": "Free-text event search"},
        "timeZone": {"type": "string", "description": "IANA time zone, e.g. 'Europe/Berlin'"},
        "checkConflicts": {"type": "boolean", "description": "Check free/busy before creating (default true)"},
        "allowDuplicates": {"type": "boolean", "description": "false returns an identical existing event instead of creating"},
        "calendarsToCheck": {"type": "array", "description": "Calendars consulted for conflicts"},
        "sendUpdates": {"type": "string", "enum": ["all", "externalOnly", "none"], "description": "Notify attendees"},
        "properties": {"type": "object", "description": "Additional event fields"},
        "recurrence": {"type": "array", "description": "RRULE/EXDATE lines (RFC 5545)"},
        "modificationScope": {
            "type": "string",
            "enum": ["thisEventOnly", "thisAndFollowing", "all"],
            "description": "Which occurrences of a recurring event to update",
        },
        "colorId": {"type": "string", "description": "Event color id (see list-colors)"},
        "visibility": {"type": "string", "enum": ["default", "public", "private", "confidential"]},
        "fields": {"type": "array", "description": "Partial response field selectors"},
        "maxResults": {"type": "integer", "description": "Maximum events (default 10)"},
        "pageToken": {"type": "string", "description": "Pagination token from a previous call"},
    }
    actions = ActionTable()

    def __init__(self, config: GoogleConfig, client: CalendarClient):
        self.config = config
        self.client = client

    # ── Pipeline hooks ────────────────────────────────────

    def resolve(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        if action in CALENDARLESS_ACTIONS:
            return args
        args["calendarId"] = resolve_identifier(
            args.get("calendarId"),
            args.get("calendarAlias"),
            self.config.calendar_aliases,
            default=self.config.default_calendar_id,
            fallback="primary",
        )
        if not is_empty(args.get("calendarsToCheck")):
            args["calendarsToCheck"] = [self._alias_or_id(c) for c in args["calendarsToCheck"]]
        return args

    def _alias_or_id(self, value: str) -> str:
        return lookup_alias(value, self.config.calendar_aliases) or value

    def _calendar_ids(self, args: dict[str, Any]) -> list[str]:
        value = args["calendarId"]
        if isinstance(value, list):
            return [self._alias_or_id(v) for v in value]
        return [value]

    def _single_calendar(self, args: dict[str, Any]) -> str:
        ids = self._calendar_ids(args)
        if len(ids) != 1:
            raise InvalidArguments(
                f"action '{args['action']}' takes a single calendarId", parameter="calendarId"
            )
        return ids[0]

    def _time_zone(self, args: dict[str, Any]) -> str | None:
        return args.get("timeZone") or self.config.time_zone

    def _event_body(self, args: dict[str, Any]) -> dict[str, Any]:
        body = dict(args.get("properties") or {})
        tz = self._time_zone(args)
        for key in EVENT_FIELDS:
            if not is_empty(args.get(key)):
                body[key] = args[key]
        for key in ("start", "end"):
            if not is_empty(args.get(key)):
                body[key] = to_event_time(args[key], tz)
        return body

    # ── Time & calendars ──────────────────────────────────

    @actions.action("get-current-time")
    async def get_current_time(self, args):
        """Current time in the requested or configured time zone."""
        zone = _zone(self._time_zone(args))
        now = datetime.now(zone) if zone else datetime.now().astimezone()
        return {
            "currentTime": now.isoformat(),
            "timeZone": str(zone) if zone else now.tzname(),
            "offset": now.strftime("%z"),
        }

    @actions.action("list-calendars")
    async def list_calendars(self, args):
        response = await self.client.list_calendars()
        calendars = [
            {
                "id": cal.get("id"),
                "summary": cal.get("summaryOverride") or cal.get("summary"),
                "description": cal.get("description"),
                "timeZone": cal.get("timeZone"),
                "primary": bool(cal.get("primary")),
                "accessRole": cal.get("accessRole"),
                "backgroundColor": cal.get("backgroundColor"),
            }
            for cal in response.get("items", [])
        ]
        return collection(calendars)

    @actions.action("list-colors")
    async def list_colors(self, args):
        return await self.client.colors()

    # ── Events ────────────────────────────────────────────

    async def _list(self, args: dict[str, Any], query: str | None = None) -> dict[str, Any]:
        calendar_ids = self._calendar_ids(args)
        limit = page_size(args.get("maxResults"), DEFAULT_LIMIT, MAX_RESULTS)
        page_token = args.get("pageToken") if len(calendar_ids) == 1 else None

        responses = await asyncio.gather(*[
            self.client.list_events(
                calendar_id,
                time_min=args.get("timeMin"),
                time_max=args.get("timeMax"),
                query=query,
                time_zone=args.get("timeZone"),
                max_results=limit,
                page_token=page_token,
            )
            for calendar_id in calendar_ids
        ])

        events = []
        for calendar_id, response in zip(calendar_ids, responses):
            for event in response.get("items", []):
                events.append({**event, "calendarId": calendar_id})
        if len(calendar_ids) > 1:
            events.sort(key=_event_sort_key)

        tokens = [r.get("nextPageToken") for r in responses]
        return collection(
            events,
            has_more=any(tokens),
            next_cursor=tokens[0] if len(calendar_ids) == 1 else None,
        )

    @actions.action("list-events", required=["calendarId"])
    async def list_events(self, args):
        """Events from one or more calendars, optionally bounded by timeMin/timeMax."""
        return await self._list(args)

    @actions.action("search-events", required=["calendarId", "query"])
    async def search_events(self, args):
        """Free-text search over event fields."""
        return await self._list(args, query=args["query"])

    @actions.action("get-event", required=["calendarId", "eventId"])
    async def get_event(self, args):
        return await self.client.get_event(
            self._single_calendar(args), args["eventId"], fields=_fields(args.get("fields"))
        )

    @actions.action("create-event", required=["calendarId", "summary", "start", "end"])
    async def create_event(self, args):
        """Create an event after optional duplicate and conflict checks."""
        calendar_id = self._single_calendar(args)
        body = self._event_body(args)
        zone = _zone(self._time_zone(args))
        start = _event_instant(body["start"], zone)
        end = _event_instant(body["end"], zone)
        if end <= start:
            raise InvalidArguments("'end' must be after 'start'", parameter="end")

        if args.get("allowDuplicates") is False:
            existing = await self._find_duplicate(calendar_id, args["summary"], start, end, zone)
            if existing:
                logger.info(f"Duplicate of event {existing.get('id')} found, not creating")
                return {
                    "id": existing.get("id"),
                    "url": existing.get("htmlLink"),
                    "created_time": existing.get("created"),
                    "event": existing,
                    "duplicate": True,
                    "conflicts": [],
                }

        check = args.get("checkConflicts")
        if check is None:
            check = self.config.check_conflicts
        conflicts = []
        if check:
            calendars = args.get("calendarsToCheck") or [calendar_id]
            conflicts = await self._find_conflicts(calendars, start, end)
            if conflicts and self.config.conflict_policy == "block":
                raise InvalidArguments(
                    f"Event overlaps {len(conflicts)} busy period(s): "
                    + ", ".join(f"{c['calendarId']} {c['start']} to {c['end']}" for c in conflicts),
                    code="ConflictDetected",
                    parameter="start",
                )

        event = await self.client.insert_event(calendar_id, body, send_updates=args.get("sendUpdates"))
        return {
            "id": event.get("id"),
            "url": event.get("htmlLink"),
            "created_time": event.get("created"),
            "event": event,
            "conflicts": conflicts,
        }

    async def _find_conflicts(self, calendar_ids: list[str], start: datetime, end: datetime) -> list[dict]:
        response = await self.client.freebusy(start.isoformat(), end.isoformat(), calendar_ids)
        conflicts = []
        for calendar_id, info in (response.get("calendars") or {}).items():
            for busy in info.get("busy", []):
                busy_start, busy_end = _parse(busy["start"]), _parse(busy["end"])
                if busy_start < end and busy_end > start:
                    conflicts.append({"calendarId": calendar_id, "start": busy["start"], "end": busy["end"]})
        return conflicts

    async def _find_duplicate(
        self,
        calendar_id: str,
        summary: str,
        start: datetime,
        end: datetime,
        zone: ZoneInfo | None,
    ) -> dict[str, Any] | None:
        response = await self.client.list_events(
            calendar_id,
            time_min=start.isoformat(),
            time_max=end.isoformat(),
            max_results=DUPLICATE_SCAN_LIMIT,
        )
        for event in response.get("items", []):
            if event.get("summary") != summary or not event.get("start") or not event.get("end"):
                continue
            if _event_instant(event["start"], zone) == start and _event_instant(event["end"], zone) == end:
                return event
        return None

    @actions.action("update-event", required=["calendarId", "eventId"])
    async def update_event(self, args):
        """Patch supplied fields. Scopes: thisEventOnly, all."""
        calendar_id = self._single_calendar(args)
        scope = args.get("modificationScope") or "thisEventOnly"
        if scope == "thisAndFollowing":
            raise InvalidArguments(
                "modificationScope 'thisAndFollowing' is not supported; use 'thisEventOnly' or 'all'",
                code="UnsupportedScope",
                parameter="modificationScope",
            )

        body = self._event_body(args)
        if not body:
            raise InvalidArguments("action 'update-event' has no fields to update", parameter="summary")

        event_id = args["eventId"]
        if scope == "all":
            instance = await self.client.get_event(calendar_id, event_id)
            event_id = instance.get("recurringEventId") or event_id

        event = await self.client.patch_event(calendar_id, event_id, body, send_updates=args.get("sendUpdates"))
        return {"id": event.get("id", event_id), "updated": True, "url": event.get("htmlLink"), "event": event}

    @actions.action("delete-event", required=["calendarId", "eventId"])
    async def delete_event(self, args):
        await self.client.delete_event(
            self._single_calendar(args), args["eventId"], send_updates=args.get("sendUpdates")
        )
        return {"id": args["eventId"], "deleted": True}

    @actions.action("get-freebusy", required=["calendarId", "timeMin", "timeMax"])
    async def get_freebusy(self, args):
        """Busy periods for calendarsToCheck (or calendarId) between timeMin and timeMax."""
        calendar_ids = args.get("calendarsToCheck") or self._calendar_ids(args)
        response = await self.client.freebusy(
            args["timeMin"], args["timeMax"], calendar_ids, time_zone=args.get("timeZone")
        )
        return {
            "timeMin": response.get("timeMin", args["timeMin"]),
            "timeMax": response.get("timeMax", args["timeMax"]),
            "calendars": {
                calendar_id: {"busy": info.get("busy", []), "errors": info.get("errors", [])}
                for calendar_id, info in (response.get("calendars") or {}).items()
            },
        }
