"""
Parameter normalization and enrichment.

Pure helpers applied to an action's argument bag before the remote call:

1. Identifier resolution    explicit id > alias > configured default > fallback
2. Message construction     deterministic RFC 2822 text, base64url encoded
3. People auto-assignment   fill empty people fields with the acting user
4. Title discovery          find a database's title-typed property (cached)

Nothing here mutates remote state. The only I/O is the read-only schema
lookup inside TitlePropertyResolver.
"""

from __future__ import annotations

import base64
import logging
import re
from email.header import Header
from typing import Any, Awaitable, Callable, Iterable, Mapping

import httpx

from workspace_tools.errors import InvalidArguments, RemoteServiceError

logger = logging.getLogger(__name__)


def is_empty(value: Any) -> bool:
    """True for values that do not count as "supplied"."""
    return value is None or value == "" or value == [] or value == {}


# ============================================================
# 1. IDENTIFIER RESOLUTION
# ============================================================

def normalize_alias(label: str) -> str:
    return re.sub(r"[\s\-]+", "_", label.strip().lower())


def lookup_alias(label: str | None, bindings: Mapping[str, str]) -> str | None:
    """Resolve an alias label through the configured bindings, or None."""
    if not isinstance(label, str) or not label.strip():
        return None
    return bindings.get(normalize_alias(label))


def resolve_identifier(
    explicit: Any,
    alias: str | None,
    bindings: Mapping[str, str],
    default: str | None = None,
    fallback: str | None = None,
) -> Any:
    """
    Pick the identifier for a call.

    Order: explicit value, then ``alias`` looked up in ``bindings``, then the
    configured ``default`` (which may itself be an alias label), then the
    fixed ``fallback``. An alias that matches no binding is logged and
    skipped; this never raises. Returns None only when every step is empty.
    """
    if not is_empty(explicit):
        return explicit

    if not is_empty(alias):
        resolved = lookup_alias(alias, bindings)
        if resolved:
            return resolved
        logger.debug(f"Alias {alias!r} has no binding, falling back to default")

    if default:
        return lookup_alias(default, bindings) or default

    return fallback


# ============================================================
# 2. MESSAGE CONSTRUCTION
# ============================================================

def _header_value(value: str, parameter: str) -> str:
    if "\r" in value or "\n" in value:
        raise InvalidArguments(
            f"parameter '{parameter}' must not contain line breaks", parameter=parameter
        )
    return value


def _address_list(value: Any, parameter: str) -> str:
    addresses = [value] if isinstance(value, str) else [str(v) for v in value]
    return ", ".join(_header_value(a, parameter) for a in addresses)


def _subject(value: str) -> str:
    _header_value(value, "subject")
    if value.isascii():
        return value
    # RFC 2047 encoded-word on a single line.
    return Header(value, "utf-8").encode(maxlinelen=0)


def build_message_text(
    to: Any = None,
    cc: Any = None,
    bcc: Any = None,
    subject: str | None = None,
    body: str | None = None,
) -> str:
    """
    Build a plain-text RFC 2822 message.

    Header order is fixed (To, Cc, Bcc, Subject, Content-Type, MIME-Version);
    empty headers are omitted; lines are joined with CRLF. Header values
    containing CR or LF raise InvalidArguments; a non-ASCII subject is
    written as an RFC 2047 encoded-word.
    """
    lines = []
    if not is_empty(to):
        lines.append(f"To: {_address_list(to, 'to')}")
    if not is_empty(cc):
        lines.append(f"Cc: {_address_list(cc, 'cc')}")
    if not is_empty(bcc):
        lines.append(f"Bcc: {_address_list(bcc, 'bcc')}")
    if subject:
        lines.append(f"Subject: {_subject(subject)}")
    lines.append("Content-Type: text/plain; charset=utf-8")
    lines.append("MIME-Version: 1.0")
    lines.append("")
    lines.append(body or "")
    return "\r\n".join(lines)


def encode_raw_message(text: str) -> str:
    """base64url without padding, the form the Gmail API expects in ``raw``."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def build_raw_message(args: Mapping[str, Any]) -> str:
    """Return ``args['raw']`` if given, else encode the structured fields."""
    if not is_empty(args.get("raw")):
        return args["raw"]
    return encode_raw_message(build_message_text(
        to=args.get("to"),
        cc=args.get("cc"),
        bcc=args.get("bcc"),
        subject=args.get("subject"),
        body=args.get("body"),
    ))


# ============================================================
# 3. PEOPLE AUTO-ASSIGNMENT
# ============================================================

def _people_ids(value: Any) -> list[str]:
    if not isinstance(value, dict):
        return []
    people = value.get("people")
    if not isinstance(people, list):
        return []
    return [p.get("id") for p in people if isinstance(p, dict)]


def auto_assign_people(
    properties: Mapping[str, Any] | None,
    acting_user: str | None,
    allowlist: Iterable[str] = (),
    allow_multi_role: bool = True,
) -> dict[str, Any]:
    """
    Fill empty people fields with the acting user.

    A property is filled when it is present as ``{"people": []}``, or when it
    is present with an empty value and named in ``allowlist``. Keys are never
    added and non-empty people lists are never touched.

    With ``allow_multi_role=False`` the acting user is placed in at most one
    field, and in none if the caller already assigned them elsewhere.
    """
    result = dict(properties or {})
    if not acting_user:
        return result

    allowed = set(allowlist)
    already_assigned = any(acting_user in _people_ids(v) for v in result.values())
    if already_assigned and not allow_multi_role:
        return result

    for key, value in result.items():
        explicit_empty = isinstance(value, dict) and value.get("people") == []
        allowlisted_empty = key in allowed and is_empty(value)
        if not (explicit_empty or allowlisted_empty):
            continue
        result[key] = {**(value or {}), "people": [{"id": acting_user}]}
        logger.debug(f"Auto-assigned acting user to people field {key!r}")
        if not allow_multi_role:
            break

    return result


# ============================================================
# 4. TITLE DISCOVERY
# ============================================================

def find_title_property(schema: Mapping[str, Any]) -> str | None:
    """Return the key of the title-typed property in a database object."""
    properties = schema.get("properties") or {}
    for key, definition in properties.items():
        if isinstance(definition, dict) and definition.get("type") == "title":
            return key
    return None


def title_value(title: str) -> dict[str, Any]:
    return {"title": [{"text": {"content": title}}]}


def apply_title(properties: Mapping[str, Any] | None, key: str, title: str | None) -> dict[str, Any]:
    """Write ``title`` under ``key`` unless the caller already filled it."""
    result = dict(properties or {})
    if title and is_empty(result.get(key)):
        result[key] = title_value(title)
    return result


class TitlePropertyResolver:
    """
    Per-database cache of the title property key.

    The cache lives for the process. Writes are idempotent (a database always
    resolves to the same key) so no lock is needed. Failed lookups return the
    fallback key and are not cached, so a later call retries.
    """

    def __init__(
        self,
        fetch_schema: Callable[[str], Awaitable[Mapping[str, Any]]],
        fallback: str = "title",
    ):
        self._fetch_schema = fetch_schema
        self.fallback = fallback
        self._cache: dict[str, str] = {}

    async def resolve(self, database_id: str) -> str:
        cached = self._cache.get(database_id)
        if cached:
            return cached

        try:
            schema = await self._fetch_schema(database_id)
        except (RemoteServiceError, httpx.HTTPError) as e:
            logger.warning(
                f"Title lookup failed for database {database_id}, using {self.fallback!r}: {e}"
            )
            return self.fallback

        key = find_title_property(schema)
        if not key:
            logger.warning(f"Database {database_id} has no title property, using {self.fallback!r}")
            return self.fallback

        self._cache[database_id] = key
        return key

    def cached(self, database_id: str) -> str | None:
        return self._cache.get(database_id)


# ============================================================
# CALENDAR TIMES
# ============================================================

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def to_event_time(value: Any, time_zone: str | None = None) -> Any:
    """
    Convert a caller time into a Calendar API time object.

    ``YYYY-MM-DD`` becomes an all-day ``{"date": ...}``; any other string is
    a ``{"dateTime": ...}`` with the time zone attached when one is known.
    Dicts are passed through.
    """
    if not isinstance(value, str):
        return value
    if _DATE_ONLY.match(value):
        return {"date": value}
    event_time = {"dateTime": value}
    if time_zone:
        event_time["timeZone"] = time_zone
    return event_time
