"""
Configuration for the capability servers.

Configuration is read once at process start, from the environment plus an
optional dotenv file, into immutable pydantic models. Nothing mutates it
afterwards; capabilities receive it through their constructor.

Notion:
    NOTION_TOKEN / NOTION_API_KEY     integration token (required)
    NOTION_USER_ID                    acting user for people-field auto-assign
    NOTION_BASE_URL, NOTION_VERSION   API endpoint and version header
    NOTION_DB_<NAME>                  database alias "<name>" (lowercased)
    NOTION_DEFAULT_DATABASE           fallback database id or alias
    NOTION_TITLE_PROPERTY             title key used when discovery fails
    NOTION_AUTO_ASSIGN_PROPERTIES     comma list of people fields to fill when empty
    NOTION_ALLOW_MULTI_ROLE_ASSIGNMENT  true/false

Google:
    GOOGLE_OAUTH_CREDENTIALS          client secrets JSON (installed/web app)
    GOOGLE_CALENDAR_MCP_TOKEN_PATH    saved token JSON
    GOOGLE_ACCOUNT_MODE               token file section (default "normal")
    GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REFRESH_TOKEN  direct overrides
    GOOGLE_CALENDAR_ALIASES           "work=<id>,personal=<id>"
    GOOGLE_CALENDAR_DEFAULT_ID        fallback calendar id or alias
    GOOGLE_CALENDAR_TIMEZONE          IANA zone for dateTime values
    GOOGLE_CALENDAR_CHECK_CONFLICTS   default for checkConflicts
    GOOGLE_CALENDAR_CONFLICT_POLICY   "annotate" (default) or "block"

Shared:
    WORKSPACE_TOOLS_ENV_FILE          dotenv file (default ~/.config/google-mcp/.env)
    WORKSPACE_TOOLS_HTTP_TIMEOUT      seconds (default 30)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from workspace_tools.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path.home() / ".config" / "google-mcp" / ".env"
DEFAULT_HTTP_TIMEOUT = 30.0


def load_env_file(path: str | os.PathLike | None = None) -> Path | None:
    """
    Load a dotenv file into the process environment.

    Existing environment variables win over values from the file.
    Returns the path that was loaded, or None when no file exists.
    """
    target = path or os.environ.get("WORKSPACE_TOOLS_ENV_FILE") or DEFAULT_ENV_FILE
    target = Path(target).expanduser()
    if not target.is_file():
        logger.debug(f"No env file at {target}")
        return None
    load_dotenv(target, override=False)
    logger.info(f"Loaded environment from {target}")
    return target


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_list(env: Mapping[str, str], name: str) -> tuple[str, ...]:
    raw = env.get(name) or ""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def parse_alias_pairs(raw: str | None) -> dict[str, str]:
    """Parse ``"work=abc@group,personal=primary"`` into a dict."""
    aliases: dict[str, str] = {}
    for part in (raw or "").split(","):
        if "=" not in part:
            continue
        label, _, value = part.partition("=")
        label, value = label.strip().lower(), value.strip()
        if label and value:
            aliases[label] = value
    return aliases


# ============================================================
# NOTION
# ============================================================

class NotionConfig(BaseModel):
    """Settings for the use_notion capability."""
    model_config = ConfigDict(frozen=True)

    token: str
    user_id: Optional[str] = None
    base_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    database_aliases: dict[str, str] = Field(default_factory=dict)
    default_database_id: Optional[str] = None
    title_property: str = "title"
    auto_assign_properties: tuple[str, ...] = ()
    allow_multi_role_assignment: bool = True
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "NotionConfig":
        env = os.environ if environ is None else environ

        token = (env.get("NOTION_TOKEN") or env.get("NOTION_API_KEY") or "").strip()
        if not token:
            raise ConfigurationError(
                "Missing Notion credentials: set NOTION_TOKEN (or NOTION_API_KEY)"
            )

        aliases = {
            key[len("NOTION_DB_"):].lower(): value.strip()
            for key, value in env.items()
            if key.startswith("NOTION_DB_") and value and value.strip()
        }

        return cls(
            token=token,
            user_id=(env.get("NOTION_USER_ID") or "").strip() or None,
            base_url=(env.get("NOTION_BASE_URL") or "https://api.notion.com/v1").rstrip("/"),
            notion_version=env.get("NOTION_VERSION") or "2022-06-28",
            database_aliases=aliases,
            default_database_id=(env.get("NOTION_DEFAULT_DATABASE") or "").strip() or None,
            title_property=(env.get("NOTION_TITLE_PROPERTY") or "").strip() or "title",
            auto_assign_properties=_env_list(env, "NOTION_AUTO_ASSIGN_PROPERTIES"),
            allow_multi_role_assignment=_env_bool(env, "NOTION_ALLOW_MULTI_ROLE_ASSIGNMENT", True),
            http_timeout=_env_float(env, "WORKSPACE_TOOLS_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        )

    def summary(self) -> dict[str, Any]:
        """Loggable view of the configuration, without secrets."""
        return {
            "base_url": self.base_url,
            "notion_version": self.notion_version,
            "user_id": "set" if self.user_id else "not set",
            "database_aliases": sorted(self.database_aliases),
            "default_database": self.default_database_id or "not set",
            "auto_assign_properties": list(self.auto_assign_properties),
            "allow_multi_role_assignment": self.allow_multi_role_assignment,
        }


# ============================================================
# GOOGLE
# ============================================================

def default_token_path(env: Mapping[str, str]) -> Path:
    explicit = env.get("GOOGLE_CALENDAR_MCP_TOKEN_PATH")
    if explicit:
        return Path(explicit).expanduser()
    config_dir = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_dir) / "google-mcp" / "tokens.json"


def _read_json_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not read {path}: {e}") from e
    if not isinstance(payload, dict):
        raise ConfigurationError(f"{path} must contain a JSON object")
    return payload


def _client_secret_value(payload: dict[str, Any], key: str) -> Any:
    if key in payload:
        return payload[key]
    for nested_key in ("installed", "web"):
        nested = payload.get(nested_key)
        if isinstance(nested, dict) and key in nested:
            return nested[key]
    return None


def _select_token_entry(payload: dict[str, Any], account_mode: str) -> dict[str, Any]:
    # Token files are either flat or keyed by account mode ("normal", "test").
    if "refresh_token" in payload or "access_token" in payload:
        return payload
    entry = payload.get(account_mode)
    if isinstance(entry, dict):
        return entry
    return {}


class GoogleConfig(BaseModel):
    """Settings for the use_google_calendar and use_gmail capabilities."""
    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    refresh_token: str
    access_token: Optional[str] = None
    # Milliseconds since epoch, as written by the Google auth libraries.
    token_expiry_ms: Optional[int] = None
    token_path: Optional[str] = None
    token_url: str = "https://oauth2.googleapis.com/token"
    calendar_base_url: str = "https://www.googleapis.com/calendar/v3"
    gmail_base_url: str = "https://gmail.googleapis.com/gmail/v1"
    calendar_aliases: dict[str, str] = Field(default_factory=dict)
    default_calendar_id: Optional[str] = None
    time_zone: Optional[str] = None
    check_conflicts: bool = True
    conflict_policy: Literal["annotate", "block"] = "annotate"
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GoogleConfig":
        env = os.environ if environ is None else environ

        secrets: dict[str, Any] = {}
        credentials_path = env.get("GOOGLE_OAUTH_CREDENTIALS")
        if credentials_path:
            secrets = _read_json_file(Path(credentials_path).expanduser())

        token_path = default_token_path(env)
        tokens = _select_token_entry(
            _read_json_file(token_path),
            (env.get("GOOGLE_ACCOUNT_MODE") or "normal").lower(),
        )

        client_id = env.get("GOOGLE_CLIENT_ID") or _client_secret_value(secrets, "client_id") \
            or tokens.get("client_id")
        client_secret = env.get("GOOGLE_CLIENT_SECRET") or _client_secret_value(secrets, "client_secret") \
            or tokens.get("client_secret")
        refresh_token = env.get("GOOGLE_REFRESH_TOKEN") or tokens.get("refresh_token")

        missing = [
            name for name, value in (
                ("client_id", client_id),
                ("client_secret", client_secret),
                ("refresh_token", refresh_token),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(
                f"No valid Google credentials (missing {', '.join(missing)}). "
                f"Set GOOGLE_OAUTH_CREDENTIALS and authenticate so that {token_path} holds a refresh token."
            )

        policy = (env.get("GOOGLE_CALENDAR_CONFLICT_POLICY") or "annotate").strip().lower()
        if policy not in ("annotate", "block"):
            raise ConfigurationError(
                f"GOOGLE_CALENDAR_CONFLICT_POLICY must be 'annotate' or 'block', got {policy!r}"
            )

        expiry = tokens.get("expiry_date")
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            access_token=tokens.get("access_token"),
            token_expiry_ms=int(expiry) if isinstance(expiry, (int, float)) else None,
            token_path=str(token_path),
            calendar_aliases=parse_alias_pairs(env.get("GOOGLE_CALENDAR_ALIASES")),
            default_calendar_id=(env.get("GOOGLE_CALENDAR_DEFAULT_ID") or "").strip() or None,
            time_zone=(env.get("GOOGLE_CALENDAR_TIMEZONE") or "").strip() or None,
            check_conflicts=_env_bool(env, "GOOGLE_CALENDAR_CHECK_CONFLICTS", True),
            conflict_policy=policy,
            http_timeout=_env_float(env, "WORKSPACE_TOOLS_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "token_path": self.token_path,
            "has_access_token": bool(self.access_token),
            "calendar_aliases": sorted(self.calendar_aliases),
            "default_calendar": self.default_calendar_id or "primary",
            "time_zone": self.time_zone or "calendar default",
            "check_conflicts": self.check_conflicts,
            "conflict_policy": self.conflict_policy,
        }


def load_notion_config() -> NotionConfig:
    load_env_file()
    return NotionConfig.from_env()


def load_google_config() -> GoogleConfig:
    load_env_file()
    return GoogleConfig.from_env()
