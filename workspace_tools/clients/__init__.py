"""Async HTTP clients for the external services."""

from workspace_tools.clients.base import ServiceClient
from workspace_tools.clients.gmail import GmailClient
from workspace_tools.clients.google_auth import GoogleTokenManager
from workspace_tools.clients.google_calendar import CalendarClient
from workspace_tools.clients.notion import NotionClient

__all__ = [
    "ServiceClient",
    "NotionClient",
    "GoogleTokenManager",
    "CalendarClient",
    "GmailClient",
]
