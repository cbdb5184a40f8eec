"""
Google capability server: ``use_google_calendar`` and ``use_gmail``.

Both capabilities share one HTTP connection pool and one OAuth token
manager. The process exits with status 1 before reading any request if
no usable Google credentials are configured.

Launch:
    python -m workspace_tools.servers.google

Test:
    echo '{"version":"2.0","id":1,"method":"invoke-capability","params":{"name":"use_google_calendar","arguments":{"action":"get-current-time"}}}' \\
        | python -m workspace_tools.servers.google
"""

from __future__ import annotations

import logging
import sys

import httpx

from workspace_tools.clients.gmail import GmailClient
from workspace_tools.clients.google_auth import GoogleTokenManager
from workspace_tools.clients.google_calendar import CalendarClient
from workspace_tools.config import GoogleConfig, load_google_config
from workspace_tools.errors import ConfigurationError
from workspace_tools.server import StdioCapabilityServer, configure_logging
from workspace_tools.servers.gmail import GmailCapability
from workspace_tools.servers.google_calendar import CalendarCapability

logger = logging.getLogger(__name__)


def build_server(config: GoogleConfig, http_client: httpx.AsyncClient | None = None) -> StdioCapabilityServer:
    http_client = http_client or httpx.AsyncClient()
    tokens = GoogleTokenManager(config, http_client)

    server = StdioCapabilityServer(name="workspace-google")
    server.register(CalendarCapability(config, CalendarClient(config, tokens, http_client)))
    server.register(GmailCapability(GmailClient(config, tokens, http_client)))
    server.on_shutdown(http_client.aclose)
    return server


def main() -> None:
    configure_logging()
    try:
        config = load_google_config()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(f"Google configuration: {config.summary()}")
    build_server(config).run()


if __name__ == "__main__":
    main()
