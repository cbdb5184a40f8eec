"""
Capability Server Manager: launches and manages capability server processes.

Usage:
    manager = CapabilityServerManager()

    manager.register_server("notion", ["python", "-m", "workspace_tools.servers.notion"])
    manager.start("notion")

    result = manager.call("notion", "use_notion", {"action": "search", "query": "roadmap"})

    manager.stop_all()
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from workspace_tools.transport import JsonRpcRequest, StdioTransport, Transport

logger = logging.getLogger(__name__)

# server_id → launch command for the servers shipped with this package
DEFAULT_SERVERS: dict[str, list[str]] = {
    "notion": [sys.executable, "-m", "workspace_tools.servers.notion"],
    "google": [sys.executable, "-m", "workspace_tools.servers.google"],
}


class CapabilityCallError(RuntimeError):
    """The server answered an invocation with an error envelope."""

    def __init__(self, server_id: str, capability: str, error: dict[str, Any]):
        self.server_id = server_id
        self.capability = capability
        self.error = error
        data = error.get("data") or {}
        self.kind = data.get("kind")
        self.code = data.get("code")
        super().__init__(f"{server_id}/{capability}: {self.kind or 'Error'}: {error.get('message')}")


class CapabilityServerManager:
    """
    Manages the lifecycle of capability server processes.

    - Launch servers as subprocesses (stdio transport)
    - Discover their capabilities via list-capabilities
    - Route invocations to the right server
    - Shut everything down
    """

    def __init__(self, transport_factory=StdioTransport):
        self._transport_factory = transport_factory
        self._servers: dict[str, dict] = {}
        # server_id → {
        #   "command": [...],
        #   "env": dict | None,
        #   "transport": Transport | None,
        #   "capabilities": [schema, ...] (discovered after start),
        # }

    def register_server(
        self,
        server_id: str,
        command: list[str],
        env: dict[str, str] | None = None,
    ) -> None:
        """Register a server (does not start it yet)."""
        self._servers[server_id] = {
            "command": command,
            "env": env,
            "transport": None,
            "capabilities": [],
        }
        logger.info(f"Registered server: {server_id} ({' '.join(command)})")

    def _request(self, transport: Transport, method: str, params: dict[str, Any]):
        return transport.send(JsonRpcRequest(method=method, params=params, id=transport.next_id()))

    def start(self, server_id: str) -> list[dict]:
        """
        Start a server, initialize it and discover its capabilities.

        Returns:
            List of capability schemas.
        """
        server = self._servers.get(server_id)
        if not server:
            raise ValueError(f"Unknown server: {server_id}")

        transport = self._transport_factory(server["command"], server.get("env"))
        transport.start()
        server["transport"] = transport

        response = self._request(transport, "initialize", {})
        if response.is_error:
            raise RuntimeError(f"Failed to initialize {server_id}: {response.error_message}")

        response = self._request(transport, "list-capabilities", {})
        if response.is_error:
            raise RuntimeError(f"Failed to discover capabilities from {server_id}: {response.error_message}")

        server["capabilities"] = (response.result or {}).get("capabilities", [])
        names = [c["name"] for c in server["capabilities"]]
        logger.info(f"Started {server_id}: capabilities={names}")
        return server["capabilities"]

    def start_all(self) -> dict[str, list[dict]]:
        """Start all registered servers. Returns {server_id: [schemas]}."""
        results = {}
        for server_id in self._servers:
            try:
                results[server_id] = self.start(server_id)
            except (RuntimeError, OSError) as e:
                logger.error(f"Failed to start {server_id}: {e}")
                results[server_id] = []
        return results

    def stop(self, server_id: str) -> None:
        server = self._servers.get(server_id)
        if server and server["transport"]:
            server["transport"].stop()
            server["transport"] = None
            logger.info(f"Stopped {server_id}")

    def stop_all(self) -> None:
        for server_id in list(self._servers.keys()):
            self.stop(server_id)

    def call(self, server_id: str, capability: str, arguments: dict[str, Any]) -> Any:
        """
        Invoke a capability on a server.

        Args:
            server_id: Which server to call
            capability: Capability name on that server (e.g. "use_notion")
            arguments: Must include "action"

        Returns:
            The action result.

        Raises:
            CapabilityCallError: the server returned an error envelope.
        """
        server = self._servers.get(server_id)
        if not server:
            raise ValueError(f"Unknown server: {server_id}")

        transport = server.get("transport")
        if not transport or not transport.is_alive():
            raise RuntimeError(f"Server {server_id} is not running. Call start() first.")

        response = self._request(transport, "invoke-capability", {"name": capability, "arguments": arguments})
        if response.is_error:
            raise CapabilityCallError(server_id, capability, response.error)
        return response.result

    def list_capabilities(self, server_id: str) -> list[dict]:
        server = self._servers.get(server_id)
        return server["capabilities"] if server else []

    def find_server(self, capability: str) -> str | None:
        """Server id hosting ``capability``, among started servers."""
        for server_id, server in self._servers.items():
            if any(c["name"] == capability for c in server["capabilities"]):
                return server_id
        return None

    def list_servers(self) -> dict[str, bool]:
        """All servers and their running status."""
        return {sid: self.is_running(sid) for sid in self._servers}

    def is_running(self, server_id: str) -> bool:
        server = self._servers.get(server_id)
        return (
            server is not None
            and server["transport"] is not None
            and server["transport"].is_alive()
        )
