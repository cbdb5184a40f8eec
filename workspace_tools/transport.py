"""
Manager-side pipe to a workspace capability server.

The manager spawns ``python -m workspace_tools.servers.<name>`` and talks to
it with line-delimited envelopes: ``{"version", "id", "method", "params"}``
out, ``{"version", "id", "result" | "error"}`` back.
"""

from __future__ import annotations

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2.0"


@dataclass
class JsonRpcRequest:
    """Outgoing envelope; ``params`` carries capability name and arguments."""
    method: str
    params: dict[str, Any]
    id: int | str

    def to_json(self) -> str:
        return json.dumps({
            "version": PROTOCOL_VERSION,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        })


@dataclass
class JsonRpcResponse:
    """Incoming envelope; ``error`` holds the Err dict (code, message, data)."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def from_json(cls, data: str) -> "JsonRpcResponse":
        parsed = json.loads(data)
        return cls(
            id=parsed.get("id"),
            result=parsed.get("result"),
            error=parsed.get("error"),
        )

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        """``"Kind (code): message"`` for logs and tool output, or ``""``."""
        if not self.error:
            return ""
        data = self.error.get("data") or {}
        kind = data.get("kind", "Error")
        return f"{kind} ({self.error.get('code')}): {self.error.get('message')}"


class Transport(ABC):
    """How the manager reaches one capability server process."""

    @abstractmethod
    def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Deliver one envelope and block for its reply."""
        ...

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def is_alive(self) -> bool:
        ...


class StdioTransport(Transport):
    """
    Writes envelopes to the server's stdin and reads replies from its stdout.

    Servers reply to each envelope with one line and never reorder, so
    ``send`` pairs a write with a single readline. The server's stderr is
    inherited, which keeps its log lines visible next to the manager's.
    """

    def __init__(self, command: list[str], env: dict[str, str] | None = None):
        """
        Args:
            command: argv for the server, e.g.
                     ["python", "-m", "workspace_tools.servers.google"]
            env: Environment for the server; None inherits ours, which is
                 where the NOTION_* and GOOGLE_* credentials come from.
        """
        self.command = command
        self.env = env
        self._process: subprocess.Popen | None = None
        self._request_id = 0

    def start(self) -> None:
        """Spawn the server, replacing a previous process if one is running."""
        if self._process and self._process.poll() is None:
            logger.warning("Transport already running, stopping first")
            self.stop()

        logger.info(f"Starting stdio transport: {' '.join(self.command)}")
        self._process = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=None,  # inherit: server logs go to our stderr
            text=True,
            env=self.env,
            bufsize=1,
        )

    def stop(self) -> None:
        """Close stdin so the server exits cleanly; terminate if it lingers."""
        if self._process:
            try:
                self._process.stdin.close()
                self._process.wait(timeout=5)
            except (OSError, subprocess.TimeoutExpired):
                self._process.terminate()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    self._process.kill()
            self._process = None
            logger.info("Stdio transport stopped")

    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Round-trip one envelope; RuntimeError if the server has gone away."""
        if not self.is_alive():
            raise RuntimeError("Transport not running. Call start() first.")

        self._process.stdin.write(request.to_json() + "\n")
        self._process.stdin.flush()

        response_line = self._process.stdout.readline()
        if not response_line:
            code = self._process.poll()
            raise RuntimeError(f"Capability server exited (code {code}); see its log output above")

        return JsonRpcResponse.from_json(response_line.strip())

    def next_id(self) -> int:
        """Monotonic envelope id for this server."""
        self._request_id += 1
        return self._request_id
