"""
Capability server: line-delimited JSON-RPC over stdin/stdout.

A capability server is a standalone process that:
1. Reads one JSON envelope per line from stdin
2. Routes it (initialize / list-capabilities / invoke-capability)
3. Writes exactly one JSON envelope per request line to stdout

Requests are handled strictly in order: a line is fully processed,
including any network call, before the next line is read. Responses
therefore come out in request order.

To create a server:

    from workspace_tools.server import StdioCapabilityServer

    server = StdioCapabilityServer(name="workspace-notion")
    server.register(NotionCapability(config, client))
    server.run()

stdout carries protocol messages only; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any, Awaitable, BinaryIO, Callable, TextIO

from workspace_tools import __version__
from workspace_tools.capability import CapabilityHandler
from workspace_tools.errors import (
    METHOD_NOT_FOUND,
    Err,
    ErrorKind,
    Ok,
    Result,
    transport_error,
    translate_exception,
    validation_error,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2.0"


def configure_logging(verbose: bool = False) -> None:
    """Send logs to stderr; level from WORKSPACE_TOOLS_LOG_LEVEL unless verbose."""
    level_name = "DEBUG" if verbose else os.environ.get("WORKSPACE_TOOLS_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
    )


class StdioCapabilityServer:
    """
    Envelope router plus stdio transport loop.

    Methods:
        "initialize"         → server descriptor
        "list-capabilities"  → capability schemas (alias: "tools/list")
        "invoke-capability"  → run one action (alias: "tools/call")
        "ping"               → health check
    """

    def __init__(self, name: str = "workspace-tools", version: str = __version__):
        self.name = name
        self.version = version
        self._handlers: dict[str, CapabilityHandler] = {}
        self._shutdown_callbacks: list[Callable[[], Awaitable[None]]] = []

    def register(self, handler: CapabilityHandler) -> None:
        """Register a capability."""
        if not handler.name:
            raise ValueError(f"Capability {handler.__class__.__name__} has no name")
        self._handlers[handler.name] = handler
        logger.info(f"Registered capability: {handler.name} ({len(handler.actions)} actions)")

    def on_shutdown(self, callback: Callable[[], Awaitable[None]]) -> None:
        """Run ``callback`` once the input stream closes (e.g. to close HTTP clients)."""
        self._shutdown_callbacks.append(callback)

    @property
    def capability_names(self) -> list[str]:
        return list(self._handlers)

    def run(self) -> None:
        """Serve stdin/stdout until stdin is closed."""
        asyncio.run(self.serve(sys.stdin.buffer, sys.stdout))

    async def _read_line(self, reader: BinaryIO | TextIO) -> str | None:
        """
        Next line as text, or None at end of input.

        Byte streams are decoded here with undecodable bytes replaced, so a
        bad line fails JSON parsing instead of ending the loop.
        """
        while True:
            try:
                raw = await asyncio.to_thread(reader.readline)
            except UnicodeDecodeError as e:
                logger.error(f"TransportError: skipping undecodable input ({e})")
                continue
            if not raw:
                return None
            if isinstance(raw, bytes):
                return raw.decode("utf-8", errors="replace")
            return raw

    async def serve(self, reader: BinaryIO | TextIO, writer: TextIO) -> None:
        """
        Main loop: read a line, handle it, write the response.

        Returns on end of input or when the output stream breaks.
        """
        logger.info(f"{self.name} serving capabilities: {self.capability_names}")
        try:
            while True:
                line = await self._read_line(reader)
                if line is None:
                    break
                line = line.strip()
                if not line:
                    continue

                response = await self.handle_line(line)
                if response is None:
                    continue

                try:
                    writer.write(json.dumps(response) + "\n")
                    writer.flush()
                except (BrokenPipeError, OSError) as e:
                    logger.error(f"Output stream closed, stopping: {e}")
                    break
        finally:
            for callback in self._shutdown_callbacks:
                await callback()
            logger.info(f"{self.name} stopped")

    async def handle_line(self, line: str) -> dict[str, Any] | None:
        """Parse one line. Unparseable lines are logged and produce no response."""
        try:
            message = json.loads(line)
        except (ValueError, RecursionError) as e:
            logger.error(f"TransportError: skipping malformed line ({type(e).__name__}: {e}): {line[:200]}")
            return None

        if not isinstance(message, dict):
            logger.error(f"TransportError: skipping non-object envelope: {line[:200]}")
            return None

        return await self.handle_message(message)

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """Route one parsed envelope and build its response envelope."""
        request_id = message.get("id")
        method = message.get("method")

        if not isinstance(method, str) or not method:
            return self._error(request_id, transport_error("Envelope has no 'method'"))

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return self._error(request_id, validation_error("'params' must be an object", code="InvalidParams"))

        result = await self._dispatch(method, params)
        if result.is_ok:
            return self._result(request_id, result.value)
        logger.info(f"Request {request_id} ({method}) failed: {result.kind.value}: {result.message}")
        return self._error(request_id, result)

    async def _dispatch(self, method: str, params: dict[str, Any]) -> Result:
        """Route a method call to the appropriate handler."""

        if method == "initialize":
            return Ok({
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": {"name": self.name, "version": self.version},
                "capabilities": {"capabilities": {"listChanged": False}},
            })

        if method == "ping":
            return Ok({"status": "ok", "capabilities": self.capability_names})

        if method == "list-capabilities":
            return Ok({"capabilities": [h.get_schema() for h in self._handlers.values()]})

        if method == "tools/list":
            return Ok({"tools": [h.get_schema() for h in self._handlers.values()]})

        if method in ("invoke-capability", "tools/call"):
            name = params.get("name")
            handler = self._handlers.get(name) if isinstance(name, str) else None
            if handler is None:
                return validation_error(
                    f"Unknown capability: '{name}'. Available: {self.capability_names}",
                    code="UnknownCapability",
                )
            arguments = params.get("arguments")
            try:
                return await handler.invoke({} if arguments is None else arguments)
            except Exception as e:
                return translate_exception(e)

        return Err(ErrorKind.TRANSPORT, f"Unknown method: '{method}'", "MethodNotFound", rpc_code=METHOD_NOT_FOUND)

    def _result(self, request_id: Any, result: Any) -> dict[str, Any]:
        return {"version": PROTOCOL_VERSION, "id": request_id, "result": result}

    def _error(self, request_id: Any, err: Err) -> dict[str, Any]:
        return {"version": PROTOCOL_VERSION, "id": request_id, "error": err.to_error()}
