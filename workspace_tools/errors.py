"""
Error taxonomy and result types for capability dispatch.

Every stage of an invocation returns either ``Ok(value)`` or ``Err(...)``.
Exceptions are raised only by collaborators (service clients, token
manager, configuration loading) and are converted to ``Err`` at the
capability boundary by ``translate_exception``. The router never sees a
raw exception from a capability.

Kinds and their envelope codes:

    ValidationError     -32602   caller mistake, no network call made
    RemoteServiceError  -32000   upstream HTTP failure, auth, timeout
    TransportError      -32600   unparseable or ill-formed envelope
    UnknownError        -32603   anything unclassified

ConfigurationError is fatal and only raised at startup.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Union

import httpx

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "ValidationError"
    REMOTE_SERVICE = "RemoteServiceError"
    TRANSPORT = "TransportError"
    UNKNOWN = "UnknownError"


RPC_CODES: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: -32602,
    ErrorKind.REMOTE_SERVICE: -32000,
    ErrorKind.TRANSPORT: -32600,
    ErrorKind.UNKNOWN: -32603,
}

METHOD_NOT_FOUND = -32601


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass(frozen=True)
class Ok:
    """Successful stage result."""
    value: Any

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """
    Failed stage result.

    ``code`` is a short symbolic reason (``MissingParameter``,
    ``UnknownAction``, ``http_404`` ...). ``details`` carries extra
    machine-readable fields such as the offending parameter or the
    upstream status.
    """
    kind: ErrorKind
    message: str
    code: str = "Error"
    details: dict[str, Any] = field(default_factory=dict)
    rpc_code: int | None = None

    @property
    def is_ok(self) -> bool:
        return False

    def to_error(self) -> dict[str, Any]:
        """Render as the ``error`` member of a response envelope."""
        data = {"kind": self.kind.value, "code": self.code}
        data.update({k: v for k, v in self.details.items() if v is not None})
        return {
            "code": self.rpc_code if self.rpc_code is not None else RPC_CODES[self.kind],
            "message": self.message,
            "data": data,
        }


Result = Union[Ok, Err]


def validation_error(message: str, code: str = "InvalidParameter", **details: Any) -> Err:
    return Err(ErrorKind.VALIDATION, message, code, details)


def missing_parameter(parameter: str, action: str) -> Err:
    return validation_error(
        f"parameter '{parameter}' is required for action '{action}'",
        code="MissingParameter",
        parameter=parameter,
        action=action,
    )


def unknown_action(action: Any, available: list[str]) -> Err:
    return validation_error(
        f"Unknown action: '{action}'. Available: {available}",
        code="UnknownAction",
        action=action if isinstance(action, str) else None,
    )


def transport_error(message: str, code: str = "InvalidRequest") -> Err:
    return Err(ErrorKind.TRANSPORT, message, code)


# ============================================================
# EXCEPTIONS (raised by collaborators)
# ============================================================

class WorkspaceToolsError(Exception):
    """Base class for errors raised inside workspace_tools."""


class ConfigurationError(WorkspaceToolsError):
    """Mandatory configuration is missing or invalid. Fatal at startup."""


class InvalidArguments(WorkspaceToolsError):
    """
    Raised by an action handler when the arguments are well-typed but
    cannot be honoured (e.g. an unsupported modification scope, or a
    creation blocked by the conflict policy).
    """

    def __init__(self, message: str, *, code: str = "InvalidParameter", parameter: str | None = None):
        self.code = code
        self.parameter = parameter
        super().__init__(message)


class RemoteServiceError(WorkspaceToolsError):
    """Raised when an external service returns an error or cannot be reached."""

    def __init__(
        self,
        detail: str,
        *,
        service: str = "remote",
        status_code: int | None = None,
        upstream_code: str | None = None,
        path: str | None = None,
    ) -> None:
        self.detail = detail
        self.service = service
        self.status_code = status_code
        self.upstream_code = upstream_code
        self.path = path
        hints = []
        if status_code is not None:
            hints.append(f"status={status_code}")
        if upstream_code:
            hints.append(f"code={upstream_code}")
        hint = f" ({', '.join(hints)})" if hints else ""
        super().__init__(f"{service} API error{hint}: {detail}")


class NotAuthenticated(RemoteServiceError):
    """No usable credential could be produced for the remote service."""

    def __init__(self, detail: str, *, service: str = "google") -> None:
        super().__init__(detail, service=service, upstream_code="not_authenticated")


# ============================================================
# TRANSLATION
# ============================================================

def translate_exception(exc: BaseException, action: str | None = None) -> Err:
    """Classify an exception raised while executing an action."""
    if isinstance(exc, InvalidArguments):
        return validation_error(str(exc), code=exc.code, parameter=exc.parameter, action=action)

    if isinstance(exc, RemoteServiceError):
        code = exc.upstream_code or (f"http_{exc.status_code}" if exc.status_code else "remote_error")
        return Err(
            ErrorKind.REMOTE_SERVICE,
            str(exc),
            code,
            {
                "action": action,
                "upstream_status": exc.status_code,
                "upstream_code": exc.upstream_code,
            },
        )

    if isinstance(exc, httpx.TimeoutException):
        return Err(ErrorKind.REMOTE_SERVICE, f"Request timed out: {exc}", "timeout", {"action": action})

    if isinstance(exc, httpx.HTTPError):
        return Err(
            ErrorKind.REMOTE_SERVICE, f"HTTP transport failure: {exc}", "connection_error", {"action": action}
        )

    logger.exception(f"Unhandled error while executing action {action!r}", exc_info=exc)
    return Err(ErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}", "Unknown", {"action": action})
