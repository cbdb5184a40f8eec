"""
Capability base class.

A capability is one externally invokable operation per service, multiplexed
by an ``action`` argument. Subclasses declare:

    name         capability name ("use_notion")
    description  human-readable summary
    parameters   JSON-schema properties for every accepted argument
    actions      ActionTable of async handlers

and optionally override ``resolve`` (identifier resolution) and
``normalize`` (enrichment that may read, never write, remote state).

``invoke`` runs the pipeline

    lookup → type check → resolve → required check → normalize → handler

and always returns ``Ok`` or ``Err``.
"""

from __future__ import annotations

import logging
from typing import Any

from workspace_tools.actions import ActionTable
from workspace_tools.errors import (
    Ok,
    Result,
    missing_parameter,
    translate_exception,
    unknown_action,
    validation_error,
)

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def _matches_type(value: Any, expected: str | list[str]) -> bool:
    names = [expected] if isinstance(expected, str) else list(expected)
    for name in names:
        types = _JSON_TYPES.get(name)
        if types is None:
            return True
        if isinstance(value, bool) and name in ("integer", "number"):
            continue
        if isinstance(value, types):
            return True
    return False


def collection(
    items: list[Any],
    *,
    total: int | None = None,
    has_more: bool = False,
    next_cursor: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Shared shape for list, query and search results."""
    result = {
        "items": items,
        "total": len(items) if total is None else total,
        "has_more": bool(has_more),
        "next_cursor": next_cursor,
    }
    result.update(extra)
    return result


def page_size(value: Any, default: int, maximum: int) -> int:
    """Caller-supplied limit clamped to ``1..maximum``."""
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return max(1, min(value, maximum))


class CapabilityHandler:
    """Base class for a multiplexed capability."""

    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}
    actions: ActionTable = ActionTable()

    def get_schema(self) -> dict:
        """Capability schema for discovery; the action enum comes from the table."""
        properties = {
            "action": {
                "type": "string",
                "enum": self.actions.names(),
                "description": "Action to perform:\n" + self.actions.describe(),
            },
        }
        properties.update(self.parameters)
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": ["action"],
            },
        }

    async def invoke(self, arguments: Any) -> Result:
        """Validate, normalize and execute one action."""
        if not isinstance(arguments, dict):
            return validation_error("'arguments' must be an object", code="InvalidArguments")

        action = self.actions.get(arguments.get("action"))
        if action is None:
            return unknown_action(arguments.get("action"), self.actions.names())

        checked = self.check_types(action.name, arguments)
        if not checked.is_ok:
            return checked

        args = self.resolve(action.name, dict(arguments))

        missing = action.missing(args)
        if missing:
            return missing_parameter(missing, action.name)

        logger.debug(f"{self.name}.{action.name} args={sorted(args)}")
        try:
            args = await self.normalize(action.name, args)
            value = await action.handler(self, args)
        except Exception as e:
            return translate_exception(e, action.name)
        return Ok(value)

    def check_types(self, action: str, arguments: dict[str, Any]) -> Result:
        """Check supplied arguments against the declared parameter schema."""
        for key, value in arguments.items():
            declared = self.parameters.get(key)
            if declared is None or value is None:
                continue
            expected = declared.get("type")
            if expected and not _matches_type(value, expected):
                return validation_error(
                    f"parameter '{key}' for action '{action}' must be of type {expected}",
                    parameter=key,
                    action=action,
                )
            allowed = declared.get("enum")
            if allowed and value not in allowed:
                return validation_error(
                    f"parameter '{key}' for action '{action}' must be one of {allowed}",
                    parameter=key,
                    action=action,
                )
        return Ok(arguments)

    def resolve(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        """Fill identifiers from aliases and defaults. Must not raise."""
        return args

    async def normalize(self, action: str, args: dict[str, Any]) -> dict[str, Any]:
        """Apply enrichment rules before the handler runs."""
        return args
