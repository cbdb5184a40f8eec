"""
Bridge between capability servers and LangChain.

Each capability becomes one StructuredTool taking ``action`` plus an
``arguments`` dict, mirroring the wire shape of invoke-capability.

Usage:
    from workspace_tools.bridge import capability_to_langchain_tool, register_capability_tools

    lc_tool = capability_to_langchain_tool(manager, "notion", "use_notion")
    result = lc_tool.invoke({"action": "search", "arguments": {"query": "roadmap"}})

    # All capabilities from all running servers
    register_capability_tools(manager, tool_registry)
"""

from __future__ import annotations

import json
from typing import Any, Optional

from langchain_core.tools import StructuredTool

from workspace_tools.manager import CapabilityCallError, CapabilityServerManager


def capability_to_langchain_tool(
    manager: CapabilityServerManager,
    server_id: str,
    capability: str,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a StructuredTool that proxies to a capability server.

    Errors from the server are returned as text so the agent can read the
    message (which names the offending parameter) and retry.
    """
    schemas = manager.list_capabilities(server_id)
    schema = next((s for s in schemas if s["name"] == capability), None)

    if schema:
        description = description_override or _tool_description(schema)
    else:
        description = description_override or f"Capability: {server_id}/{capability}"

    def _invoke(action: str, arguments: Optional[dict] = None) -> str:
        payload = dict(arguments or {})
        payload["action"] = action
        try:
            result = manager.call(server_id, capability, payload)
        except (CapabilityCallError, RuntimeError) as e:
            return f"Error calling {capability}.{action}: {e}"
        if isinstance(result, str):
            return result
        return json.dumps(result, indent=2)

    return StructuredTool.from_function(
        func=_invoke,
        name=capability,
        description=description,
    )


def register_capability_tools(
    manager: CapabilityServerManager,
    tool_registry: Any,
    domain_tags: dict[str, list[str]] | None = None,
    prompt_instructions: dict[str, str] | None = None,
) -> list[str]:
    """
    Register every capability of every running server in a tool registry.

    ``tool_registry`` needs a ``register_langchain_tool(tool_id, tool,
    prompt_instructions, domain_tags)`` method.

    Returns:
        Registered tool ids (the capability names).
    """
    domain_tags = domain_tags or {}
    prompt_instructions = prompt_instructions or {}
    registered = []

    for server_id, running in manager.list_servers().items():
        if not running:
            continue

        for schema in manager.list_capabilities(server_id):
            name = schema["name"]
            lc_tool = capability_to_langchain_tool(manager, server_id, name)
            tool_registry.register_langchain_tool(
                tool_id=name,
                tool=lc_tool,
                prompt_instructions=prompt_instructions.get(name) or prompt_block(schema),
                domain_tags=domain_tags.get(name, []),
            )
            registered.append(name)

    return registered


def _tool_description(schema: dict) -> str:
    actions = schema.get("parameters", {}).get("properties", {}).get("action", {}).get("enum", [])
    return f"{schema.get('description', '')} Actions: {', '.join(actions)}."


def prompt_block(schema: dict) -> str:
    """Prompt instructions for a capability, generated from its schema."""
    name = schema.get("name", "unknown")
    params = dict(schema.get("parameters", {}).get("properties", {}))
    action = params.pop("action", {})

    lines = [f"## Tool: {name}", schema.get("description", ""), ""]
    lines.append("Call with action=<name> and arguments={...}.")
    if action.get("description"):
        lines.append(action["description"])
    if params:
        lines.append("")
        lines.append("Arguments:")
        for pname, pinfo in params.items():
            ptype = pinfo.get("type", "any")
            if isinstance(ptype, list):
                ptype = "|".join(ptype)
            lines.append(f"  - {pname} ({ptype}): {pinfo.get('description', '')}")

    return "\n".join(lines)
