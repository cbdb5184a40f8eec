"""Tests for the server manager and the LangChain bridge, over a fake transport."""

from __future__ import annotations

import json

import pytest

from workspace_tools.bridge import capability_to_langchain_tool, prompt_block, register_capability_tools
from workspace_tools.manager import CapabilityCallError, CapabilityServerManager
from workspace_tools.transport import JsonRpcRequest, JsonRpcResponse, Transport

NOTION_SCHEMA = {
    "name": "use_notion",
    "description": "Work with Notion.",
    "parameters": {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": ["search", "get_page"], "description": "Operation to run"},
            "query": {"type": "string", "description": "Search text"},
            "page_id": {"type": ["string", "null"], "description": "Page id"},
        },
        "required": ["action"],
    },
}


class FakeTransport(Transport):
    """Answers envelopes in-process, recording every request."""

    instances: list["FakeTransport"] = []

    def __init__(self, command, env=None):
        self.command = command
        self.env = env
        self.alive = False
        self.requests: list[JsonRpcRequest] = []
        self._id = 0
        FakeTransport.instances.append(self)

    def start(self) -> None:
        self.alive = True

    def stop(self) -> None:
        self.alive = False

    def is_alive(self) -> bool:
        return self.alive

    def next_id(self) -> int:
        self._id += 1
        return self._id

    def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        self.requests.append(request)
        if request.method == "initialize":
            return JsonRpcResponse(id=request.id, result={"serverInfo": {"name": "fake"}})
        if request.method == "list-capabilities":
            return JsonRpcResponse(id=request.id, result={"capabilities": [NOTION_SCHEMA]})
        arguments = request.params["arguments"]
        if arguments["action"] == "get_page" and not arguments.get("page_id"):
            return JsonRpcResponse(id=request.id, error={
                "code": -32602,
                "message": "parameter 'page_id' is required for action 'get_page'",
                "data": {"kind": "ValidationError", "code": "MissingParameter"},
            })
        return JsonRpcResponse(id=request.id, result={"items": [], "echo": arguments})


class FailingTransport(FakeTransport):
    def send(self, request):
        return JsonRpcResponse(id=request.id, error={"code": -32603, "message": "boom"})


class ToolRegistry:
    def __init__(self):
        self.registered = {}

    def register_langchain_tool(self, tool_id, tool, prompt_instructions, domain_tags):
        self.registered[tool_id] = (tool, prompt_instructions, domain_tags)


@pytest.fixture
def manager():
    FakeTransport.instances.clear()
    manager = CapabilityServerManager(transport_factory=FakeTransport)
    manager.register_server("notion", ["notion-server"], env={"NOTION_TOKEN": "t"})
    return manager


def test_start_initializes_then_discovers(manager):
    schemas = manager.start("notion")
    assert schemas == [NOTION_SCHEMA]
    [transport] = FakeTransport.instances
    assert [r.method for r in transport.requests] == ["initialize", "list-capabilities"]
    assert transport.env == {"NOTION_TOKEN": "t"}
    assert manager.is_running("notion")
    assert manager.find_server("use_notion") == "notion"
    assert manager.find_server("use_gmail") is None


def test_call_returns_result_and_sends_invoke(manager):
    manager.start("notion")
    result = manager.call("notion", "use_notion", {"action": "search", "query": "roadmap"})
    assert result["echo"] == {"action": "search", "query": "roadmap"}
    request = FakeTransport.instances[0].requests[-1]
    assert request.method == "invoke-capability"
    assert request.params == {"name": "use_notion", "arguments": {"action": "search", "query": "roadmap"}}
    assert json.loads(request.to_json())["version"] == "2.0"


def test_error_envelope_raises_capability_call_error(manager):
    manager.start("notion")
    with pytest.raises(CapabilityCallError) as excinfo:
        manager.call("notion", "use_notion", {"action": "get_page"})
    assert excinfo.value.kind == "ValidationError"
    assert excinfo.value.code == "MissingParameter"
    assert "page_id" in str(excinfo.value)


def test_call_before_start_is_rejected(manager):
    with pytest.raises(RuntimeError):
        manager.call("notion", "use_notion", {"action": "search"})
    with pytest.raises(ValueError):
        manager.call("nowhere", "use_notion", {"action": "search"})


def test_start_all_survives_a_failing_server():
    manager = CapabilityServerManager(transport_factory=FailingTransport)
    manager.register_server("broken", ["broken-server"])
    assert manager.start_all() == {"broken": []}


def test_stop_all(manager):
    manager.start("notion")
    manager.stop_all()
    assert manager.list_servers() == {"notion": False}


def test_bridge_tool_invokes_action(manager):
    manager.start("notion")
    tool = capability_to_langchain_tool(manager, "notion", "use_notion")
    assert tool.name == "use_notion"
    assert "search, get_page" in tool.description

    output = tool.invoke({"action": "search", "arguments": {"query": "roadmap"}})
    assert json.loads(output)["echo"] == {"query": "roadmap", "action": "search"}


def test_bridge_tool_returns_errors_as_text(manager):
    manager.start("notion")
    tool = capability_to_langchain_tool(manager, "notion", "use_notion")
    output = tool.invoke({"action": "get_page"})
    assert output.startswith("Error calling use_notion.get_page")
    assert "parameter 'page_id' is required" in output


def test_register_capability_tools_skips_stopped_servers(manager):
    manager.register_server("google", ["google-server"])
    manager.start("notion")
    registry = ToolRegistry()
    names = register_capability_tools(manager, registry, domain_tags={"use_notion": ["docs"]})
    assert names == ["use_notion"]
    _, instructions, tags = registry.registered["use_notion"]
    assert tags == ["docs"]
    assert instructions.startswith("## Tool: use_notion")


def test_prompt_block_lists_arguments_but_not_action():
    block = prompt_block(NOTION_SCHEMA)
    assert "  - query (string): Search text" in block
    assert "  - page_id (string|null): Page id" in block
    assert "- action" not in block
