"""
Workspace Tools: stdio capability servers for Notion, Google Calendar and Gmail.

Architecture:
    ┌──────────────┐     stdio      ┌───────────────────┐    HTTPS    ┌──────────┐
    │ Agent / CLI  │ ──────────── │ Capability Server │ ─────────── │ SaaS API │
    │ (LangChain)  │  JSON lines  │   (subprocess)    │   httpx     │          │
    └──────────────┘     pipes     └───────────────────┘             └──────────┘

Each server exposes one capability per service (use_notion,
use_google_calendar, use_gmail). A capability multiplexes many remote
operations through an ``action`` argument; its ActionTable drives
validation, dispatch and discovery.

The CapabilityServerManager launches servers and routes calls, and the
bridge wraps each capability as a LangChain tool.
"""

__version__ = "0.3.0"

from workspace_tools.actions import ActionTable
from workspace_tools.capability import CapabilityHandler
from workspace_tools.manager import CapabilityServerManager
from workspace_tools.server import StdioCapabilityServer


# Bridge requires langchain; imported lazily so servers run without it
def capability_to_langchain_tool(*args, **kwargs):
    from workspace_tools.bridge import capability_to_langchain_tool as _impl
    return _impl(*args, **kwargs)


def register_capability_tools(*args, **kwargs):
    from workspace_tools.bridge import register_capability_tools as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "ActionTable",
    "CapabilityHandler",
    "CapabilityServerManager",
    "StdioCapabilityServer",
    "capability_to_langchain_tool",
    "register_capability_tools",
]
