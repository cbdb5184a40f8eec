"""
Run Tools: start capability servers and call them from the command line.

It:
1. Starts the capability servers (stdio subprocesses)
2. Discovers their capabilities
3. Lists them, or invokes one action and prints the JSON result
4. Optionally prints LangChain prompt blocks for agent wiring

Usage:
    # List capabilities and their actions
    python run_tools.py --list

    # Invoke one action
    python run_tools.py --capability use_notion --action search --args '{"query": "roadmap"}'
    python run_tools.py --capability use_google_calendar --action list-events --args '{"calendarAlias": "work"}'

    # Only start some servers
    python run_tools.py --servers google --list

    # Show the prompt blocks an agent would receive
    python run_tools.py --prompts
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import logging

from workspace_tools.manager import DEFAULT_SERVERS, CapabilityCallError, CapabilityServerManager
from workspace_tools.server import configure_logging

logger = logging.getLogger(__name__)


def start_servers(manager: CapabilityServerManager, server_ids: list[str] | None = None) -> dict[str, list[dict]]:
    """Register and start servers; returns discovered capabilities per server."""
    server_ids = server_ids or list(DEFAULT_SERVERS.keys())
    discovered = {}

    for sid in server_ids:
        command = DEFAULT_SERVERS.get(sid)
        if not command:
            logger.warning(f"Unknown server: {sid}")
            continue

        manager.register_server(sid, command)
        try:
            capabilities = manager.start(sid)
            logger.info(f"  [{sid}] started, capabilities: {[c['name'] for c in capabilities]}")
            discovered[sid] = capabilities
        except (RuntimeError, OSError) as e:
            logger.error(f"  [{sid}] failed to start: {e}")

    return discovered


def print_capabilities(discovered: dict[str, list[dict]]) -> None:
    for sid, capabilities in discovered.items():
        print(f"[{sid}]")
        for schema in capabilities:
            actions = schema["parameters"]["properties"]["action"]["enum"]
            print(f"  {schema['name']} ({len(actions)} actions)")
            for action in actions:
                print(f"    - {action}")
        print()


def main():
    parser = argparse.ArgumentParser(
        description="Start workspace capability servers and invoke actions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_tools.py --list
  python run_tools.py --capability use_gmail --action list_messages --args '{"q": "is:unread"}'
        """,
    )
    parser.add_argument("--list", action="store_true", help="List capabilities and actions, then exit")
    parser.add_argument("--prompts", action="store_true", help="Print generated prompt blocks, then exit")
    parser.add_argument("--capability", "-c", type=str, help="Capability to invoke (e.g. use_notion)")
    parser.add_argument("--action", "-a", type=str, help="Action name")
    parser.add_argument("--args", type=str, default="{}", help="Action arguments as a JSON object")
    parser.add_argument("--servers", type=str, nargs="*", default=None, help="Which servers to start (default: all)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    args = parser.parse_args()
    configure_logging(verbose=args.verbose)

    if not (args.list or args.prompts) and not (args.capability and args.action):
        parser.error("--capability and --action are required (or use --list / --prompts)")

    try:
        arguments = json.loads(args.args)
    except json.JSONDecodeError as e:
        parser.error(f"--args is not valid JSON: {e}")
    if not isinstance(arguments, dict):
        parser.error("--args must be a JSON object")

    manager = CapabilityServerManager()

    def shutdown(sig, frame):
        print("\nShutting down capability servers...", file=sys.stderr)
        manager.stop_all()
        sys.exit(0)
    signal.signal(signal.SIGINT, shutdown)

    discovered = start_servers(manager, args.servers)
    try:
        if args.list:
            print_capabilities(discovered)
            return

        if args.prompts:
            from workspace_tools.bridge import prompt_block
            for capabilities in discovered.values():
                for schema in capabilities:
                    print(prompt_block(schema))
                    print()
            return

        server_id = manager.find_server(args.capability)
        if not server_id:
            print(f"Error: capability '{args.capability}' is not available "
                  f"(started: {list(discovered)})", file=sys.stderr)
            sys.exit(2)

        arguments["action"] = args.action
        try:
            result = manager.call(server_id, args.capability, arguments)
        except CapabilityCallError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(result, indent=2))
    finally:
        manager.stop_all()


if __name__ == "__main__":
    main()
