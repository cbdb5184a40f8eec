"""
Declarative action tables.

A capability declares its actions once, with the decorator on an
``ActionTable``. The same table drives argument validation, dispatch and
the ``action`` enum published by ``list-capabilities``, so the three can
never disagree.

    class NotionCapability(CapabilityHandler):
        actions = ActionTable()

        @actions.action("get_page", required=["page_id"])
        async def get_page(self, args):
            return await self.client.get_page(args["page_id"])

A requirement is a parameter name, or a tuple of alternatives of which at
least one must be supplied (``("id", "messageId")``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Iterator, Mapping, Union

from workspace_tools.normalize import is_empty

Requirement = Union[str, tuple[str, ...]]
ActionFn = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class Action:
    name: str
    handler: ActionFn
    required: tuple[tuple[str, ...], ...] = ()
    description: str = ""

    def missing(self, args: Mapping[str, Any]) -> str | None:
        """Name of the first unmet requirement, or None."""
        for alternatives in self.required:
            if all(is_empty(args.get(key)) for key in alternatives):
                return " or ".join(alternatives)
        return None


class ActionTable:
    """Ordered mapping of action name → Action."""

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}

    def register(
        self,
        name: str,
        handler: ActionFn,
        required: Iterable[Requirement] = (),
        description: str = "",
    ) -> Action:
        if name in self._actions:
            raise ValueError(f"Action already registered: {name}")
        groups = tuple((req,) if isinstance(req, str) else tuple(req) for req in required)
        action = Action(name=name, handler=handler, required=groups, description=description)
        self._actions[name] = action
        return action

    def action(
        self,
        name: str,
        required: Iterable[Requirement] = (),
        description: str = "",
    ) -> Callable[[ActionFn], ActionFn]:
        """Decorator form of ``register``."""
        def decorator(func: ActionFn) -> ActionFn:
            self.register(name, func, required, description or (func.__doc__ or "").strip())
            return func
        return decorator

    def get(self, name: Any) -> Action | None:
        if not isinstance(name, str):
            return None
        return self._actions.get(name)

    def names(self) -> list[str]:
        return list(self._actions)

    def describe(self) -> str:
        """One line per action, for capability descriptions."""
        lines = []
        for action in self._actions.values():
            required = ", ".join(" or ".join(group) for group in action.required)
            suffix = f" (requires {required})" if required else ""
            summary = action.description.splitlines()[0] if action.description else ""
            lines.append(f"- {action.name}{suffix}{': ' + summary if summary else ''}")
        return "\n".join(lines)

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions.values())

    def __len__(self) -> int:
        return len(self._actions)
