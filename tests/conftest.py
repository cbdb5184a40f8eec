"""Shared fixtures: configs and call-recording stub clients."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

import pytest

from workspace_tools.actions import ActionTable
from workspace_tools.config import GoogleConfig, NotionConfig


class RecordingClient:
    """
    Stand-in for a service client.

    Any async method can be called; each call is recorded and answered from
    ``responses[name]`` (a value, an exception to raise, or a callable).
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)

        async def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            response = self.responses.get(name, {})
            if isinstance(response, Exception):
                raise response
            if callable(response):
                return response(*args, **kwargs)
            return response

        return method

    def called(self, name: str) -> list[tuple[tuple, dict]]:
        return [(args, kwargs) for called_name, args, kwargs in self.calls if called_name == name]


@pytest.fixture
def notion_config() -> NotionConfig:
    return NotionConfig(
        token="secret-token",
        user_id="U2",
        database_aliases={"meetings": "DB-MEETINGS", "issue_tracker": "DB-ISSUES"},
    )


@pytest.fixture
def google_config() -> GoogleConfig:
    return GoogleConfig(
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        calendar_aliases={"work": "work@group.calendar.google.com"},
        time_zone="UTC",
    )


def requirement_cases(table: ActionTable, skip: Iterable[tuple[str, ...]] = ()) -> list:
    """One pytest param per (action, requirement group) pair in ``table``."""
    skipped = set(skip)
    return [
        pytest.param(name, group, id=f"{name}:{'|'.join(group)}")
        for name in table.names()
        for group in table.get(name).required
        if group not in skipped
    ]


def args_without(
    table: ActionTable,
    action: str,
    omitted: tuple[str, ...],
    sample: Mapping[str, Any],
) -> dict[str, Any]:
    """Arguments meeting every requirement of ``action`` except ``omitted``."""
    args: dict[str, Any] = {"action": action}
    for group in table.get(action).required:
        if group != omitted:
            args[group[0]] = sample[group[0]]
    return args
