from __future__ import annotations

from typing import Any

from agentspace.agent.providers.base import ChatRequest, ProviderAdapter
from agentspace.services.workspace import Agent, Calendar, CalendarEvent, Space, Task


class ScriptedProvider(ProviderAdapter):
    """Returns (or raises) a preset sequence of outcomes, repeating the last one."""

    def __init__(self, outcomes: list[Any]) -> None:
        self._outcomes = list(outcomes)
        self._idx = 0
        self.requests: list[ChatRequest] = []

    async def chat(self, request: ChatRequest) -> dict[str, Any]:
        self.requests.append(request)
        outcome = self._outcomes[self._idx]
        self._idx = min(self._idx + 1, len(self._outcomes) - 1)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class MemoryStore:
    """In-memory WorkspaceStore."""

    def __init__(self) -> None:
        self.notes: dict[int, str] = {}
        self.space_contexts: dict[int, str] = {}
        self.spaces: list[Space] = []
        self.tasks: list[Task] = []
        self.agents: list[Agent] = []
        self.settings: dict[str, str] = {}

    async def read_task_notes(self, task_id: int) -> str:
        return self.notes.get(task_id, "")

    async def write_task_notes(self, task_id: int, content: str) -> None:
        self.notes[task_id] = content

    async def task_notes_exist(self, task_id: int) -> bool:
        return bool(self.notes.get(task_id))

    async def read_space_context(self, space_id: int) -> str:
        if not any(s.id == space_id for s in self.spaces):
            raise LookupError(f"Space {space_id} not found")
        return self.space_contexts.get(space_id, "")

    async def write_space_context(self, space_id: int, content: str) -> None:
        if not any(s.id == space_id for s in self.spaces):
            raise LookupError(f"Space {space_id} not found")
        self.space_contexts[space_id] = content

    async def list_spaces(self) -> list[Space]:
        return list(self.spaces)

    async def list_tasks_by_space(self, space_id: int) -> list[Task]:
        return [t for t in self.tasks if t.space_id == space_id]

    async def list_agents(self) -> list[Agent]:
        return list(self.agents)

    async def get_setting(self, key: str) -> str | None:
        return self.settings.get(key)


class StaticCalendar:
    def __init__(self, calendars: list[Calendar], events: list[CalendarEvent]) -> None:
        self.calendars = calendars
        self.events = events
        self.requested: list[tuple[list[str], str]] = []

    async def list_calendars(self) -> list[Calendar]:
        return list(self.calendars)

    async def events_for_date(self, calendar_ids: list[str], date: str) -> list[CalendarEvent]:
        self.requested.append((list(calendar_ids), date))
        return [e for e in self.events if e.calendar_id in calendar_ids and e.start_date.startswith(date)]


def text_response(text: str, *, stop_reason: str = "end_turn", input_tokens: int = 10, output_tokens: int = 5) -> dict:
    return {
        "content": [{"type": "text", "text": text}],
        "stop_reason": stop_reason,
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }


def tool_use_response(
    name: str,
    tool_input: dict | None = None,
    *,
    tool_id: str = "toolu_1",
    text: str = "",
    input_tokens: int = 10,
    output_tokens: int = 5,
) -> dict:
    content: list[dict] = []
    if text:
        content.append({"type": "text", "text": text})
    content.append({"type": "tool_use", "id": tool_id, "name": name, "input": tool_input or {}})
    return {
        "content": content,
        "stop_reason": "tool_use",
        "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
    }

