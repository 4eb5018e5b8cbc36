"""Interfaces the tool executor needs from persistence and calendar access."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from agentspace.errors import CalendarUnavailableError

TASK_STATUSES = ("todo", "in_progress", "for_review", "done")


@dataclass(slots=True)
class Space:
    id: int
    title: str
    description: str | None = None


@dataclass(slots=True)
class SubTask:
    id: int
    task_id: int
    title: str
    description: str | None = None
    completed: bool = False
    agent_id: int | None = None


@dataclass(slots=True)
class Task:
    id: int
    space_id: int
    title: str
    description: str | None = None
    status: str = "todo"
    priority: str = "medium"
    due_date: str | None = None
    scheduled_date: str | None = None
    created_at: str = ""
    updated_at: str = ""
    subtasks: list[SubTask] = field(default_factory=list)


@dataclass(slots=True)
class Agent:
    id: int
    name: str
    model_name: str
    agent_prompt: str = ""
    system_role: str | None = None
    web_search_enabled: bool = False


@dataclass(slots=True)
class Calendar:
    id: str
    title: str
    color: str = ""
    source: str = ""


@dataclass(slots=True)
class CalendarEvent:
    id: str
    title: str
    start_date: str
    end_date: str
    calendar_id: str
    is_all_day: bool = False
    location: str | None = None
    notes: str | None = None
    url: str | None = None
    attendees: list[str] = field(default_factory=list)


class WorkspaceStore(Protocol):
    async def read_task_notes(self, task_id: int) -> str: ...

    async def write_task_notes(self, task_id: int, content: str) -> None: ...

    async def task_notes_exist(self, task_id: int) -> bool: ...

    async def read_space_context(self, space_id: int) -> str: ...

    async def write_space_context(self, space_id: int, content: str) -> None: ...

    async def list_spaces(self) -> list[Space]: ...

    async def list_tasks_by_space(self, space_id: int) -> list[Task]: ...

    async def list_agents(self) -> list[Agent]: ...

    async def get_setting(self, key: str) -> str | None: ...


class CalendarSource(Protocol):
    async def list_calendars(self) -> list[Calendar]: ...

    async def events_for_date(self, calendar_ids: list[str], date: str) -> list[CalendarEvent]: ...


class UnavailableCalendar:
    """Calendar source used when no calendar integration has been granted."""

    def __init__(self, reason: str = "calendar permission has not been granted") -> None:
        self.reason = reason

    async def list_calendars(self) -> list[Calendar]:
        raise CalendarUnavailableError(self.reason)

    async def events_for_date(self, calendar_ids: list[str], date: str) -> list[CalendarEvent]:
        raise CalendarUnavailableError(self.reason)
