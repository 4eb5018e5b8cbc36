"""Dispatch model tool calls to the workspace store and calendar.

Every failure is returned to the model as text so it can recover in the
conversation; nothing raised by a handler crosses ``ToolExecutor.execute``.
"""
from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from agentspace.agent.tool_registry import ToolRegistry
from agentspace.services.workspace import CalendarSource, Task, UnavailableCalendar, WorkspaceStore

logger = logging.getLogger(__name__)

SELECTED_CALENDARS_SETTING = "selected_calendar_ids"
MISSING_TASK_ID = "Error: task_id is required (no default task context)."
MISSING_SPACE_ID = "Error: space_id is required (no default space context)."


@dataclass(slots=True)
class ToolResult:
    content: list[dict[str, str]]
    is_error: bool = False

    @classmethod
    def text_result(cls, text: str, *, is_error: bool = False) -> ToolResult:
        return cls(content=[{"type": "text", "text": text}], is_error=is_error)

    @property
    def text(self) -> str:
        return "\n".join(item.get("text", "") for item in self.content)


ExecuteToolFn = Callable[[str, dict[str, Any]], Awaitable[ToolResult]]


@dataclass(slots=True, frozen=True)
class ToolContext:
    """Ambient defaults for one chat turn, fixed when the turn starts."""

    task_id: int | None = None
    space_id: int | None = None
    on_task_notes_read: Callable[[str], Awaitable[None] | None] | None = field(default=None, compare=False)
    on_space_context_updated: Callable[[str], Awaitable[None] | None] | None = field(default=None, compare=False)


class ToolExecutor:
    def __init__(
        self,
        store: WorkspaceStore,
        context: ToolContext | None = None,
        *,
        calendar: CalendarSource | None = None,
        registry: ToolRegistry | None = None,
    ) -> None:
        self.store = store
        self.context = context or ToolContext()
        self.calendar = calendar or UnavailableCalendar()
        self.registry = registry or ToolRegistry()
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[ToolResult]]] = {
            "read_task_notes": self._read_task_notes,
            "write_task_notes": self._write_task_notes,
            "check_task_notes_exists": self._check_task_notes_exists,
            "update_space_context": self._update_space_context,
            "get_task_details": self._get_task_details,
            "list_space_tasks": self._list_space_tasks,
            "read_space_context": self._read_space_context,
            "get_calendar_events": self._get_calendar_events,
            "list_agents": self._list_agents,
        }

    async def execute(self, tool_name: str, args: dict[str, Any] | None) -> ToolResult:
        handler = self._handlers.get(tool_name)
        if handler is None or self.registry.get(tool_name) is None:
            return ToolResult.text_result(f"Error: Unknown tool: {tool_name}", is_error=True)
        resolved = self._with_defaults(tool_name, dict(args or {}))
        if isinstance(resolved, ToolResult):
            return resolved

        problems = self.registry.validation_errors(tool_name, resolved)
        if problems:
            return ToolResult.text_result(
                f"Error: invalid arguments for {tool_name}: {'; '.join(problems)}",
                is_error=True,
            )

        try:
            return await handler(resolved)
        except Exception as exc:  # noqa: BLE001
            logger.warning("tool %s failed: %s", tool_name, exc, extra={"tool_name": tool_name})
            message = str(exc) or "An unexpected error occurred"
            return ToolResult.text_result(f"Error: {message}", is_error=True)

    __call__ = execute

    def _with_defaults(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any] | ToolResult:
        schema = self.registry.get(tool_name)
        properties = schema.input_schema.get("properties", {}) if schema else {}
        if "task_id" in properties:
            task_id = args.get("task_id") or self.context.task_id
            if not task_id:
                return ToolResult.text_result(MISSING_TASK_ID, is_error=True)
            args["task_id"] = task_id
        if "space_id" in properties:
            space_id = args.get("space_id") or self.context.space_id
            if not space_id:
                return ToolResult.text_result(MISSING_SPACE_ID, is_error=True)
            args["space_id"] = space_id
        return args

    async def _read_task_notes(self, args: dict[str, Any]) -> ToolResult:
        task_id = args["task_id"]
        content = await self.store.read_task_notes(task_id)
        if task_id == self.context.task_id and self.context.on_task_notes_read is not None:
            await _call_maybe_async(self.context.on_task_notes_read, content or "")
        if content:
            return ToolResult.text_result(content)
        return ToolResult.text_result(
            f"No notes exist for task {task_id}. Use write_task_notes to create one."
        )

    async def _write_task_notes(self, args: dict[str, Any]) -> ToolResult:
        task_id = args["task_id"]
        content = args["content"]
        operation = args.get("operation", "append")
        final_content = content
        if operation == "append":
            # Read-then-write; concurrent writers to the same task can lose an update.
            existing = await self.store.read_task_notes(task_id)
            if existing:
                final_content = f"{existing}\n\n{content}"
        await self.store.write_task_notes(task_id, final_content)
        verb = "appended to" if operation == "append" else "wrote"
        return ToolResult.text_result(f"Successfully {verb} notes for task {task_id}")

    async def _check_task_notes_exists(self, args: dict[str, Any]) -> ToolResult:
        task_id = args["task_id"]
        if await self.store.task_notes_exist(task_id):
            return ToolResult.text_result(f"Notes file exists for task {task_id}")
        return ToolResult.text_result(f"No notes file exists for task {task_id}")

    async def _update_space_context(self, args: dict[str, Any]) -> ToolResult:
        space_id = args["space_id"]
        content = args["content"]
        summary = args.get("summary")
        await self.store.write_space_context(space_id, content)
        if self.context.on_space_context_updated is not None:
            await _call_maybe_async(self.context.on_space_context_updated, content)
        suffix = f": {summary}" if summary else ""
        return ToolResult.text_result(f"Successfully updated space context for space {space_id}{suffix}")

    async def _get_task_details(self, args: dict[str, Any]) -> ToolResult:
        task_id = args["task_id"]
        spaces = await self.store.list_spaces()

        if not self.context.space_id:
            for space in spaces:
                tasks = await self.store.list_tasks_by_space(space.id)
                task = next((t for t in tasks if t.id == task_id), None)
                if task is not None:
                    return ToolResult.text_result(
                        _to_json(await self._task_details(task, _space_summary(space)))
                    )
            return ToolResult.text_result(f"Task {task_id} not found.")

        tasks = await self.store.list_tasks_by_space(self.context.space_id)
        task = next((t for t in tasks if t.id == task_id), None)
        if task is None:
            return ToolResult.text_result(f"Task {task_id} not found in the current space.")
        space = next((s for s in spaces if s.id == task.space_id), None)
        space_info = _space_summary(space) if space is not None else None
        return ToolResult.text_result(_to_json(await self._task_details(task, space_info)))

    async def _task_details(self, task: Task, space: dict[str, Any] | None) -> dict[str, Any]:
        try:
            notes = await self.store.read_task_notes(task.id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("reading notes for task %s failed: %s", task.id, exc)
            notes = ""
        return {
            "task": {
                "id": task.id,
                "title": task.title,
                "description": task.description or None,
                "status": task.status,
                "priority": task.priority,
                "due_date": task.due_date or None,
                "scheduled_date": task.scheduled_date or None,
                "created_at": task.created_at,
                "updated_at": task.updated_at,
            },
            "space": space,
            "subtasks": [
                {
                    "id": st.id,
                    "title": st.title,
                    "description": st.description or None,
                    "completed": st.completed,
                    "agent_id": st.agent_id or None,
                }
                for st in task.subtasks
            ],
            "notes": notes or None,
        }

    async def _list_space_tasks(self, args: dict[str, Any]) -> ToolResult:
        space_id = args["space_id"]
        tasks = await self.store.list_tasks_by_space(space_id)
        status = args.get("status")
        if status:
            tasks = [t for t in tasks if t.status == status]
        spaces = await self.store.list_spaces()
        space = next((s for s in spaces if s.id == space_id), None)
        return ToolResult.text_result(_to_json({
            "space": {"id": space.id, "title": space.title} if space is not None else None,
            "tasks": [
                {
                    "id": t.id,
                    "title": t.title,
                    "description": t.description or None,
                    "status": t.status,
                    "priority": t.priority,
                    "due_date": t.due_date or None,
                    "scheduled_date": t.scheduled_date or None,
                    "subtask_count": len(t.subtasks),
                    "subtasks_completed": sum(1 for st in t.subtasks if st.completed),
                }
                for t in tasks
            ],
        }))

    async def _read_space_context(self, args: dict[str, Any]) -> ToolResult:
        space_id = args["space_id"]
        context = await self.store.read_space_context(space_id)
        if context:
            return ToolResult.text_result(context)
        return ToolResult.text_result(f"No space context has been set for space {space_id}.")

    async def _get_calendar_events(self, args: dict[str, Any]) -> ToolResult:
        event_date = args["date"]
        try:
            calendar_ids = await self._selected_calendar_ids()
            if not calendar_ids:
                return ToolResult.text_result(
                    "No calendars configured. The user needs to select calendars in Settings."
                )
            events = await self.calendar.events_for_date(calendar_ids, event_date)
        except Exception as exc:  # noqa: BLE001
            logger.info("calendar lookup failed: %s", exc, extra={"tool_name": "get_calendar_events"})
            return ToolResult.text_result(f"Calendar access unavailable: {str(exc) or 'Unknown error'}")

        if not events:
            return ToolResult.text_result(f"No calendar events found for {event_date}.")
        return ToolResult.text_result(_to_json([
            {
                "title": e.title,
                "start_date": e.start_date,
                "end_date": e.end_date,
                "is_all_day": e.is_all_day,
                "location": e.location or None,
                "notes": e.notes or None,
                "attendees": list(e.attendees),
            }
            for e in events
        ]))

    async def _selected_calendar_ids(self) -> list[str]:
        saved = await self.store.get_setting(SELECTED_CALENDARS_SETTING)
        if saved:
            parsed = json.loads(saved)
            if isinstance(parsed, list):
                return [str(item) for item in parsed]
        calendars = await self.calendar.list_calendars()
        return [c.id for c in calendars]

    async def _list_agents(self, args: dict[str, Any]) -> ToolResult:
        agents = await self.store.list_agents()
        return ToolResult.text_result(_to_json([
            {
                "id": a.id,
                "name": a.name,
                "model": a.model_name,
                "description": a.agent_prompt,
                "web_search_enabled": a.web_search_enabled,
            }
            for a in agents
            if not a.system_role
        ]))


def create_tool_executor(
    store: WorkspaceStore,
    context: ToolContext | None = None,
    *,
    calendar: CalendarSource | None = None,
) -> ExecuteToolFn:
    return ToolExecutor(store, context, calendar=calendar).execute


def _space_summary(space: Any) -> dict[str, Any]:
    return {"id": space.id, "title": space.title, "description": space.description or None}


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


async def _call_maybe_async(fn: Callable, *args):
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result
