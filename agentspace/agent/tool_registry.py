"""Tool registry: the catalog of tool schemas advertised to the model."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jsonschema import Draft7Validator

from agentspace.services.workspace import TASK_STATUSES


@dataclass(slots=True, frozen=True)
class ToolSchema:
    name: str
    description: str
    input_schema: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


WEB_SEARCH_TOOL: dict[str, Any] = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


def _object(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


AGENT_TOOL_SCHEMAS: tuple[ToolSchema, ...] = (
    ToolSchema(
        name="read_task_notes",
        description="Read the Agent_Notes.md file for a specific task",
        input_schema=_object(
            {"task_id": {"type": "number", "description": "The ID of the task to read notes for"}},
            ["task_id"],
        ),
    ),
    ToolSchema(
        name="write_task_notes",
        description="Write or append content to the Agent_Notes.md file for a specific task",
        input_schema=_object(
            {
                "task_id": {"type": "number", "description": "The ID of the task to write notes for"},
                "content": {"type": "string", "description": "The content to write to the notes file"},
                "operation": {
                    "type": "string",
                    "enum": ["append", "replace"],
                    "description": "Whether to append to existing content or replace it entirely",
                },
            },
            ["task_id", "content"],
        ),
    ),
    ToolSchema(
        name="check_task_notes_exists",
        description="Check if Agent_Notes.md file exists for a specific task",
        input_schema=_object(
            {"task_id": {"type": "number", "description": "The ID of the task to check notes for"}},
            ["task_id"],
        ),
    ),
    ToolSchema(
        name="update_space_context",
        description=(
            "Update the shared space context markdown. Use this to record architectural decisions, "
            "completed milestones, and space-wide insights that are relevant to all tasks."
        ),
        input_schema=_object(
            {
                "space_id": {"type": "number", "description": "The ID of the space to update context for"},
                "content": {
                    "type": "string",
                    "description": "The full markdown content for the space context. This replaces the entire context.",
                },
                "summary": {"type": "string", "description": "Brief summary of what was changed in the context"},
            },
            ["space_id", "content"],
        ),
    ),
    ToolSchema(
        name="get_task_details",
        description=(
            "Get full details of a task including its properties, subtasks, notes, "
            "and parent space information."
        ),
        input_schema=_object(
            {
                "task_id": {
                    "type": "number",
                    "description": "The ID of the task to get details for. Defaults to the current task.",
                },
            },
            [],
        ),
    ),
    ToolSchema(
        name="list_space_tasks",
        description="List all tasks in a space with their subtasks. Optionally filter by status.",
        input_schema=_object(
            {
                "space_id": {"type": "number", "description": "The ID of the space. Defaults to the current space."},
                "status": {
                    "type": "string",
                    "enum": list(TASK_STATUSES),
                    "description": "Optional status filter to only return tasks with this status.",
                },
            },
            [],
        ),
    ),
    ToolSchema(
        name="read_space_context",
        description=(
            "Read the shared space context markdown. Contains architectural decisions, milestones, "
            "and space-wide context shared across all tasks."
        ),
        input_schema=_object(
            {"space_id": {"type": "number", "description": "The ID of the space. Defaults to the current space."}},
            [],
        ),
    ),
    ToolSchema(
        name="get_calendar_events",
        description=(
            "Get calendar events for a specific date. Returns event titles, times, locations, "
            "and attendees from the user's configured calendars."
        ),
        input_schema=_object(
            {"date": {"type": "string", "description": "The date to get events for in YYYY-MM-DD format."}},
            ["date"],
        ),
    ),
    ToolSchema(
        name="list_agents",
        description="List all available agents with their names, models, and descriptions.",
        input_schema=_object({}, []),
    ),
)


class ToolRegistry:
    def __init__(self, schemas: tuple[ToolSchema, ...] | list[ToolSchema] = AGENT_TOOL_SCHEMAS) -> None:
        self._tools: dict[str, ToolSchema] = {}
        self._validators: dict[str, Draft7Validator] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: ToolSchema) -> None:
        Draft7Validator.check_schema(schema.input_schema)
        self._tools[schema.name] = schema
        self._validators[schema.name] = Draft7Validator(schema.input_schema)

    def get(self, name: str) -> ToolSchema | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def to_schemas(self) -> list[ToolSchema]:
        return list(self._tools.values())

    def to_wire(self, *, web_search: bool = False) -> list[dict[str, Any]]:
        tools = [schema.to_wire() for schema in self._tools.values()]
        if web_search:
            tools.append(dict(WEB_SEARCH_TOOL))
        return tools

    def validation_errors(self, name: str, args: dict[str, Any]) -> list[str]:
        """Return human-readable schema violations for ``args`` (empty when valid)."""
        validator = self._validators.get(name)
        if validator is None:
            return [f"Unknown tool: {name}"]
        errors = sorted(validator.iter_errors(args), key=lambda err: [str(part) for part in err.path])
        messages: list[str] = []
        for err in errors:
            location = ".".join(str(part) for part in err.path)
            messages.append(f"{location}: {err.message}" if location else err.message)
        return messages


def get_agent_tool_schemas() -> list[dict[str, Any]]:
    return [schema.to_wire() for schema in AGENT_TOOL_SCHEMAS]
