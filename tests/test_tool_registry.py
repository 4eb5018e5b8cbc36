from __future__ import annotations

import pytest
from jsonschema.exceptions import SchemaError

from agentspace.agent.tool_registry import (
    AGENT_TOOL_SCHEMAS,
    WEB_SEARCH_TOOL,
    ToolRegistry,
    ToolSchema,
    get_agent_tool_schemas,
)

EXPECTED_TOOLS = [
    "read_task_notes",
    "write_task_notes",
    "check_task_notes_exists",
    "update_space_context",
    "get_task_details",
    "list_space_tasks",
    "read_space_context",
    "get_calendar_events",
    "list_agents",
]


def test_catalog_lists_every_agent_tool_in_order():
    registry = ToolRegistry()
    assert registry.names() == EXPECTED_TOOLS
    assert [schema["name"] for schema in get_agent_tool_schemas()] == EXPECTED_TOOLS


def test_wire_schemas_are_objects_with_required_lists():
    for schema in get_agent_tool_schemas():
        assert set(schema) == {"name", "description", "input_schema"}
        assert schema["input_schema"]["type"] == "object"
        assert isinstance(schema["input_schema"]["required"], list)
        assert schema["description"]


def test_web_search_is_appended_only_when_requested():
    registry = ToolRegistry()

    assert "web_search" not in [tool["name"] for tool in registry.to_wire()]
    tools = registry.to_wire(web_search=True)
    assert tools[-1] == WEB_SEARCH_TOOL
    assert tools[-1] is not WEB_SEARCH_TOOL


def test_required_fields_match_tool_contracts():
    required = {schema.name: schema.input_schema["required"] for schema in AGENT_TOOL_SCHEMAS}
    assert required["write_task_notes"] == ["task_id", "content"]
    assert required["update_space_context"] == ["space_id", "content"]
    assert required["get_calendar_events"] == ["date"]
    assert required["list_agents"] == []


def test_register_and_get():
    registry = ToolRegistry(schemas=[])
    schema = ToolSchema(name="echo", description="Echo", input_schema={"type": "object", "properties": {}})

    registry.register(schema)

    assert registry.get("echo") is schema
    assert registry.get("missing") is None
    assert registry.to_schemas() == [schema]


def test_register_rejects_invalid_schema():
    registry = ToolRegistry(schemas=[])
    with pytest.raises(SchemaError):
        registry.register(ToolSchema(name="bad", description="", input_schema={"type": 12}))


def test_validation_errors():
    registry = ToolRegistry()

    assert registry.validation_errors("write_task_notes", {"task_id": 1, "content": "x"}) == []
    problems = registry.validation_errors("write_task_notes", {"task_id": 1, "content": "x", "operation": "merge"})
    assert len(problems) == 1
    assert problems[0].startswith("operation:")
    assert registry.validation_errors("get_calendar_events", {}) == ["'date' is a required property"]
    assert registry.validation_errors("nope", {}) == ["Unknown tool: nope"]
