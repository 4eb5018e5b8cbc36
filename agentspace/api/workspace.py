from __future__ import annotations

from dataclasses import asdict
from typing import Any

import aiosqlite
from fastapi import APIRouter, Depends

from agentspace.db.repositories import SqliteWorkspaceStore
from agentspace.deps import get_store
from agentspace.errors import AgentSpaceError
from agentspace.services.workspace import TASK_STATUSES

router = APIRouter(prefix="/v1", tags=["workspace"])

TASK_PRIORITIES = ("low", "medium", "high")


def _invalid(message: str, cause: str) -> AgentSpaceError:
    return AgentSpaceError(code="E_SCHEMA_INVALID", message=message, retryable=False, status_code=400, cause=cause)


def _not_found(message: str, cause: str) -> AgentSpaceError:
    return AgentSpaceError(code="E_NOT_FOUND", message=message, retryable=False, status_code=404, cause=cause)


def _required_text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise _invalid(f"{key} is required", f"{key}_missing")
    return value.strip()


@router.get("/spaces")
async def list_spaces(store: SqliteWorkspaceStore = Depends(get_store)):
    return {"spaces": [asdict(space) for space in await store.list_spaces()]}


@router.post("/spaces", status_code=201)
async def create_space(payload: dict, store: SqliteWorkspaceStore = Depends(get_store)):
    space_id = await store.create_space(_required_text(payload, "title"), payload.get("description"))
    return {"space_id": space_id}


@router.get("/spaces/{space_id}/tasks")
async def list_space_tasks(space_id: int, store: SqliteWorkspaceStore = Depends(get_store)):
    return {"tasks": [asdict(task) for task in await store.list_tasks_by_space(space_id)]}


@router.post("/spaces/{space_id}/tasks", status_code=201)
async def create_task(space_id: int, payload: dict, store: SqliteWorkspaceStore = Depends(get_store)):
    title = _required_text(payload, "title")
    status = payload.get("status", "todo")
    if status not in TASK_STATUSES:
        raise _invalid(f"status must be one of {', '.join(TASK_STATUSES)}", "status_invalid")
    priority = payload.get("priority", "medium")
    if priority not in TASK_PRIORITIES:
        raise _invalid(f"priority must be one of {', '.join(TASK_PRIORITIES)}", "priority_invalid")
    try:
        await store.read_space_context(space_id)
    except LookupError as exc:
        raise _not_found(str(exc), "space_not_found") from exc

    task_id = await store.create_task(
        space_id,
        title,
        description=payload.get("description"),
        status=status,
        priority=priority,
        due_date=payload.get("due_date"),
        scheduled_date=payload.get("scheduled_date"),
    )
    return {"task_id": task_id}


@router.post("/tasks/{task_id}/subtasks", status_code=201)
async def create_subtask(task_id: int, payload: dict, store: SqliteWorkspaceStore = Depends(get_store)):
    try:
        subtask_id = await store.create_subtask(
            task_id,
            _required_text(payload, "title"),
            description=payload.get("description"),
            completed=bool(payload.get("completed", False)),
            agent_id=payload.get("agent_id"),
        )
    except aiosqlite.IntegrityError as exc:
        raise _not_found(f"Task {task_id} or agent not found", "task_not_found") from exc
    return {"subtask_id": subtask_id}


@router.get("/agents")
async def list_agents(store: SqliteWorkspaceStore = Depends(get_store)):
    return {"agents": [asdict(agent) for agent in await store.list_agents()]}


@router.post("/agents", status_code=201)
async def create_agent(payload: dict, store: SqliteWorkspaceStore = Depends(get_store)):
    web_search_enabled = payload.get("web_search_enabled", False)
    if not isinstance(web_search_enabled, bool):
        raise _invalid("web_search_enabled must be a boolean", "web_search_enabled_invalid")
    agent_id = await store.create_agent(
        _required_text(payload, "name"),
        _required_text(payload, "model_name"),
        str(payload.get("agent_prompt") or ""),
        system_role=payload.get("system_role"),
        web_search_enabled=web_search_enabled,
    )
    return {"agent_id": agent_id}


@router.get("/settings/{key}")
async def get_setting(key: str, store: SqliteWorkspaceStore = Depends(get_store)):
    value = await store.get_setting(key)
    if value is None:
        raise _not_found(f"setting {key} not found", "setting_not_found")
    return {"key": key, "value": value}


@router.put("/settings/{key}")
async def put_setting(key: str, payload: dict, store: SqliteWorkspaceStore = Depends(get_store)):
    value = payload.get("value")
    if not isinstance(value, str):
        raise _invalid("value must be a string", "value_invalid")
    await store.set_setting(key, value)
    return {"key": key, "value": value}
