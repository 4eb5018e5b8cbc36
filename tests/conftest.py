from __future__ import annotations

import importlib

import pytest
from fastapi.testclient import TestClient

from agentspace.services.workspace import Agent, Space, Task
from fakes import MemoryStore


@pytest.fixture
def memory_store() -> MemoryStore:
    store = MemoryStore()
    store.spaces = [Space(id=1, title="Launch", description="Product launch"), Space(id=2, title="Home")]
    store.tasks = [
        Task(id=10, space_id=1, title="Write announcement", status="in_progress", priority="high"),
        Task(id=11, space_id=1, title="Book venue", status="todo"),
        Task(id=20, space_id=2, title="Fix sink"),
    ]
    store.agents = [
        Agent(id=1, name="Researcher", model_name="claude-sonnet-4-5", agent_prompt="Finds things"),
        Agent(id=2, name="Planner", model_name="claude-sonnet-4-5", system_role="today_planner"),
    ]
    return store


@pytest.fixture
def isolated_client(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("AGENTSPACE_DB_PATH", str(tmp_path / "agentspace-test.db"))
    monkeypatch.setenv("AGENTSPACE_API_PROVIDER", "anthropic")
    monkeypatch.delenv("AGENTSPACE_ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setenv("AGENTSPACE_RETRY_BASE_DELAY", "0")
    import agentspace.main as main_module

    module = importlib.reload(main_module)
    with TestClient(module.app) as client:
        yield client
