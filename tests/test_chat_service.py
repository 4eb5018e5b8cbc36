from __future__ import annotations

import asyncio

import pytest

from agentspace.config import Settings
from agentspace.errors import AgentSpaceError, ProviderConfigError, ProviderHTTPError
from agentspace.observability.metrics import get_runtime_metrics
from agentspace.services.chat_service import ChatService, parse_turn_request
from agentspace.sse.event_bus import EventBus
from fakes import ScriptedProvider, text_response, tool_use_response


def _settings(tmp_path) -> Settings:
    return Settings(
        db_path=tmp_path / "unused.db",
        host="127.0.0.1",
        port=8050,
        api_provider="anthropic",
        anthropic_api_key="sk-ant-test",
        litellm_base_url="",
        litellm_api_key="",
        default_model="claude-sonnet-4-5",
        context_token_budget=80_000,
        max_rounds=25,
        retry_max_attempts=3,
        retry_base_delay=0.0,
        log_level="INFO",
    )


def _task_payload(**overrides) -> dict:
    payload = {
        "kind": "task",
        "agent_name": "Scout",
        "task_id": 10,
        "space_id": 1,
        "messages": [{"role": "user", "content": "Summarise my notes"}],
    }
    payload.update(overrides)
    return payload


def _service(memory_store, tmp_path, provider) -> ChatService:
    return ChatService(
        store=memory_store,
        bus=EventBus(),
        settings=_settings(tmp_path),
        provider_factory=lambda: provider,
    )


@pytest.mark.asyncio
async def test_completed_turn_publishes_content_and_done(memory_store, tmp_path):
    provider = ScriptedProvider([text_response("All good.", input_tokens=3, output_tokens=4)])
    service = _service(memory_store, tmp_path, provider)
    turns_before = get_runtime_metrics().turns_total

    handle = await service.start_turn(_task_payload(), "tr_test")
    await handle.task

    assert handle.status == "completed"
    assert handle.snapshot()["content"] == "All good."
    events = service.bus.history(handle.turn_id)
    assert [e["type"] for e in events] == ["content", "done"]
    assert events[-1]["result"] == {"content": "All good.", "input_tokens": 3, "output_tokens": 4}
    assert get_runtime_metrics().turns_total == turns_before + 1
    assert len(provider.requests[0].tools) == 9


@pytest.mark.asyncio
async def test_task_prompt_includes_space_context(memory_store, tmp_path):
    memory_store.space_contexts[1] = "We ship on Fridays."
    provider = ScriptedProvider([text_response("ok")])
    service = _service(memory_store, tmp_path, provider)

    handle = await service.start_turn(_task_payload(), "tr_test")
    await handle.task

    prompt = provider.requests[0].system_prompt
    assert "We ship on Fridays." in prompt
    assert "Task ID: 10 in Space ID: 1" in prompt


@pytest.mark.asyncio
async def test_today_turn_uses_agenda(memory_store, tmp_path):
    provider = ScriptedProvider([text_response("ok")])
    service = _service(memory_store, tmp_path, provider)
    payload = {"kind": "today", "agenda": "09:00 Standup", "messages": [{"role": "user", "content": "plan"}]}

    handle = await service.start_turn(payload, "tr_test")
    await handle.task

    assert "09:00 Standup" in provider.requests[0].system_prompt
    assert handle.status == "completed"


@pytest.mark.asyncio
async def test_tool_callbacks_become_events(memory_store, tmp_path):
    memory_store.notes[10] = "previous findings"
    provider = ScriptedProvider([
        tool_use_response("read_task_notes", {}),
        tool_use_response("update_space_context", {"content": "# New"}, tool_id="toolu_2"),
        text_response("done"),
    ])
    service = _service(memory_store, tmp_path, provider)

    handle = await service.start_turn(_task_payload(), "tr_test")
    await handle.task

    events = service.bus.history(handle.turn_id)
    notes = [e for e in events if e["type"] == "notes_read"]
    contexts = [e for e in events if e["type"] == "space_context_updated"]
    assert notes == [{"type": "notes_read", "turn_id": handle.turn_id, "task_id": 10, "content": "previous findings"}]
    assert contexts[0]["content"] == "# New"
    assert memory_store.space_contexts[1] == "# New"


@pytest.mark.asyncio
async def test_provider_configuration_error_fails_turn(memory_store, tmp_path):
    def broken_factory():
        raise ProviderConfigError("Anthropic API key not configured. Please set it in Settings.")

    service = ChatService(
        store=memory_store,
        bus=EventBus(),
        settings=_settings(tmp_path),
        provider_factory=broken_factory,
    )

    handle = await service.start_turn(_task_payload(), "tr_cfg")
    await handle.task

    assert handle.status == "failed"
    assert handle.error["code"] == "E_PROVIDER_AUTH"
    assert handle.error["trace_id"] == "tr_cfg"
    assert service.bus.history(handle.turn_id)[-1]["type"] == "error"


@pytest.mark.asyncio
async def test_retries_use_settings_and_count_metric(memory_store, tmp_path):
    provider = ScriptedProvider([ProviderHTTPError(500, "oops"), text_response("recovered")])
    service = _service(memory_store, tmp_path, provider)
    retries_before = get_runtime_metrics().model_retries_total

    handle = await service.start_turn(_task_payload(), "tr_test")
    await handle.task

    assert handle.status == "completed"
    assert get_runtime_metrics().model_retries_total == retries_before + 1


class GatedProvider(ScriptedProvider):
    def __init__(self, outcomes) -> None:
        super().__init__(outcomes)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def chat(self, request):
        self.started.set()
        await self.release.wait()
        return await super().chat(request)


@pytest.mark.asyncio
async def test_cancel_running_turn(memory_store, tmp_path):
    provider = GatedProvider([tool_use_response("list_agents"), text_response("never")])
    service = _service(memory_store, tmp_path, provider)

    handle = await service.start_turn(_task_payload(), "tr_test")
    await asyncio.wait_for(provider.started.wait(), timeout=1)
    assert service.cancel_turn(handle.turn_id) is True
    provider.release.set()
    await asyncio.wait_for(handle.task, timeout=1)

    assert handle.status == "cancelled"
    assert service.bus.history(handle.turn_id)[-1] == {
        "type": "cancelled",
        "turn_id": handle.turn_id,
        "reason": "stop_requested",
    }
    assert len(provider.requests) == 1
    assert service.cancel_turn(handle.turn_id) is False


@pytest.mark.asyncio
async def test_shutdown_cancels_running_turns(memory_store, tmp_path):
    provider = GatedProvider([tool_use_response("list_agents")])
    service = _service(memory_store, tmp_path, provider)
    handle = await service.start_turn(_task_payload(), "tr_test")
    await asyncio.wait_for(provider.started.wait(), timeout=1)

    provider.release.set()
    await asyncio.wait_for(service.shutdown(), timeout=1)

    assert handle.status == "cancelled"


@pytest.mark.parametrize(
    "payload",
    [
        {"messages": []},
        {"messages": [{"role": "system", "content": "x"}]},
        {"kind": "weekly", "messages": [{"role": "user", "content": "x"}]},
        {"kind": "task", "messages": [{"role": "user", "content": "x"}]},
        {"kind": "task", "task_id": "ten", "space_id": 1, "messages": [{"role": "user", "content": "x"}]},
        _task_payload(max_tokens=0),
    ],
)
def test_invalid_payloads_are_rejected(payload):
    with pytest.raises(AgentSpaceError) as exc_info:
        parse_turn_request(payload, "claude-sonnet-4-5")

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "E_SCHEMA_INVALID"


def test_parse_turn_request_defaults():
    request = parse_turn_request(_task_payload(), "claude-sonnet-4-5")

    assert request.model == "claude-sonnet-4-5"
    assert request.task_id == 10
    assert request.messages[0].content == "Summarise my notes"


@pytest.mark.asyncio
async def test_web_search_enabled_adds_hosted_tool(memory_store, tmp_path):
    provider = ScriptedProvider([text_response("Searched.")])
    service = _service(memory_store, tmp_path, provider)

    handle = await service.start_turn(_task_payload(web_search_enabled=True), "tr_test")
    await handle.task

    tools = provider.requests[0].tools
    assert len(tools) == 10
    assert tools[-1] == {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


def test_web_search_flag_must_be_boolean():
    with pytest.raises(AgentSpaceError) as exc_info:
        parse_turn_request(_task_payload(web_search_enabled="yes"), "claude-sonnet-4-5")

    assert exc_info.value.cause == "web_search_enabled_invalid"


@pytest.mark.asyncio
async def test_old_finished_turns_are_evicted(memory_store, tmp_path):
    settings = _settings(tmp_path)
    settings.retained_turns = 2
    bus = EventBus(max_retained_turns=settings.retained_turns)
    provider = ScriptedProvider([text_response("ok")])
    service = ChatService(store=memory_store, bus=bus, settings=settings, provider_factory=lambda: provider)

    handles = []
    for _ in range(5):
        handle = await service.start_turn(_task_payload(), "tr_test")
        await handle.task
        handles.append(handle)

    assert [service.get_turn(h.turn_id) for h in handles[:3]] == [None, None, None]
    assert service.get_turn(handles[-1].turn_id) is handles[-1]
    assert bus.history(handles[0].turn_id) == []
    assert [e["type"] for e in bus.history(handles[-1].turn_id)] == ["content", "done"]
    assert bus.retained_turns() == [handles[3].turn_id, handles[4].turn_id]


@pytest.mark.asyncio
async def test_task_prompt_without_task_context_is_rejected(memory_store, tmp_path):
    service = _service(memory_store, tmp_path, ScriptedProvider([text_response("x")]))
    request = parse_turn_request(_task_payload(), "claude-sonnet-4-5")
    request.space_id = None

    with pytest.raises(AgentSpaceError) as exc_info:
        await service._system_prompt(request)

    assert exc_info.value.cause == "task_context_missing"
