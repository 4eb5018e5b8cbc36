from __future__ import annotations

import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable

from agentspace.agent.cancellation import CancellationToken
from agentspace.agent.chat_engine import ChatTurnCallbacks, ChatTurnConfig, ChatTurnResult, send_chat_turn
from agentspace.agent.messages import Message
from agentspace.agent.prompts import TaskPromptContext, TodayPromptContext, build_system_prompt
from agentspace.agent.providers.base import ProviderAdapter
from agentspace.agent.retry import RetryPolicy
from agentspace.agent.tool_executor import ToolContext, ToolExecutor
from agentspace.config import Settings
from agentspace.errors import AgentSpaceError, TurnCancelledError, error_from_exception
from agentspace.observability.logging import get_runtime_logger
from agentspace.observability.metrics import get_runtime_metrics
from agentspace.services.workspace import CalendarSource, WorkspaceStore
from agentspace.sse.event_bus import EventBus

logger = get_runtime_logger()
metrics = get_runtime_metrics()


@dataclass(slots=True)
class TurnRequest:
    kind: str
    model: str
    agent_name: str
    agent_prompt: str
    messages: list[Message]
    task_id: int | None = None
    space_id: int | None = None
    agenda: str = ""
    max_tokens: int | None = None
    web_search_enabled: bool = False


@dataclass(slots=True)
class TurnHandle:
    turn_id: str
    trace_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    status: str = "running"
    result: ChatTurnResult | None = None
    error: dict[str, Any] | None = None
    task: asyncio.Task[None] | None = None

    def snapshot(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"turn_id": self.turn_id, "status": self.status, "trace_id": self.trace_id}
        if self.result is not None:
            payload["content"] = self.result.content
            payload["input_tokens"] = self.result.input_tokens
            payload["output_tokens"] = self.result.output_tokens
        if self.error is not None:
            payload["error"] = self.error
        return payload


def _schema_error(message: str, cause: str) -> AgentSpaceError:
    return AgentSpaceError(
        code="E_SCHEMA_INVALID",
        message=message,
        retryable=False,
        status_code=400,
        cause=cause,
    )


def _optional_id(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise _schema_error(f"{key} must be an integer", f"{key}_invalid") from exc


def parse_turn_request(payload: dict[str, Any], default_model: str) -> TurnRequest:
    kind = str(payload.get("kind") or "task").strip().lower()
    if kind not in {"task", "today"}:
        raise _schema_error("kind must be 'task' or 'today'", "kind_invalid")

    raw_messages = payload.get("messages")
    if not isinstance(raw_messages, list) or not raw_messages:
        raise _schema_error("messages must be a non-empty list", "messages_missing")
    messages: list[Message] = []
    for item in raw_messages:
        if not isinstance(item, dict):
            raise _schema_error("each message must be an object", "message_invalid")
        role = str(item.get("role") or "").strip()
        content = item.get("content")
        if role not in {"user", "assistant"} or not isinstance(content, str):
            raise _schema_error("messages need role user|assistant and string content", "message_invalid")
        messages.append(Message(role=role, content=content))

    task_id = _optional_id(payload, "task_id")
    space_id = _optional_id(payload, "space_id")
    if kind == "task" and (task_id is None or space_id is None):
        raise _schema_error("task turns require task_id and space_id", "task_context_missing")

    max_tokens = payload.get("max_tokens")
    if max_tokens is not None:
        try:
            max_tokens = int(max_tokens)
        except (TypeError, ValueError) as exc:
            raise _schema_error("max_tokens must be an integer", "max_tokens_invalid") from exc
        if max_tokens <= 0:
            raise _schema_error("max_tokens must be positive", "max_tokens_invalid")

    web_search_enabled = payload.get("web_search_enabled", False)
    if not isinstance(web_search_enabled, bool):
        raise _schema_error("web_search_enabled must be a boolean", "web_search_enabled_invalid")

    return TurnRequest(
        kind=kind,
        model=str(payload.get("model") or default_model).strip(),
        agent_name=str(payload.get("agent_name") or "Assistant").strip(),
        agent_prompt=str(payload.get("agent_prompt") or ""),
        messages=messages,
        task_id=task_id,
        space_id=space_id,
        agenda=str(payload.get("agenda") or ""),
        max_tokens=max_tokens,
        web_search_enabled=web_search_enabled,
    )


class ChatService:
    def __init__(
        self,
        *,
        store: WorkspaceStore,
        bus: EventBus,
        settings: Settings,
        provider_factory: Callable[[], ProviderAdapter],
        calendar: CalendarSource | None = None,
    ):
        self.store = store
        self.bus = bus
        self.settings = settings
        self.provider_factory = provider_factory
        self.calendar = calendar
        self._turns: dict[str, TurnHandle] = {}
        self._finished: OrderedDict[str, None] = OrderedDict()

    def get_turn(self, turn_id: str) -> TurnHandle | None:
        return self._turns.get(turn_id)

    async def start_turn(self, payload: dict[str, Any], trace_id: str) -> TurnHandle:
        request = parse_turn_request(payload, self.settings.default_model)
        handle = TurnHandle(turn_id=f"turn_{uuid.uuid4().hex}", trace_id=trace_id)
        self._turns[handle.turn_id] = handle
        handle.task = asyncio.create_task(self._run_turn(handle, request))
        return handle

    def cancel_turn(self, turn_id: str) -> bool:
        handle = self._turns.get(turn_id)
        if handle is None or handle.status != "running":
            return False
        handle.token.cancel("stop_requested")
        return True

    async def shutdown(self) -> None:
        pending = [handle.task for handle in self._turns.values() if handle.task is not None and not handle.task.done()]
        for handle in self._turns.values():
            if handle.status == "running":
                handle.token.cancel("shutdown")
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_turn(self, handle: TurnHandle, request: TurnRequest) -> None:
        metrics.turns_total += 1
        log_extra = {"trace_id": handle.trace_id, "turn_id": handle.turn_id, "model": request.model}

        async def publish(event_type: str, **fields: Any) -> None:
            await self.bus.publish(handle.turn_id, {"type": event_type, "turn_id": handle.turn_id, **fields})

        async def on_content_update(content: str) -> None:
            await publish("content", content=content)

        async def on_task_notes_read(content: str) -> None:
            await publish("notes_read", task_id=request.task_id, content=content)

        async def on_space_context_updated(content: str) -> None:
            await publish("space_context_updated", space_id=request.space_id, content=content)

        executor = ToolExecutor(
            self.store,
            ToolContext(
                task_id=request.task_id,
                space_id=request.space_id,
                on_task_notes_read=on_task_notes_read,
                on_space_context_updated=on_space_context_updated,
            ),
            calendar=self.calendar,
        )

        try:
            provider = self.provider_factory()
            config = ChatTurnConfig(
                model=request.model,
                system_prompt=await self._system_prompt(request),
                tools=executor.registry.to_wire(web_search=request.web_search_enabled),
                max_tokens=request.max_tokens,
                token_budget=self.settings.context_token_budget,
                max_rounds=self.settings.max_rounds,
                retry=RetryPolicy(
                    max_retries=self.settings.retry_max_attempts,
                    base_delay=self.settings.retry_base_delay,
                    on_retry=lambda attempt, exc: self._on_retry(handle, attempt, exc),
                ),
            )
            result = await send_chat_turn(
                provider,
                config,
                request.messages,
                ChatTurnCallbacks(on_content_update=on_content_update, execute_tool=executor.execute),
                cancellation=handle.token,
            )
        except TurnCancelledError as exc:
            metrics.turns_cancelled_total += 1
            handle.status = "cancelled"
            logger.info("chat turn cancelled", extra={**log_extra, "outcome": "cancelled"})
            await publish("cancelled", reason=exc.reason)
        except Exception as exc:  # noqa: BLE001
            metrics.turns_failed_total += 1
            _, error_payload = error_from_exception(exc, handle.trace_id)
            handle.status = "failed"
            handle.error = error_payload["error"]
            logger.warning("chat turn failed: %s", exc, extra={**log_extra, "outcome": "error"})
            await publish("error", error=handle.error)
        else:
            handle.status = "completed"
            handle.result = result
            logger.info(
                "chat turn finished",
                extra={
                    **log_extra,
                    "input_tokens": result.input_tokens,
                    "output_tokens": result.output_tokens,
                    "outcome": "ok",
                },
            )
            await publish(
                "done",
                result={
                    "content": result.content,
                    "input_tokens": result.input_tokens,
                    "output_tokens": result.output_tokens,
                },
            )
        finally:
            self._retire(handle)

    def _retire(self, handle: TurnHandle) -> None:
        """Keep only the most recent finished turns addressable."""
        self._finished[handle.turn_id] = None
        while len(self._finished) > self.settings.retained_turns:
            oldest, _ = self._finished.popitem(last=False)
            self._turns.pop(oldest, None)
            self.bus.discard(oldest)

    async def _system_prompt(self, request: TurnRequest) -> str:
        if request.kind == "today":
            return build_system_prompt(
                TodayPromptContext(
                    agent_prompt=request.agent_prompt,
                    agent_name=request.agent_name,
                    agenda_context=request.agenda,
                )
            )
        if request.task_id is None or request.space_id is None:
            raise _schema_error("task turns require task_id and space_id", "task_context_missing")
        try:
            space_context = await self.store.read_space_context(request.space_id)
        except LookupError:
            space_context = ""
        return build_system_prompt(
            TaskPromptContext(
                agent_prompt=request.agent_prompt,
                agent_name=request.agent_name,
                task_id=request.task_id,
                space_id=request.space_id,
                space_context=space_context,
            )
        )

    def _on_retry(self, handle: TurnHandle, attempt: int, exc: BaseException) -> None:
        metrics.model_retries_total += 1
        logger.warning(
            "model call retry: %s",
            exc,
            extra={"trace_id": handle.trace_id, "turn_id": handle.turn_id, "attempt": attempt},
        )
