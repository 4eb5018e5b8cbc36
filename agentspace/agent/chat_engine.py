"""
Drive one chat turn against the model.

Compacts the history, then loops: call the model (with retry), and on
``tool_use`` run the requested tools and call again, on ``pause_turn`` call
again with the partial answer appended, on anything else assemble the final
answer. The loop is bounded by ``max_rounds`` model calls and honours an
optional cancellation token.
"""
from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from agentspace.agent.assembler import assemble_final, extract_text
from agentspace.agent.cancellation import CancellationToken
from agentspace.agent.context_manager import DEFAULT_TOKEN_BUDGET, compact_messages
from agentspace.agent.messages import (
    Message,
    ModelResponse,
    TokenUsage,
    ToolResultBlock,
    ToolUseBlock,
    parse_model_response,
)
from agentspace.agent.providers.base import ChatRequest, ProviderAdapter
from agentspace.agent.retry import RetryPolicy, with_retry
from agentspace.agent.tool_executor import ExecuteToolFn
from agentspace.errors import MaxRoundsExceededError
from agentspace.observability.metrics import get_runtime_metrics

logger = logging.getLogger(__name__)

MODEL_MAX_TOKENS = {
    "claude-sonnet-4-5": 8192,
    "claude-opus-4-5": 16384,
}
DEFAULT_MAX_OUTPUT_TOKENS = 8192
DEFAULT_MAX_ROUNDS = 25
TOOL_UNAVAILABLE = "Tool execution not available in this context."

ContentUpdateFn = Callable[[str], Awaitable[None] | None]


@dataclass(slots=True)
class ChatTurnConfig:
    model: str
    system_prompt: str
    tools: list[dict[str, Any]] | None = None
    api_key: str | None = None
    max_tokens: int | None = None
    token_budget: int = DEFAULT_TOKEN_BUDGET
    max_rounds: int = DEFAULT_MAX_ROUNDS
    retry: RetryPolicy | None = None


@dataclass(slots=True)
class ChatTurnCallbacks:
    on_content_update: ContentUpdateFn | None = None
    execute_tool: ExecuteToolFn | None = None


@dataclass(slots=True)
class ChatTurnResult:
    content: str
    input_tokens: int
    output_tokens: int


def max_tokens_for_model(model: str) -> int:
    return MODEL_MAX_TOKENS.get(model, DEFAULT_MAX_OUTPUT_TOKENS)


@dataclass(slots=True)
class _Transcript:
    """The user-visible answer for one turn; only ever appended to."""

    on_update: ContentUpdateFn | None
    content: str = ""

    def add(self, text: str) -> None:
        self.content += text

    async def append(self, text: str) -> None:
        if text:
            self.content += text
            await self.emit()

    async def emit(self) -> None:
        if self.on_update is not None:
            await _call_maybe_async(self.on_update, self.content)


async def send_chat_turn(
    provider: ProviderAdapter,
    config: ChatTurnConfig,
    history: list[Message],
    callbacks: ChatTurnCallbacks | None = None,
    *,
    cancellation: CancellationToken | None = None,
) -> ChatTurnResult:
    """Drive one turn to completion and return the assembled answer with token usage.

    Raises whatever the model boundary raises once retries are exhausted,
    ``ResponseParseError`` for malformed payloads, ``MaxRoundsExceededError``
    when the model keeps requesting rounds, and ``TurnCancelledError`` when
    ``cancellation`` fires. Tool failures never raise; they are reported back
    to the model as error results.
    """
    cb = callbacks or ChatTurnCallbacks()
    metrics = get_runtime_metrics()
    max_tokens = config.max_tokens or max_tokens_for_model(config.model)
    retry_policy = config.retry or RetryPolicy(on_retry=_count_retry)

    conversation = compact_messages(list(history), config.token_budget)
    transcript = _Transcript(on_update=cb.on_content_update)
    usage = TokenUsage()
    started = time.monotonic()

    async def call_model(round_no: int) -> ModelResponse:
        request = ChatRequest(
            model=config.model,
            system_prompt=config.system_prompt,
            messages=list(conversation),
            max_tokens=max_tokens,
            tools=list(config.tools or []),
            api_key=config.api_key,
        )
        logger.debug("chat turn round=%d messages=%d", round_no, len(request.messages))
        metrics.model_calls_total += 1
        raw = await with_retry(lambda: provider.chat(request), retry_policy, cancellation=cancellation)
        response = parse_model_response(raw)
        usage.add(response.usage)
        return response

    rounds = 0
    while True:
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        if rounds >= config.max_rounds:
            logger.warning("chat turn hit max_rounds=%d", config.max_rounds)
            raise MaxRoundsExceededError(config.max_rounds)
        rounds += 1
        response = await call_model(rounds)

        if response.stop_reason == "pause_turn":
            await transcript.append(extract_text(response.content))
            conversation.append(Message(role="assistant", content=list(response.content)))
            continue

        tool_uses = [block for block in response.content if isinstance(block, ToolUseBlock)]
        if response.stop_reason != "tool_use" or not tool_uses:
            break

        await transcript.append(extract_text(response.content))
        results = [await _run_tool(block, cb.execute_tool, transcript) for block in tool_uses]
        conversation.append(Message(role="assistant", content=list(response.content)))
        conversation.append(Message(role="user", content=list(results)))

    content = assemble_final(transcript.content, response.content)
    transcript.content = content
    await transcript.emit()

    logger.info(
        "chat turn completed",
        extra={
            "model": config.model,
            "round": rounds,
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "duration_ms": int((time.monotonic() - started) * 1000),
            "outcome": response.stop_reason,
        },
    )
    return ChatTurnResult(
        content=content,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
    )


async def _run_tool(
    block: ToolUseBlock,
    execute_tool: ExecuteToolFn | None,
    transcript: _Transcript,
) -> ToolResultBlock:
    await transcript.append(f"\n\n*Using tool: {block.name}*\n")
    get_runtime_metrics().increment_tool_call(block.name)

    if execute_tool is None:
        result = ToolResultBlock(tool_use_id=block.id, content=TOOL_UNAVAILABLE, is_error=True)
    else:
        try:
            tool_result = await execute_tool(block.name, block.input)
        except Exception as exc:  # noqa: BLE001
            logger.warning("tool %s raised: %s", block.name, exc, extra={"tool_name": block.name})
            result = ToolResultBlock(
                tool_use_id=block.id,
                content=f"Error: {str(exc) or 'Unknown error'}",
                is_error=True,
            )
            transcript.add(f"*Tool error:* Failed to execute {block.name}\n")
        else:
            text = tool_result.text
            result = ToolResultBlock(tool_use_id=block.id, content=text, is_error=tool_result.is_error)
            transcript.add(f"*Tool result:* {text}\n")

    await transcript.emit()
    return result


def _count_retry(attempt: int, error: BaseException) -> None:
    del attempt, error
    get_runtime_metrics().model_retries_total += 1


async def _call_maybe_async(fn: Callable, *args):
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result
