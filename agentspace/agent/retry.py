"""Retry with exponential backoff for calls across the model boundary."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from agentspace.agent.cancellation import CancellationToken
from agentspace.errors import ResponseParseError, TurnCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    on_retry: Callable[[int, BaseException], None] | None = None


def status_code_of(exc: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def is_retryable(exc: BaseException) -> bool:
    """Client errors (4xx except 429) and malformed payloads are final."""
    if not isinstance(exc, Exception):
        return False
    if isinstance(exc, (TurnCancelledError, ResponseParseError)):
        return False
    status = status_code_of(exc)
    if status is not None and 400 <= status < 500 and status != 429:
        return False
    return True


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    cancellation: CancellationToken | None = None,
) -> T:
    """Invoke ``operation`` until it succeeds, fails with a final error, or attempts run out.

    The wait before retry ``n`` (counted from 1) is ``base_delay * 2 ** (n - 1)``.
    ``on_retry(n, error)`` fires before each wait. When all attempts fail the
    last error is re-raised unchanged.
    """
    policy = policy or RetryPolicy()

    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "model call failed, retrying attempt=%d error=%s",
            state.attempt_number,
            error,
        )
        if policy.on_retry is not None and error is not None:
            policy.on_retry(state.attempt_number, error)

    async def _sleep(seconds: float) -> None:
        if cancellation is not None:
            await cancellation.sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, policy.max_retries)),
        wait=wait_exponential(multiplier=policy.base_delay, exp_base=2, min=0),
        retry=retry_if_exception(is_retryable),
        before_sleep=_before_sleep,
        sleep=_sleep,
        reraise=True,
    )
    result: Any = await retrying(operation)
    return result
