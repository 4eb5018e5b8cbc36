from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import anthropic
import httpx
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

DEFAULT_INTERNAL_MESSAGE = "Internal server error"


@dataclass(slots=True)
class AgentSpaceError(Exception):
    code: str
    message: str
    retryable: bool = False
    status_code: int = 500
    details: dict[str, Any] | None = None
    cause: str | None = None

    def __str__(self) -> str:
        return self.message


class ResponseParseError(AgentSpaceError):
    """The model returned a payload that is not a valid Messages-API response."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(
            code="E_MODEL_RESPONSE_INVALID",
            message=message,
            retryable=False,
            status_code=502,
            cause="response_parse",
        )
        self.payload = payload


class MaxRoundsExceededError(AgentSpaceError):
    def __init__(self, max_rounds: int) -> None:
        super().__init__(
            code="E_TURN_MAX_ROUNDS",
            message=f"Turn exceeded maximum rounds ({max_rounds}).",
            retryable=False,
            status_code=500,
            details={"max_rounds": max_rounds},
            cause="max_rounds",
        )
        self.max_rounds = max_rounds


class ProviderConfigError(AgentSpaceError):
    def __init__(self, message: str) -> None:
        super().__init__(
            code="E_PROVIDER_AUTH",
            message=message,
            retryable=False,
            status_code=401,
            cause="provider_config",
        )


class ProviderHTTPError(AgentSpaceError):
    """Non-2xx answer from an HTTP model gateway; carries the status for retry classification."""

    def __init__(self, status_code: int, body_text: str) -> None:
        super().__init__(
            code="E_PROVIDER_HTTP",
            message=f"model request failed with status={status_code}",
            retryable=status_code == 429 or status_code >= 500,
            status_code=status_code,
            details={"body": body_text[:500]},
            cause="provider_http",
        )
        self.body_text = body_text


class CalendarUnavailableError(RuntimeError):
    pass


class TurnCancelledError(Exception):
    """Raised when a turn is cancelled; deliberately outside AgentSpaceError."""

    def __init__(self, reason: str = "cancelled") -> None:
        super().__init__(f"Turn cancelled: {reason}")
        self.reason = reason


def build_error(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "trace_id": trace_id,
        "retryable": retryable,
        "ts": datetime.now(tz=timezone.utc).isoformat(),
    }
    if details:
        payload["details"] = details
    if cause:
        payload["cause"] = cause
    return payload


def error_response(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    return {
        "error": build_error(
            code=code,
            message=message,
            trace_id=trace_id,
            retryable=retryable,
            details=details,
            cause=cause,
        )
    }


def error_from_exception(exc: BaseException, trace_id: str) -> tuple[int, dict[str, Any]]:
    if isinstance(exc, AgentSpaceError):
        return (
            exc.status_code,
            error_response(
                code=exc.code,
                message=exc.message,
                trace_id=trace_id,
                retryable=exc.retryable,
                details=exc.details,
                cause=exc.cause,
            ),
        )

    if isinstance(exc, TurnCancelledError):
        return (
            409,
            error_response(
                code="E_TURN_CANCELLED",
                message="Turn was cancelled.",
                trace_id=trace_id,
                retryable=False,
                cause=exc.reason,
            ),
        )

    if isinstance(exc, RequestValidationError):
        return (
            422,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Request validation failed.",
                trace_id=trace_id,
                retryable=False,
                details={"errors": exc.errors()},
                cause="request_validation_error",
            ),
        )

    if isinstance(exc, HTTPException):
        retryable = exc.status_code >= 500
        if exc.status_code == 404:
            code = "E_NOT_FOUND"
        else:
            code = "E_INTERNAL" if retryable else "E_SCHEMA_INVALID"
        return (
            exc.status_code,
            error_response(
                code=code,
                message=str(exc.detail),
                trace_id=trace_id,
                retryable=retryable,
                cause="http_exception",
            ),
        )

    if isinstance(exc, anthropic.APIStatusError):
        status = int(exc.status_code)
        if status in {401, 403}:
            return (
                status,
                error_response(
                    code="E_PROVIDER_AUTH",
                    message="Provider rejected the credentials.",
                    trace_id=trace_id,
                    retryable=False,
                    cause="provider_auth",
                ),
            )
        if status == 429:
            return (
                status,
                error_response(
                    code="E_PROVIDER_RATE_LIMIT",
                    message="Provider rate limited request.",
                    trace_id=trace_id,
                    retryable=True,
                    cause="provider_rate_limit",
                ),
            )
        return (
            502 if status >= 500 else status,
            error_response(
                code="E_PROVIDER_HTTP",
                message=f"Provider request failed with status={status}.",
                trace_id=trace_id,
                retryable=status >= 500,
                cause="provider_status_error",
            ),
        )

    if isinstance(exc, anthropic.APIConnectionError):
        return (
            503,
            error_response(
                code="E_NETWORK",
                message="Could not reach the model provider.",
                trace_id=trace_id,
                retryable=True,
                cause="provider_connection",
            ),
        )

    if isinstance(exc, asyncio.TimeoutError):
        return (
            504,
            error_response(
                code="E_TIMEOUT",
                message="Operation timed out.",
                trace_id=trace_id,
                retryable=True,
                cause="timeout",
            ),
        )

    if isinstance(exc, httpx.TimeoutException):
        return (
            503,
            error_response(
                code="E_NETWORK_TIMEOUT",
                message="Network timeout.",
                trace_id=trace_id,
                retryable=True,
                cause="network_timeout",
            ),
        )

    if isinstance(exc, httpx.TransportError):
        return (
            503,
            error_response(
                code="E_NETWORK",
                message="Network request failed.",
                trace_id=trace_id,
                retryable=True,
                cause="network_error",
            ),
        )

    if isinstance(exc, (KeyError, ValueError, TypeError)):
        return (
            400,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Invalid request or payload shape.",
                trace_id=trace_id,
                retryable=False,
                cause=exc.__class__.__name__,
            ),
        )

    return (
        500,
        error_response(
            code="E_INTERNAL",
            message=DEFAULT_INTERNAL_MESSAGE,
            trace_id=trace_id,
            retryable=False,
            cause=exc.__class__.__name__,
        ),
    )
