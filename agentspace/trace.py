"""Trace ids for HTTP requests and the chat turns they start."""
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar

TRACE_HEADER = "X-Trace-Id"
TRACE_PREFIX = "tr_"
MAX_TRACE_ID_LENGTH = 128

# Header values are echoed into logs and responses; anything else is replaced.
_VALID_TRACE_ID = re.compile(r"^[A-Za-z0-9_.:\-]+$")

_trace_id_var: ContextVar[str | None] = ContextVar("agentspace_trace_id", default=None)


def generate_trace_id() -> str:
    return f"{TRACE_PREFIX}{uuid.uuid4().hex}"


def normalize_trace_id(candidate: str | None) -> str:
    value = (candidate or "").strip()
    if value and len(value) <= MAX_TRACE_ID_LENGTH and _VALID_TRACE_ID.match(value):
        return value
    return generate_trace_id()


def set_current_trace_id(trace_id: str) -> None:
    _trace_id_var.set(trace_id)


def get_current_trace_id() -> str:
    return _trace_id_var.get() or generate_trace_id()
