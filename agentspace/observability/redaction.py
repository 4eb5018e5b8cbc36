from __future__ import annotations

import re
from typing import Any

_SENSITIVE_KEYWORDS = ("authorization", "api_key", "apikey", "x-api-key", "token", "secret")
_BEARER_PATTERN = re.compile(r"(?i)bearer\s+[a-z0-9_\-\.]+")
_ANTHROPIC_KEY_PATTERN = re.compile(r"sk-ant-[A-Za-z0-9_\-]+")


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower()
    if normalized.endswith("_tokens"):
        return False
    return any(word in normalized for word in _SENSITIVE_KEYWORDS)


def _redact_string(key: str, value: str) -> str:
    if _is_sensitive_key(key):
        return "<redacted>"
    value = _BEARER_PATTERN.sub("Bearer <redacted>", value)
    return _ANTHROPIC_KEY_PATTERN.sub("sk-ant-<redacted>", value)


def redact(value: Any, key: str = "") -> Any:
    if isinstance(value, dict):
        return {k: redact(v, str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [redact(item, key) for item in value]
    if isinstance(value, str):
        return _redact_string(key, value)
    return value
