from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from agentspace.observability.redaction import redact


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname.lower(),
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in (
            "trace_id",
            "turn_id",
            "model",
            "round",
            "attempt",
            "tool_name",
            "input_tokens",
            "output_tokens",
            "duration_ms",
            "outcome",
            "path",
            "status",
            "method",
        ):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = redact(value, key)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def get_runtime_logger(level: str = "INFO") -> logging.Logger:
    # Module loggers under "agentspace." share the JSON handler.
    root = logging.getLogger("agentspace")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.setLevel(level)
        root.propagate = False
    return logging.getLogger("agentspace.runtime")
