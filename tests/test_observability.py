from __future__ import annotations

import json
import logging

from agentspace.observability.logging import JsonFormatter
from agentspace.observability.metrics import RuntimeMetrics
from agentspace.observability.redaction import redact


def test_redact_sensitive_keys_and_inline_credentials():
    value = {
        "api_key": "sk-ant-abc123",
        "input_tokens": 120,
        "headers": {"Authorization": "Bearer abc.def"},
        "message": "request failed using sk-ant-xyz789",
        "note": "auth was bearer tok_123",
    }

    redacted = redact(value)

    assert redacted["api_key"] == "<redacted>"
    assert redacted["input_tokens"] == 120
    assert redacted["headers"]["Authorization"] == "<redacted>"
    assert redacted["message"] == "request failed using sk-ant-<redacted>"
    assert redacted["note"] == "auth was Bearer <redacted>"


def test_json_formatter_includes_known_extras():
    record = logging.LogRecord("agentspace.runtime", logging.INFO, __file__, 1, "turn %s", ("done",), None)
    record.turn_id = "turn_1"
    record.input_tokens = 10
    record.unrelated = "ignored"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "info"
    assert payload["message"] == "turn done"
    assert payload["turn_id"] == "turn_1"
    assert payload["input_tokens"] == 10
    assert "unrelated" not in payload


def test_metrics_snapshot_counts_tools():
    metrics = RuntimeMetrics()
    metrics.increment_tool_call("list_agents")
    metrics.increment_tool_call("list_agents")
    metrics.turns_total += 1

    snapshot = metrics.snapshot()

    assert snapshot["tool_calls_total"] == {"list_agents": 2}
    assert snapshot["turns_total"] == 1
