"""Message and content-block types exchanged with the model.

Content blocks form a closed set. Anything the model sends that is not one
of the known block types is rejected with ``ResponseParseError`` rather than
being silently dropped.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from agentspace.errors import ResponseParseError

# Server-side tool blocks (hosted web search) that appear around pause_turn.
# They are replayed verbatim to the model and never interpreted locally.
SERVER_BLOCK_TYPES = frozenset({"server_tool_use", "web_search_tool_result"})


@dataclass(slots=True)
class Citation:
    url: str
    title: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TextBlock:
    text: str
    citations: list[Citation] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        block: dict[str, Any] = {"type": "text", "text": self.text}
        if self.citations:
            block["citations"] = [c.raw or {"url": c.url, "title": c.title} for c in self.citations]
        return block


@dataclass(slots=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(slots=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_wire(self) -> dict[str, Any]:
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            block["is_error"] = True
        return block


@dataclass(slots=True)
class ServerToolBlock:
    type: str
    raw: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return dict(self.raw)


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, ServerToolBlock]


@dataclass(slots=True)
class Message:
    role: str  # "user" | "assistant"
    content: str | list[ContentBlock]

    def to_wire(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.to_wire() for block in self.content]}


@dataclass(slots=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, other: TokenUsage) -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass(slots=True)
class ModelResponse:
    content: list[ContentBlock]
    stop_reason: str  # "end_turn" | "tool_use" | "pause_turn" | "max_tokens" | ...
    usage: TokenUsage
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


def message_text(message: Message) -> str:
    """Text used to size a message for compaction."""
    if isinstance(message.content, str):
        return message.content
    parts: list[str] = []
    for block in message.content:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            parts.append(block.name)
            parts.append(json.dumps(block.input, ensure_ascii=False))
        elif isinstance(block, ToolResultBlock):
            parts.append(block.content)
        elif isinstance(block, ServerToolBlock):
            parts.append(json.dumps(block.raw, ensure_ascii=False, default=str))
        else:  # pragma: no cover
            raise TypeError(f"unexpected content block: {block!r}")
    return "".join(parts)


def parse_content_block(raw: Any) -> ContentBlock:
    if not isinstance(raw, dict):
        raise ResponseParseError("content block must be an object", raw)
    block_type = raw.get("type")

    if block_type == "text":
        text = raw.get("text")
        if not isinstance(text, str):
            raise ResponseParseError("text block is missing 'text'", raw)
        return TextBlock(text=text, citations=_parse_citations(raw.get("citations")))

    if block_type == "tool_use":
        tool_id = raw.get("id")
        name = raw.get("name")
        if not isinstance(tool_id, str) or not isinstance(name, str) or not name:
            raise ResponseParseError("tool_use block requires 'id' and 'name'", raw)
        tool_input = raw.get("input")
        if tool_input is None:
            tool_input = {}
        if not isinstance(tool_input, dict):
            raise ResponseParseError("tool_use 'input' must be an object", raw)
        return ToolUseBlock(id=tool_id, name=name, input=tool_input)

    if block_type == "tool_result":
        tool_use_id = raw.get("tool_use_id")
        if not isinstance(tool_use_id, str):
            raise ResponseParseError("tool_result block requires 'tool_use_id'", raw)
        return ToolResultBlock(
            tool_use_id=tool_use_id,
            content=_tool_result_text(raw.get("content")),
            is_error=bool(raw.get("is_error", False)),
        )

    if block_type in SERVER_BLOCK_TYPES:
        return ServerToolBlock(type=str(block_type), raw=dict(raw))

    raise ResponseParseError(f"unrecognized content block type: {block_type!r}", raw)


def parse_model_response(raw: Any) -> ModelResponse:
    """Validate and convert a raw Messages-API payload."""
    if not isinstance(raw, dict):
        raise ResponseParseError("model response must be a JSON object", raw)
    content = raw.get("content")
    if not isinstance(content, list):
        raise ResponseParseError("model response 'content' must be a list", raw)
    stop_reason = raw.get("stop_reason")
    if stop_reason is not None and not isinstance(stop_reason, str):
        raise ResponseParseError("model response 'stop_reason' must be a string", raw)

    blocks = [parse_content_block(item) for item in content]
    usage = raw.get("usage")
    usage_map = usage if isinstance(usage, dict) else {}
    return ModelResponse(
        content=blocks,
        stop_reason=stop_reason or "end_turn",
        usage=TokenUsage(
            input_tokens=_to_non_negative_int(usage_map.get("input_tokens")),
            output_tokens=_to_non_negative_int(usage_map.get("output_tokens")),
        ),
        raw=raw,
    )


def _parse_citations(raw_citations: Any) -> list[Citation]:
    if raw_citations is None:
        return []
    if not isinstance(raw_citations, list):
        raise ResponseParseError("text block 'citations' must be a list", raw_citations)
    citations: list[Citation] = []
    for item in raw_citations:
        if not isinstance(item, dict):
            continue
        url = str(item.get("url") or "").strip()
        title = str(item.get("title") or "").strip()
        citations.append(Citation(url=url, title=title, raw=dict(item)))
    return citations


def _tool_result_text(raw_content: Any) -> str:
    if isinstance(raw_content, str):
        return raw_content
    if isinstance(raw_content, list):
        return "\n".join(
            str(item.get("text") or "")
            for item in raw_content
            if isinstance(item, dict) and item.get("type") == "text"
        )
    return ""


def _to_non_negative_int(value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return 0
    if parsed < 0:
        return 0
    return parsed
