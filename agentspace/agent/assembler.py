"""Final-answer assembly: text, citation sources, and the length cap."""
from __future__ import annotations

from agentspace.agent.messages import (
    Citation,
    ContentBlock,
    ServerToolBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

MAX_RESPONSE_LENGTH = 10_000
TRUNCATION_MARKER = "\n\n[Response truncated due to length]"


def extract_text(blocks: list[ContentBlock]) -> str:
    parts: list[str] = []
    for block in blocks:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, (ToolUseBlock, ToolResultBlock, ServerToolBlock)):
            continue
        else:
            raise TypeError(f"unexpected content block: {block!r}")
    return "".join(parts)


def extract_citations(blocks: list[ContentBlock]) -> list[Citation]:
    """Citations with a URL, first occurrence per URL wins."""
    seen: set[str] = set()
    citations: list[Citation] = []
    for block in blocks:
        if not isinstance(block, TextBlock):
            continue
        for cite in block.citations:
            if not cite.url or cite.url in seen:
                continue
            seen.add(cite.url)
            citations.append(Citation(url=cite.url, title=cite.title or cite.url, raw=cite.raw))
    return citations


def format_sources(citations: list[Citation]) -> str:
    if not citations:
        return ""
    lines = "\n".join(f"- [{c.title}]({c.url})" for c in citations)
    return f"\n\n**Sources:**\n{lines}"


def truncate_content(content: str, limit: int = MAX_RESPONSE_LENGTH) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + TRUNCATION_MARKER


def assemble_final(accumulated: str, blocks: list[ContentBlock], *, limit: int = MAX_RESPONSE_LENGTH) -> str:
    """Append the final text and sources, then apply the length cap.

    Truncation runs last, so the sources section can itself be cut off.
    """
    content = accumulated + extract_text(blocks)
    content += format_sources(extract_citations(blocks))
    return truncate_content(content, limit)
