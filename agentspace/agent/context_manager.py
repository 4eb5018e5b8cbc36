"""Context window management: token estimation and history compaction."""
from __future__ import annotations

import math

from agentspace.agent.messages import Message, message_text

DEFAULT_TOKEN_BUDGET = 80_000
KEEP_LAST_N = 5


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 characters per token."""
    return math.ceil(len(text) / 4)


def estimate_message_tokens(message: Message) -> int:
    return estimate_tokens(message_text(message))


def compact_messages(
    messages: list[Message],
    max_tokens: int = DEFAULT_TOKEN_BUDGET,
    *,
    keep_last_n: int = KEEP_LAST_N,
) -> list[Message]:
    """Fit ``messages`` into ``max_tokens`` estimated tokens.

    The last ``keep_last_n`` messages are always kept, even when they alone
    exceed the budget. Older messages are then added newest-first while they
    fit. When anything older is dropped a user-role notice is prepended so the
    model knows its context is incomplete. Returns a new list in
    chronological order; the input is never modified.
    """
    if not messages:
        return []

    split_index = max(0, len(messages) - keep_last_n)
    recent = messages[split_index:]
    older = messages[:split_index]

    used_tokens = sum(estimate_message_tokens(msg) for msg in recent)
    if used_tokens >= max_tokens or not older:
        return list(recent)

    remaining_budget = max_tokens - used_tokens
    kept_older: list[Message] = []
    older_tokens = 0
    for msg in reversed(older):
        msg_tokens = estimate_message_tokens(msg)
        if older_tokens + msg_tokens > remaining_budget:
            break
        older_tokens += msg_tokens
        kept_older.append(msg)
    kept_older.reverse()

    dropped = len(older) - len(kept_older)
    if dropped > 0:
        return [omission_notice(dropped), *kept_older, *recent]
    return [*kept_older, *recent]


def omission_notice(dropped: int) -> Message:
    verb = "message was" if dropped == 1 else "messages were"
    return Message(
        role="user",
        content=f"[Note: {dropped} earlier {verb} omitted to stay within the context window.]",
    )
