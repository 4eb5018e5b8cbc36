from __future__ import annotations

from agentspace.agent.context_manager import (
    compact_messages,
    estimate_message_tokens,
    estimate_tokens,
)
from agentspace.agent.messages import Message, TextBlock, ToolResultBlock, ToolUseBlock


def _conversation(count: int, chars: int = 400) -> list[Message]:
    return [
        Message(role="user" if i % 2 == 0 else "assistant", content=f"{i:03d}" + "x" * (chars - 3))
        for i in range(count)
    ]


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_estimate_message_tokens_counts_block_content():
    message = Message(
        role="assistant",
        content=[
            TextBlock(text="a" * 8),
            ToolUseBlock(id="t1", name="list_agents", input={}),
            ToolResultBlock(tool_use_id="t1", content="b" * 4),
        ],
    )
    # "a"*8 + "list_agents" + "{}" + "b"*4 = 25 chars
    assert estimate_message_tokens(message) == 7


def test_empty_history_stays_empty():
    assert compact_messages([], 100) == []


def test_history_within_budget_is_unchanged():
    messages = _conversation(8)

    result = compact_messages(messages, 80_000)

    assert result == messages
    assert result is not messages


def test_older_messages_dropped_newest_first_with_notice():
    messages = _conversation(10)  # 100 tokens each

    result = compact_messages(messages, 700)

    assert len(result) == 1 + 2 + 5
    notice = result[0]
    assert notice.role == "user"
    assert notice.content == "[Note: 3 earlier messages were omitted to stay within the context window.]"
    assert result[1:] == messages[3:]


def test_single_dropped_message_uses_singular_notice():
    messages = _conversation(8)

    result = compact_messages(messages, 750)

    assert result[0].content == "[Note: 1 earlier message was omitted to stay within the context window.]"
    assert result[1:] == messages[1:]


def test_tail_over_budget_returns_only_tail_without_notice():
    messages = _conversation(9)

    result = compact_messages(messages, 300)

    assert result == messages[-5:]


def test_tail_exactly_at_budget_returns_only_tail():
    messages = _conversation(7)

    assert compact_messages(messages, 500) == messages[-5:]


def test_short_history_never_gets_notice():
    messages = _conversation(3, chars=40_000)

    assert compact_messages(messages, 10) == messages


def test_older_portion_fits_remaining_budget():
    messages = _conversation(20, chars=123)
    budget = 600

    result = compact_messages(messages, budget)

    tail = result[-5:]
    older = result[1:-5] if result[0].content.startswith("[Note:") else result[:-5]
    assert tail == messages[-5:]
    tail_cost = sum(estimate_message_tokens(m) for m in tail)
    assert sum(estimate_message_tokens(m) for m in older) <= budget - tail_cost


def test_input_is_not_modified():
    messages = _conversation(10)
    snapshot = list(messages)

    compact_messages(messages, 200)

    assert messages == snapshot
