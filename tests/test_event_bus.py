from __future__ import annotations

import asyncio
import json

import pytest

from agentspace.sse.event_bus import EventBus, to_sse


async def _collect(bus: EventBus, turn_id: str) -> list[dict]:
    return [event async for event in bus.subscribe(turn_id)]


@pytest.mark.asyncio
async def test_late_subscriber_gets_history_then_stops_at_terminal_event():
    bus = EventBus()
    await bus.publish("turn-1", {"type": "content", "content": "a"})
    await bus.publish("turn-1", {"type": "done"})

    events = await asyncio.wait_for(_collect(bus, "turn-1"), timeout=1)

    assert [e["type"] for e in events] == ["content", "done"]


@pytest.mark.asyncio
async def test_live_subscriber_receives_events_in_order():
    bus = EventBus()
    await bus.publish("turn-1", {"type": "content", "content": "a"})
    collector = asyncio.create_task(_collect(bus, "turn-1"))
    await asyncio.sleep(0)

    await bus.publish("turn-1", {"type": "content", "content": "ab"})
    await bus.publish("turn-2", {"type": "content", "content": "other"})
    await bus.publish("turn-1", {"type": "cancelled", "reason": "stop_requested"})

    events = await asyncio.wait_for(collector, timeout=1)
    assert [e.get("content") for e in events] == ["a", "ab", None]
    assert events[-1]["type"] == "cancelled"


@pytest.mark.asyncio
async def test_history_is_a_copy():
    bus = EventBus()
    await bus.publish("turn-1", {"type": "content"})

    history = bus.history("turn-1")
    history.clear()

    assert len(bus.history("turn-1")) == 1
    assert bus.history("unknown") == []


def test_to_sse_uses_event_type_as_name():
    frame = to_sse({"type": "content", "content": "héllo"})

    assert frame["event"] == "content"
    assert json.loads(frame["data"]) == {"type": "content", "content": "héllo"}


@pytest.mark.asyncio
async def test_finished_turn_history_is_bounded():
    bus = EventBus(max_retained_turns=16)
    for n in range(1000):
        for chunk in range(20):
            await bus.publish(f"turn-{n}", {"type": "content", "content": "x" * chunk})
        await bus.publish(f"turn-{n}", {"type": "done"})

    retained = bus.retained_turns()
    assert len(retained) == 16
    assert retained[0] == "turn-984"
    assert sum(len(bus.history(turn_id)) for turn_id in retained) == 16 * 21
    assert bus.history("turn-0") == []


@pytest.mark.asyncio
async def test_running_turns_are_not_evicted():
    bus = EventBus(max_retained_turns=1)
    await bus.publish("running", {"type": "content", "content": "a"})
    await bus.publish("turn-1", {"type": "done"})
    await bus.publish("turn-2", {"type": "error"})

    assert bus.history("running") == [{"type": "content", "content": "a"}]
    assert bus.history("turn-1") == []
    assert [e["type"] for e in bus.history("turn-2")] == ["error"]


@pytest.mark.asyncio
async def test_subscriber_set_is_dropped_when_stream_ends():
    bus = EventBus()
    collector = asyncio.create_task(_collect(bus, "turn-1"))
    await asyncio.sleep(0)
    await bus.publish("turn-1", {"type": "done"})
    await asyncio.wait_for(collector, timeout=1)

    assert bus._subscribers == {}
