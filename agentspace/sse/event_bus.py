from __future__ import annotations

import asyncio
import json
from collections import OrderedDict, defaultdict
from typing import AsyncIterator

TERMINAL_EVENT_TYPES = frozenset({"done", "error", "cancelled"})
DEFAULT_RETAINED_TURNS = 256


class EventBus:
    """Per-turn fan-out of events; late subscribers get the history replayed first.

    Only the most recent ``max_retained_turns`` finished turns keep their
    history. Running turns are never evicted.
    """

    def __init__(self, max_retained_turns: int = DEFAULT_RETAINED_TURNS) -> None:
        self.max_retained_turns = max(0, max_retained_turns)
        self._subscribers: dict[str, set[asyncio.Queue[dict]]] = defaultdict(set)
        self._history: dict[str, list[dict]] = defaultdict(list)
        self._finished: OrderedDict[str, None] = OrderedDict()

    async def publish(self, turn_id: str, event: dict) -> None:
        self._history[turn_id].append(event)
        for queue in list(self._subscribers.get(turn_id, set())):
            await queue.put(event)
        if event.get("type") in TERMINAL_EVENT_TYPES:
            self._finished[turn_id] = None
            self._finished.move_to_end(turn_id)
            while len(self._finished) > self.max_retained_turns:
                oldest, _ = self._finished.popitem(last=False)
                self.discard(oldest)

    def history(self, turn_id: str) -> list[dict]:
        return list(self._history.get(turn_id, []))

    def retained_turns(self) -> list[str]:
        return list(self._history)

    def discard(self, turn_id: str) -> None:
        self._history.pop(turn_id, None)
        self._finished.pop(turn_id, None)
        if not self._subscribers.get(turn_id):
            self._subscribers.pop(turn_id, None)

    async def subscribe(self, turn_id: str) -> AsyncIterator[dict]:
        queue: asyncio.Queue[dict] = asyncio.Queue()
        backlog = list(self._history.get(turn_id, []))
        self._subscribers[turn_id].add(queue)
        try:
            for event in backlog:
                yield event
                if event.get("type") in TERMINAL_EVENT_TYPES:
                    return
            while True:
                event = await queue.get()
                yield event
                if event.get("type") in TERMINAL_EVENT_TYPES:
                    break
        finally:
            subscribers = self._subscribers.get(turn_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[turn_id]


def to_sse(event: dict) -> dict[str, str]:
    return {"event": str(event.get("type") or "message"), "data": json.dumps(event, ensure_ascii=False)}
