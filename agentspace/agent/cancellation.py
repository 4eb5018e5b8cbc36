from __future__ import annotations

import asyncio

from agentspace.errors import TurnCancelledError


class CancellationToken:
    """Cooperative cancellation flag shared between a turn and its owner."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = "cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "stop_requested") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelledError(self._reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first; raises on cancellation."""
        self.raise_if_cancelled()
        if seconds > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                return
        self.raise_if_cancelled()
