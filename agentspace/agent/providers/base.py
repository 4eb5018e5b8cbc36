"""Provider base types: ChatRequest / ProviderAdapter."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from agentspace.agent.messages import Message


@dataclass(slots=True)
class ChatRequest:
    model: str
    system_prompt: str
    messages: list[Message]
    max_tokens: int
    tools: list[dict[str, Any]] = field(default_factory=list)
    api_key: str | None = None

    def wire_messages(self) -> list[dict[str, Any]]:
        return [msg.to_wire() for msg in self.messages]


class ProviderAdapter(ABC):
    """The model invocation boundary.

    ``chat`` returns the raw Messages-API payload (``content``, ``stop_reason``,
    ``usage``) as a plain dict; validation happens in the turn engine.
    Errors that carry an HTTP status expose it as ``status_code``.
    """

    @abstractmethod
    async def chat(self, request: ChatRequest) -> dict[str, Any]: ...
