"""Anthropic Messages API provider."""
from __future__ import annotations

from typing import Any

from anthropic import AsyncAnthropic

from agentspace.agent.providers.base import ChatRequest, ProviderAdapter


class AnthropicProvider(ProviderAdapter):
    def __init__(self, api_key: str | None = None, *, client: AsyncAnthropic | None = None) -> None:
        # Retries are owned by the turn engine.
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=0)

    async def chat(self, request: ChatRequest) -> dict[str, Any]:
        payload = build_payload(request)
        client = self.client.with_options(api_key=request.api_key) if request.api_key else self.client
        response = await client.messages.create(**payload)
        return response.model_dump(mode="json", exclude_none=True)


def build_payload(request: ChatRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "messages": request.wire_messages(),
    }
    if request.system_prompt:
        payload["system"] = request.system_prompt
    if request.tools:
        payload["tools"] = request.tools
    return payload
