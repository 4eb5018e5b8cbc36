"""LiteLLM gateway provider speaking the Messages API over HTTP."""
from __future__ import annotations

import json
from typing import Any

import httpx

from agentspace.agent.providers.anthropic_provider import build_payload
from agentspace.agent.providers.base import ChatRequest, ProviderAdapter
from agentspace.errors import ProviderHTTPError, ResponseParseError

DEFAULT_TIMEOUT_SECONDS = 120.0


class LiteLLMProvider(ProviderAdapter):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/v1/messages"

    async def chat(self, request: ChatRequest) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {request.api_key or self.api_key}",
        }
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(self.endpoint, json=build_payload(request), headers=headers)

        if response.status_code >= 400:
            raise ProviderHTTPError(response.status_code, response.text)
        try:
            parsed = response.json()
        except json.JSONDecodeError as exc:
            raise ResponseParseError("model response is not valid JSON", response.text[:2000]) from exc
        if not isinstance(parsed, dict):
            raise ResponseParseError("model response must be a JSON object", parsed)
        return parsed
