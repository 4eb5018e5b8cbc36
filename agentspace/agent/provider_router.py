from __future__ import annotations

from urllib.parse import urlparse

from agentspace.agent.providers.anthropic_provider import AnthropicProvider
from agentspace.agent.providers.base import ProviderAdapter
from agentspace.agent.providers.litellm_provider import LiteLLMProvider
from agentspace.config import Settings
from agentspace.errors import ProviderConfigError

SUPPORTED_PROVIDERS = ("anthropic", "litellm")


def build_provider(settings: Settings) -> ProviderAdapter:
    provider = settings.api_provider.strip().lower()
    if provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ProviderConfigError("Anthropic API key not configured. Please set it in Settings.")
        return AnthropicProvider(api_key=settings.anthropic_api_key)
    if provider == "litellm":
        if not settings.litellm_base_url:
            raise ProviderConfigError("LiteLLM base URL not configured. Please set it in Settings.")
        if not settings.litellm_api_key:
            raise ProviderConfigError("LiteLLM API key not configured. Please set it in Settings.")
        parsed = urlparse(settings.litellm_base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ProviderConfigError("LiteLLM base URL must start with http:// or https://")
        return LiteLLMProvider(base_url=settings.litellm_base_url, api_key=settings.litellm_api_key)
    raise ProviderConfigError(f"Unknown provider: {settings.api_provider}")
