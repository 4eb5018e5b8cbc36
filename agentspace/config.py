from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class Settings:
    db_path: Path
    host: str
    port: int
    api_provider: str
    anthropic_api_key: str
    litellm_base_url: str
    litellm_api_key: str
    default_model: str
    context_token_budget: int
    max_rounds: int
    retry_max_attempts: int
    retry_base_delay: float
    log_level: str
    retained_turns: int = 256


def _parse_int(value: str | None, default: int, *, minimum: int = 1) -> int:
    try:
        parsed = int(str(value).strip()) if value is not None else default
    except ValueError:
        return default
    return max(parsed, minimum)


def _parse_float(value: str | None, default: float) -> float:
    try:
        parsed = float(str(value).strip()) if value is not None else default
    except ValueError:
        return default
    return max(parsed, 0.0)


def load_settings() -> Settings:
    db_path = Path(os.getenv("AGENTSPACE_DB_PATH", ".agentspace/agentspace.db"))
    db_path.parent.mkdir(parents=True, exist_ok=True)
    anthropic_api_key = (
        os.getenv("AGENTSPACE_ANTHROPIC_API_KEY", "").strip() or os.getenv("ANTHROPIC_API_KEY", "").strip()
    )

    return Settings(
        db_path=db_path,
        host=os.getenv("AGENTSPACE_HOST", "127.0.0.1"),
        port=_parse_int(os.getenv("AGENTSPACE_PORT"), 8050),
        api_provider=os.getenv("AGENTSPACE_API_PROVIDER", "anthropic").strip().lower() or "anthropic",
        anthropic_api_key=anthropic_api_key,
        litellm_base_url=os.getenv("AGENTSPACE_LITELLM_BASE_URL", "").strip(),
        litellm_api_key=os.getenv("AGENTSPACE_LITELLM_API_KEY", "").strip(),
        default_model=os.getenv("AGENTSPACE_DEFAULT_MODEL", "claude-sonnet-4-5").strip(),
        context_token_budget=_parse_int(os.getenv("AGENTSPACE_CONTEXT_TOKEN_BUDGET"), 80_000),
        max_rounds=_parse_int(os.getenv("AGENTSPACE_MAX_ROUNDS"), 25),
        retry_max_attempts=_parse_int(os.getenv("AGENTSPACE_RETRY_MAX_ATTEMPTS"), 3),
        retry_base_delay=_parse_float(os.getenv("AGENTSPACE_RETRY_BASE_DELAY"), 1.0),
        log_level=os.getenv("AGENTSPACE_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        retained_turns=_parse_int(os.getenv("AGENTSPACE_RETAINED_TURNS"), 256),
    )
