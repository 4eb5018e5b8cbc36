from __future__ import annotations

import os

from fastapi import APIRouter

from agentspace.agent.provider_router import SUPPORTED_PROVIDERS
from agentspace.agent.tool_registry import get_agent_tool_schemas
from agentspace.config import load_settings
from agentspace.observability.metrics import get_runtime_metrics

router = APIRouter(prefix="/v1", tags=["ops"])
settings = load_settings()

VERSION = "0.1.0"


@router.get("/health")
async def health():
    return {
        "ok": True,
        "version": VERSION,
        "api_provider": settings.api_provider,
        "supported_providers": list(SUPPORTED_PROVIDERS),
        "default_model": settings.default_model,
    }


@router.get("/version")
async def version():
    return {
        "runtime_version": VERSION,
        "build": os.getenv("AGENTSPACE_BUILD"),
        "commit": os.getenv("AGENTSPACE_COMMIT"),
    }


@router.get("/metrics")
async def metrics():
    return get_runtime_metrics().snapshot()


@router.get("/tools")
async def tools():
    return {"tools": get_agent_tool_schemas()}
