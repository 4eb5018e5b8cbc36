from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agentspace.agent.provider_router import build_provider
from agentspace.api import chat, ops, workspace
from agentspace.config import load_settings
from agentspace.db.connection import open_connection
from agentspace.db.migrations import apply_migrations
from agentspace.db.repositories import SqliteWorkspaceStore
from agentspace.deps import set_dependencies
from agentspace.errors import AgentSpaceError, error_from_exception
from agentspace.observability.logging import get_runtime_logger
from agentspace.services.chat_service import ChatService
from agentspace.sse.event_bus import EventBus
from agentspace.trace import TRACE_HEADER, get_current_trace_id, normalize_trace_id, set_current_trace_id

settings = load_settings()
logger = get_runtime_logger(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    applied = await apply_migrations(settings.db_path)
    if applied:
        logger.info("applied migrations: %s", ", ".join(applied))
    conn = await open_connection(settings.db_path)
    store = SqliteWorkspaceStore(conn)
    chat_service = ChatService(
        store=store,
        bus=EventBus(max_retained_turns=settings.retained_turns),
        settings=settings,
        provider_factory=lambda: build_provider(settings),
    )
    set_dependencies(store, chat_service)

    yield

    await chat_service.shutdown()
    await conn.close()


app = FastAPI(title="AgentSpace Runtime", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_middleware(request: Request, call_next):
    trace_id = normalize_trace_id(request.headers.get(TRACE_HEADER))
    request.state.trace_id = trace_id
    set_current_trace_id(trace_id)
    started = datetime.now(tz=timezone.utc)
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        status_code, payload = error_from_exception(exc, trace_id)
        response = JSONResponse(status_code=status_code, content=payload)
    duration_ms = int((datetime.now(tz=timezone.utc) - started).total_seconds() * 1000)
    logger.info(
        "http_request",
        extra={
            "trace_id": trace_id,
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "outcome": "ok" if response.status_code < 400 else "error",
        },
    )
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(Exception)
async def exception_handler(request: Request, exc: Exception):
    trace_id = str(getattr(request.state, "trace_id", get_current_trace_id()))
    status_code, payload = error_from_exception(exc, trace_id)
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return await exception_handler(request, exc)


@app.exception_handler(AgentSpaceError)
async def agentspace_exception_handler(request: Request, exc: AgentSpaceError):
    return await exception_handler(request, exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return await exception_handler(request, exc)


app.include_router(chat.router)
app.include_router(ops.router)
app.include_router(workspace.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("agentspace.main:app", host=settings.host, port=settings.port)
