from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from agentspace.deps import get_chat_service
from agentspace.services.chat_service import ChatService
from agentspace.sse.event_bus import to_sse
from agentspace.trace import get_current_trace_id

router = APIRouter(prefix="/v1/chat", tags=["chat"])


def _require_turn(chat_service: ChatService, turn_id: str):
    handle = chat_service.get_turn(turn_id)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"turn {turn_id} not found")
    return handle


@router.post("/turns", status_code=202)
async def create_turn(payload: dict, request: Request, chat_service: ChatService = Depends(get_chat_service)):
    trace_id = str(getattr(request.state, "trace_id", get_current_trace_id()))
    handle = await chat_service.start_turn(payload, trace_id)
    return {"turn_id": handle.turn_id, "status": handle.status}


@router.get("/turns/{turn_id}")
async def get_turn(turn_id: str, chat_service: ChatService = Depends(get_chat_service)):
    return _require_turn(chat_service, turn_id).snapshot()


@router.get("/turns/{turn_id}/events")
async def stream_turn_events(turn_id: str, chat_service: ChatService = Depends(get_chat_service)):
    _require_turn(chat_service, turn_id)

    async def event_generator():
        async for event in chat_service.bus.subscribe(turn_id):
            yield to_sse(event)

    return EventSourceResponse(event_generator())


@router.get("/turns/{turn_id}/events/replay")
async def replay_turn_events(turn_id: str, chat_service: ChatService = Depends(get_chat_service)):
    _require_turn(chat_service, turn_id)
    return {"events": chat_service.bus.history(turn_id)}


@router.post("/turns/{turn_id}/cancel")
async def cancel_turn(turn_id: str, chat_service: ChatService = Depends(get_chat_service)):
    handle = _require_turn(chat_service, turn_id)
    cancelled = chat_service.cancel_turn(turn_id)
    return {"turn_id": turn_id, "cancel_requested": cancelled, "status": handle.status}
