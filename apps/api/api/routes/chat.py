from __future__ import annotations

import json

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from api.schemas.chat import ChatRequest
from services.chat import ChatUpstreamError, stream_chat

router = APIRouter(tags=["chat"])


def _sse_message(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@router.post("/chat")
async def chat(req: ChatRequest) -> StreamingResponse:
    """
    Stream a chat completion as SSE `data: {"content", "done"}` messages.

    The first upstream event is awaited before responding, so an
    unreachable or failing backend surfaces as a plain HTTP error.
    """
    events = stream_chat(
        backend=req.backend,
        model=req.model,
        messages=req.messages(),
        gpu_slot=req.gpu_slot,
    )
    try:
        first = await events.__anext__()
    except StopAsyncIteration:
        first = None
    except ChatUpstreamError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    async def event_stream():
        try:
            if first is None:
                return
            yield _sse_message(first)
            async for event in events:
                yield _sse_message(event)
        finally:
            # Releases the upstream connection when the client goes away.
            await events.aclose()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
