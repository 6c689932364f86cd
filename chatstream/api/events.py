"""
Push channel endpoint.

Clients keep one event stream open per conversation to learn about
out-of-band changes (attachment extraction finished, document context
removed). Events are not buffered: a client that connects late misses
earlier events.
"""

from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from chatstream.api.deps import CurrentUser, Registry
from chatstream.core.logger import logger
from chatstream.services.broadcast_registry import encode_sse

router = APIRouter()


@router.get("/conversation/events")
async def stream_events(
    user: CurrentUser,
    request: Request,
    registry: Registry,
    conversation_id: str | None = Query(None, alias="conversationId"),
) -> StreamingResponse:
    if not conversation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "conversationId is required", "missing": ["conversationId"]},
        )

    async def event_generator() -> AsyncGenerator[str, None]:
        channel = await registry.open_channel(conversation_id)
        logger.info(f"Push channel opened for {conversation_id} by {user.id}")
        try:
            async for frame in channel.frames():
                yield encode_sse(frame)
                if await request.is_disconnected():
                    break
        finally:
            await registry.close_channel(conversation_id, channel)
            logger.info(f"Push channel closed for {conversation_id}")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
