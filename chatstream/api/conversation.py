"""
Conversation API endpoints.

Submitting a turn returns the generation as a data stream: plain token
text frames interleaved with artifact delta frames.
"""

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from chatstream.api.deps import CurrentUser, Reconciler
from chatstream.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    RateLimitedError,
    UpstreamError,
    ValidationError,
)
from chatstream.core.logger import logger
from chatstream.models.conversation import Conversation, ModelUpdate, VisibilityUpdate
from chatstream.models.message import ChatTurnRequest

router = APIRouter()


@router.post("/conversation")
async def submit_turn(
    request: ChatTurnRequest,
    user: CurrentUser,
    reconciler: Reconciler,
) -> StreamingResponse:
    """
    Submit a user turn and stream the assistant's reply.

    Rate limiting and upstream failures that happen before the first byte
    are returned as HTTP errors; later failures arrive as an error frame.
    """
    try:
        turn = await reconciler.submit_turn(user.id, request)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "missing": e.missing},
        )
    except AuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )
    except RateLimitedError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": str(e.wait_seconds)},
        )
    except UpstreamError as e:
        logger.error(f"Upstream failure opening turn for {request.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Upstream model unavailable",
        )

    return StreamingResponse(
        turn.stream(),
        media_type="text/plain; charset=utf-8",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering for nginx
        },
    )


@router.delete("/conversation")
async def delete_conversation(
    user: CurrentUser,
    reconciler: Reconciler,
    conversation_id: str | None = Query(None, alias="id"),
):
    """Delete a conversation with its messages and votes."""
    if not conversation_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not Found",
        )
    try:
        await reconciler.delete_conversation(user.id, conversation_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    except AuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )
    return {"id": conversation_id, "deleted": True}


@router.patch("/conversation/visibility", response_model=Conversation)
async def update_visibility(
    body: VisibilityUpdate,
    user: CurrentUser,
    reconciler: Reconciler,
):
    try:
        return await reconciler.update_visibility(user.id, body.id, body.visibility)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.patch("/conversation/model", response_model=Conversation)
async def update_model(
    body: ModelUpdate,
    user: CurrentUser,
    reconciler: Reconciler,
):
    try:
        return await reconciler.update_model(user.id, body.id, body.model_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.get("/history", response_model=list[Conversation])
async def list_history(
    user: CurrentUser,
    reconciler: Reconciler,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Own conversations and public ones, newest first."""
    return await reconciler.list_history(user.id, limit=limit, offset=offset)
