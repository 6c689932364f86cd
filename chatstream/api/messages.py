"""
Message API endpoints.

Editing a message truncates the conversation after it.
"""

from fastapi import APIRouter, HTTPException, Query, Response, status

from chatstream.api.deps import CurrentUser, Reconciler
from chatstream.core.exceptions import AuthorizationError, NotFoundError
from chatstream.models.message import Message, MessageEditRequest, UIMessage

router = APIRouter()


@router.get("/conversation/message", response_model=list[UIMessage])
async def list_messages(
    user: CurrentUser,
    reconciler: Reconciler,
    conversation_id: str | None = Query(None, alias="conversationId"),
    include_system: bool = Query(False, alias="includeSystem"),
):
    """Materialized history, oldest first."""
    if not conversation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "conversationId is required", "missing": ["conversationId"]},
        )
    try:
        return await reconciler.list_messages(user.id, conversation_id, include_system=include_system)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.patch("/conversation/message", response_model=Message)
async def edit_message(
    body: MessageEditRequest,
    user: CurrentUser,
    reconciler: Reconciler,
):
    """Replace a message's content and delete every later message."""
    missing = [
        name
        for name, value in (
            ("id", body.id),
            ("conversationId", body.conversation_id),
            ("content", body.content),
        )
        if not value
    ]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": f"Missing required fields: {', '.join(missing)}", "missing": missing},
        )

    try:
        return await reconciler.edit_message(user.id, body.id, body.content)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.delete("/conversation/message", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    user: CurrentUser,
    reconciler: Reconciler,
    conversation_id: str | None = Query(None, alias="conversationId"),
    message_id: str | None = Query(None, alias="messageId"),
):
    """Delete a single message."""
    missing = [
        name
        for name, value in (("conversationId", conversation_id), ("messageId", message_id))
        if not value
    ]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": f"Missing required fields: {', '.join(missing)}", "missing": missing},
        )

    try:
        await reconciler.delete_message(user.id, conversation_id, message_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/conversation/message/trailing")
async def delete_trailing_messages(
    user: CurrentUser,
    reconciler: Reconciler,
    message_id: str = Query(..., alias="messageId"),
):
    """Delete every message after the given one (used before regenerating)."""
    try:
        deleted = await reconciler.delete_trailing_messages(user.id, message_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return {"deleted": deleted}
