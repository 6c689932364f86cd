"""
Message vote API endpoints.
"""

from fastapi import APIRouter, HTTPException, Query, status

from chatstream.api.deps import CurrentUser, Reconciler
from chatstream.core.exceptions import AuthorizationError, NotFoundError
from chatstream.models.conversation import Vote, VoteRequest
from chatstream.models.enums import VoteType

router = APIRouter()


@router.get("/vote", response_model=list[Vote])
async def list_votes(
    user: CurrentUser,
    reconciler: Reconciler,
    conversation_id: str = Query(..., alias="conversationId"),
):
    try:
        return await reconciler.list_votes(user.id, conversation_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.patch("/vote", response_model=Vote)
async def vote_message(
    body: VoteRequest,
    user: CurrentUser,
    reconciler: Reconciler,
):
    """Up- or down-vote an assistant message."""
    missing = [
        name
        for name, value in (
            ("conversationId", body.conversation_id),
            ("messageId", body.message_id),
            ("type", body.type),
        )
        if not value
    ]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": f"Missing required fields: {', '.join(missing)}", "missing": missing},
        )

    try:
        return await reconciler.vote_message(
            user.id, body.conversation_id, body.message_id, body.type == VoteType.UP
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
