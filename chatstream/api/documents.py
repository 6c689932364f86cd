"""
Artifact (document) API endpoints.
"""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status

from chatstream.api.deps import Artifacts, CurrentUser
from chatstream.core.exceptions import AuthorizationError, NotFoundError
from chatstream.models.artifact import Artifact, ArtifactCreate, Suggestion

router = APIRouter()


@router.get("/document", response_model=list[Artifact])
async def list_document_versions(
    user: CurrentUser,
    artifacts: Artifacts,
    document_id: str = Query(..., alias="id"),
):
    """All versions of a document, newest first."""
    try:
        return await artifacts.list_versions(user.id, document_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.post("/document", response_model=Artifact)
async def save_document_version(
    body: ArtifactCreate,
    user: CurrentUser,
    artifacts: Artifacts,
    document_id: str = Query(..., alias="id"),
):
    """Save a user-edited version of a document."""
    try:
        return await artifacts.save_version(user.id, document_id, body)
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.delete("/document")
async def delete_document_versions_after(
    user: CurrentUser,
    artifacts: Artifacts,
    document_id: str = Query(..., alias="id"),
    timestamp: datetime = Query(...),
):
    """Delete versions newer than `timestamp` together with their suggestions."""
    try:
        deleted = await artifacts.delete_versions_after(user.id, document_id, timestamp)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return {"deleted": deleted}


@router.get("/suggestions", response_model=list[Suggestion])
async def list_suggestions(
    user: CurrentUser,
    artifacts: Artifacts,
    document_id: str = Query(..., alias="documentId"),
):
    try:
        return await artifacts.list_suggestions(user.id, document_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AuthorizationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
