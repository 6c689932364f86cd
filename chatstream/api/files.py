"""
File upload and extraction API endpoints.

Processing is asynchronous: the endpoint schedules an extraction job and
returns 202; completion is announced on the conversation's push channel.
"""

from fastapi import APIRouter, HTTPException, status

from chatstream.api.deps import Attachments, CurrentUser, JobRunner
from chatstream.core.exceptions import InfrastructureError, ValidationError
from chatstream.models.attachment import FileProcessRequest, FileUploadRequest, FileUploadResponse

router = APIRouter()


@router.post("/upload", response_model=FileUploadResponse, response_model_by_alias=True)
async def upload_file(
    body: FileUploadRequest,
    user: CurrentUser,
    attachments: Attachments,
):
    try:
        return await attachments.upload(body.conversation_id, body.filename, body.data_url)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "missing": e.missing},
        )
    except InfrastructureError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/process", status_code=status.HTTP_202_ACCEPTED)
async def process_file(
    body: FileProcessRequest,
    user: CurrentUser,
    attachments: Attachments,
    jobs: JobRunner,
):
    """Schedule text extraction for an uploaded file."""
    try:
        attachments.validate_process_request(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "missing": e.missing},
        )

    job_id = await jobs.submit("extract", attachments.process, body)
    return {"jobId": job_id, "status": "processing", "blobName": body.blob_name}
