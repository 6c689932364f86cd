"""
Attachment upload and text extraction.

Uploaded files are stored through the storage provider. Extraction runs
as a background job: the extracted text is stored beside the file as
`<blob>.json`, injected into the conversation as a system message, and
observers of the conversation are notified on the push channel.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import csv
import io
import json
import re
from io import BytesIO
from typing import Optional
from uuid import uuid4

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from chatstream.core.config import Settings, get_settings
from chatstream.core.exceptions import ValidationError
from chatstream.core.logger import setup_logger
from chatstream.interfaces.conversation_repository import IConversationRepository
from chatstream.interfaces.storage_provider import IStorageProvider
from chatstream.models.attachment import ExtractionResult, FileProcessRequest, FileUploadResponse
from chatstream.models.enums import ChannelEventType, MessageRole
from chatstream.models.message import MessageCreate
from chatstream.services.broadcast_registry import BroadcastRegistry
from chatstream.services.message_reconciler import DOCUMENT_CONTEXT_PREFIX
from chatstream.utils.datetime_utils import now_utc

logger = setup_logger(__name__)

PDF_MAX_PAGES = 50

TEXT_CONTENT_TYPES = {
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/json",
}

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """Decode `data:<mime>;base64,<payload>`. Raises ValidationError."""
    raw = (data_url or "").strip()
    if not raw.startswith("data:") or "," not in raw:
        raise ValidationError("Invalid data URL", missing=["dataUrl"])

    header, encoded = raw.split(",", 1)
    segments = [s.strip() for s in header[5:].split(";") if s.strip()]
    content_type = segments[0].lower() if segments and "/" in segments[0] else "application/octet-stream"
    if not any(s.lower() == "base64" for s in segments[1:]):
        raise ValidationError("Data URL must be base64 encoded", missing=["dataUrl"])

    try:
        return base64.b64decode(encoded, validate=True), content_type
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 payload: {e}", missing=["dataUrl"])


def extract_pdf_text(data: bytes) -> str:
    reader = PdfReader(BytesIO(data))
    chunks: list[str] = []
    for idx, page in enumerate(reader.pages[:PDF_MAX_PAGES]):
        page_text = (page.extract_text() or "").strip()
        if page_text:
            chunks.append(f"[Page {idx + 1}]\n{page_text}")
    return "\n\n".join(chunks)


def extract_text(data: bytes, content_type: str) -> str:
    """
    Extract plain text from an uploaded file.

    Supports PDF, plain text, markdown, CSV and JSON. Raises ValueError for
    unsupported types or unreadable content.
    """
    content_type = (content_type or "").split(";")[0].strip().lower()
    if content_type == "application/pdf":
        try:
            return extract_pdf_text(data)
        except PdfReadError as e:
            raise ValueError(f"Unreadable PDF: {e}") from e

    if content_type not in TEXT_CONTENT_TYPES:
        raise ValueError(f"Unsupported content type: {content_type}")

    text = data.decode("utf-8", errors="replace")
    if content_type == "application/json":
        try:
            return json.dumps(json.loads(text), ensure_ascii=False, indent=2)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e
    if content_type == "text/csv":
        rows = list(csv.reader(io.StringIO(text)))
        return "\n".join(" | ".join(cell.strip() for cell in row) for row in rows if row)
    return text


class AttachmentService:
    """Stores uploads and runs extraction jobs."""

    def __init__(
        self,
        storage: IStorageProvider,
        conversation_repo: IConversationRepository,
        registry: BroadcastRegistry,
        settings: Optional[Settings] = None,
    ):
        self._storage = storage
        self._repo = conversation_repo
        self._registry = registry
        self._settings = settings or get_settings()

    async def upload(self, conversation_id: str, filename: str, data_url: str) -> FileUploadResponse:
        """Store a data-URL upload under the conversation's prefix."""
        data, content_type = decode_data_url(data_url)
        safe_name = _SAFE_NAME.sub("_", filename).strip("._") or "file"
        blob_name = f"{conversation_id}/{uuid4().hex}-{safe_name}"
        await self._storage.upload(blob_name, data, content_type=content_type)
        logger.info(f"Stored upload {blob_name} ({len(data)} bytes)")
        return FileUploadResponse(
            blob_name=blob_name,
            content_type=content_type,
            original_filename=filename,
            size=len(data),
        )

    def validate_process_request(self, request: FileProcessRequest) -> None:
        missing = request.missing_fields()
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)

    async def process(self, request: FileProcessRequest) -> ExtractionResult:
        """
        Extract text from a stored upload.

        Always publishes `document-context-update-complete`; failures are
        reported on the event with `error` set rather than raised.
        """
        result = ExtractionResult(
            conversation_id=request.conversation_id,
            blob_name=request.blob_name,
            original_filename=request.original_filename,
        )
        try:
            data = await self._storage.download(request.blob_name)
            # pypdf parsing is CPU-bound
            text = await asyncio.to_thread(extract_text, data, request.content_type)
            text = text[: self._settings.MAX_TEXT_LENGTH]
            result.text = text

            await self._storage.upload(
                f"{request.blob_name}.json",
                json.dumps(
                    {
                        "originalFilename": request.original_filename,
                        "contentType": request.content_type,
                        "text": text,
                        "extractedAt": now_utc().isoformat(),
                    },
                    ensure_ascii=False,
                ).encode("utf-8"),
                content_type="application/json",
            )
            await self._repo.save_messages(
                request.conversation_id,
                [
                    MessageCreate(
                        id=str(uuid4()),
                        role=MessageRole.SYSTEM,
                        content=f"{DOCUMENT_CONTEXT_PREFIX} {request.original_filename}\n\n{text}",
                    )
                ],
            )
            logger.info(f"Extracted {len(text)} chars from {request.blob_name}")
        except Exception as e:
            logger.error(f"Extraction failed for {request.blob_name}: {e}")
            result.error = str(e) or type(e).__name__

        await self._registry.publish(
            request.conversation_id,
            {
                "type": ChannelEventType.DOCUMENT_CONTEXT_UPDATE_COMPLETE.value,
                "conversationId": request.conversation_id,
                "blobName": request.blob_name,
                "originalFilename": request.original_filename,
                "error": result.error,
                "timestamp": now_utc().isoformat(),
            },
        )
        return result
