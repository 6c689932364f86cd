"""
Unit tests for attachment upload and extraction.
"""

import base64
import json
import threading
from io import BytesIO

import pytest
from pypdf import PdfWriter

from chatstream.core.exceptions import ValidationError
from chatstream.infrastructure.local.storage_provider import LocalStorageProvider
from chatstream.models.attachment import FileProcessRequest
from chatstream.models.enums import MessageRole
from chatstream.services import attachment_service
from chatstream.services.attachment_service import AttachmentService, decode_data_url, extract_text
from chatstream.services.background_jobs import BackgroundJobRunner
from chatstream.services.broadcast_registry import BroadcastRegistry
from chatstream.services.message_reconciler import DOCUMENT_CONTEXT_PREFIX


def _data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode()}"


def _frames(channel) -> list:
    frames = []
    while not channel._queue.empty():
        frames.append(channel._queue.get_nowait())
    return frames


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(base_path=str(tmp_path))


@pytest.fixture
def registry():
    return BroadcastRegistry(heartbeat_interval=3600)


@pytest.fixture
def service(storage, conversation_repo, registry):
    return AttachmentService(storage, conversation_repo, registry)


# ===========================================
# Decoding and extraction
# ===========================================


class TestDecoding:
    def test_decode_data_url(self):
        data, mime = decode_data_url(_data_url(b"hello", "text/plain"))
        assert data == b"hello"
        assert mime == "text/plain"

    @pytest.mark.parametrize(
        "value",
        ["", "hello", "data:text/plain,hello", "data:text/plain;base64,@@@"],
    )
    def test_invalid_data_urls(self, value):
        with pytest.raises(ValidationError) as exc:
            decode_data_url(value)
        assert exc.value.missing == ["dataUrl"]

    def test_extract_csv(self):
        assert extract_text(b"a,b\n1, 2\n", "text/csv") == "a | b\n1 | 2"

    def test_extract_json_is_pretty_printed(self):
        assert extract_text(b'{"a":1}', "application/json; charset=utf-8") == '{\n  "a": 1\n}'

    def test_extract_pdf(self):
        writer = PdfWriter()
        writer.add_blank_page(width=72, height=72)
        buffer = BytesIO()
        writer.write(buffer)

        assert extract_text(buffer.getvalue(), "application/pdf") == ""

    def test_unsupported_type(self):
        with pytest.raises(ValueError):
            extract_text(b"\x00", "application/zip")


# ===========================================
# Service
# ===========================================


@pytest.mark.asyncio
async def test_upload_stores_under_conversation(service, storage):
    response = await service.upload("c1", "My Notes.txt", _data_url(b"notes", "text/plain"))

    assert response.blob_name.startswith("c1/")
    assert response.blob_name.endswith("My_Notes.txt")
    assert response.size == 5
    assert await storage.download(response.blob_name) == b"notes"


@pytest.mark.asyncio
async def test_process_request_lists_missing_fields(service):
    with pytest.raises(ValidationError) as exc:
        service.validate_process_request(FileProcessRequest(blobName="b", conversationId="c1"))
    assert exc.value.missing == ["contentType", "originalFilename"]


@pytest.mark.asyncio
async def test_process_extracts_and_notifies(service, storage, conversation_repo, registry):
    upload = await service.upload("c1", "notes.md", _data_url(b"# Title\nBody", "text/markdown"))
    channel = await registry.open_channel("c1")
    request = FileProcessRequest(
        blobName=upload.blob_name,
        contentType="text/markdown",
        originalFilename="notes.md",
        conversationId="c1",
    )

    await BackgroundJobRunner().submit("extract", service.process, request)

    stored = json.loads(await storage.download(f"{upload.blob_name}.json"))
    assert stored["text"] == "# Title\nBody"

    messages = await conversation_repo.list_messages("c1")
    assert messages[0].role == MessageRole.SYSTEM
    assert messages[0].content.startswith(f"{DOCUMENT_CONTEXT_PREFIX} notes.md")

    events = _frames(channel)
    assert events[-1]["type"] == "document-context-update-complete"
    assert events[-1]["error"] is None
    await registry.close_channel("c1", channel)


@pytest.mark.asyncio
async def test_failed_extraction_is_reported(service, conversation_repo, registry):
    channel = await registry.open_channel("c1")
    request = FileProcessRequest(
        blobName="c1/missing.pdf",
        contentType="application/pdf",
        originalFilename="missing.pdf",
        conversationId="c1",
    )

    result = await service.process(request)

    assert result.error
    assert await conversation_repo.list_messages("c1") == []
    assert _frames(channel)[-1]["error"] == result.error
    await registry.close_channel("c1", channel)


@pytest.mark.asyncio
async def test_extraction_runs_off_the_event_loop(service, monkeypatch):
    threads = []

    def recording_extract(data, content_type):
        threads.append(threading.get_ident())
        return data.decode()

    monkeypatch.setattr(attachment_service, "extract_text", recording_extract)
    upload = await service.upload("c1", "notes.txt", _data_url(b"plain", "text/plain"))
    request = FileProcessRequest(
        blobName=upload.blob_name,
        contentType="text/plain",
        originalFilename="notes.txt",
        conversationId="c1",
    )

    result = await service.process(request)

    assert result.text == "plain"
    assert threads and threads[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_storage_rejects_escaping_paths(storage):
    with pytest.raises(ValidationError):
        await storage.upload("../outside.txt", b"x")
