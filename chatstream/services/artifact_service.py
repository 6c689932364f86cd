"""
Artifact generation and versioning.

Document handlers generate artifact content through the gated LLM and
stream it to the caller as delta frames while it is produced. Every
completed generation is saved as a new artifact version.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import uuid4

from chatstream.core.config import Settings, get_settings
from chatstream.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from chatstream.core.logger import setup_logger
from chatstream.interfaces.artifact_repository import IArtifactRepository
from chatstream.interfaces.llm_provider import TextChunk
from chatstream.models.artifact import Artifact, ArtifactCreate, ArtifactSummary, Suggestion, SuggestionCreate
from chatstream.models.delta import (
    ClearDelta,
    CodeDelta,
    FinishDelta,
    IdDelta,
    ImageDelta,
    KindDelta,
    SheetDelta,
    SuggestionDelta,
    SuggestionPayload,
    TextDelta,
    TitleDelta,
)
from chatstream.models.enums import ArtifactKind
from chatstream.services.data_stream import DataStreamWriter
from chatstream.services.gated_llm import GatedLLM

logger = setup_logger(__name__)

MAX_SUGGESTIONS = 5

SUGGESTION_PROMPT = (
    "You are a helpful writing assistant. Given a piece of writing, offer suggestions "
    "to improve it and describe each change. Every edit must contain full sentences "
    f"instead of single words. At most {MAX_SUGGESTIONS} suggestions. Respond with a JSON "
    'array of objects with keys "originalSentence", "suggestedSentence" and "description".'
)

_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")


def update_document_prompt(content: str, kind: ArtifactKind) -> str:
    """System prompt for revising an existing artifact."""
    if kind == ArtifactKind.CODE:
        intro = "Improve the following code snippet based on the given prompt."
    elif kind == ArtifactKind.SHEET:
        intro = "Improve the following spreadsheet (CSV) based on the given prompt."
    else:
        intro = "Improve the following contents of the document based on the given prompt."
    return f"{intro}\n\n{content}"


# ===========================================
# Document Handlers
# ===========================================


class DocumentHandler(ABC):
    """Generates content for one artifact kind."""

    kind: ArtifactKind

    def __init__(self, llm: GatedLLM, settings: Settings):
        self._llm = llm
        self._settings = settings

    @abstractmethod
    async def on_create(self, title: str, writer: DataStreamWriter) -> str:
        """Generate initial content from a title. Returns the final content."""
        pass

    @abstractmethod
    async def on_update(self, artifact: Artifact, description: str, writer: DataStreamWriter) -> str:
        """Revise existing content. Returns the final content."""
        pass


class StreamingTextHandler(DocumentHandler):
    """Streams appended fragments (text and code kinds)."""

    kind = ArtifactKind.TEXT
    delta_type: type = TextDelta
    create_prompt = (
        "You are a text generator. Write well-structured, engaging content about the "
        "given title. Use markdown formatting where appropriate."
    )

    async def _stream(self, system: str, prompt: str, writer: DataStreamWriter) -> str:
        stream = await self._llm.open_stream(
            self._settings.ARTIFACT_MODEL,
            [{"role": "user", "content": prompt}],
            system=system,
        )
        draft = ""
        try:
            async for event in stream:
                if isinstance(event, TextChunk) and event.text:
                    draft += event.text
                    writer.write_delta(self.delta_type(content=event.text))
        finally:
            await stream.aclose()
        return draft

    async def on_create(self, title: str, writer: DataStreamWriter) -> str:
        return await self._stream(self.create_prompt, title, writer)

    async def on_update(self, artifact: Artifact, description: str, writer: DataStreamWriter) -> str:
        return await self._stream(update_document_prompt(artifact.content or "", self.kind), description, writer)


class CodeHandler(StreamingTextHandler):
    kind = ArtifactKind.CODE
    delta_type = CodeDelta
    create_prompt = (
        "You are a Python code generator. Write a single self-contained, runnable "
        "snippet for the given title. Output only code, without markdown fences."
    )


class SheetHandler(DocumentHandler):
    """Emits whole CSV snapshots, one per completed line."""

    kind = ArtifactKind.SHEET
    create_prompt = (
        "You are a spreadsheet generator. Produce CSV data for the given title, "
        "with a header row. Output only CSV."
    )

    async def _stream(self, system: str, prompt: str, writer: DataStreamWriter) -> str:
        stream = await self._llm.open_stream(
            self._settings.ARTIFACT_MODEL,
            [{"role": "user", "content": prompt}],
            system=system,
        )
        draft = ""
        emitted = ""
        try:
            async for event in stream:
                if not isinstance(event, TextChunk) or not event.text:
                    continue
                draft += event.text
                if "\n" in event.text:
                    emitted = draft[: draft.rfind("\n")]
                    writer.write_delta(SheetDelta(content=emitted))
        finally:
            await stream.aclose()
        draft = _FENCE.sub("", draft.strip())
        if draft != emitted:
            writer.write_delta(SheetDelta(content=draft))
        return draft

    async def on_create(self, title: str, writer: DataStreamWriter) -> str:
        return await self._stream(self.create_prompt, title, writer)

    async def on_update(self, artifact: Artifact, description: str, writer: DataStreamWriter) -> str:
        return await self._stream(update_document_prompt(artifact.content or "", self.kind), description, writer)


class ImageHandler(DocumentHandler):
    """Emits a single base64 image snapshot."""

    kind = ArtifactKind.IMAGE

    async def _generate(self, prompt: str, writer: DataStreamWriter) -> str:
        image = await self._llm.generate_image(self._settings.IMAGE_MODEL, prompt)
        writer.write_delta(ImageDelta(content=image.b64_data))
        return image.b64_data

    async def on_create(self, title: str, writer: DataStreamWriter) -> str:
        return await self._generate(title, writer)

    async def on_update(self, artifact: Artifact, description: str, writer: DataStreamWriter) -> str:
        return await self._generate(description, writer)


HANDLER_CLASSES: dict[ArtifactKind, type[DocumentHandler]] = {
    ArtifactKind.TEXT: StreamingTextHandler,
    ArtifactKind.CODE: CodeHandler,
    ArtifactKind.SHEET: SheetHandler,
    ArtifactKind.IMAGE: ImageHandler,
}


def _parse_suggestions(raw: str) -> list[SuggestionCreate]:
    text = _FENCE.sub("", raw.strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Suggestion output was not valid JSON")
        return []
    if isinstance(data, dict):
        data = data.get("suggestions", [])
    suggestions = []
    for item in data if isinstance(data, list) else []:
        if not isinstance(item, dict):
            continue
        original = item.get("originalSentence")
        suggested = item.get("suggestedSentence")
        if not original or not suggested:
            continue
        suggestions.append(
            SuggestionCreate(
                original_text=str(original),
                suggested_text=str(suggested),
                description=str(item.get("description") or ""),
            )
        )
    return suggestions[:MAX_SUGGESTIONS]


# ===========================================
# Service
# ===========================================


class ArtifactService:
    """Artifact tools and version management."""

    def __init__(
        self,
        llm: GatedLLM,
        artifact_repo: IArtifactRepository,
        settings: Optional[Settings] = None,
    ):
        self._llm = llm
        self._repo = artifact_repo
        self._settings = settings or get_settings()
        self._handlers = {kind: cls(llm, self._settings) for kind, cls in HANDLER_CLASSES.items()}

    def _check_supported(self, kind: ArtifactKind) -> None:
        if kind == ArtifactKind.IMAGE and not self._llm.provider.supports_image_generation():
            raise ValidationError("Image generation is not supported by the configured provider", missing=[])

    def _announce(self, writer: DataStreamWriter, artifact_id: str, title: str, kind: ArtifactKind) -> None:
        writer.write_delta(IdDelta(content=artifact_id))
        writer.write_delta(TitleDelta(content=title))
        writer.write_delta(KindDelta(content=kind))
        writer.write_delta(ClearDelta())

    async def create_document(
        self,
        user_id: str,
        title: str,
        kind: ArtifactKind,
        writer: DataStreamWriter,
    ) -> ArtifactSummary:
        """Generate a new artifact, streaming its deltas."""
        artifact_id = str(uuid4())
        self._check_supported(kind)
        self._announce(writer, artifact_id, title, kind)

        content = await self._handlers[kind].on_create(title, writer)
        await self._repo.save_version(artifact_id, user_id, ArtifactCreate(title=title, kind=kind, content=content))
        writer.write_delta(FinishDelta())

        logger.info(f"Created {kind.value} artifact {artifact_id} for {user_id}")
        return ArtifactSummary(
            id=artifact_id,
            title=title,
            kind=kind,
            content="A document was created and is now visible to the user.",
        )

    async def update_document(
        self,
        user_id: str,
        artifact_id: str,
        description: str,
        writer: DataStreamWriter,
    ) -> ArtifactSummary:
        """Revise an artifact, streaming its deltas. Raises NotFoundError and AuthorizationError."""
        artifact = (await self._owned_versions(user_id, artifact_id))[0]

        self._check_supported(artifact.kind)
        self._announce(writer, artifact.id, artifact.title, artifact.kind)
        content = await self._handlers[artifact.kind].on_update(artifact, description, writer)
        await self._repo.save_version(
            artifact.id,
            user_id,
            ArtifactCreate(title=artifact.title, kind=artifact.kind, content=content),
        )
        writer.write_delta(FinishDelta())

        return ArtifactSummary(
            id=artifact.id,
            title=artifact.title,
            kind=artifact.kind,
            content="The document has been updated successfully.",
        )

    async def request_suggestions(
        self,
        user_id: str,
        artifact_id: str,
        writer: DataStreamWriter,
        description: Optional[str] = None,
    ) -> dict[str, Any]:
        """Generate edit suggestions for the current version. Raises NotFoundError and AuthorizationError."""
        artifact = (await self._owned_versions(user_id, artifact_id))[0]

        prompt = artifact.content or ""
        if description:
            prompt = f"{description}\n\n{prompt}"
        generated = await self._llm.generate_text(
            self._settings.ARTIFACT_MODEL,
            prompt,
            system=SUGGESTION_PROMPT,
            max_tokens=1500,
        )
        saved = await self._repo.save_suggestions(artifact, user_id, _parse_suggestions(generated.text))
        for suggestion in saved:
            writer.write_delta(
                SuggestionDelta(
                    content=SuggestionPayload(
                        id=suggestion.id,
                        document_id=suggestion.document_id,
                        original_text=suggestion.original_text,
                        suggested_text=suggestion.suggested_text,
                        description=suggestion.description,
                    )
                )
            )
        writer.write_delta(FinishDelta())

        return {
            "id": artifact.id,
            "title": artifact.title,
            "kind": artifact.kind.value,
            "message": f"{len(saved)} suggestions have been added to the document.",
        }

    # ===========================================
    # Versions
    # ===========================================

    async def _owned_versions(self, user_id: str, artifact_id: str) -> list[Artifact]:
        versions = await self._repo.list_versions(artifact_id)
        if not versions:
            raise NotFoundError(f"Document {artifact_id} not found")
        # The author of the first version owns the document
        if versions[-1].user_id != user_id:
            raise AuthorizationError("Not the owner of this document")
        return versions

    async def list_versions(self, user_id: str, artifact_id: str) -> list[Artifact]:
        """All versions, newest first."""
        return await self._owned_versions(user_id, artifact_id)

    async def save_version(self, user_id: str, artifact_id: str, data: ArtifactCreate) -> Artifact:
        """Save a user-edited version. New artifact IDs are accepted."""
        versions = await self._repo.list_versions(artifact_id)
        if versions and versions[-1].user_id != user_id:
            raise AuthorizationError("Not the owner of this document")
        return await self._repo.save_version(artifact_id, user_id, data)

    async def delete_versions_after(self, user_id: str, artifact_id: str, timestamp) -> int:
        """Delete versions (and their suggestions) newer than `timestamp`."""
        await self._owned_versions(user_id, artifact_id)
        return await self._repo.delete_versions_after(artifact_id, timestamp)

    async def list_suggestions(self, user_id: str, artifact_id: str) -> list[Suggestion]:
        await self._owned_versions(user_id, artifact_id)
        return await self._repo.list_suggestions(artifact_id)
