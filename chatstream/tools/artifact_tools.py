"""
Artifact tools exposed to the chat model.

Tools for creating and revising artifacts and requesting edit suggestions.
Each tool streams its artifact deltas onto the turn's data stream.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from chatstream.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from chatstream.core.logger import setup_logger
from chatstream.models.enums import ArtifactKind
from chatstream.services.artifact_service import ArtifactService
from chatstream.services.data_stream import DataStreamWriter

logger = setup_logger(__name__)


# ===========================================
# Tool Input Models
# ===========================================


class CreateDocumentInput(BaseModel):
    """Input for create_document tool."""

    title: str = Field(..., min_length=1, max_length=500, description="Document title")
    kind: ArtifactKind = Field(ArtifactKind.TEXT, description="text, code, sheet or image")


class UpdateDocumentInput(BaseModel):
    """Input for update_document tool."""

    id: str = Field(..., description="The ID of the document to update")
    description: str = Field(..., description="The description of changes that need to be made")


class RequestSuggestionsInput(BaseModel):
    """Input for request_suggestions tool."""

    id: str = Field(..., description="The ID of the document to get suggestions for")
    description: Optional[str] = Field(None, description="What the suggestions should focus on")


TOOL_SPECS: dict[str, tuple[type[BaseModel], str]] = {
    "create_document": (
        CreateDocumentInput,
        "Create a document for writing or content creation activities. The content is "
        "generated from the title and kind and shown to the user as it is written.",
    ),
    "update_document": (
        UpdateDocumentInput,
        "Update an existing document with the given description.",
    ),
    "request_suggestions": (
        RequestSuggestionsInput,
        "Request edit suggestions for an existing document.",
    ),
}


def tool_definitions() -> list[dict[str, Any]]:
    """OpenAI-format function definitions for every artifact tool."""
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": model.model_json_schema(),
            },
        }
        for name, (model, description) in TOOL_SPECS.items()
    ]


class ArtifactToolExecutor:
    """Executes artifact tool calls for one turn."""

    def __init__(self, artifact_service: ArtifactService, user_id: str, writer: DataStreamWriter):
        self._service = artifact_service
        self._user_id = user_id
        self._writer = writer

    async def execute(self, tool_name: str, args: dict[str, Any]) -> Any:
        """
        Run a tool and return its JSON-serializable result.

        Unknown tools, invalid arguments, missing or foreign documents and
        unsupported kinds become `{"error": ...}` results the model can react
        to. Upstream and rate limit failures propagate and abort the turn.
        """
        entry = TOOL_SPECS.get(tool_name)
        if entry is None:
            logger.warning(f"Model called unknown tool {tool_name}")
            return {"error": f"Unknown tool: {tool_name}"}

        model, _ = entry
        try:
            params = model.model_validate(args or {})
        except PydanticValidationError as e:
            return {"error": f"Invalid arguments for {tool_name}: {e.errors(include_url=False)}"}

        try:
            if isinstance(params, CreateDocumentInput):
                summary = await self._service.create_document(
                    self._user_id, params.title, params.kind, self._writer
                )
                return summary.model_dump(mode="json")
            if isinstance(params, UpdateDocumentInput):
                summary = await self._service.update_document(
                    self._user_id, params.id, params.description, self._writer
                )
                return summary.model_dump(mode="json")
            if isinstance(params, RequestSuggestionsInput):
                return await self._service.request_suggestions(
                    self._user_id, params.id, self._writer, description=params.description
                )
        except (NotFoundError, AuthorizationError, ValidationError) as e:
            return {"error": e.message}

        return {"error": f"Unhandled tool: {tool_name}"}
