"""Tools callable by the chat model."""

from chatstream.tools.artifact_tools import (
    ArtifactToolExecutor,
    CreateDocumentInput,
    RequestSuggestionsInput,
    UpdateDocumentInput,
    tool_definitions,
)

__all__ = [
    "ArtifactToolExecutor",
    "CreateDocumentInput",
    "RequestSuggestionsInput",
    "UpdateDocumentInput",
    "tool_definitions",
]
