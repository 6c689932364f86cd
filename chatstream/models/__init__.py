"""Pydantic models (schemas) for the application."""

from chatstream.models.enums import (
    ArtifactKind,
    ChannelEventType,
    DraftStatus,
    MessageRole,
    ToolInvocationState,
    Visibility,
    VoteType,
)
from chatstream.models.conversation import (
    Conversation,
    ConversationCreate,
    ModelUpdate,
    VisibilityUpdate,
    Vote,
    VoteRequest,
)
from chatstream.models.message import (
    Attachment,
    ChatTurnRequest,
    ClientMessage,
    Message,
    MessageCreate,
    MessageEditRequest,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolInvocation,
    ToolResultPart,
    UIMessage,
)
from chatstream.models.artifact import Artifact, ArtifactCreate, ArtifactSummary, Suggestion, SuggestionCreate

__all__ = [
    # Enums
    "ArtifactKind",
    "ChannelEventType",
    "DraftStatus",
    "MessageRole",
    "ToolInvocationState",
    "Visibility",
    "VoteType",
    # Conversation
    "Conversation",
    "ConversationCreate",
    "ModelUpdate",
    "VisibilityUpdate",
    "Vote",
    "VoteRequest",
    # Message
    "Attachment",
    "ChatTurnRequest",
    "ClientMessage",
    "Message",
    "MessageCreate",
    "MessageEditRequest",
    "ReasoningPart",
    "TextPart",
    "ToolCallPart",
    "ToolInvocation",
    "ToolResultPart",
    "UIMessage",
    # Artifact
    "Artifact",
    "ArtifactCreate",
    "ArtifactSummary",
    "Suggestion",
    "SuggestionCreate",
]
