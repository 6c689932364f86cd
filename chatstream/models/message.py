"""
Message models.

Stored messages carry either plain text or an ordered list of typed parts.
UI messages are the materialized shape returned to clients, with tool
results merged into their originating invocations.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from chatstream.models.enums import MessageRole, ToolInvocationState


# ===========================================
# Content Parts
# ===========================================


class TextPart(BaseModel):
    """Plain text segment."""

    type: Literal["text"] = "text"
    text: str = ""


class ToolCallPart(BaseModel):
    """Tool invocation requested by the model."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str = Field(..., description="Invocation ID, unique within the message")
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    """Result of a tool invocation."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    result: Any = None


class ReasoningPart(BaseModel):
    """Model reasoning trace."""

    type: Literal["reasoning"] = "reasoning"
    reasoning: str = ""


MessagePart = Annotated[
    Union[TextPart, ToolCallPart, ToolResultPart, ReasoningPart],
    Field(discriminator="type"),
]

MessageContent = Union[str, list[MessagePart]]


class Attachment(BaseModel):
    """Reference to an uploaded file attached to a message."""

    url: str
    name: Optional[str] = None
    content_type: Optional[str] = None


# ===========================================
# Stored Messages
# ===========================================


class MessageBase(BaseModel):
    """Base message fields."""

    role: MessageRole
    content: MessageContent = ""
    attachments: list[Attachment] = Field(default_factory=list)


class MessageCreate(MessageBase):
    """Schema for creating a message. Timestamps are assigned by the repository."""

    id: Optional[str] = Field(None, description="Client or server generated ID")


class Message(MessageBase):
    """Persisted message."""

    id: str
    conversation_id: str = Field(..., description="Owning conversation")
    created_at: datetime


# ===========================================
# Requests
# ===========================================


class ClientMessage(BaseModel):
    """Message as sent by the client in a chat turn."""

    id: str
    role: MessageRole
    content: str = ""
    attachments: list[Attachment] = Field(default_factory=list)


class ChatTurnRequest(BaseModel):
    """Request body for POST /conversation."""

    id: str = Field(..., description="Conversation ID")
    messages: list[ClientMessage] = Field(default_factory=list)
    model_id: Optional[str] = Field(None, alias="modelId", description="Selected chat model")

    model_config = {"populate_by_name": True}


class MessageEditRequest(BaseModel):
    """Request body for PATCH /conversation/message."""

    id: Optional[str] = None
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    content: Optional[str] = None

    model_config = {"populate_by_name": True}


# ===========================================
# UI Messages
# ===========================================


class ToolInvocation(BaseModel):
    """Tool invocation merged with its result, when one exists."""

    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    state: ToolInvocationState = ToolInvocationState.CALL
    result: Any = None


class UIMessage(BaseModel):
    """Materialized message returned to clients."""

    id: str
    role: MessageRole
    content: str = ""
    reasoning: Optional[str] = None
    tool_invocations: list[ToolInvocation] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    created_at: datetime
