"""
Conversation and vote models.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from chatstream.models.enums import Visibility, VoteType


class ConversationBase(BaseModel):
    """Base conversation fields."""

    title: str = Field("New Chat", max_length=200, description="Conversation title")
    visibility: Visibility = Visibility.PRIVATE
    model_id: Optional[str] = Field(None, description="Selected chat model identifier")


class ConversationCreate(ConversationBase):
    """Schema for creating a conversation."""

    id: str


class Conversation(ConversationBase):
    """Conversation model."""

    id: str
    user_id: str = Field(..., description="Owner user ID")
    created_at: datetime


class VisibilityUpdate(BaseModel):
    """Request body for PATCH /conversation/visibility."""

    id: str
    visibility: Visibility


class ModelUpdate(BaseModel):
    """Request body for PATCH /conversation/model."""

    id: str
    model_id: str = Field(..., alias="modelId")

    model_config = {"populate_by_name": True}


class Vote(BaseModel):
    """Per-message feedback."""

    conversation_id: str
    message_id: str
    is_upvoted: bool


class VoteRequest(BaseModel):
    """Request body for PATCH /vote."""

    conversation_id: Optional[str] = Field(None, alias="conversationId")
    message_id: Optional[str] = Field(None, alias="messageId")
    type: Optional[VoteType] = None

    model_config = {"populate_by_name": True}
