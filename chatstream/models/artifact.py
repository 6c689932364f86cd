"""
Artifact (generated document) and suggestion models.

Artifacts are append-only versions keyed by (id, created_at); the current
version is the most recent one.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from chatstream.models.enums import ArtifactKind


class ArtifactBase(BaseModel):
    """Base artifact fields."""

    title: str = Field(..., max_length=500)
    kind: ArtifactKind = ArtifactKind.TEXT
    content: Optional[str] = Field(None, description="Payload, encoding depends on kind")


class ArtifactCreate(ArtifactBase):
    """Schema for saving a new artifact version."""

    pass


class Artifact(ArtifactBase):
    """A single artifact version."""

    id: str
    user_id: str
    created_at: datetime


class ArtifactSummary(BaseModel):
    """Tool result shape for artifact-producing tools."""

    id: str
    title: str
    kind: ArtifactKind
    content: Optional[str] = None


class SuggestionCreate(BaseModel):
    """Schema for creating an edit suggestion."""

    original_text: str
    suggested_text: str
    description: Optional[str] = None


class Suggestion(SuggestionCreate):
    """Edit suggestion bound to one artifact version."""

    id: str
    document_id: str
    document_created_at: datetime
    user_id: str
    is_resolved: bool = False
    created_at: datetime
