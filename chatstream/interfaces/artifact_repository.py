"""
Artifact repository interface.

Artifacts are stored as append-only versions keyed by (id, created_at).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from chatstream.models.artifact import Artifact, ArtifactCreate, Suggestion, SuggestionCreate


class IArtifactRepository(ABC):
    """Abstract interface for artifact persistence."""

    @abstractmethod
    async def save_version(self, artifact_id: str, user_id: str, data: ArtifactCreate) -> Artifact:
        """
        Save a new version of an artifact.

        Args:
            artifact_id: Artifact ID (shared by all versions)
            user_id: Owner user ID
            data: Version fields

        Returns:
            Saved version
        """
        pass

    @abstractmethod
    async def get_latest(self, artifact_id: str) -> Optional[Artifact]:
        """Get the most recent version of an artifact."""
        pass

    @abstractmethod
    async def list_versions(self, artifact_id: str) -> list[Artifact]:
        """List all versions of an artifact, newest first."""
        pass

    @abstractmethod
    async def delete_versions_after(self, artifact_id: str, timestamp: datetime) -> int:
        """
        Delete versions created strictly after `timestamp`, together with
        their suggestions.

        Returns:
            Number of deleted versions
        """
        pass

    @abstractmethod
    async def save_suggestions(
        self,
        artifact: Artifact,
        user_id: str,
        suggestions: list[SuggestionCreate],
    ) -> list[Suggestion]:
        """Save suggestions bound to one artifact version."""
        pass

    @abstractmethod
    async def list_suggestions(self, artifact_id: str) -> list[Suggestion]:
        """List suggestions of an artifact across versions."""
        pass
