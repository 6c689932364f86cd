"""
SQLite implementation of the artifact repository.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from sqlalchemy import and_, delete, func, select

from chatstream.infrastructure.local.database import ArtifactORM, SuggestionORM, get_session_factory
from chatstream.interfaces.artifact_repository import IArtifactRepository
from chatstream.models.artifact import Artifact, ArtifactCreate, Suggestion, SuggestionCreate
from chatstream.models.enums import ArtifactKind
from chatstream.utils.datetime_utils import ensure_utc, now_utc, to_naive_utc

_TICK = timedelta(microseconds=1)


class SqliteArtifactRepository(IArtifactRepository):
    """SQLite implementation of artifact repository."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()

    def _orm_to_model(self, orm: ArtifactORM) -> Artifact:
        """Convert ORM object to Pydantic model."""
        return Artifact(
            id=orm.id,
            user_id=orm.user_id,
            title=orm.title,
            kind=ArtifactKind(orm.kind),
            content=orm.content,
            created_at=ensure_utc(orm.created_at),
        )

    def _suggestion_orm_to_model(self, orm: SuggestionORM) -> Suggestion:
        """Convert suggestion ORM object to Pydantic model."""
        return Suggestion(
            id=orm.id,
            document_id=orm.document_id,
            document_created_at=ensure_utc(orm.document_created_at),
            user_id=orm.user_id,
            original_text=orm.original_text,
            suggested_text=orm.suggested_text,
            description=orm.description,
            is_resolved=bool(orm.is_resolved),
            created_at=ensure_utc(orm.created_at),
        )

    async def save_version(self, artifact_id: str, user_id: str, data: ArtifactCreate) -> Artifact:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.max(ArtifactORM.created_at)).where(ArtifactORM.id == artifact_id)
            )
            latest = result.scalar_one_or_none()
            timestamp = to_naive_utc(now_utc())
            # Versions of one artifact never share a timestamp
            if latest is not None and timestamp <= latest:
                timestamp = latest + _TICK

            orm = ArtifactORM(
                id=artifact_id,
                created_at=timestamp,
                user_id=user_id,
                title=data.title,
                kind=data.kind.value,
                content=data.content,
            )
            session.add(orm)
            await session.commit()
            return self._orm_to_model(orm)

    async def get_latest(self, artifact_id: str) -> Optional[Artifact]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ArtifactORM)
                .where(ArtifactORM.id == artifact_id)
                .order_by(ArtifactORM.created_at.desc())
                .limit(1)
            )
            orm = result.scalar_one_or_none()
            return self._orm_to_model(orm) if orm else None

    async def list_versions(self, artifact_id: str) -> list[Artifact]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ArtifactORM)
                .where(ArtifactORM.id == artifact_id)
                .order_by(ArtifactORM.created_at.desc())
            )
            return [self._orm_to_model(orm) for orm in result.scalars().all()]

    async def delete_versions_after(self, artifact_id: str, timestamp: datetime) -> int:
        cutoff = to_naive_utc(timestamp)
        async with self._session_factory() as session:
            await session.execute(
                delete(SuggestionORM).where(
                    and_(
                        SuggestionORM.document_id == artifact_id,
                        SuggestionORM.document_created_at > cutoff,
                    )
                )
            )
            result = await session.execute(
                delete(ArtifactORM).where(
                    and_(
                        ArtifactORM.id == artifact_id,
                        ArtifactORM.created_at > cutoff,
                    )
                )
            )
            await session.commit()
            return result.rowcount or 0

    async def save_suggestions(
        self,
        artifact: Artifact,
        user_id: str,
        suggestions: list[SuggestionCreate],
    ) -> list[Suggestion]:
        if not suggestions:
            return []
        async with self._session_factory() as session:
            orms = []
            for suggestion in suggestions:
                orm = SuggestionORM(
                    id=str(uuid4()),
                    document_id=artifact.id,
                    document_created_at=to_naive_utc(artifact.created_at),
                    user_id=user_id,
                    original_text=suggestion.original_text,
                    suggested_text=suggestion.suggested_text,
                    description=suggestion.description,
                    is_resolved=False,
                    created_at=to_naive_utc(now_utc()),
                )
                session.add(orm)
                orms.append(orm)
            await session.commit()
            return [self._suggestion_orm_to_model(orm) for orm in orms]

    async def list_suggestions(self, artifact_id: str) -> list[Suggestion]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SuggestionORM)
                .where(SuggestionORM.document_id == artifact_id)
                .order_by(SuggestionORM.created_at.asc())
            )
            return [self._suggestion_orm_to_model(orm) for orm in result.scalars().all()]
