"""
SQLite database configuration and ORM models.

This module defines the SQLAlchemy ORM models and database initialization.
"""

from datetime import datetime
from functools import lru_cache
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from chatstream.core.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


# ===========================================
# ORM Models
# ===========================================


class ConversationORM(Base):
    """Conversation ORM model."""

    __tablename__ = "conversations"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(200), nullable=False, default="New Chat")
    visibility = Column(String(10), nullable=False, default="private", index=True)
    model_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class MessageORM(Base):
    """Message ORM model. Content is a string or a list of typed parts."""

    __tablename__ = "messages"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid4()))
    conversation_id = Column(String(64), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    content = Column(JSON, nullable=False, default="")
    attachments = Column(JSON, nullable=True, default=list)
    created_at = Column(DateTime, nullable=False, index=True)


class ArtifactORM(Base):
    """Artifact version ORM model. (id, created_at) identifies a version."""

    __tablename__ = "artifacts"

    id = Column(String(64), primary_key=True)
    created_at = Column(DateTime, primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    kind = Column(String(10), nullable=False, default="text")
    content = Column(Text, nullable=True)


class SuggestionORM(Base):
    """Suggestion ORM model."""

    __tablename__ = "suggestions"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid4()))
    document_id = Column(String(64), nullable=False, index=True)
    document_created_at = Column(DateTime, nullable=False)
    user_id = Column(String(255), nullable=False)
    original_text = Column(Text, nullable=False)
    suggested_text = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_resolved = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class VoteORM(Base):
    """Vote ORM model."""

    __tablename__ = "votes"

    conversation_id = Column(String(64), primary_key=True)
    message_id = Column(String(64), primary_key=True)
    is_upvoted = Column(Boolean, nullable=False)


# ===========================================
# Engine / Session
# ===========================================


@lru_cache()
def get_engine():
    """Get async engine instance."""
    settings = get_settings()
    return create_async_engine(settings.DATABASE_URL, echo=False)


def get_session_factory():
    """Get async session factory."""
    engine = get_engine()
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Initialize database tables."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
