"""
SQLite implementation of the conversation repository.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import and_, delete, func, or_, select

from chatstream.infrastructure.local.database import (
    ConversationORM,
    MessageORM,
    VoteORM,
    get_session_factory,
)
from chatstream.interfaces.conversation_repository import IConversationRepository
from chatstream.models.conversation import Conversation, ConversationCreate, Vote
from chatstream.models.enums import Visibility
from chatstream.models.message import Message, MessageContent, MessageCreate
from chatstream.utils.datetime_utils import ensure_utc, now_utc, to_naive_utc

_TICK = timedelta(microseconds=1)


def _dump_content(content: MessageContent) -> Any:
    if isinstance(content, str):
        return content
    return [part.model_dump(mode="json") for part in content]


class SqliteConversationRepository(IConversationRepository):
    """SQLite implementation of conversation repository."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()
        # Serializes read-max-then-insert per conversation
        self._save_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _conversation_orm_to_model(self, orm: ConversationORM) -> Conversation:
        """Convert conversation ORM object to Pydantic model."""
        return Conversation(
            id=orm.id,
            user_id=orm.user_id,
            title=orm.title or "New Chat",
            visibility=Visibility(orm.visibility or Visibility.PRIVATE.value),
            model_id=orm.model_id,
            created_at=ensure_utc(orm.created_at),
        )

    def _message_orm_to_model(self, orm: MessageORM) -> Message:
        """Convert message ORM object to Pydantic model."""
        return Message(
            id=orm.id,
            conversation_id=orm.conversation_id,
            role=orm.role,
            content=orm.content if orm.content is not None else "",
            attachments=orm.attachments or [],
            created_at=ensure_utc(orm.created_at),
        )

    # ===========================================
    # Conversations
    # ===========================================

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        async with self._session_factory() as session:
            orm = await session.get(ConversationORM, conversation_id)
            return self._conversation_orm_to_model(orm) if orm else None

    async def create_conversation(self, user_id: str, data: ConversationCreate) -> Conversation:
        async with self._session_factory() as session:
            orm = ConversationORM(
                id=data.id,
                user_id=user_id,
                title=data.title,
                visibility=data.visibility.value,
                model_id=data.model_id,
                created_at=to_naive_utc(now_utc()),
            )
            session.add(orm)
            await session.commit()
            await session.refresh(orm)
            return self._conversation_orm_to_model(orm)

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self._session_factory() as session:
            orm = await session.get(ConversationORM, conversation_id)
            if not orm:
                return False
            await session.execute(delete(VoteORM).where(VoteORM.conversation_id == conversation_id))
            await session.execute(delete(MessageORM).where(MessageORM.conversation_id == conversation_id))
            await session.delete(orm)
            await session.commit()
            return True

    async def update_visibility(
        self,
        conversation_id: str,
        visibility: Visibility,
    ) -> Optional[Conversation]:
        async with self._session_factory() as session:
            orm = await session.get(ConversationORM, conversation_id)
            if not orm:
                return None
            orm.visibility = visibility.value
            await session.commit()
            await session.refresh(orm)
            return self._conversation_orm_to_model(orm)

    async def update_model(self, conversation_id: str, model_id: str) -> Optional[Conversation]:
        async with self._session_factory() as session:
            orm = await session.get(ConversationORM, conversation_id)
            if not orm:
                return None
            orm.model_id = model_id
            await session.commit()
            await session.refresh(orm)
            return self._conversation_orm_to_model(orm)

    async def list_conversations(
        self,
        user_id: str,
        include_public: bool = True,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Conversation]:
        async with self._session_factory() as session:
            condition = ConversationORM.user_id == user_id
            if include_public:
                condition = or_(condition, ConversationORM.visibility == Visibility.PUBLIC.value)
            query = (
                select(ConversationORM)
                .where(condition)
                .order_by(ConversationORM.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            result = await session.execute(query)
            return [self._conversation_orm_to_model(orm) for orm in result.scalars().all()]

    # ===========================================
    # Messages
    # ===========================================

    async def save_messages(
        self,
        conversation_id: str,
        messages: list[MessageCreate],
        created_at: Optional[datetime] = None,
    ) -> list[Message]:
        if not messages:
            return []
        async with self._save_locks[conversation_id], self._session_factory() as session:
            result = await session.execute(
                select(func.max(MessageORM.created_at)).where(
                    MessageORM.conversation_id == conversation_id
                )
            )
            latest = result.scalar_one_or_none()
            timestamp = to_naive_utc(created_at or now_utc())

            orms = []
            for message in messages:
                if latest is not None and timestamp <= latest:
                    timestamp = latest + _TICK
                orm = MessageORM(
                    id=message.id or str(uuid4()),
                    conversation_id=conversation_id,
                    role=message.role.value,
                    content=_dump_content(message.content),
                    attachments=[a.model_dump(mode="json") for a in message.attachments],
                    created_at=timestamp,
                )
                session.add(orm)
                orms.append(orm)
                latest = timestamp

            await session.commit()
            return [self._message_orm_to_model(orm) for orm in orms]

    async def get_message(self, message_id: str) -> Optional[Message]:
        async with self._session_factory() as session:
            orm = await session.get(MessageORM, message_id)
            return self._message_orm_to_model(orm) if orm else None

    async def list_messages(self, conversation_id: str) -> list[Message]:
        async with self._session_factory() as session:
            query = (
                select(MessageORM)
                .where(MessageORM.conversation_id == conversation_id)
                .order_by(MessageORM.created_at.asc())
            )
            result = await session.execute(query)
            return [self._message_orm_to_model(orm) for orm in result.scalars().all()]

    async def update_message_content(
        self,
        message_id: str,
        content: MessageContent,
    ) -> Optional[Message]:
        async with self._session_factory() as session:
            orm = await session.get(MessageORM, message_id)
            if not orm:
                return None
            orm.content = _dump_content(content)
            await session.commit()
            await session.refresh(orm)
            return self._message_orm_to_model(orm)

    async def delete_messages_after(self, conversation_id: str, timestamp: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(MessageORM).where(
                    and_(
                        MessageORM.conversation_id == conversation_id,
                        MessageORM.created_at > to_naive_utc(timestamp),
                    )
                )
            )
            await session.commit()
            return result.rowcount or 0

    async def delete_message(self, conversation_id: str, message_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(MessageORM).where(
                    and_(
                        MessageORM.conversation_id == conversation_id,
                        MessageORM.id == message_id,
                    )
                )
            )
            await session.commit()
            return bool(result.rowcount)

    # ===========================================
    # Votes
    # ===========================================

    async def vote_message(self, conversation_id: str, message_id: str, is_upvoted: bool) -> Vote:
        async with self._session_factory() as session:
            orm = await session.get(VoteORM, (conversation_id, message_id))
            if orm:
                orm.is_upvoted = is_upvoted
            else:
                orm = VoteORM(
                    conversation_id=conversation_id,
                    message_id=message_id,
                    is_upvoted=is_upvoted,
                )
                session.add(orm)
            await session.commit()
            return Vote(
                conversation_id=orm.conversation_id,
                message_id=orm.message_id,
                is_upvoted=orm.is_upvoted,
            )

    async def list_votes(self, conversation_id: str) -> list[Vote]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(VoteORM).where(VoteORM.conversation_id == conversation_id)
            )
            return [
                Vote(
                    conversation_id=orm.conversation_id,
                    message_id=orm.message_id,
                    is_upvoted=orm.is_upvoted,
                )
                for orm in result.scalars().all()
            ]
