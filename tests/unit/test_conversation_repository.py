"""
Unit tests for Conversation Repository.
"""

import asyncio
from datetime import timedelta

import pytest

from chatstream.models.conversation import ConversationCreate
from chatstream.models.enums import MessageRole, Visibility
from chatstream.models.message import MessageCreate, TextPart, ToolCallPart
from chatstream.utils.datetime_utils import now_utc


def _user(text: str, message_id: str | None = None) -> MessageCreate:
    return MessageCreate(id=message_id, role=MessageRole.USER, content=text)


@pytest.mark.asyncio
async def test_create_and_get_conversation(conversation_repo):
    created = await conversation_repo.create_conversation(
        "user-1", ConversationCreate(id="c1", title="Hello", model_id="chat-model-small")
    )

    fetched = await conversation_repo.get_conversation("c1")

    assert fetched == created
    assert fetched.user_id == "user-1"
    assert fetched.visibility == Visibility.PRIVATE
    assert fetched.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_get_missing_conversation(conversation_repo):
    assert await conversation_repo.get_conversation("missing") is None


@pytest.mark.asyncio
async def test_history_includes_public_conversations(conversation_repo):
    await conversation_repo.create_conversation("user-1", ConversationCreate(id="mine"))
    await conversation_repo.create_conversation("user-2", ConversationCreate(id="theirs"))
    await conversation_repo.create_conversation(
        "user-2", ConversationCreate(id="shared", visibility=Visibility.PUBLIC)
    )

    history = await conversation_repo.list_conversations("user-1")
    own_only = await conversation_repo.list_conversations("user-1", include_public=False)

    assert {c.id for c in history} == {"mine", "shared"}
    assert [c.id for c in own_only] == ["mine"]


@pytest.mark.asyncio
async def test_saved_messages_have_increasing_timestamps(conversation_repo):
    fixed = now_utc()
    first = await conversation_repo.save_messages("c1", [_user("a"), _user("b")], created_at=fixed)
    second = await conversation_repo.save_messages("c1", [_user("c")], created_at=fixed)

    stamps = [m.created_at for m in first + second]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 3

    listed = await conversation_repo.list_messages("c1")
    assert [m.content for m in listed] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_concurrent_saves_never_share_a_timestamp(tmp_path):
    from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
    from sqlalchemy.orm import sessionmaker

    from chatstream.infrastructure.local.conversation_repository import SqliteConversationRepository
    from chatstream.infrastructure.local.database import Base

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    repo = SqliteConversationRepository(sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    fixed = now_utc()

    try:
        batches = await asyncio.gather(
            repo.save_messages("c1", [_user("turn"), _user("reply")], created_at=fixed),
            repo.save_messages("c1", [_user("document context")], created_at=fixed),
        )
    finally:
        await engine.dispose()

    stamps = [m.created_at for batch in batches for m in batch]
    assert len(set(stamps)) == 3


@pytest.mark.asyncio
async def test_structured_content_survives_storage(conversation_repo):
    parts = [
        TextPart(text="Creating it"),
        ToolCallPart(tool_call_id="t1", tool_name="create_document", args={"title": "x"}),
    ]
    await conversation_repo.save_messages(
        "c1", [MessageCreate(id="m1", role=MessageRole.ASSISTANT, content=parts)]
    )

    message = await conversation_repo.get_message("m1")

    assert message.content == parts


@pytest.mark.asyncio
async def test_delete_messages_after_is_strict(conversation_repo):
    saved = await conversation_repo.save_messages(
        "c1", [_user("a", "m1"), _user("b", "m2"), _user("c", "m3")]
    )

    removed = await conversation_repo.delete_messages_after("c1", saved[0].created_at)

    assert removed == 2
    assert [m.id for m in await conversation_repo.list_messages("c1")] == ["m1"]


@pytest.mark.asyncio
async def test_delete_messages_after_scoped_to_conversation(conversation_repo):
    await conversation_repo.save_messages("c1", [_user("a", "m1")])
    await conversation_repo.save_messages("c2", [_user("b", "m2")])

    await conversation_repo.delete_messages_after("c1", now_utc() - timedelta(days=1))

    assert await conversation_repo.get_message("m1") is None
    assert await conversation_repo.get_message("m2") is not None


@pytest.mark.asyncio
async def test_update_message_content_keeps_identity(conversation_repo):
    saved = await conversation_repo.save_messages("c1", [_user("before", "m1")])

    updated = await conversation_repo.update_message_content("m1", "after")

    assert updated.content == "after"
    assert updated.role == MessageRole.USER
    assert updated.conversation_id == "c1"
    assert updated.created_at == saved[0].created_at


@pytest.mark.asyncio
async def test_delete_conversation_removes_messages_and_votes(conversation_repo):
    await conversation_repo.create_conversation("user-1", ConversationCreate(id="c1"))
    await conversation_repo.save_messages("c1", [_user("a", "m1")])
    await conversation_repo.vote_message("c1", "m1", True)

    assert await conversation_repo.delete_conversation("c1") is True
    assert await conversation_repo.delete_conversation("c1") is False
    assert await conversation_repo.list_messages("c1") == []
    assert await conversation_repo.list_votes("c1") == []


@pytest.mark.asyncio
async def test_vote_is_upserted(conversation_repo):
    await conversation_repo.vote_message("c1", "m1", True)
    await conversation_repo.vote_message("c1", "m1", False)

    votes = await conversation_repo.list_votes("c1")

    assert len(votes) == 1
    assert votes[0].is_upvoted is False
