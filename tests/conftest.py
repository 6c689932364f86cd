"""
Shared pytest configuration.
"""

import os

# Must be set before chatstream.core.config is imported anywhere
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AUTH_PROVIDER", "mock")

import pytest  # noqa: E402


@pytest.fixture
async def session_factory():
    """In-memory database with all tables created."""
    from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
    from sqlalchemy.orm import sessionmaker

    from chatstream.infrastructure.local.database import Base

    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def conversation_repo(session_factory):
    from chatstream.infrastructure.local.conversation_repository import SqliteConversationRepository

    return SqliteConversationRepository(session_factory)


@pytest.fixture
async def artifact_repo(session_factory):
    from chatstream.infrastructure.local.artifact_repository import SqliteArtifactRepository

    return SqliteArtifactRepository(session_factory)


# ===========================================
# Scripted LLM provider
# ===========================================


class ScriptedStream:
    """
    Chat stream that replays a fixed list of events.

    An `asyncio.Event` in the list blocks until it is set; an exception is
    raised at that point in the stream.
    """

    def __init__(self, events, headers=None):
        self._events = list(events)
        self.headers = dict(headers or {})
        self.closed = False

    async def _iterate(self):
        import asyncio

        for event in self._events:
            if isinstance(event, asyncio.Event):
                await event.wait()
                continue
            if isinstance(event, Exception):
                raise event
            yield event

    def __aiter__(self):
        return self._iterate()

    async def aclose(self):
        self.closed = True


@pytest.fixture
def scripted_provider():
    """Factory for providers that answer calls from scripted queues."""
    from chatstream.interfaces.llm_provider import (
        ChatStream,
        GeneratedImage,
        GeneratedText,
        ILLMProvider,
    )

    ChatStream.register(ScriptedStream)

    class ScriptedProvider(ILLMProvider):
        def __init__(self, streams=(), texts=(), images=()):
            self.streams = list(streams)
            self.texts = list(texts)
            self.images = list(images)
            self.stream_calls = []
            self.text_calls = []
            self.opened = []

        def get_model_name(self) -> str:
            return "scripted"

        async def open_stream(self, model, messages, tools=None, system=None):
            self.stream_calls.append({"model": model, "messages": messages, "tools": tools, "system": system})
            item = self.streams.pop(0)
            if isinstance(item, Exception):
                raise item
            stream = item if isinstance(item, ScriptedStream) else ScriptedStream(item)
            self.opened.append(stream)
            return stream

        async def generate_text(self, model, prompt, system=None, max_tokens=600):
            self.text_calls.append({"model": model, "prompt": prompt, "system": system})
            item = self.texts.pop(0) if self.texts else "Generated title"
            if isinstance(item, Exception):
                raise item
            return item if isinstance(item, GeneratedText) else GeneratedText(text=item)

        def supports_image_generation(self) -> bool:
            return True

        async def generate_image(self, model, prompt):
            item = self.images.pop(0) if self.images else "aW1n"
            if isinstance(item, Exception):
                raise item
            return GeneratedImage(b64_data=item)

    return ScriptedProvider


@pytest.fixture
def scripted_stream():
    """The ScriptedStream class, for streams that need custom headers."""
    return ScriptedStream
