"""
Unit tests for the conversation, message and event endpoints.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import HTTPException

from chatstream.api import conversation as conversation_api
from chatstream.api import events as events_api
from chatstream.api import messages as messages_api
from chatstream.api.deps import get_current_user, get_message_reconciler
from chatstream.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    RateLimitedError,
    UpstreamError,
    ValidationError,
)
from chatstream.infrastructure.local.mock_auth import MockAuthProvider
from chatstream.models.message import ChatTurnRequest, MessageEditRequest
from chatstream.services.broadcast_registry import BroadcastRegistry

USER = SimpleNamespace(id="user-1")


def _turn_request() -> ChatTurnRequest:
    return ChatTurnRequest(id="c1", messages=[{"id": "u1", "role": "user", "content": "hi"}])


# ===========================================
# Authentication
# ===========================================


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_missing_header_is_401(self):
        with pytest.raises(HTTPException) as exc:
            await get_current_user(authorization=None, auth_provider=MockAuthProvider())
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_scheme_is_401(self):
        with pytest.raises(HTTPException) as exc:
            await get_current_user(authorization="Basic abc", auth_provider=MockAuthProvider())
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_bearer_token(self):
        user = await get_current_user(authorization="Bearer alice", auth_provider=MockAuthProvider())
        assert user.id == "alice"


# ===========================================
# POST /conversation
# ===========================================


class TestSubmitTurn:
    @pytest.mark.asyncio
    async def test_rate_limited_sets_retry_after(self):
        reconciler = AsyncMock()
        reconciler.submit_turn.side_effect = RateLimitedError(12.2)

        with pytest.raises(HTTPException) as exc:
            await conversation_api.submit_turn(_turn_request(), USER, reconciler)

        assert exc.value.status_code == 429
        assert exc.value.headers == {"Retry-After": "13"}

    @pytest.mark.asyncio
    async def test_not_owner_is_401(self):
        reconciler = AsyncMock()
        reconciler.submit_turn.side_effect = AuthorizationError("Not the owner")

        with pytest.raises(HTTPException) as exc:
            await conversation_api.submit_turn(_turn_request(), USER, reconciler)
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_no_user_message_is_400(self):
        reconciler = AsyncMock()
        reconciler.submit_turn.side_effect = ValidationError("No user message found", missing=["messages"])

        with pytest.raises(HTTPException) as exc:
            await conversation_api.submit_turn(_turn_request(), USER, reconciler)
        assert exc.value.status_code == 400
        assert exc.value.detail["missing"] == ["messages"]

    @pytest.mark.asyncio
    async def test_upstream_failure_is_502(self):
        reconciler = AsyncMock()
        reconciler.submit_turn.side_effect = UpstreamError("boom")

        with pytest.raises(HTTPException) as exc:
            await conversation_api.submit_turn(_turn_request(), USER, reconciler)
        assert exc.value.status_code == 502

    @pytest.mark.asyncio
    async def test_streams_turn_frames(self):
        async def frames():
            yield '0:"Hi"\n'
            yield 'd:{"finishReason":"stop","usage":{}}\n'

        turn = MagicMock()
        turn.stream.return_value = frames()
        reconciler = AsyncMock()
        reconciler.submit_turn.return_value = turn

        response = await conversation_api.submit_turn(_turn_request(), USER, reconciler)

        assert response.media_type == "text/plain; charset=utf-8"
        assert response.headers["X-Accel-Buffering"] == "no"
        body = [chunk async for chunk in response.body_iterator]
        assert body[0] == '0:"Hi"\n'


# ===========================================
# DELETE /conversation
# ===========================================


class TestDeleteConversation:
    @pytest.mark.asyncio
    async def test_deletes(self):
        reconciler = AsyncMock()
        result = await conversation_api.delete_conversation(USER, reconciler, conversation_id="c1")
        assert result == {"id": "c1", "deleted": True}
        reconciler.delete_conversation.assert_awaited_once_with("user-1", "c1")

    @pytest.mark.asyncio
    async def test_missing_is_404(self):
        reconciler = AsyncMock()
        reconciler.delete_conversation.side_effect = NotFoundError("Conversation c1 not found")
        with pytest.raises(HTTPException) as exc:
            await conversation_api.delete_conversation(USER, reconciler, conversation_id="c1")
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_not_owner_is_401(self):
        reconciler = AsyncMock()
        reconciler.delete_conversation.side_effect = AuthorizationError("Not the owner")
        with pytest.raises(HTTPException) as exc:
            await conversation_api.delete_conversation(USER, reconciler, conversation_id="c1")
        assert exc.value.status_code == 401


# ===========================================
# Messages
# ===========================================


class TestMessages:
    @pytest.mark.asyncio
    async def test_list_requires_conversation_id(self):
        with pytest.raises(HTTPException) as exc:
            await messages_api.list_messages(USER, AsyncMock(), conversation_id=None, include_system=False)
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_list_passes_include_system(self):
        reconciler = AsyncMock()
        reconciler.list_messages.return_value = []
        await messages_api.list_messages(USER, reconciler, conversation_id="c1", include_system=True)
        reconciler.list_messages.assert_awaited_once_with("user-1", "c1", include_system=True)

    @pytest.mark.asyncio
    async def test_edit_lists_missing_fields(self):
        reconciler = AsyncMock()
        with pytest.raises(HTTPException) as exc:
            await messages_api.edit_message(MessageEditRequest(id="m1"), USER, reconciler)

        assert exc.value.status_code == 400
        assert exc.value.detail["missing"] == ["conversationId", "content"]
        reconciler.edit_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_edit_unknown_message_is_404(self):
        reconciler = AsyncMock()
        reconciler.edit_message.side_effect = NotFoundError("Message m1 not found")
        body = MessageEditRequest(id="m1", conversationId="c1", content="new")
        with pytest.raises(HTTPException) as exc:
            await messages_api.edit_message(body, USER, reconciler)
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_returns_204(self):
        reconciler = AsyncMock()
        response = await messages_api.delete_message(USER, reconciler, conversation_id="c1", message_id="m1")
        assert response.status_code == 204
        reconciler.delete_message.assert_awaited_once_with("user-1", "c1", "m1")

    @pytest.mark.asyncio
    async def test_delete_missing_message_is_404(self):
        reconciler = AsyncMock()
        reconciler.delete_message.side_effect = NotFoundError("Message m1 not found")
        with pytest.raises(HTTPException) as exc:
            await messages_api.delete_message(USER, reconciler, conversation_id="c1", message_id="m1")
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_lists_missing_params(self):
        with pytest.raises(HTTPException) as exc:
            await messages_api.delete_message(USER, AsyncMock(), conversation_id=None, message_id=None)
        assert exc.value.detail["missing"] == ["conversationId", "messageId"]


# ===========================================
# Events
# ===========================================


@pytest.mark.asyncio
async def test_events_require_conversation_id():
    registry = AsyncMock()
    with pytest.raises(HTTPException) as exc:
        await events_api.stream_events(USER, MagicMock(), registry, conversation_id=None)
    assert exc.value.status_code == 400
    registry.open_channel.assert_not_awaited()


@pytest.mark.asyncio
async def test_events_disconnect_releases_channel():
    registry = BroadcastRegistry(heartbeat_interval=60)
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=True)

    response = await events_api.stream_events(USER, request, registry, conversation_id="c1")
    body = response.body_iterator
    first = await body.__anext__()

    assert first.startswith('data: {"type":"connected"')
    assert registry.channel_count("c1") == 1
    (channel,) = registry._channels["c1"]
    heartbeat = channel._heartbeat

    with pytest.raises(StopAsyncIteration):
        await body.__anext__()

    assert registry.channel_count("c1") == 0
    assert channel.closed
    with pytest.raises(asyncio.CancelledError):
        await heartbeat
    assert heartbeat.cancelled()


@pytest.mark.asyncio
async def test_events_channel_opens_with_the_stream():
    registry = BroadcastRegistry(heartbeat_interval=60)

    response = await events_api.stream_events(USER, MagicMock(), registry, conversation_id="c1")

    assert registry.channel_count("c1") == 0
    await response.body_iterator.aclose()
    assert registry.channel_count("c1") == 0


# ===========================================
# Application
# ===========================================


@pytest.fixture
def app():
    from main import create_app

    application = create_app()
    yield application
    application.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_unauthenticated_requests_are_rejected(app):
    app.dependency_overrides[get_message_reconciler] = lambda: AsyncMock()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/conversation/message", params={"conversationId": "c1"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_malformed_body_is_400(app):
    app.dependency_overrides[get_message_reconciler] = lambda: AsyncMock()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/conversation",
            json={"messages": []},
            headers={"Authorization": "Bearer user-1"},
        )
    assert response.status_code == 400
    assert "id" in response.json()["detail"]["missing"]


@pytest.mark.asyncio
async def test_rate_limited_response_over_http(app):
    reconciler = AsyncMock()
    reconciler.submit_turn.side_effect = RateLimitedError(3)
    app.dependency_overrides[get_message_reconciler] = lambda: reconciler
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/api/conversation",
            json={"id": "c1", "messages": [{"id": "u1", "role": "user", "content": "hi"}]},
            headers={"Authorization": "Bearer user-1"},
        )
    assert response.status_code == 429
    assert response.headers["retry-after"] == "3"
