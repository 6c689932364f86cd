"""
Unit tests for the broadcast registry and push channels.
"""

import asyncio
import json

import pytest

from chatstream.core.exceptions import ChannelClosedError
from chatstream.services.broadcast_registry import BroadcastRegistry, PushChannel, encode_sse


def _drain_nowait(channel: PushChannel) -> list:
    frames = []
    while not channel._queue.empty():
        frames.append(channel._queue.get_nowait())
    return frames


@pytest.fixture
def registry():
    return BroadcastRegistry(heartbeat_interval=3600, queue_size=4)


# ===========================================
# Channel lifecycle
# ===========================================


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_sends_connected_frame(self, registry):
        channel = await registry.open_channel("c1")

        frames = _drain_nowait(channel)
        assert frames[0]["type"] == "connected"
        assert "timestamp" in frames[0]
        assert registry.channel_count("c1") == 1

        await registry.close_channel("c1", channel)

    @pytest.mark.asyncio
    async def test_unregister_is_idempotent(self, registry):
        channel = await registry.open_channel("c1")

        await registry.unregister("c1", channel)
        await registry.unregister("c1", channel)
        await registry.unregister("missing", channel)

        assert registry.channel_count("c1") == 0
        channel.close()

    @pytest.mark.asyncio
    async def test_close_is_reported_once(self):
        channel = PushChannel("c1")
        assert channel.close() is True
        assert channel.close() is False
        with pytest.raises(ChannelClosedError):
            channel.send({"type": "x"})


# ===========================================
# Publish
# ===========================================


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_reaches_every_channel(self, registry):
        first = await registry.open_channel("c1")
        second = await registry.open_channel("c1")
        other = await registry.open_channel("c2")

        delivered = await registry.publish("c1", {"type": "document-context-update-complete"})

        assert delivered == 2
        assert _drain_nowait(first)[-1]["type"] == "document-context-update-complete"
        assert _drain_nowait(second)[-1]["type"] == "document-context-update-complete"
        assert [f["type"] for f in _drain_nowait(other)] == ["connected"]

        for channel, cid in ((first, "c1"), (second, "c1"), (other, "c2")):
            await registry.close_channel(cid, channel)

    @pytest.mark.asyncio
    async def test_publish_without_channels_is_noop(self, registry):
        assert await registry.publish("nobody", {"type": "x"}) == 0

    @pytest.mark.asyncio
    async def test_failing_channel_is_isolated(self, registry):
        healthy = await registry.open_channel("c1")
        stuck = await registry.open_channel("c1")
        _drain_nowait(healthy)
        # Saturate the stuck channel so its next write fails
        for i in range(3):
            stuck.send({"type": "filler", "n": i})

        for i in range(2):
            delivered = await registry.publish("c1", {"type": "evt", "n": i})

        assert delivered == 1
        assert stuck.closed
        assert registry.channel_count("c1") == 1
        assert [f["n"] for f in _drain_nowait(healthy)] == [0, 1]

        await registry.close_channel("c1", healthy)

    @pytest.mark.asyncio
    async def test_publish_during_unregister_does_not_fail(self, registry):
        channels = [await registry.open_channel("c1") for _ in range(5)]

        async def churn():
            for channel in channels:
                await registry.close_channel("c1", channel)
                await asyncio.sleep(0)

        results = await asyncio.gather(
            churn(),
            *(registry.publish("c1", {"type": "evt"}) for _ in range(5)),
        )

        assert all(isinstance(r, int) for r in results[1:])
        assert registry.channel_count("c1") == 0


# ===========================================
# Heartbeat
# ===========================================


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_heartbeats_are_sent_periodically(self):
        registry = BroadcastRegistry(heartbeat_interval=0.01, queue_size=100)
        channel = await registry.open_channel("c1")

        await asyncio.sleep(0.1)
        await registry.close_channel("c1", channel)

        types = [f["type"] for f in _drain_nowait(channel) if isinstance(f, dict)]
        assert types[0] == "connected"
        assert types.count("heartbeat") >= 2

    @pytest.mark.asyncio
    async def test_heartbeat_stops_after_close(self):
        registry = BroadcastRegistry(heartbeat_interval=0.01, queue_size=100)
        channel = await registry.open_channel("c1")
        heartbeat = channel._heartbeat

        await registry.close_channel("c1", channel)
        await asyncio.sleep(0.03)

        assert heartbeat.done()

    @pytest.mark.asyncio
    async def test_heartbeat_failure_closes_only_that_channel(self):
        registry = BroadcastRegistry(heartbeat_interval=0.01, queue_size=2)
        stuck = await registry.open_channel("c1")
        healthy = PushChannel("c1", maxsize=100)
        await registry.register("c1", healthy)

        await asyncio.sleep(0.1)

        assert stuck.closed
        assert not healthy.closed
        assert registry.channel_count("c1") == 1
        await registry.close_channel("c1", healthy)


def test_encode_sse():
    encoded = encode_sse({"type": "heartbeat", "timestamp": "t"})
    assert encoded.startswith("data: ")
    assert encoded.endswith("\n\n")
    assert json.loads(encoded[len("data: "):]) == {"type": "heartbeat", "timestamp": "t"}
