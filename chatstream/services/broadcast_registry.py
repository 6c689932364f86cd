"""
Per-conversation broadcast of out-of-band events over push channels.

A PushChannel is the server side of one `GET /conversation/events` request.
The registry maps conversation IDs to the set of open channels and fans out
one-shot notifications (e.g. attachment extraction finished). Delivery is
at-most-once and best-effort: nothing is buffered for channels that
register later.
"""

from __future__ import annotations

import asyncio
import json
from functools import lru_cache
from typing import Any, AsyncIterator, Optional

from chatstream.core.config import get_settings
from chatstream.core.exceptions import ChannelClosedError
from chatstream.core.logger import setup_logger
from chatstream.models.enums import ChannelEventType
from chatstream.utils.datetime_utils import now_utc

logger = setup_logger(__name__)

_CLOSE = object()


def encode_sse(frame: dict[str, Any]) -> str:
    """Encode a frame as a server-sent event."""
    return f"data: {json.dumps(frame, ensure_ascii=False, separators=(',', ':'), default=str)}\n\n"


class PushChannel:
    """
    One open output channel.

    Frames are queued and drained by the HTTP response. A channel owns at
    most one heartbeat task, torn down exactly once on close.
    """

    def __init__(self, conversation_id: str, maxsize: int = 100):
        self.conversation_id = conversation_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self._heartbeat: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: dict[str, Any]) -> None:
        """Queue a frame. Raises ChannelClosedError if closed or saturated."""
        if self._closed:
            raise ChannelClosedError(f"Channel for {self.conversation_id} is closed")
        if self._queue.qsize() >= self._maxsize:
            raise ChannelClosedError(f"Channel for {self.conversation_id} is not draining")
        self._queue.put_nowait(frame)

    def attach_heartbeat(self, task: asyncio.Task) -> None:
        if self._heartbeat is not None:
            raise RuntimeError("Channel already has a heartbeat")
        self._heartbeat = task

    def close(self) -> bool:
        """Close the channel. Returns True only for the call that closed it."""
        if self._closed:
            return False
        self._closed = True
        task = self._heartbeat
        self._heartbeat = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        # Reserved slot guarantees the close marker fits
        self._queue.put_nowait(_CLOSE)
        return True

    async def frames(self) -> AsyncIterator[dict[str, Any]]:
        """Yield queued frames until the channel closes."""
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            yield item


class BroadcastRegistry:
    """Conversation ID -> set of open push channels."""

    def __init__(self, heartbeat_interval: float = 15.0, queue_size: int = 100):
        self._channels: dict[str, set[PushChannel]] = {}
        self._lock = asyncio.Lock()
        self._heartbeat_interval = heartbeat_interval
        self._queue_size = queue_size

    async def register(self, conversation_id: str, channel: PushChannel) -> None:
        """
        Add a channel and greet it with a `connected` frame.

        Starts the channel's heartbeat.
        """
        async with self._lock:
            self._channels.setdefault(conversation_id, set()).add(channel)
        try:
            channel.send({"type": ChannelEventType.CONNECTED.value, "timestamp": now_utc().isoformat()})
        except ChannelClosedError:
            await self.close_channel(conversation_id, channel)
            return
        channel.attach_heartbeat(asyncio.create_task(self._run_heartbeat(conversation_id, channel)))
        logger.debug(f"Channel registered for conversation {conversation_id}")

    async def unregister(self, conversation_id: str, channel: PushChannel) -> None:
        """Remove a channel. Safe to call repeatedly."""
        async with self._lock:
            channels = self._channels.get(conversation_id)
            if not channels:
                return
            channels.discard(channel)
            if not channels:
                self._channels.pop(conversation_id, None)

    async def publish(self, conversation_id: str, event: dict[str, Any]) -> int:
        """
        Send `event` to every channel registered for the conversation.

        A failing channel is closed and unregistered; the others still
        receive the event. Returns the number of successful deliveries.
        """
        async with self._lock:
            channels = list(self._channels.get(conversation_id, ()))
        if not channels:
            logger.debug(f"No channels for conversation {conversation_id}, dropping {event.get('type')}")
            return 0

        delivered = 0
        failed: list[PushChannel] = []
        for channel in channels:
            try:
                channel.send(event)
                delivered += 1
            except ChannelClosedError as e:
                logger.warning(f"Publish to channel failed: {e}")
                failed.append(channel)

        for channel in failed:
            await self.close_channel(conversation_id, channel)
        return delivered

    async def open_channel(self, conversation_id: str) -> PushChannel:
        """Create and register a channel for a conversation."""
        channel = PushChannel(conversation_id, maxsize=self._queue_size)
        await self.register(conversation_id, channel)
        return channel

    async def close_channel(self, conversation_id: str, channel: PushChannel) -> None:
        """Close and unregister a channel. Idempotent."""
        async with self._lock:
            channel.close()
            channels = self._channels.get(conversation_id)
            if channels:
                channels.discard(channel)
                if not channels:
                    self._channels.pop(conversation_id, None)

    def channel_count(self, conversation_id: str) -> int:
        return len(self._channels.get(conversation_id, ()))

    async def _run_heartbeat(self, conversation_id: str, channel: PushChannel) -> None:
        while not channel.closed:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                channel.send({"type": ChannelEventType.HEARTBEAT.value, "timestamp": now_utc().isoformat()})
            except ChannelClosedError:
                logger.info(f"Heartbeat failed for conversation {conversation_id}, closing channel")
                await self.close_channel(conversation_id, channel)
                return


@lru_cache()
def get_broadcast_registry() -> BroadcastRegistry:
    """Get the process-wide broadcast registry."""
    settings = get_settings()
    return BroadcastRegistry(
        heartbeat_interval=settings.CHANNEL_HEARTBEAT_SECONDS,
        queue_size=settings.CHANNEL_QUEUE_SIZE,
    )
