"""
Observer side of the broadcast registry.

Holds a push channel open against `GET /conversation/events`, treats every
frame as a liveness signal, and reopens the channel after a fixed delay
whenever it drops, until `close()` is called.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from chatstream.core.config import get_settings
from chatstream.core.logger import setup_logger

logger = setup_logger(__name__)

EventHandler = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]

DEFAULT_EVENTS_PATH = "/api/conversation/events"


def parse_sse_data(line: str) -> Optional[dict[str, Any]]:
    """Decode a `data: {...}` line. Comments and other fields yield None."""
    if not line.startswith("data:"):
        return None
    payload = line[5:].strip()
    if not payload:
        return None
    try:
        value = json.loads(payload)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


class ChannelClient:
    """Reconnecting push channel consumer for one conversation."""

    def __init__(
        self,
        base_url: str,
        conversation_id: str,
        token: Optional[str] = None,
        on_event: Optional[EventHandler] = None,
        reconnect_delay: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        events_path: str = DEFAULT_EVENTS_PATH,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._base_url = base_url.rstrip("/")
        self._conversation_id = conversation_id
        self._token = token
        self._on_event = on_event
        settings = get_settings()
        self._reconnect_delay = (
            settings.CHANNEL_RECONNECT_DELAY_SECONDS if reconnect_delay is None else reconnect_delay
        )
        self._default_timeout = settings.CHANNEL_COMPLETION_TIMEOUT_SECONDS
        self._client = http_client
        self._owns_client = http_client is None
        self._events_path = events_path
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._waiters: dict[str, set[asyncio.Future]] = {}
        self.last_seen: Optional[float] = None
        self.connection_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError("ChannelClient has been closed")
        if self.running:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=None)
        self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        """Tear down the channel and stop reconnecting."""
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def wait_for(self, event_type: str, timeout: Optional[float] = None) -> bool:
        """
        Wait until an event of `event_type` arrives.

        Returns False when `timeout` elapses first; the fallback timer runs
        independently of channel health so callers always make progress.
        """
        if timeout is None:
            timeout = self._default_timeout
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._waiters.setdefault(event_type, set()).add(future)
        try:
            await asyncio.wait_for(future, timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.info(f"No {event_type} within {timeout}s, proceeding on fallback timer")
            return False
        finally:
            waiters = self._waiters.get(event_type)
            if waiters is not None:
                waiters.discard(future)
                if not waiters:
                    self._waiters.pop(event_type, None)

    async def _run(self) -> None:
        while not self._closed:
            try:
                await self._consume()
            except asyncio.CancelledError:
                raise
            except httpx.HTTPError as e:
                logger.warning(f"Push channel for {self._conversation_id} failed: {e}")
            if self._closed:
                return
            await asyncio.sleep(self._reconnect_delay)

    async def _consume(self) -> None:
        headers = {"Accept": "text/event-stream"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        async with self._client.stream(
            "GET",
            f"{self._base_url}{self._events_path}",
            params={"conversationId": self._conversation_id},
            headers=headers,
        ) as response:
            response.raise_for_status()
            self.connection_count += 1
            async for line in response.aiter_lines():
                event = parse_sse_data(line)
                if event is None:
                    if line.startswith(":"):
                        self.last_seen = self._clock()
                    continue
                await self._dispatch(event)

    async def _dispatch(self, event: dict[str, Any]) -> None:
        self.last_seen = self._clock()

        for future in list(self._waiters.get(str(event.get("type")), ())):
            if not future.done():
                future.set_result(event)

        if self._on_event is None:
            return
        try:
            result = self._on_event(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Channel event handler failed: {e}")
