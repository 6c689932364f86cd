"""
Line-oriented data stream written on chat responses.

Each frame is `<code>:<json>\\n`. Plain token text, artifact delta frames,
tool calls and results share the same response body:

    0  text token          9  tool call
    2  data (delta list)   a  tool result
    3  error               e  step finish
    g  reasoning           d  message finish
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Optional

from chatstream.models.delta import Delta, to_frame

TEXT = "0"
DATA = "2"
ERROR = "3"
TOOL_CALL = "9"
TOOL_RESULT = "a"
STEP_FINISH = "e"
FINISH = "d"
REASONING = "g"

FRAME_CODES = frozenset({TEXT, DATA, ERROR, TOOL_CALL, TOOL_RESULT, STEP_FINISH, FINISH, REASONING})

_SENTINEL = object()


def format_frame(code: str, value: Any) -> str:
    """Encode one frame."""
    if code not in FRAME_CODES:
        raise ValueError(f"Unknown frame code: {code}")
    return f"{code}:{json.dumps(value, ensure_ascii=False, separators=(',', ':'), default=str)}\n"


class DataStreamWriter:
    """
    Producer side of a chat response body.

    The generation task writes frames; the HTTP response drains them through
    `frames()`. Writes after `close()` are dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, code: str, value: Any) -> None:
        if self._closed:
            return
        self._queue.put_nowait(format_frame(code, value))

    def write_text(self, text: str) -> None:
        if text:
            self._put(TEXT, text)

    def write_reasoning(self, text: str) -> None:
        if text:
            self._put(REASONING, text)

    def write_data(self, items: list[Any]) -> None:
        self._put(DATA, items)

    def write_delta(self, delta: Delta) -> None:
        self.write_data([to_frame(delta)])

    def write_tool_call(self, tool_call_id: str, tool_name: str, args: dict[str, Any]) -> None:
        self._put(TOOL_CALL, {"toolCallId": tool_call_id, "toolName": tool_name, "args": args})

    def write_tool_result(self, tool_call_id: str, result: Any) -> None:
        self._put(TOOL_RESULT, {"toolCallId": tool_call_id, "result": result})

    def write_error(self, message: str) -> None:
        self._put(ERROR, message)

    def write_step_finish(self, finish_reason: str, is_continued: bool = False) -> None:
        self._put(STEP_FINISH, {"finishReason": finish_reason, "isContinued": is_continued})

    def write_finish(self, finish_reason: str, usage: Optional[dict[str, int]] = None) -> None:
        self._put(FINISH, {"finishReason": finish_reason, "usage": usage or {}})

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_SENTINEL)

    async def frames(self) -> AsyncIterator[str]:
        """Yield encoded frames until the writer is closed."""
        while True:
            item = await self._queue.get()
            if item is _SENTINEL:
                return
            yield item
