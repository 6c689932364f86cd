"""
Consumer-side parser for chat response data streams.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from chatstream.client.artifact_reducer import ArtifactDraft, apply_deltas, begin_stream
from chatstream.models.delta import Delta, parse_delta


@dataclass
class StreamPart:
    """One decoded frame."""

    code: str
    value: Any


def parse_frame(line: str) -> Optional[StreamPart]:
    """Decode a `<code>:<json>` line. Blank or malformed lines yield None."""
    line = line.strip()
    if not line or ":" not in line:
        return None
    code, _, payload = line.partition(":")
    try:
        value = json.loads(payload)
    except json.JSONDecodeError:
        return None
    return StreamPart(code=code, value=value)


@dataclass
class DataStreamCollector:
    """
    Accumulates a chat response as it streams.

    `deltas` is the cumulative list of artifact delta frames seen on this
    response, in emission order; feed it to `apply_deltas` after each chunk.
    """

    text: str = ""
    reasoning: str = ""
    deltas: list[Delta] = field(default_factory=list)
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    finish_reason: Optional[str] = None

    def feed_line(self, line: str) -> Optional[StreamPart]:
        part = parse_frame(line)
        if part is None:
            return None
        if part.code == "0":
            self.text += str(part.value)
        elif part.code == "g":
            self.reasoning += str(part.value)
        elif part.code == "2" and isinstance(part.value, list):
            self.deltas.extend(parse_delta(item) for item in part.value)
        elif part.code == "9":
            self.tool_calls.append(part.value)
        elif part.code == "a":
            self.tool_results.append(part.value)
        elif part.code == "3":
            self.errors.append(str(part.value))
        elif part.code == "d":
            self.finish_reason = (part.value or {}).get("finishReason")
        return part

    def feed(self, body: str | Iterable[str]) -> None:
        lines = body.splitlines() if isinstance(body, str) else body
        for line in lines:
            self.feed_line(line)

    def apply_to(self, draft: ArtifactDraft) -> ArtifactDraft:
        """Advance `draft` by the deltas it has not seen yet."""
        return apply_deltas(draft, self.deltas)

    def start_response(self, draft: ArtifactDraft) -> ArtifactDraft:
        """Reset for the next response body and rewind `draft` to match."""
        self.text = ""
        self.reasoning = ""
        self.deltas = []
        self.tool_calls = []
        self.tool_results = []
        self.errors = []
        self.finish_reason = None
        return begin_stream(draft)
