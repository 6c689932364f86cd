"""
Consumer-side artifact state machine.

Turns the ordered delta sequence embedded in a chat response into a
materialized ArtifactDraft:

    uninitialized -> streaming -> idle
                        ^          |
                        +----------+  (new id/title/kind/content delta)

`reduce` is a pure transition function. `apply_deltas` takes the cumulative
delta list of the current response and applies only the suffix past
`draft.offset`, so re-delivery of an already applied prefix is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Sequence

from chatstream.models.delta import (
    CONTENT_DELTAS,
    ClearDelta,
    CodeDelta,
    Delta,
    FinishDelta,
    IdDelta,
    ImageDelta,
    KindDelta,
    SheetDelta,
    SuggestionDelta,
    SuggestionPayload,
    TextDelta,
    TitleDelta,
    UnknownDelta,
    parse_delta,
)
from chatstream.models.enums import ArtifactKind, DraftStatus

DEFAULT_DRAFT_ID = "init"
DEFAULT_DRAFT_TITLE = ""


@dataclass(frozen=True)
class ArtifactDraft:
    """Live, in-progress materialization of an artifact."""

    document_id: str = DEFAULT_DRAFT_ID
    title: str = DEFAULT_DRAFT_TITLE
    kind: ArtifactKind = ArtifactKind.TEXT
    content: str = ""
    status: DraftStatus = DraftStatus.UNINITIALIZED
    is_visible: bool = False
    # Number of deltas from the current response already applied
    offset: int = 0
    suggestions: tuple[SuggestionPayload, ...] = field(default_factory=tuple)


def _combine(draft: ArtifactDraft, delta: Delta) -> str:
    if isinstance(delta, (TextDelta, CodeDelta)):
        return draft.content + delta.content
    # Sheet and image deltas carry full snapshots
    return delta.content


def _starts_generation(delta: Delta) -> bool:
    return isinstance(delta, (IdDelta, TitleDelta, KindDelta, *CONTENT_DELTAS))


def _apply_metadata(draft: ArtifactDraft, delta: Delta) -> ArtifactDraft:
    if isinstance(delta, IdDelta):
        return replace(draft, document_id=delta.content, is_visible=True)
    if isinstance(delta, TitleDelta):
        return replace(draft, title=delta.content)
    if isinstance(delta, KindDelta):
        return replace(draft, kind=delta.content)
    if isinstance(delta, (TextDelta, CodeDelta, SheetDelta, ImageDelta)):
        return replace(draft, content=_combine(draft, delta))
    return draft


def reduce(draft: ArtifactDraft, delta: Delta | dict[str, Any]) -> ArtifactDraft:
    """Apply one delta. Does not touch `offset`."""
    delta = parse_delta(delta)

    if isinstance(delta, UnknownDelta):
        return draft

    if isinstance(delta, SuggestionDelta):
        return replace(draft, suggestions=draft.suggestions + (delta.content,))

    if draft.status == DraftStatus.UNINITIALIZED:
        if isinstance(delta, FinishDelta):
            return draft
        draft = replace(ArtifactDraft(), offset=draft.offset, status=DraftStatus.STREAMING)
        if isinstance(delta, ClearDelta):
            return draft
        return _apply_metadata(draft, delta)

    if draft.status == DraftStatus.IDLE:
        if not _starts_generation(delta):
            # clear/finish on a finished draft
            return draft
        draft = replace(draft, content="", status=DraftStatus.STREAMING)
        return _apply_metadata(draft, delta)

    if isinstance(delta, ClearDelta):
        return replace(draft, content="")
    if isinstance(delta, FinishDelta):
        return replace(draft, status=DraftStatus.IDLE)
    return _apply_metadata(draft, delta)


def apply_deltas(draft: ArtifactDraft, deltas: Sequence[Delta | dict[str, Any]]) -> ArtifactDraft:
    """
    Apply the unseen suffix of a cumulative delta list.

    `deltas` is every delta received on the current response so far, in
    emission order.
    """
    if draft.offset >= len(deltas):
        return draft
    for delta in deltas[draft.offset:]:
        draft = reduce(draft, delta)
    return replace(draft, offset=len(deltas))


def begin_stream(draft: ArtifactDraft) -> ArtifactDraft:
    """Prepare a draft for the delta list of a new response."""
    return replace(draft, offset=0)


def materialize(deltas: Iterable[Delta | dict[str, Any]]) -> ArtifactDraft:
    """Build a draft from scratch out of a complete delta sequence."""
    return apply_deltas(ArtifactDraft(), list(deltas))
