"""
Artifact delta frames.

A delta is one typed increment of an artifact's metadata or content,
emitted inline on a chat response as `{"type": ..., "content": ...}`.
Unknown types parse to `UnknownDelta` so newer producers never break
older consumers.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chatstream.models.enums import ArtifactKind


class IdDelta(BaseModel):
    type: Literal["id"] = "id"
    content: str


class TitleDelta(BaseModel):
    type: Literal["title"] = "title"
    content: str


class KindDelta(BaseModel):
    type: Literal["kind"] = "kind"
    content: ArtifactKind


class TextDelta(BaseModel):
    type: Literal["text-delta"] = "text-delta"
    content: str


class CodeDelta(BaseModel):
    type: Literal["code-delta"] = "code-delta"
    content: str


class SheetDelta(BaseModel):
    type: Literal["sheet-delta"] = "sheet-delta"
    content: str


class ImageDelta(BaseModel):
    type: Literal["image-delta"] = "image-delta"
    content: str


class ClearDelta(BaseModel):
    type: Literal["clear"] = "clear"
    content: str = ""


class FinishDelta(BaseModel):
    type: Literal["finish"] = "finish"
    content: str = ""


class SuggestionPayload(BaseModel):
    """Structured content of a suggestion delta."""

    id: str
    document_id: str
    original_text: str
    suggested_text: str
    description: Optional[str] = None
    is_resolved: bool = False


class SuggestionDelta(BaseModel):
    type: Literal["suggestion"] = "suggestion"
    content: SuggestionPayload


class UnknownDelta(BaseModel):
    """Any frame type this consumer does not understand."""

    type: str
    content: Any = None


KnownDelta = Annotated[
    Union[
        IdDelta,
        TitleDelta,
        KindDelta,
        TextDelta,
        CodeDelta,
        SheetDelta,
        ImageDelta,
        ClearDelta,
        FinishDelta,
        SuggestionDelta,
    ],
    Field(discriminator="type"),
]

Delta = Union[
    IdDelta,
    TitleDelta,
    KindDelta,
    TextDelta,
    CodeDelta,
    SheetDelta,
    ImageDelta,
    ClearDelta,
    FinishDelta,
    SuggestionDelta,
    UnknownDelta,
]

CONTENT_DELTAS = (TextDelta, CodeDelta, SheetDelta, ImageDelta)

KNOWN_DELTA_TYPES = frozenset(
    {
        "id",
        "title",
        "kind",
        "text-delta",
        "code-delta",
        "sheet-delta",
        "image-delta",
        "clear",
        "finish",
        "suggestion",
    }
)

_known_adapter: TypeAdapter = TypeAdapter(KnownDelta)


def parse_delta(raw: Any) -> Delta:
    """
    Parse a raw frame into a typed delta.

    Frames with an unrecognised type, or a recognised type whose content
    does not validate, become UnknownDelta.
    """
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, dict):
        return UnknownDelta(type="", content=raw)

    frame_type = raw.get("type")
    if frame_type not in KNOWN_DELTA_TYPES:
        return UnknownDelta(type=str(frame_type or ""), content=raw.get("content"))
    try:
        return _known_adapter.validate_python(raw)
    except PydanticValidationError:
        return UnknownDelta(type=str(frame_type), content=raw.get("content"))


def to_frame(delta: Delta) -> dict[str, Any]:
    """Serialize a delta to its wire shape."""
    return delta.model_dump(mode="json")
