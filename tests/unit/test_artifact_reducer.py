"""
Unit tests for the artifact delta reducer.
"""

from chatstream.client.artifact_reducer import (
    ArtifactDraft,
    apply_deltas,
    begin_stream,
    materialize,
    reduce,
)
from chatstream.models.enums import ArtifactKind, DraftStatus


def _frames(*pairs):
    return [{"type": t, "content": c} for t, c in pairs]


CREATE_TEXT = _frames(
    ("id", "doc-1"),
    ("title", "Ode to Kafka"),
    ("kind", "text"),
    ("clear", ""),
    ("text-delta", "Once "),
    ("text-delta", "upon "),
    ("text-delta", "a time"),
    ("finish", ""),
)


class TestLifecycle:
    def test_full_generation(self):
        draft = materialize(CREATE_TEXT)

        assert draft.document_id == "doc-1"
        assert draft.title == "Ode to Kafka"
        assert draft.kind == ArtifactKind.TEXT
        assert draft.content == "Once upon a time"
        assert draft.status == DraftStatus.IDLE
        assert draft.is_visible is True
        assert draft.offset == len(CREATE_TEXT)

    def test_first_delta_leaves_uninitialized(self):
        draft = reduce(ArtifactDraft(), {"type": "title", "content": "T"})
        assert draft.status == DraftStatus.STREAMING
        assert draft.title == "T"

    def test_finish_while_uninitialized_is_noop(self):
        draft = reduce(ArtifactDraft(), {"type": "finish", "content": ""})
        assert draft == ArtifactDraft()

    def test_clear_empties_content_while_streaming(self):
        draft = materialize(_frames(("text-delta", "abc"), ("clear", "")))
        assert draft.content == ""
        assert draft.status == DraftStatus.STREAMING

    def test_new_generation_after_idle_resets_content(self):
        draft = materialize(CREATE_TEXT)
        draft = begin_stream(draft)

        draft = apply_deltas(draft, _frames(("id", "doc-1"), ("text-delta", "Rewritten")))

        assert draft.status == DraftStatus.STREAMING
        assert draft.content == "Rewritten"

    def test_finish_after_idle_is_noop(self):
        draft = materialize(CREATE_TEXT)
        assert reduce(draft, {"type": "finish", "content": ""}) == draft
        assert reduce(draft, {"type": "clear", "content": ""}) == draft


class TestContentSemantics:
    def test_code_deltas_append(self):
        draft = materialize(_frames(("kind", "code"), ("code-delta", "print("), ("code-delta", "1)")))
        assert draft.kind == ArtifactKind.CODE
        assert draft.content == "print(1)"

    def test_sheet_deltas_replace(self):
        draft = materialize(
            _frames(("kind", "sheet"), ("sheet-delta", "a,b"), ("sheet-delta", "a,b\n1,2"))
        )
        assert draft.content == "a,b\n1,2"

    def test_image_delta_replaces(self):
        draft = materialize(_frames(("image-delta", "AAA"), ("image-delta", "BBB")))
        assert draft.content == "BBB"

    def test_unknown_deltas_are_ignored(self):
        with_unknown = CREATE_TEXT[:4] + _frames(("telemetry", {"x": 1})) + CREATE_TEXT[4:]
        assert materialize(with_unknown).content == materialize(CREATE_TEXT).content

    def test_invalid_known_delta_is_ignored(self):
        draft = materialize(_frames(("kind", "spreadsheet"), ("text-delta", "x")))
        assert draft.kind == ArtifactKind.TEXT
        assert draft.content == "x"

    def test_suggestions_accumulate(self):
        suggestion = {
            "id": "s1",
            "document_id": "doc-1",
            "original_text": "a",
            "suggested_text": "b",
        }
        draft = materialize(CREATE_TEXT + _frames(("suggestion", suggestion), ("finish", "")))
        assert [s.id for s in draft.suggestions] == ["s1"]
        assert draft.status == DraftStatus.IDLE


class TestReplay:
    def test_reapplying_same_list_is_noop(self):
        draft = apply_deltas(ArtifactDraft(), CREATE_TEXT[:5])
        again = apply_deltas(draft, CREATE_TEXT[:5])
        assert again == draft

    def test_only_suffix_is_applied(self):
        draft = apply_deltas(ArtifactDraft(), CREATE_TEXT[:5])
        draft = apply_deltas(draft, CREATE_TEXT[:7])
        assert draft.content == "Once upon "
        assert draft.offset == 7

    def test_incremental_equals_single_pass(self):
        draft = ArtifactDraft()
        for end in range(1, len(CREATE_TEXT) + 1):
            draft = apply_deltas(draft, CREATE_TEXT[:end])
            draft = apply_deltas(draft, CREATE_TEXT[:end])
        assert draft == materialize(CREATE_TEXT)

    def test_offset_preserved_through_initialization(self):
        draft = ArtifactDraft(offset=3)
        draft = reduce(draft, {"type": "id", "content": "d"})
        assert draft.offset == 3
