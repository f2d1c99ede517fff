"""Tests for HighlightWorkspace: end-to-end highlight flows across documents."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

import pytest

from marginalia.highlights.models import (
    DuplicateOrigin,
    DuplicateScope,
    ErrorKind,
    OverlapPolicy,
    UnknownDocumentError,
)
from marginalia.highlights.offsets import SelectionAnchor, TreeSelection
from marginalia.highlights.workspace import (
    EventKind,
    HighlightEvent,
    HighlightWorkspace,
)
from marginalia.html_view import build_text_index

if TYPE_CHECKING:
    from collections.abc import Callable

FOX = "the quick brown fox"


def _spans(workspace: HighlightWorkspace, document_id: str) -> list[tuple[int, int]]:
    return [r.span for r in workspace.list_highlights(document_id)]


def _exported(workspace: HighlightWorkspace) -> list[tuple[str, int, int, str]]:
    return [(e.document_name, e.start, e.end, e.text) for e in workspace.export_all()]


class TestFoxScenarios:
    """Single-document flows over "the quick brown fox"."""

    def test_insert_then_insert_before(self, workspace: HighlightWorkspace) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        first = workspace.highlight_offsets(doc, 4, 9)
        assert first.success
        assert _spans(workspace, doc) == [(4, 9)]

        second = workspace.highlight_offsets(doc, 0, 3)
        assert second.success
        assert _spans(workspace, doc) == [(0, 3), (4, 9)]

    def test_merge_union_bridges_both(
        self, make_workspace: Callable[..., HighlightWorkspace]
    ) -> None:
        workspace = make_workspace(OverlapPolicy.MERGE_UNION)
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        workspace.highlight_offsets(doc, 0, 3)

        result = workspace.highlight_offsets(doc, 2, 6)

        assert result.success
        assert result.range is not None
        assert (result.range.span, result.range.text) == ((0, 9), "the quick")
        assert _spans(workspace, doc) == [(0, 9)]
        assert _exported(workspace) == [("fox.txt", 0, 9, "the quick")]

    def test_reject_overlap_leaves_state(
        self, make_workspace: Callable[..., HighlightWorkspace]
    ) -> None:
        workspace = make_workspace(OverlapPolicy.REJECT_OVERLAP)
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        workspace.highlight_offsets(doc, 0, 3)

        result = workspace.highlight_offsets(doc, 2, 6)

        assert not result.success
        assert result.error is not None
        assert result.error.kind is ErrorKind.OVERLAP_REJECTED
        assert _spans(workspace, doc) == [(0, 3), (4, 9)]
        assert [e.start for e in workspace.export_all()] == [0, 4]

    def test_split_truncate_replaces_contested(
        self, make_workspace: Callable[..., HighlightWorkspace]
    ) -> None:
        workspace = make_workspace(OverlapPolicy.SPLIT_TRUNCATE)
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        workspace.highlight_offsets(doc, 0, 3)

        result = workspace.highlight_offsets(doc, 2, 6)

        assert result.success
        assert _spans(workspace, doc) == [(2, 6)]
        assert _exported(workspace) == [("fox.txt", 2, 6, "e qu")]

    def test_remove_twice(self, workspace: HighlightWorkspace) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 0, 3)
        workspace.highlight_offsets(doc, 4, 9)

        assert workspace.remove_highlight(doc, 4, 9) is True
        assert _spans(workspace, doc) == [(0, 3)]
        assert workspace.remove_highlight(doc, 4, 9) is False
        assert _spans(workspace, doc) == [(0, 3)]
        assert len(workspace.export_all()) == 1

    def test_reselecting_existing_span(self, workspace: HighlightWorkspace) -> None:
        """Selecting an already highlighted span is absorbed, not duplicated."""
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        result = workspace.highlight_offsets(doc, 4, 9)
        assert result.success
        assert _spans(workspace, doc) == [(4, 9)]
        assert len(workspace.export_all()) == 1

    @pytest.mark.parametrize(
        ("start", "end", "kind"),
        [
            (5, 5, ErrorKind.EMPTY_SELECTION),
            (3, 4, ErrorKind.EMPTY_SELECTION),
            (15, 25, ErrorKind.OUT_OF_BOUNDS),
        ],
    )
    def test_rejections_change_nothing(
        self, workspace: HighlightWorkspace, start: int, end: int, kind: ErrorKind
    ) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        result = workspace.highlight_offsets(doc, start, end)
        assert result.error is not None
        assert result.error.kind is kind
        assert _spans(workspace, doc) == [(4, 9)]

    def test_trimmed_selection_committed(self, workspace: HighlightWorkspace) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        result = workspace.highlight_offsets(doc, 9, 16)
        assert result.range is not None
        assert result.range.text == "brown"

    def test_untrimmed_selection_committed(
        self, make_workspace: Callable[..., HighlightWorkspace]
    ) -> None:
        workspace = make_workspace(trim_whitespace=False)
        doc = workspace.load_document("fox.txt", FOX)
        result = workspace.highlight_offsets(doc, 9, 16)
        assert result.range is not None
        assert result.range.text == " brown "


class TestDuplicates:
    FIRST = "Berlin is big"
    SECOND = "Flights to berlin today"

    def test_cross_document_duplicate_rejected(
        self, workspace: HighlightWorkspace
    ) -> None:
        first = workspace.load_document("one.txt", self.FIRST)
        second = workspace.load_document("two.txt", self.SECOND)
        assert workspace.highlight_offsets(first, 0, 6).success

        result = workspace.highlight_offsets(second, 11, 17)

        assert not result.success
        assert result.error is not None
        assert result.error.kind is ErrorKind.DUPLICATE_TEXT
        assert result.error.origin is DuplicateOrigin.OTHER_DOCUMENT
        assert _spans(workspace, second) == []
        assert len(workspace.export_all()) == 1

    def test_merged_span_checked_against_other_documents(
        self, workspace: HighlightWorkspace
    ) -> None:
        """A merge that widens into text highlighted elsewhere is rejected."""
        fox = workspace.load_document("a.txt", FOX)
        short = workspace.load_document("b.txt", "the quick")
        assert workspace.highlight_offsets(short, 0, 9).success
        assert workspace.highlight_offsets(fox, 0, 3).success
        assert workspace.highlight_offsets(fox, 4, 9).success

        result = workspace.highlight_offsets(fox, 2, 6)

        assert not result.success
        assert result.error is not None
        assert result.error.kind is ErrorKind.DUPLICATE_TEXT
        assert result.error.origin is DuplicateOrigin.OTHER_DOCUMENT
        assert _spans(workspace, fox) == [(0, 3), (4, 9)]
        assert _exported(workspace) == [
            ("a.txt", 0, 3, "the"),
            ("a.txt", 4, 9, "quick"),
            ("b.txt", 0, 9, "the quick"),
        ]

    def test_replaced_range_not_a_duplicate(
        self, make_workspace: Callable[..., HighlightWorkspace]
    ) -> None:
        """A range the insert drops does not count as a same-document repeat."""
        workspace = make_workspace(
            OverlapPolicy.SPLIT_TRUNCATE, DuplicateScope.SAME_DOCUMENT
        )
        doc = workspace.load_document("a.txt", "aaa")
        workspace.highlight_offsets(doc, 0, 2)
        assert workspace.highlight_offsets(doc, 1, 3).success
        assert _spans(workspace, doc) == [(1, 3)]

    def test_unloading_frees_duplicate(self, workspace: HighlightWorkspace) -> None:
        first = workspace.load_document("one.txt", self.FIRST)
        second = workspace.load_document("two.txt", self.SECOND)
        workspace.highlight_offsets(first, 0, 6)
        workspace.unload_document(first)
        assert workspace.highlight_offsets(second, 11, 17).success

    def test_same_document_scope(
        self, make_workspace: Callable[..., HighlightWorkspace]
    ) -> None:
        workspace = make_workspace(scope=DuplicateScope.SAME_DOCUMENT)
        doc = workspace.load_document("b.txt", "Berlin and berlin")
        other = workspace.load_document("two.txt", self.SECOND)
        workspace.highlight_offsets(doc, 0, 6)

        repeat = workspace.highlight_offsets(doc, 11, 17)
        elsewhere = workspace.highlight_offsets(other, 11, 17)

        assert repeat.error is not None
        assert repeat.error.origin is DuplicateOrigin.SAME_DOCUMENT
        assert elsewhere.success

    def test_scope_none_allows_everything(
        self, make_workspace: Callable[..., HighlightWorkspace]
    ) -> None:
        workspace = make_workspace(scope=DuplicateScope.NONE)
        first = workspace.load_document("one.txt", self.FIRST)
        second = workspace.load_document("two.txt", self.SECOND)
        workspace.highlight_offsets(first, 0, 6)
        assert workspace.highlight_offsets(second, 11, 17).success
        assert workspace.joined_text() == "Berlin berlin"


class TestRemoveByText:
    CONTENT = "Berlin and berlin and BERLIN"

    def _loaded(self, workspace: HighlightWorkspace) -> str:
        doc = workspace.load_document("b.txt", self.CONTENT)
        for start, end in [(0, 6), (11, 17), (22, 28)]:
            assert workspace.highlight_offsets(doc, start, end).success
        return doc

    def test_removes_every_match(self, workspace: HighlightWorkspace) -> None:
        doc = self._loaded(workspace)
        assert workspace.remove_highlight_by_text(doc, "berlin") is True
        assert workspace.list_highlights(doc) == []
        assert workspace.export_all() == []

    def test_first_only(self, workspace: HighlightWorkspace) -> None:
        doc = self._loaded(workspace)
        assert workspace.remove_highlight_by_text(doc, "Berlin", first_only=True)
        assert _spans(workspace, doc) == [(11, 17), (22, 28)]
        assert [e.start for e in workspace.export_all()] == [11, 22]

    def test_no_match(self, workspace: HighlightWorkspace) -> None:
        doc = self._loaded(workspace)
        assert workspace.remove_highlight_by_text(doc, "Paris") is False
        assert len(workspace.export_all()) == 3


class TestDocuments:
    def test_export_in_load_order(self, workspace: HighlightWorkspace) -> None:
        zulu = workspace.load_document("zulu.txt", "zulu yankee")
        alpha = workspace.load_document("alpha.txt", "alpha beta")
        workspace.highlight_offsets(alpha, 0, 5)
        workspace.highlight_offsets(zulu, 5, 11)
        workspace.highlight_offsets(zulu, 0, 4)
        assert _exported(workspace) == [
            ("zulu.txt", 0, 4, "zulu"),
            ("zulu.txt", 5, 11, "yankee"),
            ("alpha.txt", 0, 5, "alpha"),
        ]
        assert workspace.joined_text() == "zulu yankee alpha"

    def test_active_document(self, workspace: HighlightWorkspace) -> None:
        assert workspace.active_document_id is None
        first = workspace.load_document("one.txt", "one")
        second = workspace.load_document("two.txt", "two")
        assert workspace.active_document_id == first
        assert workspace.activate(second).name == "two.txt"
        assert workspace.active_document_id == second

        workspace.unload_document(second)
        assert workspace.active_document_id == first
        workspace.unload_document(first)
        assert workspace.active_document_id is None

    def test_unload_discards_highlights(self, workspace: HighlightWorkspace) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        workspace.unload_document(doc)
        assert workspace.export_all() == []
        assert workspace.documents() == []
        with pytest.raises(UnknownDocumentError):
            workspace.get_document(doc)

    def test_find_document(self, workspace: HighlightWorkspace) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        found = workspace.find_document("fox.txt")
        assert found is not None
        assert found.id == doc
        assert workspace.find_document("missing.txt") is None

    def test_unknown_document_raises(self, workspace: HighlightWorkspace) -> None:
        with pytest.raises(UnknownDocumentError):
            workspace.highlight_offsets("missing", 0, 1)
        with pytest.raises(UnknownDocumentError):
            workspace.remove_highlight("missing", 0, 1)

    def test_segments(self, workspace: HighlightWorkspace) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        segments = workspace.segments(doc)
        assert [s.text for s in segments] == ["the ", "quick", " brown fox"]
        assert [s.is_highlight for s in segments] == [False, True, False]


class TestSettingsDefaults:
    def test_policy_pair_from_environment(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HIGHLIGHTS__OVERLAP_POLICY", "reject-overlap")
        monkeypatch.setenv("HIGHLIGHTS__DUPLICATE_SCOPE", "none")
        workspace = HighlightWorkspace()
        assert workspace.policy is OverlapPolicy.REJECT_OVERLAP
        assert workspace.scope is DuplicateScope.NONE
        assert workspace.trim_whitespace is True

    def test_explicit_arguments_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HIGHLIGHTS__OVERLAP_POLICY", "reject-overlap")
        workspace = HighlightWorkspace(policy=OverlapPolicy.SPLIT_TRUNCATE)
        assert workspace.policy is OverlapPolicy.SPLIT_TRUNCATE


class TestTreeSelections:
    """Selections reported as anchors into the rendered HTML view."""

    def test_select_in_plain_text(self, workspace: HighlightWorkspace) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        index = build_text_index(workspace.segments(doc))
        tail = index.root.find_text(" brown fox")
        assert tail is not None

        result = workspace.insert_highlight(
            doc,
            TreeSelection(index, SelectionAnchor(tail, 1), SelectionAnchor(tail, 6)),
        )

        assert result.range is not None
        assert (result.range.span, result.range.text) == ((10, 15), "brown")

    def test_drag_over_remove_control(self, workspace: HighlightWorkspace) -> None:
        """A selection ending on the remove glyph stops at the highlight end."""
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        index = build_text_index(workspace.segments(doc))
        head = index.root.find_text("the ")
        glyph = index.root.find_text("×")
        assert head is not None
        assert glyph is not None

        result = workspace.insert_highlight(
            doc,
            TreeSelection(index, SelectionAnchor(glyph, 1), SelectionAnchor(head, 0)),
        )

        assert result.range is not None
        assert result.range.span == (0, 9)
        assert _spans(workspace, doc) == [(0, 9)]

    def test_index_of_other_document_rejected(
        self, workspace: HighlightWorkspace
    ) -> None:
        doc = workspace.load_document("fox.txt", FOX)
        other = workspace.load_document("dog.txt", "the lazy dog")
        index = build_text_index(workspace.segments(other))
        leaf = index.root.find_text("the lazy dog")
        assert leaf is not None

        result = workspace.insert_highlight(
            doc,
            TreeSelection(index, SelectionAnchor(leaf, 0), SelectionAnchor(leaf, 3)),
        )

        assert result.error is not None
        assert result.error.kind is ErrorKind.OUT_OF_BOUNDS
        assert _spans(workspace, doc) == []


class TestListeners:
    def test_events_after_commit(self, workspace: HighlightWorkspace) -> None:
        events: list[HighlightEvent] = []
        doc = workspace.load_document("fox.txt", FOX)

        def listener(event: HighlightEvent) -> None:
            # State is already committed when listeners run
            assert [e.start for e in workspace.export_all()] == [
                r.start for r in workspace.list_highlights(event.document_id)
            ]
            events.append(event)

        workspace.subscribe(listener)
        workspace.highlight_offsets(doc, 0, 3)
        workspace.highlight_offsets(doc, 2, 9)
        workspace.remove_highlight(doc, 0, 9)

        assert [e.kind for e in events] == [
            EventKind.HIGHLIGHT_ADDED,
            EventKind.HIGHLIGHT_ADDED,
            EventKind.HIGHLIGHT_REMOVED,
        ]
        assert [r.span for r in events[1].added] == [(0, 9)]
        assert [r.span for r in events[1].removed] == [(0, 3)]

    def test_rejection_does_not_notify(self, workspace: HighlightWorkspace) -> None:
        events: list[HighlightEvent] = []
        doc = workspace.load_document("fox.txt", FOX)
        workspace.subscribe(events.append)
        workspace.highlight_offsets(doc, 5, 5)
        workspace.remove_highlight(doc, 0, 3)
        assert events == []

    def test_unsubscribe(self, workspace: HighlightWorkspace) -> None:
        events: list[HighlightEvent] = []
        unsubscribe = workspace.subscribe(events.append)
        workspace.load_document("one.txt", "one")
        unsubscribe()
        workspace.load_document("two.txt", "two")
        assert [e.kind for e in events] == [EventKind.DOCUMENT_LOADED]

    def test_failing_listener_does_not_undo_mutation(
        self, workspace: HighlightWorkspace, caplog: pytest.LogCaptureFixture
    ) -> None:
        events: list[HighlightEvent] = []
        doc = workspace.load_document("fox.txt", FOX)

        def broken(event: HighlightEvent) -> None:
            raise RuntimeError("listener bug")

        workspace.subscribe(broken)
        workspace.subscribe(events.append)

        with caplog.at_level(logging.ERROR, logger="marginalia.highlights.workspace"):
            result = workspace.highlight_offsets(doc, 4, 9)

        assert result.success
        assert _spans(workspace, doc) == [(4, 9)]
        assert len(events) == 1
        assert "listener" in caplog.text

    def test_unload_event_lists_removed(self, workspace: HighlightWorkspace) -> None:
        events: list[HighlightEvent] = []
        doc = workspace.load_document("fox.txt", FOX)
        workspace.highlight_offsets(doc, 4, 9)
        workspace.subscribe(events.append)
        workspace.unload_document(doc)
        assert events[0].kind is EventKind.DOCUMENT_UNLOADED
        assert [r.span for r in events[0].removed] == [(4, 9)]


def _mirrored(workspace: HighlightWorkspace) -> list[tuple[str, int, int, str]]:
    return [
        (doc.id, r.start, r.end, r.text)
        for doc in workspace.documents()
        for r in workspace.list_highlights(doc.id)
    ]


class TestRegistryMirrorsStores:
    """export_all() always equals the per-document stores in load order."""

    CONTENTS = {
        "one.txt": "the quick brown fox jumps over the lazy dog",
        "two.txt": "Quick thinking and the   lazy afternoon",
        "three.txt": "dog days of summer, the fox said",
    }

    @pytest.mark.parametrize("policy", list(OverlapPolicy))
    @pytest.mark.parametrize(
        "scope", [DuplicateScope.NONE, DuplicateScope.ALL_DOCUMENTS]
    )
    @pytest.mark.parametrize("seed", range(10))
    def test_random_operations(
        self,
        make_workspace: Callable[..., HighlightWorkspace],
        policy: OverlapPolicy,
        scope: DuplicateScope,
        seed: int,
    ) -> None:
        rng = random.Random(seed)
        workspace = make_workspace(policy, scope)
        for name, content in self.CONTENTS.items():
            workspace.load_document(name, content)

        for _ in range(80):
            doc = rng.choice(workspace.documents())
            ranges = workspace.list_highlights(doc.id)
            roll = rng.random()
            if ranges and roll < 0.15:
                victim = rng.choice(ranges)
                assert workspace.remove_highlight(doc.id, victim.start, victim.end)
            elif ranges and roll < 0.25:
                victim = rng.choice(ranges)
                assert workspace.remove_highlight_by_text(
                    doc.id, victim.text.upper(), first_only=rng.random() < 0.5
                )
            elif roll < 0.3:
                workspace.unload_document(doc.id)
                workspace.load_document(doc.name, doc.content)
            else:
                length = len(doc.content)
                start = rng.randrange(0, length - 1)
                end = rng.randrange(start + 1, min(length, start + 10) + 1)
                workspace.highlight_offsets(doc.id, start, end)

            exported = [
                (e.document_id, e.start, e.end, e.text) for e in workspace.export_all()
            ]
            assert exported == _mirrored(workspace)
