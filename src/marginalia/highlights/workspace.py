"""Application-level controller for highlighting across loaded documents.

``HighlightWorkspace`` owns every loaded ``Document`` (content plus its
``IntervalStore``), the ``GlobalRegistry`` projection and the duplicate
guard. It is the programmatic surface the view layer calls; each mutating
call runs to completion, updating store and registry together, before any
subscribed listener is notified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias
from uuid import uuid4

from marginalia.highlights.duplicates import DuplicateGuard
from marginalia.highlights.models import (
    DuplicateScope,
    InsertResult,
    OverlapPolicy,
    Rejection,
    UnknownDocumentError,
)
from marginalia.highlights.offsets import OffsetSelection, resolve_candidate
from marginalia.highlights.registry import GlobalRegistry
from marginalia.highlights.segments import segment_text
from marginalia.highlights.store import IntervalStore

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from marginalia.highlights.models import (
        HighlightRange,
        RegistryEntry,
        Segment,
    )
    from marginalia.highlights.offsets import SelectionSource

logger = logging.getLogger(__name__)


@dataclass
class Document:
    """A loaded document and its highlight store.

    Attributes:
        id: Workspace-assigned identifier.
        name: Display name (usually the source file name).
        content: Immutable plain text.
        store: The document's highlight ranges.
    """

    id: str
    name: str
    content: str
    store: IntervalStore = field(repr=False)

    @property
    def highlights(self) -> list[HighlightRange]:
        return self.store.list_ranges()


class EventKind(StrEnum):
    DOCUMENT_LOADED = "document_loaded"
    DOCUMENT_UNLOADED = "document_unloaded"
    HIGHLIGHT_ADDED = "highlight_added"
    HIGHLIGHT_REMOVED = "highlight_removed"


@dataclass(frozen=True)
class HighlightEvent:
    """Change notification sent to listeners after a committed mutation.

    Attributes:
        kind: What happened.
        document_id: The document that changed.
        added: Ranges committed by this change.
        removed: Ranges removed by this change (including merged/truncated).
    """

    kind: EventKind
    document_id: str
    added: tuple[HighlightRange, ...] = ()
    removed: tuple[HighlightRange, ...] = ()


HighlightListener: TypeAlias = "Callable[[HighlightEvent], None]"


class HighlightWorkspace:
    """Registry of loaded documents and their highlights.

    Args:
        policy: Overlap policy for every document's store.
        scope: Duplicate-text scope.
        trim_whitespace: Trim whitespace from selections before committing.

    Unset arguments fall back to ``get_settings().highlights``.
    """

    def __init__(
        self,
        *,
        policy: OverlapPolicy | None = None,
        scope: DuplicateScope | None = None,
        trim_whitespace: bool | None = None,
    ) -> None:
        if policy is None or scope is None or trim_whitespace is None:
            from marginalia.config import get_settings

            config = get_settings().highlights
            policy = policy if policy is not None else config.overlap_policy
            scope = scope if scope is not None else config.duplicate_scope
            if trim_whitespace is None:
                trim_whitespace = config.trim_whitespace

        self.policy = policy
        self.trim_whitespace = trim_whitespace
        self._documents: dict[str, Document] = {}
        self._registry = GlobalRegistry()
        self._guard = DuplicateGuard(self._ranges_by_document, scope)
        self._listeners: list[HighlightListener] = []
        self._active_document_id: str | None = None

    @property
    def scope(self) -> DuplicateScope:
        return self._guard.scope

    def _ranges_by_document(self) -> Iterator[tuple[str, IntervalStore]]:
        return ((doc.id, doc.store) for doc in self._documents.values())

    # --- Documents ---

    def load_document(self, name: str, content: str) -> str:
        """Load a document and return its new id.

        Duplicate names are the ingestion layer's concern; the workspace
        accepts them.
        """
        document_id = str(uuid4())
        document = Document(
            id=document_id,
            name=name,
            content=content,
            store=IntervalStore(content, self.policy),
        )
        self._documents[document_id] = document
        self._registry.register_document(document_id, name)
        if self._active_document_id is None:
            self._active_document_id = document_id
        logger.info(
            "Loaded document %r (%d chars) as %s", name, len(content), document_id
        )
        self._notify(HighlightEvent(EventKind.DOCUMENT_LOADED, document_id))
        return document_id

    def unload_document(self, document_id: str) -> None:
        """Discard a document together with all of its highlights."""
        document = self.get_document(document_id)
        removed = document.store.clear()
        self._registry.discard_document(document_id)
        del self._documents[document_id]
        if self._active_document_id == document_id:
            self._active_document_id = next(iter(self._documents), None)
        logger.info("Unloaded document %s (%d highlights)", document_id, len(removed))
        self._notify(
            HighlightEvent(
                EventKind.DOCUMENT_UNLOADED, document_id, removed=tuple(removed)
            )
        )

    def get_document(self, document_id: str) -> Document:
        try:
            return self._documents[document_id]
        except KeyError:
            raise UnknownDocumentError(document_id) from None

    def documents(self) -> list[Document]:
        """Loaded documents in load order."""
        return list(self._documents.values())

    def find_document(self, name: str) -> Document | None:
        """Return the first loaded document called *name*."""
        return next((d for d in self._documents.values() if d.name == name), None)

    @property
    def active_document_id(self) -> str | None:
        return self._active_document_id

    def activate(self, document_id: str) -> Document:
        """Make *document_id* the current document for the view layer."""
        document = self.get_document(document_id)
        self._active_document_id = document_id
        return document

    # --- Highlights ---

    def insert_highlight(
        self, document_id: str, selection: SelectionSource
    ) -> InsertResult:
        """Resolve *selection* and commit it as a highlight.

        Flow: resolve offsets → plan the committed span → duplicate guard →
        store insert → registry mirror → notify. Any rejection returns before
        state changes.
        """
        document = self.get_document(document_id)

        resolved = resolve_candidate(
            document.content,
            selection,
            document.store,
            policy=self.policy,
            trim=self.trim_whitespace,
        )
        if isinstance(resolved, Rejection):
            logger.debug("Selection rejected in %s: %s", document_id, resolved.kind)
            return InsertResult.rejected(resolved)

        # Guard the span as it will be committed (a merge may widen it)
        planned = document.store.plan(resolved)
        if isinstance(planned, Rejection):
            logger.debug("Insert rejected in %s: %s", document_id, planned.kind)
            return InsertResult.rejected(planned)
        duplicate = self._guard.check(
            planned,
            document_id,
            replacing=document.store.displaced_by(resolved.start, resolved.end),
        )
        if duplicate is not None:
            logger.debug("Duplicate rejected in %s: %r", document_id, planned.text)
            return InsertResult.rejected(duplicate)

        result = document.store.insert(resolved)
        if not result.success or result.range is None:
            logger.debug("Insert rejected in %s: %s", document_id, result.error)
            return result

        for displaced in result.displaced:
            self._registry.remove(document_id, displaced)
        self._registry.add(document_id, result.range)

        logger.info(
            "Highlighted [%d, %d) in %s",
            result.range.start,
            result.range.end,
            document.name,
        )
        self._notify(
            HighlightEvent(
                EventKind.HIGHLIGHT_ADDED,
                document_id,
                added=(result.range,),
                removed=result.displaced,
            )
        )
        return result

    def highlight_offsets(self, document_id: str, start: int, end: int) -> InsertResult:
        """Convenience wrapper for selections already given as offsets."""
        return self.insert_highlight(document_id, OffsetSelection(start, end))

    def remove_highlight(self, document_id: str, start: int, end: int) -> bool:
        """Remove the highlight spanning exactly ``[start, end)``.

        Returns:
            True if removed; False (nothing changes) if no such highlight.
        """
        document = self.get_document(document_id)
        target = next((r for r in document.store if r.span == (start, end)), None)
        if target is None or not document.store.remove(start, end):
            return False
        self._registry.remove(document_id, target)
        logger.info("Removed highlight [%d, %d) from %s", start, end, document.name)
        self._notify(
            HighlightEvent(EventKind.HIGHLIGHT_REMOVED, document_id, removed=(target,))
        )
        return True

    def remove_highlight_by_text(
        self, document_id: str, text: str, *, first_only: bool = False
    ) -> bool:
        """Remove highlights whose text matches *text* (case/spacing-insensitive)."""
        document = self.get_document(document_id)
        removed = document.store.remove_by_text(text, first_only=first_only)
        if not removed:
            return False
        for highlight in removed:
            self._registry.remove(document_id, highlight)
        logger.info("Removed %d highlight(s) matching %r", len(removed), text)
        self._notify(
            HighlightEvent(
                EventKind.HIGHLIGHT_REMOVED, document_id, removed=tuple(removed)
            )
        )
        return True

    def list_highlights(self, document_id: str) -> list[HighlightRange]:
        return self.get_document(document_id).store.list_ranges()

    def export_all(self) -> list[RegistryEntry]:
        """All committed highlights ordered by (document load order, start)."""
        return self._registry.all()

    def joined_text(self, separator: str = " ") -> str:
        return self._registry.joined_text(separator)

    def segments(self, document_id: str) -> list[Segment]:
        document = self.get_document(document_id)
        return segment_text(document.content, document.store.list_ranges())

    # --- Change notification ---

    def subscribe(self, listener: HighlightListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: HighlightEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Mutation is already committed; remaining listeners still run
                logger.exception(
                    "Highlight listener %r failed on %s", listener, event.kind
                )
