"""Cross-document aggregate of committed highlights.

Entries are kept ordered by ``(document registration index, start)``:
documents sort by when they were first loaded, never alphabetically.
"""

from __future__ import annotations

import bisect
from typing import TYPE_CHECKING

from marginalia.highlights.models import RegistryEntry, UnknownDocumentError

if TYPE_CHECKING:
    from marginalia.highlights.models import HighlightRange


class GlobalRegistry:
    """Ordered projection of every document's committed ranges."""

    def __init__(self) -> None:
        self._order: dict[str, int] = {}
        self._names: dict[str, str] = {}
        self._entries: list[RegistryEntry] = []
        self._next_index = 0

    def _key(self, entry: RegistryEntry) -> tuple[int, int]:
        return (self._order[entry.document_id], entry.start)

    def register_document(self, document_id: str, name: str) -> int:
        """Assign *document_id* the next registration index (idempotent)."""
        if document_id not in self._order:
            self._order[document_id] = self._next_index
            self._names[document_id] = name
            self._next_index += 1
        return self._order[document_id]

    def _require(self, document_id: str) -> None:
        if document_id not in self._order:
            raise UnknownDocumentError(document_id)

    def add(self, document_id: str, highlight: HighlightRange) -> RegistryEntry:
        self._require(document_id)
        entry = RegistryEntry(
            document_id=document_id,
            document_name=self._names[document_id],
            start=highlight.start,
            end=highlight.end,
            text=highlight.text,
        )
        bisect.insort(self._entries, entry, key=self._key)
        return entry

    def remove(self, document_id: str, highlight: HighlightRange) -> bool:
        """Remove the entry mirroring *highlight*; False if it was not present."""
        self._require(document_id)
        key = (self._order[document_id], highlight.start)
        index = bisect.bisect_left(self._entries, key, key=self._key)
        if index == len(self._entries):
            return False
        # Ranges of one document never share a start
        entry = self._entries[index]
        if (entry.document_id, entry.start, entry.end) != (
            document_id,
            highlight.start,
            highlight.end,
        ):
            return False
        del self._entries[index]
        return True

    def discard_document(self, document_id: str) -> list[RegistryEntry]:
        """Drop a document and all its entries.

        A document loaded again later receives a new, later registration index.
        """
        self._require(document_id)
        removed = [e for e in self._entries if e.document_id == document_id]
        self._entries = [e for e in self._entries if e.document_id != document_id]
        del self._order[document_id]
        del self._names[document_id]
        return removed

    def all(self) -> list[RegistryEntry]:
        return list(self._entries)

    def for_document(self, document_id: str) -> list[RegistryEntry]:
        return [e for e in self._entries if e.document_id == document_id]

    def joined_text(self, separator: str = " ") -> str:
        """Concatenate every highlighted text in registry order."""
        return separator.join(entry.text for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)
