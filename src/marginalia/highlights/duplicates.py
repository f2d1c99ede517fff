"""Duplicate-text guard for new highlights.

Compares a candidate's normalized text against committed highlights,
within the same document, across other documents, or both. The guard is
read-only: it runs before the interval store and never mutates anything.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, TypeAlias

from marginalia.highlights.models import (
    DuplicateOrigin,
    DuplicateScope,
    ErrorKind,
    Rejection,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from marginalia.highlights.models import Candidate, HighlightRange

# Whitespace runs, including \u00a0 (nbsp)
_WHITESPACE_RUN = re.compile(r"[\s\u00a0]+")


def normalize_text(text: str) -> str:
    """Lowercase *text* and collapse whitespace runs to a single space.

    Used only for duplicate comparison, never for stored offsets.
    """
    return _WHITESPACE_RUN.sub(" ", text.lower())


RangeSource: TypeAlias = "Callable[[], Iterable[tuple[str, Iterable[HighlightRange]]]]"


class DuplicateGuard:
    """Rejects candidates whose text is already highlighted elsewhere.

    Args:
        ranges_by_document: Callable returning ``(document_id, ranges)`` pairs
            for every loaded document, so the guard always sees live state.
        scope: Where to look for duplicates.
    """

    def __init__(
        self,
        ranges_by_document: RangeSource,
        scope: DuplicateScope = DuplicateScope.CROSS_DOCUMENT,
    ) -> None:
        self._ranges_by_document = ranges_by_document
        self.scope = scope

    @property
    def checks_same_document(self) -> bool:
        return self.scope in (
            DuplicateScope.SAME_DOCUMENT,
            DuplicateScope.ALL_DOCUMENTS,
        )

    @property
    def checks_other_documents(self) -> bool:
        return self.scope in (
            DuplicateScope.CROSS_DOCUMENT,
            DuplicateScope.ALL_DOCUMENTS,
        )

    def check(
        self,
        candidate: Candidate,
        document_id: str,
        *,
        replacing: Iterable[HighlightRange] = (),
    ) -> Rejection | None:
        """Return a duplicate-text rejection, or None if *candidate* is allowed.

        Same-document matches win over other-document matches when the scope
        checks both.

        Args:
            candidate: The span as it would be committed.
            document_id: Document the candidate belongs to.
            replacing: Ranges of that document the insert would remove; they
                are not compared against.
        """
        if self.scope is DuplicateScope.NONE:
            return None

        wanted = normalize_text(candidate.text)
        replaced = {r.span for r in replacing}
        other_match = False
        for owner_id, ranges in self._ranges_by_document():
            if owner_id == document_id:
                remaining = [r for r in ranges if r.span not in replaced]
                if self.checks_same_document and _has_moved_duplicate(
                    remaining, wanted, candidate
                ):
                    return Rejection(
                        ErrorKind.DUPLICATE_TEXT,
                        f'"{candidate.text}" is already highlighted '
                        "in another position.",
                        origin=DuplicateOrigin.SAME_DOCUMENT,
                    )
            elif self.checks_other_documents and not other_match:
                other_match = any(normalize_text(r.text) == wanted for r in ranges)

        if other_match:
            return Rejection(
                ErrorKind.DUPLICATE_TEXT,
                f'"{candidate.text}" is already highlighted in another document.',
                origin=DuplicateOrigin.OTHER_DOCUMENT,
            )
        return None


def _has_moved_duplicate(
    ranges: Iterable[HighlightRange], wanted: str, candidate: Candidate
) -> bool:
    """True if an equal-text range exists at a different position."""
    return any(
        normalize_text(r.text) == wanted and r.span != (candidate.start, candidate.end)
        for r in ranges
    )
