"""Per-document highlight interval store.

Owns one document's committed highlight ranges and applies the configured
overlap policy on insert. After every mutation the ranges are pairwise
non-overlapping and sorted by start offset.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from marginalia.highlights.duplicates import normalize_text
from marginalia.highlights.models import (
    Candidate,
    ErrorKind,
    HighlightRange,
    InsertResult,
    OverlapPolicy,
    Rejection,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class IntervalStore:
    """Sorted, non-overlapping highlight ranges for one document.

    Attributes:
        content: The document text ranges are sliced from.
        policy: Overlap resolution applied by :meth:`insert`.
    """

    def __init__(
        self,
        content: str,
        policy: OverlapPolicy = OverlapPolicy.MERGE_UNION,
    ) -> None:
        self.content = content
        self.policy = policy
        self._ranges: list[HighlightRange] = []

    def __len__(self) -> int:
        return len(self._ranges)

    def __iter__(self) -> Iterator[HighlightRange]:
        return iter(list(self._ranges))

    def __contains__(self, span: object) -> bool:
        return any(r.span == span for r in self._ranges)

    def list_ranges(self) -> list[HighlightRange]:
        """Return a copy of the ranges, sorted by start offset."""
        return list(self._ranges)

    def _commit(self, ranges: list[HighlightRange]) -> None:
        ranges.sort(key=lambda r: r.start)
        self._ranges = ranges

    # --- Insert ---

    def plan(self, candidate: Candidate) -> Candidate | Rejection:
        """Return the span *candidate* would commit as, without mutating.

        Under merge-union this is the union with every touching range, so
        callers can vet the text that will actually be stored.
        """
        start, end = candidate.start, candidate.end
        if not 0 <= start < end <= len(self.content):
            return Rejection(
                ErrorKind.OUT_OF_BOUNDS,
                f"Range [{start}, {end}) is outside [0, {len(self.content)}].",
            )
        if self.policy is OverlapPolicy.REJECT_OVERLAP and any(
            r.intersects(start, end) for r in self._ranges
        ):
            return Rejection(
                ErrorKind.OVERLAP_REJECTED,
                "Selection overlaps an existing highlight.",
            )
        if self.policy is OverlapPolicy.MERGE_UNION:
            # Touching ranges merge too: [0, 3) + [3, 5) -> [0, 5)
            absorbed = self.displaced_by(start, end)
            start = min([start, *(r.start for r in absorbed)])
            end = max([end, *(r.end for r in absorbed)])
        return Candidate(start=start, end=end, text=self.content[start:end])

    def displaced_by(self, start: int, end: int) -> list[HighlightRange]:
        """Ranges an insert of ``[start, end)`` would remove under the policy."""
        if self.policy is OverlapPolicy.MERGE_UNION:
            return [r for r in self._ranges if r.touches(start, end)]
        if self.policy is OverlapPolicy.SPLIT_TRUNCATE:
            # Contested ranges are dropped whole, not trimmed
            return [r for r in self._ranges if r.intersects(start, end)]
        return []

    def insert(self, candidate: Candidate) -> InsertResult:
        """Insert *candidate* under the store's overlap policy.

        Returns:
            ``InsertResult`` with the committed range and any ranges it
            displaced, or a rejection. A rejection leaves the store unchanged.
        """
        planned = self.plan(candidate)
        if isinstance(planned, Rejection):
            return InsertResult.rejected(planned)

        displaced = self.displaced_by(candidate.start, candidate.end)
        kept = [r for r in self._ranges if r not in displaced]
        new_range = HighlightRange.from_content(
            self.content, planned.start, planned.end
        )
        self._commit([*kept, new_range])
        if displaced:
            logger.debug(
                "%s displaced %d highlight(s) for [%d, %d)",
                self.policy,
                len(displaced),
                new_range.start,
                new_range.end,
            )
        return InsertResult(success=True, range=new_range, displaced=tuple(displaced))

    # --- Removal ---

    def remove(self, start: int, end: int) -> bool:
        """Remove the range exactly matching ``(start, end)``.

        Returns:
            True if a range was removed, False if none matched.
        """
        remaining = [r for r in self._ranges if r.span != (start, end)]
        if len(remaining) == len(self._ranges):
            return False
        self._commit(remaining)
        return True

    def remove_by_text(
        self, text: str, *, first_only: bool = False
    ) -> list[HighlightRange]:
        """Remove ranges whose normalized text equals the normalized *text*.

        Args:
            text: Text of the highlight to remove (case and spacing ignored).
            first_only: Remove only the earliest match instead of all of them.

        Returns:
            The removed ranges, in start order; empty if nothing matched.
        """
        wanted = normalize_text(text)
        removed: list[HighlightRange] = []
        remaining: list[HighlightRange] = []
        for existing in self._ranges:
            matches = normalize_text(existing.text) == wanted
            if matches and not (first_only and removed):
                removed.append(existing)
            else:
                remaining.append(existing)
        if removed:
            self._commit(remaining)
        return removed

    def clear(self) -> list[HighlightRange]:
        """Remove every range, returning what was removed."""
        removed, self._ranges = self._ranges, []
        return removed
