"""Partition document text into plain and highlighted segments."""

from __future__ import annotations

from typing import TYPE_CHECKING

from marginalia.highlights.models import Segment, SegmentKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from marginalia.highlights.models import HighlightRange


def segment_text(content: str, ranges: Iterable[HighlightRange]) -> list[Segment]:
    """Split *content* into an ordered, gapless list of segments.

    *ranges* must already be sorted and non-overlapping; that is not
    re-validated here. Range bounds are clamped into ``[0, len(content)]``.
    Joining the texts of the returned segments always reproduces *content*.

    Args:
        content: The document text.
        ranges: Committed highlight ranges, sorted by start.

    Returns:
        Plain segments for the gaps and highlight segments for the ranges.
        No highlights yields a single plain segment (none for empty content).
    """
    length = len(content)
    segments: list[Segment] = []
    last = 0

    for highlight in ranges:
        start = max(0, min(length, highlight.start))
        end = max(0, min(length, highlight.end))
        if start > last:
            segments.append(Segment(SegmentKind.PLAIN, content[last:start]))
        if end > start:
            segments.append(
                Segment(SegmentKind.HIGHLIGHT, content[start:end], range=highlight)
            )
        last = max(last, end)

    if last < length:
        segments.append(Segment(SegmentKind.PLAIN, content[last:]))

    return segments
