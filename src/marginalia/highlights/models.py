"""Data models for the highlight interval engine.

These are plain frozen dataclasses. Offsets are half-open ``[start, end)``
indices into a document's flat text; every range carries the text it covers,
sliced from the document content at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class OverlapPolicy(StrEnum):
    """What happens when a new highlight intersects existing ones."""

    REJECT_OVERLAP = "reject-overlap"
    MERGE_UNION = "merge-union"
    SPLIT_TRUNCATE = "split-truncate"


class DuplicateScope(StrEnum):
    """Where the duplicate guard looks for highlights with equal text."""

    NONE = "none"
    SAME_DOCUMENT = "same-document"
    CROSS_DOCUMENT = "cross-document"
    ALL_DOCUMENTS = "all-documents"


class ErrorKind(StrEnum):
    """Recoverable failure kinds returned by insert and remove operations."""

    EMPTY_SELECTION = "empty_selection"
    OUT_OF_BOUNDS = "out_of_bounds"
    OVERLAP_REJECTED = "overlap_rejected"
    DUPLICATE_TEXT = "duplicate_text"
    NOT_FOUND = "not_found"


class DuplicateOrigin(StrEnum):
    """Where the conflicting duplicate highlight lives."""

    SAME_DOCUMENT = "same_document"
    OTHER_DOCUMENT = "other_document"


class SegmentKind(StrEnum):
    PLAIN = "plain"
    HIGHLIGHT = "highlight"


@dataclass(frozen=True)
class HighlightRange:
    """A committed highlight: ``content[start:end]`` of one document.

    Build instances with :meth:`from_content` so that ``text`` can never
    drift from the content it was sliced from.

    Attributes:
        start: Starting character index (inclusive).
        end: Ending character index (exclusive).
        text: The highlighted text content.
    """

    start: int
    end: int
    text: str

    @classmethod
    def from_content(cls, content: str, start: int, end: int) -> HighlightRange:
        if not 0 <= start < end <= len(content):
            msg = f"range [{start}, {end}) outside content of length {len(content)}"
            raise ValueError(msg)
        return cls(start=start, end=end, text=content[start:end])

    @property
    def span(self) -> tuple[int, int]:
        return (self.start, self.end)

    def __len__(self) -> int:
        return self.end - self.start

    def intersects(self, start: int, end: int) -> bool:
        """True if ``[start, end)`` shares at least one character with this range."""
        return end > self.start and start < self.end

    def touches(self, start: int, end: int) -> bool:
        """True if ``[start, end)`` intersects or is directly adjacent."""
        return end >= self.start and start <= self.end


@dataclass(frozen=True)
class Candidate:
    """A resolved selection that has not been committed yet."""

    start: int
    end: int
    text: str


@dataclass(frozen=True)
class Rejection:
    """Typed failure describing why an operation did not change any state.

    Attributes:
        kind: The failure category.
        message: Human-readable explanation, suitable for a UI alert.
        origin: For duplicate rejections, where the conflicting text lives.
    """

    kind: ErrorKind
    message: str
    origin: DuplicateOrigin | None = None


@dataclass(frozen=True)
class InsertResult:
    """Result of inserting a highlight.

    Attributes:
        success: Whether the highlight was committed.
        range: The committed range. Under merge-union this is the union span,
            which may be wider than the selection.
        displaced: Existing ranges removed to make room (merged or truncated).
        error: Why the insert was rejected, if it was.
    """

    success: bool
    range: HighlightRange | None = None
    displaced: tuple[HighlightRange, ...] = ()
    error: Rejection | None = None

    @classmethod
    def rejected(cls, error: Rejection) -> InsertResult:
        return cls(success=False, error=error)


@dataclass(frozen=True)
class RegistryEntry:
    """One committed highlight in the cross-document aggregate view."""

    document_id: str
    document_name: str
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class Segment:
    """A contiguous piece of document text tagged plain or highlighted."""

    kind: SegmentKind
    text: str
    range: HighlightRange | None = None

    @property
    def is_highlight(self) -> bool:
        return self.kind is SegmentKind.HIGHLIGHT


class UnknownDocumentError(KeyError):
    """Raised when an operation references a document that is not loaded."""

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"Unknown document_id: {document_id}")
