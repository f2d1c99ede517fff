"""Highlight interval engine: offsets, overlap policies, segments, registry."""

from marginalia.highlights.duplicates import DuplicateGuard, normalize_text
from marginalia.highlights.models import (
    Candidate,
    DuplicateOrigin,
    DuplicateScope,
    ErrorKind,
    HighlightRange,
    InsertResult,
    OverlapPolicy,
    RegistryEntry,
    Rejection,
    Segment,
    SegmentKind,
    UnknownDocumentError,
)
from marginalia.highlights.offsets import (
    OffsetSelection,
    SelectionAnchor,
    SelectionSource,
    TextIndex,
    TreeSelection,
    resolve_candidate,
)
from marginalia.highlights.registry import GlobalRegistry
from marginalia.highlights.render_tree import RenderNode, parse_render_tree
from marginalia.highlights.segments import segment_text
from marginalia.highlights.store import IntervalStore
from marginalia.highlights.workspace import (
    Document,
    EventKind,
    HighlightEvent,
    HighlightWorkspace,
)

__all__ = [
    "Candidate",
    "Document",
    "DuplicateGuard",
    "DuplicateOrigin",
    "DuplicateScope",
    "ErrorKind",
    "EventKind",
    "GlobalRegistry",
    "HighlightEvent",
    "HighlightRange",
    "HighlightWorkspace",
    "InsertResult",
    "IntervalStore",
    "OffsetSelection",
    "OverlapPolicy",
    "RegistryEntry",
    "Rejection",
    "RenderNode",
    "Segment",
    "SegmentKind",
    "SelectionAnchor",
    "SelectionSource",
    "TextIndex",
    "TreeSelection",
    "UnknownDocumentError",
    "normalize_text",
    "parse_render_tree",
    "resolve_candidate",
    "segment_text",
]
