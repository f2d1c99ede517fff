"""Selection → absolute offset resolution.

Turns a raw user selection into a ``Candidate`` whose offsets index the
document's flat text. Two adapters produce raw offsets:

- ``TreeSelection`` resolves ``(node, offset)`` anchors against a
  ``TextIndex`` built once from a render tree;
- ``OffsetSelection`` carries absolute offsets the caller already has.

``resolve_candidate()`` then normalizes, bounds-checks and trims them against
the content string. Nothing here traverses a live UI tree.
"""

# Pattern: Functional Core (pure functions over the flat text)

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from marginalia.highlights.models import (
    Candidate,
    ErrorKind,
    OverlapPolicy,
    Rejection,
)
from marginalia.highlights.render_tree import BLOCK_TAGS

if TYPE_CHECKING:
    from collections.abc import Iterable

    from marginalia.highlights.models import HighlightRange
    from marginalia.highlights.render_tree import RenderNode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Flat text index
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexedNode:
    """Where one render node's text falls in the flat character stream."""

    node: RenderNode
    start: int
    end: int
    counted: bool


class TextIndex:
    """One-time flat text index over a render tree.

    Walks text leaves in document order and records the ``[start, end)``
    span every node covers. Leaves that do not count towards offsets get
    width 0:

    - control leaves (inside a ``data-x="true"`` affordance);
    - empty leaves;
    - whitespace-only leaves directly inside block containers (formatting
      indentation between tags, not content).
    """

    def __init__(self, root: RenderNode) -> None:
        self.root = root
        self._spans: dict[RenderNode, IndexedNode] = {}
        self._chars: list[str] = []
        self._walk(root)
        self.text = "".join(self._chars)

    def _walk(self, node: RenderNode) -> None:
        start = len(self._chars)

        if node.is_text:
            counted = bool(node.text) and not node.is_control
            if counted and node.text.isspace():
                parent = node.parent
                counted = parent is None or parent.tag not in BLOCK_TAGS
            if counted:
                self._chars.extend(node.text)
            self._spans[node] = IndexedNode(node, start, len(self._chars), counted)
            return

        for child in node.children:
            self._walk(child)
        self._spans[node] = IndexedNode(node, start, len(self._chars), True)

    def __len__(self) -> int:
        return len(self.text)

    def __contains__(self, node: object) -> bool:
        return node in self._spans

    def span_of(self, node: RenderNode) -> tuple[int, int] | None:
        """Return the flat-text span a node covers, or None if not indexed."""
        indexed = self._spans.get(node)
        if indexed is None:
            return None
        return (indexed.start, indexed.end)

    def leaves(self) -> list[IndexedNode]:
        """Indexed text leaves in document order, including width-0 ones."""
        return [
            self._spans[leaf]
            for leaf in self.root.iter_text_leaves()
            if leaf in self._spans
        ]

    def locate(self, anchor: SelectionAnchor) -> int | None:
        """Map a DOM-style boundary point to an absolute offset.

        Text leaves take the in-node offset (clamped to the leaf); width-0
        leaves resolve to their position. Element anchors count children, so
        ``offset == len(children)`` means "after the last child".
        """
        indexed = self._spans.get(anchor.node)
        if indexed is None:
            return None

        node = anchor.node
        if node.is_text:
            if not indexed.counted:
                return indexed.start
            return indexed.start + max(0, min(anchor.offset, len(node.text)))

        children = node.children
        if anchor.offset <= 0:
            return indexed.start
        if anchor.offset >= len(children):
            return indexed.end
        return self._spans[children[anchor.offset]].start


# ---------------------------------------------------------------------------
# Selection adapters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectionAnchor:
    """A boundary point: a render node plus an offset inside it."""

    node: RenderNode
    offset: int


class SelectionSource(Protocol):
    """Anything that can report raw absolute offsets for a selection."""

    @property
    def source_text(self) -> str | None:
        """Flat text the offsets were computed against, if known."""
        ...

    def offsets(self) -> tuple[int, int] | None:
        """Raw ``(anchor, focus)`` offsets, or None if unresolvable."""
        ...


@dataclass(frozen=True)
class OffsetSelection:
    """A selection already expressed as absolute offsets."""

    start: int
    end: int

    @property
    def source_text(self) -> str | None:
        return None

    def offsets(self) -> tuple[int, int] | None:
        return (self.start, self.end)


@dataclass(frozen=True)
class TreeSelection:
    """A selection expressed as anchors into an indexed render tree.

    Attributes:
        index: Text index of the tree the anchors point into.
        anchor: Where the selection gesture started.
        focus: Where it ended (may precede ``anchor``).
    """

    index: TextIndex
    anchor: SelectionAnchor
    focus: SelectionAnchor

    @property
    def source_text(self) -> str | None:
        return self.index.text

    def offsets(self) -> tuple[int, int] | None:
        start = self.index.locate(self.anchor)
        end = self.index.locate(self.focus)
        if start is None or end is None:
            return None
        return (start, end)


# ---------------------------------------------------------------------------
# Candidate resolution
# ---------------------------------------------------------------------------


def trim_offsets(content: str, start: int, end: int) -> tuple[int, int]:
    """Shrink ``[start, end)`` inward past leading/trailing whitespace."""
    raw = content[start:end]
    leading = len(raw) - len(raw.lstrip())
    trailing = len(raw) - len(raw.rstrip())
    if leading == len(raw):
        return (start, start)
    return (start + leading, end - trailing)


def resolve_candidate(
    content: str,
    selection: SelectionSource,
    existing: Iterable[HighlightRange] = (),
    *,
    policy: OverlapPolicy | None = None,
    trim: bool = True,
) -> Candidate | Rejection:
    """Resolve a raw selection into a candidate highlight.

    Args:
        content: The document's flat text.
        selection: Adapter reporting the raw offsets.
        existing: The document's committed ranges.
        policy: Active overlap policy; only ``reject-overlap`` is checked here.
        trim: Strip leading/trailing whitespace from the selection.

    Returns:
        A ``Candidate`` aligned with ``content``, or a ``Rejection``.
    """
    source_text = selection.source_text
    if source_text is not None and source_text != content:
        logger.warning(
            "Selection index text (%d chars) does not match document (%d chars)",
            len(source_text),
            len(content),
        )
        return Rejection(
            ErrorKind.OUT_OF_BOUNDS, "Selection was made on a stale rendering."
        )

    offsets = selection.offsets()
    if offsets is None:
        return Rejection(
            ErrorKind.OUT_OF_BOUNDS, "Selection is outside the document."
        )

    start, end = min(offsets), max(offsets)
    if start < 0 or end > len(content):
        return Rejection(
            ErrorKind.OUT_OF_BOUNDS,
            f"Selection [{start}, {end}) is outside [0, {len(content)}].",
        )

    if trim:
        start, end = trim_offsets(content, start, end)
    if start >= end or content[start:end].isspace():
        return Rejection(ErrorKind.EMPTY_SELECTION, "Nothing was selected.")

    if policy is OverlapPolicy.REJECT_OVERLAP and any(
        existing_range.intersects(start, end) for existing_range in existing
    ):
        return Rejection(
            ErrorKind.OVERLAP_REJECTED,
            "Selection overlaps an existing highlight.",
        )

    return Candidate(start=start, end=end, text=content[start:end])
