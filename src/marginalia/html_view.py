"""Reference HTML rendering of highlighted documents.

Renders plain segments as ``<span>`` and highlight segments as ``<mark>``
carrying their offsets, each with a nested remove control marked
``data-x="true"``. Parsing the rendered HTML back gives the render tree a
browser would report selection anchors against.
"""

from __future__ import annotations

import html as html_module
from typing import TYPE_CHECKING

from marginalia.highlights.offsets import TextIndex
from marginalia.highlights.render_tree import CONTROL_ATTR, parse_render_tree

if TYPE_CHECKING:
    from collections.abc import Iterable

    from marginalia.highlights.models import Segment

REMOVE_GLYPH = "×"


def _render_segment(segment: Segment) -> str:
    # Parsers normalise CRLF to LF; a character reference keeps the \r
    text = html_module.escape(segment.text, quote=False).replace("\r", "&#13;")
    if not segment.is_highlight or segment.range is None:
        return f'<span class="plain">{text}</span>'
    start, end = segment.range.span
    return (
        f'<mark class="highlight" data-start="{start}" data-end="{end}">'
        f"{text}"
        f'<span class="remove" {CONTROL_ATTR}="true" title="Remove highlight">'
        f"{REMOVE_GLYPH}</span>"
        "</mark>"
    )


def render_document_html(segments: Iterable[Segment]) -> str:
    """Render *segments* as a single ``<div class="document">`` fragment."""
    body = "".join(_render_segment(segment) for segment in segments)
    return f'<div class="document">{body}</div>'


def build_text_index(segments: Iterable[Segment]) -> TextIndex:
    """Render *segments* and index the resulting tree for selection anchors."""
    return TextIndex(parse_render_tree(render_document_html(segments)))
