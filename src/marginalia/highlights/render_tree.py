"""Framework-free render tree for selection anchors.

A host UI reports selections as ``(node, offset)`` pairs against whatever
tree it rendered. ``RenderNode`` is the neutral form of that tree: element
nodes with attributes and children, and ``#text`` leaves carrying text.
Nodes compare by identity, so anchors can reference them directly.

``parse_render_tree()`` builds the tree from rendered HTML, walking the DOM
via selectolax child/next iteration (which exposes text nodes).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from selectolax.lexbor import LexborHTMLParser

if TYPE_CHECKING:
    from collections.abc import Iterator

TEXT_TAG = "#text"

# Attribute marking an interactive affordance (e.g. the remove icon) whose
# text must not count towards character offsets.
CONTROL_ATTR = "data-x"

# Container elements where whitespace-only text children are indentation
# between tags rather than document content.
BLOCK_TAGS = frozenset(
    (
        "body",
        "div",
        "section",
        "article",
        "main",
        "ul",
        "ol",
        "li",
        "table",
        "tbody",
        "thead",
        "tr",
        "td",
        "th",
        "blockquote",
    )
)


@dataclass(eq=False)
class RenderNode:
    """One node of a rendered document tree.

    Attributes:
        tag: Element tag name, or ``"#text"`` for text leaves.
        text: Text of a ``#text`` leaf; empty for elements.
        attributes: Element attributes (values may be None for bare attributes).
        children: Child nodes in document order.
        parent: Parent node, None for the root.
    """

    tag: str
    text: str = ""
    attributes: dict[str, str | None] = field(default_factory=dict)
    children: list[RenderNode] = field(default_factory=list)
    parent: RenderNode | None = field(default=None, repr=False)

    @classmethod
    def element(cls, tag: str, *children: RenderNode, **attributes: str) -> RenderNode:
        """Build an element node, adopting *children*.

        Attribute names use ``_`` for ``-`` (``data_x="true"`` -> ``data-x``);
        a trailing ``_`` is dropped (``class_`` -> ``class``).
        """
        attrs: dict[str, str | None] = {
            name.rstrip("_").replace("_", "-"): value
            for name, value in attributes.items()
        }
        node = cls(tag=tag, attributes=attrs)
        for child in children:
            node.append(child)
        return node

    @classmethod
    def text_leaf(cls, text: str) -> RenderNode:
        return cls(tag=TEXT_TAG, text=text)

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT_TAG

    @property
    def is_control(self) -> bool:
        """True if this node or any ancestor is marked as a control affordance."""
        node: RenderNode | None = self
        while node is not None:
            if node.attributes.get(CONTROL_ATTR) == "true":
                return True
            node = node.parent
        return False

    def append(self, child: RenderNode) -> RenderNode:
        child.parent = self
        self.children.append(child)
        return child

    def iter_nodes(self) -> Iterator[RenderNode]:
        """Yield this node and its descendants in document order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_text_leaves(self) -> Iterator[RenderNode]:
        return (node for node in self.iter_nodes() if node.is_text)

    def find_text(self, text: str) -> RenderNode | None:
        """Return the first text leaf whose text equals *text*."""
        return next(
            (leaf for leaf in self.iter_text_leaves() if leaf.text == text), None
        )

def _convert(node: Any) -> RenderNode | None:
    tag = node.tag
    # selectolax tags text nodes as "-text"
    if tag == "-text":
        return RenderNode.text_leaf(node.text_content or "")
    # Comments, doctype and other non-element nodes carry no rendered text
    if not tag or tag.startswith(("-", "_", "!")):
        return None

    converted = RenderNode(tag=tag, attributes=dict(node.attributes))
    child = node.child
    while child is not None:
        sub = _convert(child)
        if sub is not None:
            converted.append(sub)
        child = child.next
    return converted


def parse_render_tree(html: str) -> RenderNode:
    """Parse rendered HTML into a ``RenderNode`` tree rooted at ``<body>``.

    Args:
        html: HTML fragment or document, as produced by the view layer.

    Returns:
        The root node. An empty input yields an empty ``body`` element.
    """
    if not html:
        return RenderNode(tag="body")

    tree = LexborHTMLParser(html)
    root = tree.body if tree.body is not None else tree.root
    if root is None:
        return RenderNode(tag="body")

    converted = _convert(root)
    return converted if converted is not None else RenderNode(tag="body")
