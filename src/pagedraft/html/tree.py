"""Pure tree-of-nodes model for block HTML.

Every signature, identity and merge computation in pagedraft runs on this
model rather than on a live, mutable document.  :func:`parse` tokenises
markup with BeautifulSoup's stdlib-backed ``html.parser`` builder and
immediately converts the soup into plain :class:`Node` values;
:func:`serialize` turns a tree back into markup the way a browser's
``outerHTML`` would.

Node kinds are distinguished by ``tag``:

* ``"#fragment"`` -- root returned by :func:`parse`
* ``"#text"`` / ``"#comment"`` / ``"#doctype"`` -- payload in ``text``
* ``"#raw"`` -- CDATA, processing instructions and declarations, kept
  verbatim in ``text``
* anything else -- a lower-case element name
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag
from bs4.element import CData, Declaration, ProcessingInstruction

FRAGMENT = "#fragment"
TEXT = "#text"
COMMENT = "#comment"
DOCTYPE = "#doctype"
RAW = "#raw"

VOID_ELEMENTS: frozenset[str] = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
})

# Elements whose text content is emitted without escaping.
RAW_TEXT_ELEMENTS: frozenset[str] = frozenset({
    "script", "style", "xmp", "iframe", "noembed", "noframes", "noscript",
})


@dataclass
class Node:
    """One node of a parsed HTML fragment.

    Attributes
    ----------
    tag:
        Element name, or one of the ``#``-prefixed kinds.
    attrs:
        Attribute map in source order.  Values are always strings;
        bare attributes carry ``""``.
    children:
        Ordered child nodes.
    text:
        Payload of text, comment, doctype and raw nodes.
    """

    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)
    text: str = ""

    @property
    def is_element(self) -> bool:
        return not self.tag.startswith("#")

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT

    def classes(self) -> list[str]:
        """Return the element's class tokens in source order."""
        return self.attrs.get("class", "").split()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _convert(element: object) -> Node | None:
    if isinstance(element, Tag):
        attrs = {
            str(k).lower(): ("" if v is None else str(v))
            for k, v in element.attrs.items()
        }
        node = Node(tag=element.name.lower(), attrs=attrs)
        for child in element.contents:
            converted = _convert(child)
            if converted is not None:
                node.children.append(converted)
        return node
    # Subclasses of NavigableString must be matched before the base class.
    if isinstance(element, Comment):
        return Node(tag=COMMENT, text=str(element))
    if isinstance(element, Doctype):
        return Node(tag=DOCTYPE, text=str(element))
    if isinstance(element, (CData, ProcessingInstruction, Declaration)):
        return Node(tag=RAW, text=element.output_ready(formatter=None))
    if isinstance(element, NavigableString):
        return Node(tag=TEXT, text=str(element))
    return None


def parse(html: str) -> Node:
    """Parse *html* into a ``#fragment`` tree.

    Pure: the returned tree shares nothing with the parser and the input
    string is not modified.
    """
    soup = BeautifulSoup(html or "", "html.parser", multi_valued_attributes=None)
    root = Node(tag=FRAGMENT)
    for child in soup.contents:
        converted = _convert(child)
        if converted is not None:
            root.children.append(converted)
    return root


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _escape_text(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("\xa0", "&nbsp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def _escape_attr(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("\xa0", "&nbsp;")
        .replace('"', "&quot;")
    )


def _serialize_into(node: Node, out: list[str], raw_text: bool = False) -> None:
    tag = node.tag
    if tag == TEXT:
        out.append(node.text if raw_text else _escape_text(node.text))
        return
    if tag == COMMENT:
        out.append(f"<!--{node.text}-->")
        return
    if tag == DOCTYPE:
        out.append(f"<!DOCTYPE {node.text}>")
        return
    if tag == RAW:
        out.append(node.text)
        return
    if tag == FRAGMENT:
        for child in node.children:
            _serialize_into(child, out)
        return

    out.append(f"<{tag}")
    for name, value in node.attrs.items():
        out.append(f' {name}="{_escape_attr(value)}"')
    out.append(">")
    if tag in VOID_ELEMENTS:
        return
    child_raw = tag in RAW_TEXT_ELEMENTS
    for child in node.children:
        _serialize_into(child, out, child_raw)
    out.append(f"</{tag}>")


def serialize(node: Node) -> str:
    """Serialize *node* (and its subtree) back into markup."""
    out: list[str] = []
    _serialize_into(node, out)
    return "".join(out)


# ---------------------------------------------------------------------------
# Traversal helpers
# ---------------------------------------------------------------------------

def element_children(node: Node) -> list[Node]:
    """Return only the element children of *node*."""
    return [child for child in node.children if child.is_element]


def iter_elements(node: Node) -> Iterator[Node]:
    """Yield every element below *node* in document order (excluding *node*)."""
    for child in node.children:
        if child.is_element:
            yield child
            yield from iter_elements(child)


def text_content(node: Node) -> str:
    """Concatenate all descendant text, like DOM ``textContent``."""
    if node.tag == TEXT:
        return node.text
    return "".join(text_content(child) for child in node.children)


def has_class(node: Node, name: str) -> bool:
    return name in node.classes()


def first_element(node: Node, tags: tuple[str, ...] | frozenset[str]) -> Node | None:
    """Return the first descendant element whose tag is in *tags*."""
    for element in iter_elements(node):
        if element.tag in tags:
            return element
    return None


def single_element(html: str) -> Node | None:
    """Return the sole top-level element of *html*, or ``None``.

    Whitespace text and comments around the element are ignored; any other
    top-level text or a second element makes the result ``None``.
    """
    root = parse(html)
    found: Node | None = None
    for child in root.children:
        if child.is_element:
            if found is not None:
                return None
            found = child
        elif child.is_text and child.text.strip():
            return None
    return found
