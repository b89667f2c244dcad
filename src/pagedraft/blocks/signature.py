"""Block signature computation.

Computes a content fingerprint for a block's serialized form.  Two blocks
that produce identical signatures are treated as *duplicates* for
occurrence counting; they are never merged into one.

The fingerprint is taken over a canonical structure derived from the
block's node tree:

* attributes are sorted, class tokens sorted and de-duplicated;
* the identity attribute and the configured volatile attributes are
  dropped;
* runs of ASCII whitespace in text collapse to a single space, and
  whitespace that only separates block-level boundaries is dropped
  (``pre``/``textarea``/``script``/``style`` keep their whitespace);
* ephemeral render-only elements are removed and syntax-highlight
  decoration spans are unwrapped;
* comments are ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from pagedraft.config import (
    DEFAULT_DECORATION_CLASS_PREFIXES,
    DEFAULT_DECORATION_CLASSES,
    DEFAULT_EPHEMERAL_CLASSES,
    DEFAULT_VOLATILE_ATTRIBUTES,
)
from pagedraft.html.tree import COMMENT, TEXT, Node, parse
from pagedraft.utils.hashing import hash_dict

_WS_RE = re.compile(r"[ \t\n\r\f]+")

_PRESERVE_WS: frozenset[str] = frozenset({"pre", "textarea", "script", "style"})

BLOCK_LEVEL: frozenset[str] = frozenset({
    "address", "article", "aside", "blockquote", "details", "dialog", "dd",
    "div", "dl", "dt", "fieldset", "figcaption", "figure", "footer", "form",
    "h1", "h2", "h3", "h4", "h5", "h6", "header", "hgroup", "hr", "li",
    "main", "nav", "ol", "p", "pre", "section", "summary", "table", "tbody",
    "thead", "tfoot", "tr", "td", "th", "ul", "picture", "video", "audio",
    "iframe", "canvas", "svg",
})

_EPHEMERAL_ATTRIBUTE = "data-cms-ephemeral"


@dataclass(frozen=True)
class _Rules:
    """Normalisation rules resolved from a config (or the defaults)."""

    ignored_attributes: frozenset[str]
    ephemeral_classes: frozenset[str]
    decoration_prefixes: tuple[str, ...]
    decoration_classes: frozenset[str]


def _rules_for(config: Any | None) -> _Rules:
    if config is None:
        return _DEFAULT_RULES
    return _Rules(
        ignored_attributes=frozenset(
            [config.identity_attribute, *config.volatile_attributes]
        ),
        ephemeral_classes=frozenset(config.ephemeral_classes),
        decoration_prefixes=tuple(config.decoration_class_prefixes),
        decoration_classes=frozenset(config.decoration_classes),
    )


_DEFAULT_RULES = _Rules(
    ignored_attributes=frozenset(["data-cms-id", *DEFAULT_VOLATILE_ATTRIBUTES]),
    ephemeral_classes=frozenset(DEFAULT_EPHEMERAL_CLASSES),
    decoration_prefixes=tuple(DEFAULT_DECORATION_CLASS_PREFIXES),
    decoration_classes=frozenset(DEFAULT_DECORATION_CLASSES),
)


def _is_decoration(cls: str, rules: _Rules) -> bool:
    return cls in rules.decoration_classes or cls.startswith(rules.decoration_prefixes)


def _is_ephemeral(node: Node, rules: _Rules) -> bool:
    if _EPHEMERAL_ATTRIBUTE in node.attrs:
        return True
    return any(cls in rules.ephemeral_classes for cls in node.classes())


def _canonical_attrs(node: Node, rules: _Rules) -> list[list[str]]:
    attrs: list[list[str]] = []
    for name, value in node.attrs.items():
        if name in rules.ignored_attributes:
            continue
        if name == "class":
            tokens = sorted({c for c in value.split() if not _is_decoration(c, rules)})
            if not tokens:
                continue
            value = " ".join(tokens)
        elif name == "style":
            value = ";".join(
                _WS_RE.sub(" ", part).strip().replace(" :", ":").replace(": ", ":")
                for part in value.split(";")
                if part.strip()
            )
        else:
            value = value.strip()
        attrs.append([name, value])
    attrs.sort()
    return attrs


def _canonical_children(
    node: Node, rules: _Rules, preserve: bool
) -> list[Any]:
    """Canonicalize *node*'s children, unwrapping decoration spans."""
    items: list[Any] = []
    for child in node.children:
        if child.tag == COMMENT:
            continue
        if child.tag == TEXT:
            text = child.text.replace("\r\n", "\n")
            items.append(text if preserve else _WS_RE.sub(" ", text))
            continue
        if not child.is_element:
            continue
        if _is_ephemeral(child, rules):
            continue
        classes = child.classes()
        if (
            child.tag == "span"
            and classes
            and all(_is_decoration(c, rules) for c in classes)
        ):
            items.extend(_canonical_children(child, rules, preserve))
            continue
        items.append(_canonical_element(child, rules, preserve))

    # Merge adjacent text produced by unwrapping.
    merged: list[Any] = []
    for item in items:
        if isinstance(item, str) and merged and isinstance(merged[-1], str):
            merged[-1] = merged[-1] + item
            if not preserve:
                merged[-1] = _WS_RE.sub(" ", merged[-1])
        else:
            merged.append(item)
    return merged


def _is_block_item(item: Any) -> bool:
    return isinstance(item, list) and item[1] in BLOCK_LEVEL


def _trim_whitespace(items: list[Any], container_is_block: bool) -> list[Any]:
    result: list[Any] = []
    last = len(items) - 1
    for i, item in enumerate(items):
        if not isinstance(item, str):
            result.append(item)
            continue
        prev_block = (i == 0 and container_is_block) or (i > 0 and _is_block_item(items[i - 1]))
        next_block = (i == last and container_is_block) or (i < last and _is_block_item(items[i + 1]))
        if prev_block:
            item = item.lstrip(" ")
        if next_block:
            item = item.rstrip(" ")
        if item:
            result.append(item)
    return result


def _canonical_element(node: Node, rules: _Rules, preserve: bool = False) -> list[Any]:
    preserve = preserve or node.tag in _PRESERVE_WS
    children = _canonical_children(node, rules, preserve)
    if not preserve:
        children = _trim_whitespace(children, node.tag in BLOCK_LEVEL)
    return ["el", node.tag, _canonical_attrs(node, rules), children]


def canonical_form(html_or_node: str | Node, config: Any | None = None) -> list[Any]:
    """Return the canonical structure a signature is computed from.

    Accepts block markup or an already parsed node (an element or a
    ``#fragment``).  Exposed for debugging and tests.
    """
    rules = _rules_for(config)
    node = parse(html_or_node) if isinstance(html_or_node, str) else html_or_node
    if node.is_element:
        if _is_ephemeral(node, rules):
            return []
        return [_canonical_element(node, rules)]
    return _trim_whitespace(_canonical_children(node, rules, False), True)


def compute_signature(html_or_node: str | Node, config: Any | None = None) -> str:
    """Compute the content signature of a block.

    Parameters
    ----------
    html_or_node:
        Block markup, or a parsed :class:`~pagedraft.html.tree.Node`.
    config:
        A :class:`~pagedraft.config.PageDraftConfig` supplying the identity
        attribute and normalisation rules.  Defaults apply when ``None``.

    Returns
    -------
    str
        A 32-character lowercase hex digest.  An empty or purely ephemeral
        block still has a (shared) signature.
    """
    return hash_dict({"block": canonical_form(html_or_node, config)})
