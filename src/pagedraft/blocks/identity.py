"""Block identity assignment.

Every block of a parsed sequence gets an identity that is unique within the
sequence and stable across re-parses of unchanged content:

1. A running per-signature counter gives each block its *occurrence*
   (0 for the first block with a signature, 1 for the next, and so on).
2. Blocks that already carry an identity (read from the identity attribute,
   or kept from an earlier pass) claim it first-come.
3. Every other block gets ``synthesize_identity(signature, occurrence)``;
   a residual collision is resolved by appending ``-1``, ``-2`` …

Collisions never raise.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from pagedraft.blocks.signature import compute_signature
from pagedraft.html.tree import Node, element_children, parse, serialize
from pagedraft.models import Block
from pagedraft.utils.hashing import md5_hash

_DEFAULT_ATTRIBUTE = "data-cms-id"


def synthesize_identity(seed: str, occurrence: int) -> str:
    """Return ``"b" + seed[:12] + "-" + occurrence``.

    *seed* is normally the block signature; callers fall back to an MD5 of
    the raw markup when no signature is available.
    """
    return f"b{seed[:12]}-{occurrence}"


def assign_identities(blocks: Sequence[Block]) -> list[Block]:
    """Return *blocks* with occurrences counted and identities resolved.

    Pure: the input blocks are not modified.  Prior identities on the input
    blocks are kept when still unused in this pass.
    """
    counts: dict[str, int] = {}
    occurrences: list[int] = []
    for block in blocks:
        key = block.signature or md5_hash(block.html)
        occurrence = counts.get(key, 0)
        counts[key] = occurrence + 1
        occurrences.append(occurrence)

    used: set[str] = set()
    identities: list[str | None] = [None] * len(blocks)

    # Pass 1: prior identities, first-come.
    for i, block in enumerate(blocks):
        if block.identity and block.identity not in used:
            identities[i] = block.identity
            used.add(block.identity)

    # Pass 2: synthesize the rest.
    for i, block in enumerate(blocks):
        if identities[i] is not None:
            continue
        base = synthesize_identity(block.signature or md5_hash(block.html), occurrences[i])
        candidate = base
        suffix = 1
        while candidate in used:
            candidate = f"{base}-{suffix}"
            suffix += 1
        identities[i] = candidate
        used.add(candidate)

    return [
        replace(block, occurrence=occurrences[i], identity=identities[i] or "")
        for i, block in enumerate(blocks)
    ]


def _identity_attribute(config: Any | None) -> str:
    return getattr(config, "identity_attribute", None) or _DEFAULT_ATTRIBUTE


def block_from_node(node: Node, config: Any | None = None) -> Block:
    """Build an unassigned :class:`Block` from a top-level element.

    The identity attribute is read into ``Block.identity`` and removed from
    ``Block.html``.
    """
    attribute = _identity_attribute(config)
    prior = node.attrs.get(attribute, "").strip()
    clean = Node(
        tag=node.tag,
        attrs={k: v for k, v in node.attrs.items() if k != attribute},
        children=node.children,
        text=node.text,
    )
    return Block(
        html=serialize(clean),
        signature=compute_signature(clean, config),
        identity=prior,
    )


def parse_blocks(main_html: str, config: Any | None = None) -> list[Block]:
    """Parse a main region into identified blocks.

    Every top-level element is a block; text and comments between elements
    are not.
    """
    root = parse(main_html)
    blocks = [block_from_node(node, config) for node in element_children(root)]
    return assign_identities(blocks)


def identity_for_new_block(block: Block, existing: Sequence[Block]) -> str:
    """Return the identity a freshly inserted *block* gets next to *existing*.

    The existing blocks keep their identities; the new block is counted
    after them.
    """
    assigned = assign_identities([*existing, replace(block, identity="")])
    return assigned[-1].identity


# ---------------------------------------------------------------------------
# Attribute stamping
# ---------------------------------------------------------------------------

def stamp_identity(html: str, identity: str, attribute: str = _DEFAULT_ATTRIBUTE) -> str:
    """Write *identity* onto the first top-level element of *html*.

    Markup without a top-level element is returned unchanged.
    """
    root = parse(html)
    for node in root.children:
        if node.is_element:
            node.attrs[attribute] = identity
            return serialize(root)
    return html


def _strip(node: Node, attribute: str) -> bool:
    changed = False
    if node.is_element and attribute in node.attrs:
        del node.attrs[attribute]
        changed = True
    for child in node.children:
        changed = _strip(child, attribute) or changed
    return changed


def strip_identity(html: str, attribute: str = _DEFAULT_ATTRIBUTE) -> str:
    """Remove every *attribute* occurrence from *html*.

    Returns the input unchanged when the attribute is absent.
    """
    if attribute not in html:
        return html
    root = parse(html)
    if not _strip(root, attribute):
        return html
    return serialize(root)
