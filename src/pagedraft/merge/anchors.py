"""Anchor resolution for edit-log records.

An on-screen insertion point is only a transient offset into whatever the
editor is currently showing.  :func:`resolve_anchors` converts it, once,
into a durable :class:`~pagedraft.models.Anchor` on a baseline block so the
record survives the baseline shifting underneath it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from pagedraft.blocks.identity import block_from_node
from pagedraft.html.tree import single_element
from pagedraft.merge.lcs_matcher import lcs_match
from pagedraft.models import Anchor, Block, EditAction, EditRecord, MergedBlock, Placement


def locate_anchor(baseline: Sequence[Block], anchor: Anchor | None) -> Block | None:
    """Return the baseline block *anchor* refers to, or ``None``.

    The identity is tried first; signature + occurrence (occurrence
    defaulting to 0) is the fallback.
    """
    if anchor is None or anchor.is_empty:
        return None
    if anchor.identity:
        for block in baseline:
            if block.identity == anchor.identity:
                return block
    if anchor.signature:
        wanted = anchor.occurrence or 0
        seen = 0
        for block in baseline:
            if block.signature == anchor.signature:
                if seen == wanted:
                    return block
                seen += 1
    return None


def record_block(record: EditRecord, config: Any | None = None) -> Block | None:
    """Return the block an insert record carries, or ``None`` if malformed."""
    node = single_element(record.html)
    if node is None:
        return None
    return block_from_node(node, config)


def _as_blocks(merged: Sequence[Block | MergedBlock]) -> list[Block]:
    return [m.block if isinstance(m, MergedBlock) else m for m in merged]


def resolve_anchors(
    baseline: Sequence[Block],
    records: Sequence[EditRecord],
    merged_blocks: Sequence[Block | MergedBlock],
    config: Any | None = None,
) -> list[EditRecord]:
    """Return a copy of *records* with anchors resolved.

    Parameters
    ----------
    baseline:
        Identified baseline blocks.
    records:
        The edit log, in log order.  Not modified.
    merged_blocks:
        The sequence currently shown to the editor, in which unanchored
        insert records were positioned.
    config:
        Supplies the identity attribute and signature rules.

    Returns
    -------
    list[EditRecord]
        New records.  Unanchored inserts found among the non-baseline
        merged blocks are anchored to the nearest baseline neighbour and
        lose their position hint; signature-only anchors get their identity
        back-filled.  Records that cannot be placed are returned unchanged.
    """
    result = [replace(r) for r in records]

    # Back-fill identities of signature-only anchors.
    for i, record in enumerate(result):
        anchor = record.anchor
        if anchor is None or anchor.identity or not anchor.signature:
            continue
        block = locate_anchor(baseline, anchor)
        if block is not None:
            result[i] = replace(record, anchor=replace(anchor, identity=block.identity))

    pending = [
        i for i, r in enumerate(result)
        if r.action == EditAction.INSERT and (r.anchor is None or r.anchor.is_empty)
    ]
    if not pending:
        return result

    merged = _as_blocks(merged_blocks)
    attributed: dict[int, int] = {
        j: i for i, j in lcs_match(
            [b.signature for b in baseline],
            [b.signature for b in merged],
        )
    }
    candidates = [j for j in range(len(merged)) if j not in attributed]

    # Candidates carrying the identity of an insert record belong to it.
    claimed: dict[str, int] = {}
    by_identity = {merged[j].identity: j for j in candidates if merged[j].identity}
    for record in result:
        if record.action != EditAction.INSERT:
            continue
        block = record_block(record, config)
        if block is not None and block.identity in by_identity:
            claimed[record.id] = by_identity[block.identity]

    taken = set(claimed.values())
    free_by_signature: dict[str, list[int]] = {}
    for j in candidates:
        if j not in taken:
            free_by_signature.setdefault(merged[j].signature, []).append(j)

    resolved: list[tuple[int, int]] = []
    for i in pending:
        record = result[i]
        j = claimed.get(record.id)
        if j is None:
            block = record_block(record, config)
            free = free_by_signature.get(block.signature, []) if block is not None else []
            if not free:
                continue
            j = free.pop(0)

        anchor: Anchor | None = None
        placement = Placement.AFTER
        for p in range(j - 1, -1, -1):
            if p in attributed:
                anchor = Anchor.for_block(baseline[attributed[p]])
                break
        if anchor is None:
            for p in range(j + 1, len(merged)):
                if p in attributed:
                    anchor = Anchor.for_block(baseline[attributed[p]])
                    placement = Placement.BEFORE
                    break
        if anchor is None:
            continue
        result[i] = replace(record, anchor=anchor, placement=placement, position=None)
        resolved.append((i, j))

    # Records now sharing an anchor and placement follow their merged order.
    groups: dict[tuple[str | None, Placement], list[tuple[int, int]]] = {}
    for i, j in resolved:
        key = (result[i].anchor.identity, result[i].placement)
        groups.setdefault(key, []).append((i, j))
    for members in groups.values():
        if len(members) < 2:
            continue
        slots = sorted(i for i, _ in members)
        ordered = [result[i] for i, _ in sorted(members, key=lambda m: m[1])]
        for slot, record in zip(slots, ordered):
            result[slot] = record

    return result
