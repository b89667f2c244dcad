"""Deterministic merge of an edit log onto a baseline.

Precedence, applied in this fixed order:

1. The last ``reorder`` record sets the effective baseline order.
2. ``remove`` records drop their block.  ``mark`` records drop it only
   when removals are respected (at submission); otherwise the block stays
   visible with ``marked=True``.
3. The effective order is walked; each baseline block is surrounded by
   its ``before`` and ``after`` inserts in log order.
4. Inserts with a position hint and no resolvable anchor are spliced in
   by clamped index.
5. Inserts with neither are appended (orphan fallback).

Identities are re-assigned over the result.  :func:`merge` is pure.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from pagedraft.blocks.identity import assign_identities
from pagedraft.merge.anchors import locate_anchor, record_block
from pagedraft.models import Block, EditAction, EditRecord, MergedBlock, Placement
from pagedraft.observability.logger import get_logger
from pagedraft.observability.metrics import resolve_metrics

log = get_logger("pagedraft.merge")


def authoritative_reorder(records: Sequence[EditRecord]) -> EditRecord | None:
    """Return the last ``reorder`` record of *records*, if any."""
    for record in reversed(records):
        if record.action == EditAction.REORDER:
            return record
    return None


def apply_reorder(baseline: Sequence[Block], order: Sequence[str] | None) -> list[Block]:
    """Return *baseline* re-ordered by *order*.

    Listed identities come first in listed order; unlisted blocks follow
    in their baseline order.  Unknown and repeated identities are ignored.
    """
    if not order:
        return list(baseline)
    by_identity = {b.identity: b for b in baseline}
    listed: list[Block] = []
    seen: set[str] = set()
    for identity in order:
        if identity in by_identity and identity not in seen:
            listed.append(by_identity[identity])
            seen.add(identity)
    return listed + [b for b in baseline if b.identity not in seen]


def merge(
    baseline: Sequence[Block],
    records: Sequence[EditRecord],
    *,
    respect_removals: bool = False,
    config: Any | None = None,
) -> list[MergedBlock]:
    """Merge *records* onto *baseline*.

    Parameters
    ----------
    baseline:
        Identified baseline blocks, in document order.
    records:
        The page's edit log, in log order.
    respect_removals:
        Drop blocks marked for deletion instead of showing them.
    config:
        Supplies the identity attribute, signature rules and metrics hook.

    Returns
    -------
    list[MergedBlock]
        The merged sequence with provenance.  Calling ``merge`` again with
        the same inputs returns an equal list.
    """
    start = time.monotonic()
    metrics = resolve_metrics(config)

    reorder = authoritative_reorder(records)
    ordered = apply_reorder(baseline, reorder.order if reorder else None)

    removed: set[str] = set()
    marked: set[str] = set()
    for record in records:
        if record.action not in (EditAction.REMOVE, EditAction.MARK):
            continue
        target = locate_anchor(baseline, record.anchor)
        if target is None:
            continue
        (removed if record.action == EditAction.REMOVE else marked).add(target.identity)
    dropped = removed | marked if respect_removals else removed

    before: dict[str, list[EditRecord]] = {}
    after: dict[str, list[EditRecord]] = {}
    hinted: list[EditRecord] = []
    orphans: list[EditRecord] = []
    for record in records:
        if record.action != EditAction.INSERT:
            continue
        target = locate_anchor(baseline, record.anchor)
        if target is not None:
            side = before if record.placement == Placement.BEFORE else after
            side.setdefault(target.identity, []).append(record)
        elif record.position is not None:
            hinted.append(record)
        else:
            orphans.append(record)

    out: list[MergedBlock] = []

    def emit(record: EditRecord) -> None:
        block = record_block(record, config)
        if block is not None:
            out.append(MergedBlock(block=block, record_id=record.id))

    for block in ordered:
        for record in before.get(block.identity, ()):
            emit(record)
        if block.identity not in dropped:
            out.append(
                MergedBlock(
                    block=block,
                    base_identity=block.identity,
                    marked=block.identity in marked,
                )
            )
        for record in after.get(block.identity, ()):
            emit(record)

    for record in hinted:
        inserted = record_block(record, config)
        if inserted is None:
            continue
        index = max(0, min(record.position or 0, len(out)))
        out.insert(index, MergedBlock(block=inserted, record_id=record.id))

    if orphans:
        log.warning(
            "appending inserts with no anchor and no position",
            extra={"extra_fields": {
                "op": "merge",
                "record_ids": [r.id for r in orphans],
            }},
        )
        metrics.increment("pagedraft.orphan_inserts_total", len(orphans))
        for record in orphans:
            emit(record)

    identified = assign_identities([m.block for m in out])
    result = [replace(m, block=b) for m, b in zip(out, identified)]

    metrics.increment("pagedraft.merge_total")
    metrics.timing("pagedraft.merge_duration_ms", (time.monotonic() - start) * 1000)
    if getattr(config, "debug_dump_merge", False):
        log.debug(
            "merge result",
            extra={"extra_fields": {
                "op": "merge",
                "respect_removals": respect_removals,
                "blocks": [
                    {
                        "identity": m.block.identity,
                        "base_identity": m.base_identity,
                        "record_id": m.record_id,
                        "marked": m.marked,
                    }
                    for m in result
                ],
            }},
        )
    return result


def merged_html(merged: Sequence[MergedBlock]) -> list[str]:
    """Return the serialized blocks of a merge result."""
    return [m.block.html for m in merged]
