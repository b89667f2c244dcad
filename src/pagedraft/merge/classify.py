"""Classification of merged blocks for display and submission."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from pagedraft.blocks.detect import detect_block
from pagedraft.merge.anchors import locate_anchor
from pagedraft.merge.engine import apply_reorder, authoritative_reorder
from pagedraft.merge.lcs_matcher import lcs_match
from pagedraft.models import (
    Block,
    BlockStatus,
    ClassifiedBlock,
    EditAction,
    EditKind,
    EditRecord,
    EditStatus,
    MergedBlock,
)

if TYPE_CHECKING:
    from pagedraft.store.ledger import SessionLedger


def reordered_identities(
    baseline: Sequence[Block],
    order: Sequence[str] | None,
) -> set[str]:
    """Return identities of blocks a reorder moved.

    A block counts as moved when it falls outside the longest common
    subsequence of the baseline order and the effective order.
    """
    if not order:
        return set()
    before = [b.identity for b in baseline]
    after = [b.identity for b in apply_reorder(baseline, order)]
    kept = {after[j] for _, j in lcs_match(before, after)}
    return {identity for identity in after if identity not in kept}


def classify(
    merged: Sequence[MergedBlock],
    records: Sequence[EditRecord],
    baseline: Sequence[Block],
    ledger: SessionLedger | None = None,
    path: str = "",
    reorder_order: Sequence[str] | None = None,
) -> list[ClassifiedBlock]:
    """Annotate every merged block with a :class:`BlockStatus`.

    Parameters
    ----------
    merged:
        Output of :func:`~pagedraft.merge.engine.merge`.
    records:
        The edit log the merge was computed from.
    baseline:
        The identified baseline blocks.
    ledger:
        Session ledger used to recognise blocks committed through an
        already merged request.
    path:
        Page path, used for ledger lookups.
    reorder_order:
        Effective reorder to compare against.  Taken from the last
        ``reorder`` record when not given.

    Returns
    -------
    list[ClassifiedBlock]
        One entry per merged block, in merged order.
    """
    by_id = {r.id: r for r in records}

    if reorder_order is None:
        reorder = authoritative_reorder(records)
        reorder_order = reorder.order if reorder else None
    moved = reordered_identities(baseline, reorder_order)

    marks: dict[str, EditRecord] = {}
    for record in records:
        if record.action != EditAction.MARK:
            continue
        target = locate_anchor(baseline, record.anchor)
        if target is not None:
            marks[target.identity] = record

    result: list[ClassifiedBlock] = []
    for item in merged:
        block = item.block
        info = detect_block(block.html)
        record = by_id.get(item.record_id) if item.record_id else None

        if record is not None:
            if record.status == EditStatus.PENDING:
                status = BlockStatus.PENDING
            elif record.kind == EditKind.EDITED:
                status = BlockStatus.EDITED
            else:
                status = BlockStatus.NEW
        elif item.base_identity in marks:
            mark = marks[item.base_identity]
            status = BlockStatus.PENDING if mark.status == EditStatus.PENDING else BlockStatus.REMOVED
        elif ledger is not None and ledger.is_committed(path, block):
            status = BlockStatus.COMMITTED
        elif item.base_identity in moved:
            status = BlockStatus.REORDERED
        else:
            status = BlockStatus.BASELINE

        result.append(
            ClassifiedBlock(
                identity=block.identity,
                html=block.html,
                status=status,
                block_type=info.type,
                summary=info.summary,
                record_id=item.record_id,
                base_identity=item.base_identity,
            )
        )
    return result
