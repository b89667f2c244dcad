"""Tests for merge/classify.py: per-block status for display."""

from __future__ import annotations

from pagedraft.blocks.identity import parse_blocks
from pagedraft.edit.log import EditLog
from pagedraft.merge.classify import classify, reordered_identities
from pagedraft.merge.engine import merge
from pagedraft.models import Anchor, BlockStatus, RequestState
from pagedraft.store.ledger import SessionLedger, refs_for


def baseline_of(*texts: str):
    return parse_blocks("".join(f"<p>{t}</p>" for t in texts))


def statuses(base, edits, **kwargs):
    merged = merge(base, edits.records)
    return [c.status for c in classify(merged, edits.records, base, **kwargs)]


class TestReorderedIdentities:
    def test_none(self):
        base = baseline_of("A", "B")
        assert reordered_identities(base, None) == set()

    def test_single_move(self):
        a, b, c = base = baseline_of("A", "B", "C")
        assert reordered_identities(base, [c.identity, a.identity, b.identity]) == {c.identity}

    def test_same_order(self):
        a, b = base = baseline_of("A", "B")
        assert reordered_identities(base, [a.identity, b.identity]) == set()


class TestClassify:
    def test_baseline_blocks(self):
        base = baseline_of("A", "B")
        result = classify(merge(base, []), [], base)
        assert [c.status for c in result] == [BlockStatus.BASELINE, BlockStatus.BASELINE]
        assert result[0].block_type == "p"
        assert result[0].summary == "A"
        assert result[0].base_identity == base[0].identity

    def test_new_insert(self):
        a, _ = base = baseline_of("A", "B")
        edits = EditLog()
        record = edits.insert("<p>N</p>", anchor=Anchor.for_block(a))
        merged = merge(base, edits.records)
        result = classify(merged, edits.records, base)
        assert result[1].status == BlockStatus.NEW
        assert result[1].record_id == record.id
        assert result[1].base_identity is None

    def test_edited_block(self):
        a, _ = base = baseline_of("A", "B")
        edits = EditLog()
        edits.mark_edited(Anchor.for_block(a), "<p>A2</p>")
        assert statuses(base, edits) == [BlockStatus.EDITED, BlockStatus.BASELINE]

    def test_marked_block(self):
        _, b = base = baseline_of("A", "B")
        edits = EditLog()
        edits.remove(Anchor.for_block(b))
        assert statuses(base, edits) == [BlockStatus.BASELINE, BlockStatus.REMOVED]

    def test_pending_records(self):
        a, b = base = baseline_of("A", "B")
        edits = EditLog()
        edits.insert("<p>N</p>", anchor=Anchor.for_block(a))
        edits.remove(Anchor.for_block(b))
        edits.mark_pending(7)
        assert statuses(base, edits) == [
            BlockStatus.BASELINE, BlockStatus.PENDING, BlockStatus.PENDING,
        ]

    def test_reordered_block(self):
        a, b, c = base = baseline_of("A", "B", "C")
        edits = EditLog()
        edits.reorder([c.identity, a.identity, b.identity])
        assert statuses(base, edits) == [
            BlockStatus.REORDERED, BlockStatus.BASELINE, BlockStatus.BASELINE,
        ]

    def test_committed_through_merged_request(self):
        _, b = base = baseline_of("A", "B")
        ledger = SessionLedger()
        ledger.record_commit(5, "p.html", refs_for([b]))
        ledger.set_state(5, RequestState.MERGED)
        result = classify(merge(base, []), [], base, ledger=ledger, path="p.html")
        assert [c.status for c in result] == [BlockStatus.BASELINE, BlockStatus.COMMITTED]

    def test_open_request_not_committed(self):
        _, b = base = baseline_of("A", "B")
        ledger = SessionLedger()
        ledger.record_commit(5, "p.html", refs_for([b]))
        result = classify(merge(base, []), [], base, ledger=ledger, path="p.html")
        assert result[1].status == BlockStatus.BASELINE

    def test_ledger_scoped_by_path(self):
        _, b = base = baseline_of("A", "B")
        ledger = SessionLedger()
        ledger.record_commit(5, "other.html", refs_for([b]))
        ledger.set_state(5, RequestState.MERGED)
        result = classify(merge(base, []), [], base, ledger=ledger, path="p.html")
        assert result[1].status == BlockStatus.BASELINE

    def test_template_detection(self):
        base = parse_blocks('<section class="section" data-type="twoCol"><h2>Hi</h2></section>')
        (item,) = classify(merge(base, []), [], base)
        assert (item.block_type, item.summary) == ("two-col", "Hi")
