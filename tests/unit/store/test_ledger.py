"""Tests for store/ledger.py: baseline snapshots and committed requests."""

from __future__ import annotations

import pytest

from pagedraft.blocks.identity import parse_blocks
from pagedraft.models import BlockRef, RequestState
from pagedraft.store.ledger import SessionLedger, refs_for


def baseline_of(*texts: str):
    return parse_blocks("".join(f"<p>{t}</p>" for t in texts))


class TestRefs:
    def test_positions_from_order(self):
        a, b = baseline_of("A", "B")
        assert refs_for([b, a]) == [
            BlockRef(identity=b.identity, signature=b.signature, position=0),
            BlockRef(identity=a.identity, signature=a.signature, position=1),
        ]


class TestBaselineSnapshots:
    def test_first_snapshot_kept(self):
        ledger = SessionLedger()
        ledger.snapshot_baseline("p.html", baseline_of("A"))
        ledger.snapshot_baseline("p.html", baseline_of("A", "B"))
        assert len(ledger.baseline_snapshot("p.html")) == 1

    def test_replace(self):
        ledger = SessionLedger()
        ledger.snapshot_baseline("p.html", baseline_of("A"))
        ledger.snapshot_baseline("p.html", baseline_of("A", "B"), replace=True)
        assert len(ledger.baseline_snapshot("p.html")) == 2

    def test_unknown_path(self):
        assert SessionLedger().baseline_snapshot("p.html") is None

    def test_drift(self):
        ledger = SessionLedger()
        ledger.snapshot_baseline("p.html", baseline_of("A", "B"))
        added, removed = ledger.baseline_drift("p.html", baseline_of("B", "C"))
        assert [r.position for r in added] == [1]
        assert [r.position for r in removed] == [0]

    def test_no_drift_without_snapshot(self):
        assert SessionLedger().baseline_drift("p.html", baseline_of("A")) == ([], [])


class TestRequests:
    def test_record_and_query(self):
        a, b = baseline_of("A", "B")
        ledger = SessionLedger()
        ledger.record_commit(3, "p.html", refs_for([b]))
        assert ledger.state_of(3) == RequestState.OPEN
        assert ledger.requests_for("p.html") == [3]
        assert ledger.requests_for("p.html", [RequestState.MERGED]) == []
        assert ledger.paths_for(3) == ["p.html"]
        assert ledger.committed_refs("p.html") == []
        assert ledger.committed_refs("p.html", [RequestState.OPEN])[0].identity == b.identity

    def test_merged_blocks_committed(self):
        a, b = baseline_of("A", "B")
        ledger = SessionLedger()
        ledger.record_commit(3, "p.html", refs_for([b]))
        ledger.set_state(3, RequestState.MERGED)
        assert ledger.is_committed("p.html", b)
        assert not ledger.is_committed("p.html", a)
        assert not ledger.is_committed("other.html", b)

    def test_identical_copy_not_committed(self):
        first, second = baseline_of("divider", "divider")
        assert first.signature == second.signature
        ledger = SessionLedger()
        ledger.record_commit(3, "p.html", refs_for([second]))
        ledger.set_state(3, RequestState.MERGED)
        assert ledger.is_committed("p.html", second)
        assert not ledger.is_committed("p.html", first)

    def test_same_state_is_noop(self):
        ledger = SessionLedger()
        ledger.record_commit(1, "p.html", [])
        ledger.set_state(1, RequestState.OPEN)
        assert ledger.state_of(1) == RequestState.OPEN

    @pytest.mark.parametrize("terminal", [RequestState.MERGED, RequestState.CLOSED])
    def test_terminal_states(self, terminal):
        ledger = SessionLedger()
        ledger.record_commit(1, "p.html", [])
        ledger.set_state(1, terminal)
        with pytest.raises(ValueError, match="Invalid request transition"):
            ledger.set_state(1, RequestState.OPEN)

    def test_unknown_request(self):
        with pytest.raises(KeyError):
            SessionLedger().set_state(9, RequestState.MERGED)
        assert SessionLedger().state_of(9) is None
        assert SessionLedger().paths_for(9) == []

    def test_settle_and_clear(self):
        ledger = SessionLedger()
        ledger.record_commit(1, "p.html", [])
        ledger.settle(1)
        assert ledger.state_of(1) is None
        ledger.snapshot_baseline("p.html", baseline_of("A"))
        ledger.clear()
        assert ledger.baseline_snapshot("p.html") is None


class TestSerialization:
    def test_round_trip(self):
        a, b = baseline_of("A", "B")
        ledger = SessionLedger()
        ledger.snapshot_baseline("p.html", [a, b])
        ledger.record_commit(4, "p.html", refs_for([b]))
        ledger.set_state(4, RequestState.MERGED)
        restored = SessionLedger.from_dict(ledger.to_dict())
        assert restored.to_dict() == ledger.to_dict()
        assert restored.is_committed("p.html", b)

    def test_keys(self):
        data = SessionLedger().to_dict()
        assert data == {"baselineSnapshots": {}, "committedByRequest": {}}
