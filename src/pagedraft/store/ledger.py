"""Session-scoped commit ledger.

Remembers, for the lifetime of one editor session, the first baseline seen
for every page and which blocks went into each submitted request.  It is
consulted only to classify blocks (for example, to label a block that
arrived in the baseline through our own merged request as ``committed``);
merge results never depend on it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from pagedraft.models import Block, BlockRef, RequestState


def refs_for(blocks: Sequence[Block]) -> list[BlockRef]:
    """Return ledger references for *blocks*, positions taken from order."""
    return [
        BlockRef(identity=b.identity, signature=b.signature, position=i)
        for i, b in enumerate(blocks)
    ]


@dataclass
class _RequestEntry:
    state: RequestState = RequestState.OPEN
    pages: dict[str, list[BlockRef]] = field(default_factory=dict)


class SessionLedger:
    """Baseline snapshots and per-request committed blocks.

    Request states move along::

        OPEN -> MERGED | CLOSED
        MERGED -> (terminal)
        CLOSED -> (terminal)
    """

    VALID_TRANSITIONS: dict[RequestState, set[RequestState]] = {
        RequestState.OPEN: {RequestState.MERGED, RequestState.CLOSED},
        RequestState.MERGED: set(),
        RequestState.CLOSED: set(),
    }

    def __init__(self) -> None:
        self._baselines: dict[str, list[BlockRef]] = {}
        self._requests: dict[int, _RequestEntry] = {}

    # ── Baseline snapshots ──────────────────────────────────────────────

    def snapshot_baseline(
        self,
        path: str,
        blocks: Sequence[Block],
        replace: bool = False,
    ) -> list[BlockRef]:
        """Record the baseline of *path*.

        The first snapshot of the session is kept unless *replace* is set.
        Returns the stored snapshot.
        """
        if replace or path not in self._baselines:
            self._baselines[path] = refs_for(blocks)
        return list(self._baselines[path])

    def baseline_snapshot(self, path: str) -> list[BlockRef] | None:
        snapshot = self._baselines.get(path)
        return list(snapshot) if snapshot is not None else None

    def baseline_drift(
        self,
        path: str,
        blocks: Sequence[Block],
    ) -> tuple[list[BlockRef], list[BlockRef]]:
        """Compare *blocks* with the snapshot of *path*.

        Returns ``(added, removed)`` references, matched by identity.  Both
        are empty when no snapshot exists.
        """
        snapshot = self._baselines.get(path)
        if snapshot is None:
            return [], []
        current = refs_for(blocks)
        old_ids = {ref.identity for ref in snapshot}
        new_ids = {ref.identity for ref in current}
        added = [ref for ref in current if ref.identity not in old_ids]
        removed = [ref for ref in snapshot if ref.identity not in new_ids]
        return added, removed

    # ── Requests ────────────────────────────────────────────────────────

    def record_commit(self, request_id: int, path: str, refs: Iterable[BlockRef]) -> None:
        """Remember that *refs* of *path* were submitted in *request_id*."""
        entry = self._requests.setdefault(request_id, _RequestEntry())
        entry.pages[path] = list(refs)

    def state_of(self, request_id: int) -> RequestState | None:
        entry = self._requests.get(request_id)
        return entry.state if entry is not None else None

    def set_state(self, request_id: int, state: RequestState) -> None:
        """Move *request_id* to *state*.

        Setting the current state again is a no-op.

        Raises
        ------
        KeyError
            If the request was never recorded.
        ValueError
            If the transition is not allowed.
        """
        entry = self._requests[request_id]
        if entry.state == state:
            return
        if state not in self.VALID_TRANSITIONS[entry.state]:
            raise ValueError(
                f"Invalid request transition: {entry.state.value} -> {state.value} "
                f"for request {request_id}"
            )
        entry.state = state

    def settle(self, request_id: int) -> None:
        """Forget *request_id* entirely (closed or abandoned requests)."""
        self._requests.pop(request_id, None)

    def requests_for(self, path: str, states: Iterable[RequestState] | None = None) -> list[int]:
        """Return ids of requests touching *path*, optionally filtered by state."""
        wanted = set(states) if states is not None else None
        return [
            request_id
            for request_id, entry in self._requests.items()
            if path in entry.pages and (wanted is None or entry.state in wanted)
        ]

    def paths_for(self, request_id: int) -> list[str]:
        """Return the page paths submitted in *request_id*."""
        entry = self._requests.get(request_id)
        return list(entry.pages) if entry is not None else []

    def committed_refs(
        self,
        path: str,
        states: Iterable[RequestState] = (RequestState.MERGED,),
    ) -> list[BlockRef]:
        """Return every ref of *path* submitted in a request in *states*."""
        wanted = set(states)
        refs: list[BlockRef] = []
        for entry in self._requests.values():
            if entry.state in wanted:
                refs.extend(entry.pages.get(path, ()))
        return refs

    def is_committed(
        self,
        path: str,
        block: Block,
        states: Iterable[RequestState] = (RequestState.MERGED,),
    ) -> bool:
        """Return ``True`` if *block* went in through a request.

        Matched on identity and signature, so an identical copy of a
        committed block elsewhere on the page is not labeled.
        """
        return any(
            ref.identity == block.identity and ref.signature == block.signature
            for ref in self.committed_refs(path, states)
        )

    def clear(self) -> None:
        """Drop all session state."""
        self._baselines.clear()
        self._requests.clear()

    # ── Serialization ───────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "baselineSnapshots": {
                path: [_ref_to_dict(ref) for ref in refs]
                for path, refs in self._baselines.items()
            },
            "committedByRequest": {
                str(request_id): {
                    "state": entry.state.value,
                    "pages": {
                        path: [_ref_to_dict(ref) for ref in refs]
                        for path, refs in entry.pages.items()
                    },
                }
                for request_id, entry in self._requests.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> SessionLedger:
        ledger = cls()
        for path, refs in data.get("baselineSnapshots", {}).items():
            ledger._baselines[path] = [_ref_from_dict(r) for r in refs]
        for request_id, raw in data.get("committedByRequest", {}).items():
            ledger._requests[int(request_id)] = _RequestEntry(
                state=RequestState(raw.get("state", RequestState.OPEN.value)),
                pages={
                    path: [_ref_from_dict(r) for r in refs]
                    for path, refs in raw.get("pages", {}).items()
                },
            )
        return ledger


def _ref_to_dict(ref: BlockRef) -> dict:
    return {"identity": ref.identity, "signature": ref.signature, "position": ref.position}


def _ref_from_dict(data: dict) -> BlockRef:
    return BlockRef(
        identity=data["identity"],
        signature=data["signature"],
        position=int(data.get("position", 0)),
    )
