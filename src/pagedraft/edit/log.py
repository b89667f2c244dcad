"""The per-page edit log.

An :class:`EditLog` is the ordered list of local changes that are not yet
part of the baseline.  Records are anchored to baseline blocks, never to
offsets or to other records, so the log can be re-merged against any later
baseline.

All mutating operations must be serialized by the caller; the editor
session does this through :class:`~pagedraft.edit.commands.CommandQueue`.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from pagedraft.blocks.identity import block_from_node, identity_for_new_block, stamp_identity
from pagedraft.errors import EditLogError
from pagedraft.html.tree import single_element
from pagedraft.merge.anchors import locate_anchor, record_block
from pagedraft.merge.engine import apply_reorder
from pagedraft.models import (
    Anchor,
    Block,
    EditAction,
    EditKind,
    EditRecord,
    EditStatus,
    Placement,
)
from pagedraft.observability.logger import get_logger
from pagedraft.observability.metrics import resolve_metrics

log = get_logger("pagedraft.edit")

_ID_RE = re.compile(r"^e(\d+)$")


def _same_target(a: Anchor | None, b: Anchor | None) -> bool:
    if a is None or b is None:
        return False
    if a.identity and b.identity:
        return a.identity == b.identity
    return (
        a.signature is not None
        and a.signature == b.signature
        and (a.occurrence or 0) == (b.occurrence or 0)
    )


class EditLog:
    """Ordered edit records of one page.

    Parameters
    ----------
    records:
        Initial records, e.g. from :meth:`from_list`.
    config:
        Supplies the identity attribute, signature rules and metrics hook.
    """

    def __init__(
        self,
        records: Sequence[EditRecord] | None = None,
        config: Any | None = None,
    ) -> None:
        self._records: list[EditRecord] = list(records or [])
        self._config = config
        self._metrics = resolve_metrics(config)
        self._counter = 0
        for record in self._records:
            match = _ID_RE.match(record.id)
            if match:
                self._counter = max(self._counter, int(match.group(1)))

    # ── Access ──────────────────────────────────────────────────────────

    @property
    def records(self) -> list[EditRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EditRecord]:
        return iter(list(self._records))

    @property
    def has_staged(self) -> bool:
        return any(r.status == EditStatus.STAGED for r in self._records)

    @property
    def has_pending(self) -> bool:
        return any(r.status == EditStatus.PENDING for r in self._records)

    def get(self, record_id: str) -> EditRecord:
        for record in self._records:
            if record.id == record_id:
                return record
        raise EditLogError(
            f"Unknown edit record {record_id!r}",
            context={"record_id": record_id, "reason": "unknown_record"},
        )

    def replace_all(self, records: Sequence[EditRecord]) -> None:
        """Swap in *records* (e.g. after anchor resolution)."""
        self._records = list(records)

    # ── Internals ───────────────────────────────────────────────────────

    def _next_id(self) -> str:
        self._counter += 1
        return f"e{self._counter}"

    def _attribute(self) -> str:
        return getattr(self._config, "identity_attribute", None) or "data-cms-id"

    def _parse_single(self, html: str) -> Block:
        node = single_element(html)
        if node is None:
            raise EditLogError(
                "Inserted HTML must be exactly one top-level element",
                context={"reason": "not_single_element", "html": html[:200]},
            )
        return block_from_node(node, self._config)

    def _insert_blocks(self) -> list[Block]:
        blocks = []
        for record in self._records:
            if record.action == EditAction.INSERT:
                block = record_block(record, self._config)
                if block is not None:
                    blocks.append(block)
        return blocks

    def _index(self, record_id: str) -> int:
        for i, record in enumerate(self._records):
            if record.id == record_id:
                return i
        raise EditLogError(
            f"Unknown edit record {record_id!r}",
            context={"record_id": record_id, "reason": "unknown_record"},
        )

    def _require_insert(self, record_id: str) -> int:
        index = self._index(record_id)
        if self._records[index].action != EditAction.INSERT:
            raise EditLogError(
                f"Record {record_id!r} is not an insert",
                context={"record_id": record_id, "reason": "not_insert"},
            )
        return index

    def _unstage_pair(self, record: EditRecord) -> None:
        """Return *record* and its source_key partner to ``staged``."""
        for i, other in enumerate(self._records):
            if other.id == record.id or (
                record.source_key and other.source_key == record.source_key
            ):
                self._records[i] = replace(other, status=EditStatus.STAGED, pr_number=None)

    # ── Operations ──────────────────────────────────────────────────────

    def insert(
        self,
        html: str,
        anchor: Anchor | None = None,
        placement: Placement = Placement.AFTER,
        position: int | None = None,
        visible: Sequence[Block] = (),
    ) -> EditRecord:
        """Log a new block.

        Parameters
        ----------
        html:
            Exactly one top-level element.
        anchor / placement:
            Baseline block to place the insert against.  May be left out
            when only a position hint is known; anchor resolution fills it
            in afterwards.
        position:
            Index hint in the currently visible sequence.
        visible:
            The currently visible blocks, so the new block's identity does
            not collide with them.

        Raises
        ------
        EditLogError
            If *html* is not exactly one element.
        """
        block = self._parse_single(html)
        identity = identity_for_new_block(block, [*visible, *self._insert_blocks()])
        record = EditRecord(
            id=self._next_id(),
            action=EditAction.INSERT,
            html=stamp_identity(block.html, identity, self._attribute()),
            anchor=anchor,
            placement=placement,
            position=position,
            kind=EditKind.NEW,
            created_at=datetime.now(timezone.utc),
        )
        self._records.append(record)
        return record

    def remove(self, anchor: Anchor) -> EditRecord:
        """Mark a baseline block for deletion.

        Idempotent: a second call for the same block returns the existing
        mark record.
        """
        for record in self._records:
            if record.action == EditAction.MARK and _same_target(record.anchor, anchor):
                return record
        record = EditRecord(
            id=self._next_id(),
            action=EditAction.MARK,
            anchor=anchor,
            created_at=datetime.now(timezone.utc),
        )
        self._records.append(record)
        return record

    def restore(self, anchor: Anchor) -> EditRecord | None:
        """Undo :meth:`remove` for *anchor*.

        Returns the deleted mark record, or ``None`` when there was none.
        """
        for i, record in enumerate(self._records):
            if record.action == EditAction.MARK and _same_target(record.anchor, anchor):
                del self._records[i]
                return record
        return None

    def mark_edited(self, anchor: Anchor, new_html: str) -> tuple[EditRecord, EditRecord]:
        """Replace a baseline block in place.

        Logged as a ``remove`` + ``insert(kind=edited)`` pair sharing a
        ``source_key``.  The edited block keeps the base block's identity.
        Editing the same base again updates the existing pair.

        Raises
        ------
        EditLogError
            If *anchor* has no identity or *new_html* is not exactly one
            element.
        """
        if not anchor.identity:
            raise EditLogError(
                "An in-place edit needs the identity of its base block",
                context={"reason": "anchor_without_identity"},
            )
        block = self._parse_single(new_html)
        html = stamp_identity(block.html, anchor.identity, self._attribute())
        source_key = f"edit:{anchor.identity}"

        remove_record: EditRecord | None = None
        insert_record: EditRecord | None = None
        for record in self._records:
            if record.source_key != source_key:
                continue
            if record.action == EditAction.REMOVE:
                remove_record = record
            elif record.action == EditAction.INSERT:
                insert_record = record

        if remove_record is not None and insert_record is not None:
            index = self._index(insert_record.id)
            self._records[index] = replace(insert_record, html=html)
            self._unstage_pair(self._records[index])
            return self.get(remove_record.id), self.get(insert_record.id)

        now = datetime.now(timezone.utc)
        remove_record = EditRecord(
            id=self._next_id(),
            action=EditAction.REMOVE,
            anchor=anchor,
            base_id=anchor.identity,
            source_key=source_key,
            created_at=now,
        )
        insert_record = EditRecord(
            id=self._next_id(),
            action=EditAction.INSERT,
            html=html,
            anchor=anchor,
            placement=Placement.AFTER,
            kind=EditKind.EDITED,
            base_id=anchor.identity,
            source_key=source_key,
            created_at=now,
        )
        self._records.extend([remove_record, insert_record])
        return remove_record, insert_record

    def reorder(self, identity_order: Sequence[str]) -> EditRecord:
        """Set the target order of baseline identities.

        Supersedes any previous reorder record.
        """
        self._records = [r for r in self._records if r.action != EditAction.REORDER]
        record = EditRecord(
            id=self._next_id(),
            action=EditAction.REORDER,
            order=list(identity_order),
            created_at=datetime.now(timezone.utc),
        )
        self._records.append(record)
        return record

    def update(self, record_id: str, html: str) -> EditRecord:
        """Replace the markup of an inserted block, keeping its identity.

        Updating a submitted record returns it (and its partner) to
        ``staged``.
        """
        index = self._require_insert(record_id)
        current = self._records[index]
        block = self._parse_single(html)
        existing = record_block(current, self._config)
        identity = existing.identity if existing is not None and existing.identity else None
        if identity is None:
            identity = identity_for_new_block(block, self._insert_blocks())
        self._records[index] = replace(
            current, html=stamp_identity(block.html, identity, self._attribute())
        )
        if current.status == EditStatus.PENDING:
            self._unstage_pair(self._records[index])
        return self.get(record_id)

    def reposition(self, record_id: str, position: int) -> EditRecord:
        """Record a drag position for an insert and forget its anchor."""
        index = self._require_insert(record_id)
        self._records[index] = replace(
            self._records[index], anchor=None, position=max(0, position)
        )
        return self._records[index]

    def discard(self, record_id: str) -> list[EditRecord]:
        """Delete a record together with its ``source_key`` partner.

        Raises
        ------
        EditLogError
            If the record or its partner is part of an open request.  Its
            block would come back when the request merges.
        """
        target = self.get(record_id)
        dropped = [
            r for r in self._records
            if r.id == record_id or (target.source_key and r.source_key == target.source_key)
        ]
        if any(r.status == EditStatus.PENDING for r in dropped):
            raise EditLogError(
                f"Record {record_id!r} is part of open request #{target.pr_number}",
                context={"record_id": record_id, "pr_number": target.pr_number, "reason": "pending"},
            )
        dropped_ids = {r.id for r in dropped}
        self._records = [r for r in self._records if r.id not in dropped_ids]
        return dropped

    # ── Normalization ───────────────────────────────────────────────────

    def normalize(self, baseline: Sequence[Block]) -> list[EditRecord]:
        """Drop records that no longer change anything.

        * a staged ``edited`` insert whose content equals its base block
          again is dropped with its paired ``remove``;
        * a reorder record whose order equals the baseline order is
          dropped.

        Returns the dropped records.
        """
        by_identity = {b.identity: b for b in baseline}
        drop_keys: set[str] = set()
        drop_ids: set[str] = set()
        for record in self._records:
            if (
                record.action == EditAction.INSERT
                and record.kind == EditKind.EDITED
                and record.status == EditStatus.STAGED
                and record.base_id in by_identity
            ):
                block = record_block(record, self._config)
                if block is not None and block.signature == by_identity[record.base_id].signature:
                    drop_ids.add(record.id)
                    if record.source_key:
                        drop_keys.add(record.source_key)
            elif record.action == EditAction.REORDER:
                reordered = [b.identity for b in apply_reorder(baseline, record.order)]
                if reordered == [b.identity for b in baseline]:
                    drop_ids.add(record.id)

        dropped = [
            r for r in self._records
            if r.id in drop_ids or (r.source_key and r.source_key in drop_keys)
        ]
        if dropped:
            self._records = [r for r in self._records if r not in dropped]
            self._metrics.increment("pagedraft.noop_suppressed_total", len(dropped))
            log.debug(
                "suppressed no-op records",
                extra={"extra_fields": {"op": "normalize", "record_ids": [r.id for r in dropped]}},
            )
        return dropped

    def unresolved_marks(self, baseline: Sequence[Block]) -> list[EditRecord]:
        """Return ``mark``/``remove`` records whose block is gone."""
        return [
            r for r in self._records
            if r.action in (EditAction.MARK, EditAction.REMOVE)
            and locate_anchor(baseline, r.anchor) is None
        ]

    # ── Submission status ───────────────────────────────────────────────

    def mark_pending(self, pr_number: int) -> list[EditRecord]:
        """Move every staged record into request *pr_number*."""
        changed = []
        for i, record in enumerate(self._records):
            if record.status == EditStatus.STAGED:
                self._records[i] = replace(record, status=EditStatus.PENDING, pr_number=pr_number)
                changed.append(self._records[i])
        return changed

    def revert_pending(self, pr_number: int) -> list[EditRecord]:
        """Return the records of a closed request to ``staged``."""
        changed = []
        for i, record in enumerate(self._records):
            if record.status == EditStatus.PENDING and record.pr_number == pr_number:
                self._records[i] = replace(record, status=EditStatus.STAGED, pr_number=None)
                changed.append(self._records[i])
        return changed

    def drop_request(self, pr_number: int) -> list[EditRecord]:
        """Delete the records of a merged request."""
        dropped = [
            r for r in self._records
            if r.status == EditStatus.PENDING and r.pr_number == pr_number
        ]
        self._records = [r for r in self._records if r not in dropped]
        return dropped

    # ── Serialization ───────────────────────────────────────────────────

    def to_list(self) -> list[dict]:
        return [record_to_dict(r) for r in self._records]

    @classmethod
    def from_list(cls, data: Sequence[dict], config: Any | None = None) -> EditLog:
        """Rebuild a log from :meth:`to_list` output.

        Raises
        ------
        EditLogError
            If an entry is malformed.
        """
        return cls([record_from_dict(item) for item in data], config=config)


# ---------------------------------------------------------------------------
# Record (de)serialization
# ---------------------------------------------------------------------------

def _anchor_to_dict(anchor: Anchor | None) -> dict | None:
    if anchor is None:
        return None
    return {
        "identity": anchor.identity,
        "signature": anchor.signature,
        "occurrence": anchor.occurrence,
    }


def record_to_dict(record: EditRecord) -> dict:
    """Serialize *record* to a JSON-compatible dict."""
    return {
        "id": record.id,
        "action": record.action.value,
        "html": record.html,
        "anchor": _anchor_to_dict(record.anchor),
        "placement": record.placement.value,
        "position": record.position,
        "kind": record.kind.value,
        "baseId": record.base_id,
        "sourceKey": record.source_key,
        "order": list(record.order) if record.order is not None else None,
        "status": record.status.value,
        "prNumber": record.pr_number,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }


def record_from_dict(data: dict) -> EditRecord:
    """Inverse of :func:`record_to_dict`."""
    try:
        raw_anchor = data.get("anchor")
        anchor = None
        if raw_anchor:
            anchor = Anchor(
                identity=raw_anchor.get("identity"),
                signature=raw_anchor.get("signature"),
                occurrence=raw_anchor.get("occurrence"),
            )
        created = data.get("createdAt")
        return EditRecord(
            id=str(data["id"]),
            action=EditAction(data["action"]),
            html=data.get("html") or "",
            anchor=anchor,
            placement=Placement(data.get("placement") or Placement.AFTER.value),
            position=data.get("position"),
            kind=EditKind(data.get("kind") or EditKind.NEW.value),
            base_id=data.get("baseId"),
            source_key=data.get("sourceKey"),
            order=list(data["order"]) if data.get("order") is not None else None,
            status=EditStatus(data.get("status") or EditStatus.STAGED.value),
            pr_number=data.get("prNumber"),
            created_at=datetime.fromisoformat(created) if created else None,
        )
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise EditLogError(
            "Malformed edit record",
            context={"record_id": data.get("id") if isinstance(data, dict) else None,
                     "reason": "malformed"},
            cause=exc,
        ) from exc
