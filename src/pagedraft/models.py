"""Public data models for pagedraft.

This module contains every value type that crosses a component boundary:
blocks and anchors, edit records, merge and classification results, store
entries, ledger references and backend results.  All types are plain
dataclasses with no behaviour beyond what is needed for structural equality
and hashing (where frozen).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Placement(str, Enum):
    """Where an inserted block sits relative to its anchor."""

    BEFORE = "before"
    AFTER = "after"


class EditAction(str, Enum):
    """Kinds of edit-log record."""

    INSERT = "insert"
    """A new or edited block to place next to an anchor."""

    REMOVE = "remove"
    """The replaced half of an in-place edit.  Always dropped from output."""

    REORDER = "reorder"
    """An explicit target ordering of baseline identities."""

    MARK = "mark"
    """A baseline block marked for deletion.  Visible but labeled while
    editing; dropped only when removals are respected (at commit)."""


class EditKind(str, Enum):
    """Provenance of an insert record."""

    NEW = "new"
    EDITED = "edited"


class EditStatus(str, Enum):
    """Submission state of an edit record."""

    STAGED = "staged"
    """Local only; not yet part of any request."""

    PENDING = "pending"
    """Included in a still-open pull request."""


class BlockStatus(str, Enum):
    """Classification of a visible block for display and submission."""

    BASELINE = "baseline"
    NEW = "new"
    EDITED = "edited"
    REORDERED = "reordered"
    COMMITTED = "committed"
    PENDING = "pending"
    REMOVED = "removed"


class RequestState(str, Enum):
    """Lifecycle of a submitted pull request."""

    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


class PageStatus(str, Enum):
    """Page-level state shown by the editor status strip."""

    LOADING = "loading"
    CLEAN = "clean"
    DIRTY = "dirty"
    PENDING = "pending"
    ERROR = "error"
    READONLY = "readonly"


# ---------------------------------------------------------------------------
# Blocks and anchors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Block:
    """A single top-level element of the main region.

    Attributes
    ----------
    html:
        Serialized form of the block.
    signature:
        Content fingerprint ignoring whitespace, highlight artifacts and
        the identity attribute.
    occurrence:
        0-based index among same-signature blocks in document order.
    identity:
        Stable id, synthesized from signature + occurrence or preserved
        from a prior identity attribute.
    """

    html: str
    signature: str
    occurrence: int = 0
    identity: str = ""


@dataclass(frozen=True)
class Anchor:
    """A durable reference to a baseline block.

    ``identity`` is preferred; ``signature`` + ``occurrence`` is the
    fallback used before the identity is known.
    """

    identity: str | None = None
    signature: str | None = None
    occurrence: int | None = None

    @classmethod
    def for_block(cls, block: Block) -> Anchor:
        return cls(
            identity=block.identity or None,
            signature=block.signature,
            occurrence=block.occurrence,
        )

    @property
    def is_empty(self) -> bool:
        return not self.identity and not self.signature


@dataclass(frozen=True)
class BlockInfo:
    """Detected block template type and a short human summary."""

    type: str
    summary: str


# ---------------------------------------------------------------------------
# Edit log
# ---------------------------------------------------------------------------

@dataclass
class EditRecord:
    """One entry of a page's edit log.

    Attributes
    ----------
    id:
        Log-local record id (``e1``, ``e2`` …).
    action:
        What the record does, see :class:`EditAction`.
    html:
        Block markup for ``insert`` records; empty otherwise.
    anchor:
        Baseline block the record is placed against.  ``None`` for
        ``reorder`` records and for inserts not yet anchored.
    placement:
        ``before`` or ``after`` the anchor.
    position:
        Raw index hint captured during interactive placement; used only
        when the anchor cannot be resolved.
    kind:
        ``new`` or ``edited`` (inserts only).
    base_id:
        Identity of the baseline block an ``edited`` insert came from.
    source_key:
        Shared by the two halves of an in-place edit.
    order:
        Target identity ordering (``reorder`` records only).
    status:
        ``staged`` or ``pending``.
    pr_number:
        Request the record was submitted in, while ``pending``.
    created_at:
        When the record was first logged.
    """

    id: str
    action: EditAction
    html: str = ""
    anchor: Anchor | None = None
    placement: Placement = Placement.AFTER
    position: int | None = None
    kind: EditKind = EditKind.NEW
    base_id: str | None = None
    source_key: str | None = None
    order: list[str] | None = None
    status: EditStatus = EditStatus.STAGED
    pr_number: int | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Merge and classification results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MergedBlock:
    """A block of a merge result together with its provenance.

    Exactly one of ``base_identity`` / ``record_id`` is set.  ``marked`` is
    ``True`` for a baseline block kept visible despite a deletion mark.
    """

    block: Block
    base_identity: str | None = None
    record_id: str | None = None
    marked: bool = False


@dataclass(frozen=True)
class ClassifiedBlock:
    """A visible block annotated for the rendering collaborator."""

    identity: str
    html: str
    status: BlockStatus
    block_type: str
    summary: str
    record_id: str | None = None
    base_identity: str | None = None


# ---------------------------------------------------------------------------
# Canonicalization
# ---------------------------------------------------------------------------

@dataclass
class ConsistencyWarning:
    """A non-fatal consistency problem found while canonicalizing.

    Attributes
    ----------
    code:
        ``"CONTENT_DRIFT"`` or ``"BLOCK_COUNT_MISMATCH"``.
    message:
        Human-readable description.
    context:
        Structured diagnostics.
    """

    code: str
    message: str
    context: dict = field(default_factory=dict)


@dataclass
class CanonicalResult:
    """Output of :func:`pagedraft.canonical.canonicalize`."""

    document: str
    block_count: int
    warnings: list[ConsistencyWarning] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Store and ledger
# ---------------------------------------------------------------------------

@dataclass
class DirtyPageEntry:
    """Persisted local state of one page.

    Attributes
    ----------
    path:
        Page path in the repository.
    html:
        Merged canonical document.
    base_hash:
        Hash of the canonical baseline the entry was last merged against.
    dirty_hash:
        Hash of ``html``.
    edit_log:
        Serialized edit records.
    updated_at:
        Time of the last write.
    """

    path: str
    html: str
    base_hash: str
    dirty_hash: str
    edit_log: list[dict] = field(default_factory=list)
    updated_at: datetime | None = None


@dataclass(frozen=True)
class BlockRef:
    """A block as remembered by the session ledger."""

    identity: str
    signature: str
    position: int


# ---------------------------------------------------------------------------
# Backend results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChangeFile:
    """One file of a change submission."""

    path: str
    content: str


@dataclass(frozen=True)
class SubmitResult:
    """Result of submitting a change to the backend."""

    request_id: int
    url: str


@dataclass(frozen=True)
class RequestStatus:
    """Polled state of a pull request."""

    request_id: int
    state: RequestState


# ---------------------------------------------------------------------------
# Session view
# ---------------------------------------------------------------------------

@dataclass
class PageView:
    """Snapshot of a page handed to the rendering collaborator.

    Attributes
    ----------
    path:
        Page path.
    status:
        Page-level state.
    label:
        Status-strip text, e.g. ``"CONNECTED - CLEAN"``.
    hero_html:
        Inner HTML of the hero region.
    blocks:
        Visible main-region blocks, classified.
    document:
        Full preview document (deletion marks kept visible).
    error:
        Last backend or marker error message, if any.
    warnings:
        Consistency warnings raised while canonicalizing the baseline,
        e.g. loose text in the main region that a commit would drop.
    """

    path: str
    status: PageStatus
    label: str
    hero_html: str = ""
    blocks: list[ClassifiedBlock] = field(default_factory=list)
    document: str = ""
    error: str | None = None
    warnings: list[ConsistencyWarning] = field(default_factory=list)
