"""pagedraft: block identity, anchoring and merge engine for draft page edits.

Public re-exports
-----------------

* **Session:** :class:`EditorSession`
* **Backend:** :class:`CmsBackend`, :class:`HttpCmsBackend`
* **Engine:** :func:`merge`, :func:`classify`, :func:`canonicalize`,
  :func:`compute_signature`, :func:`parse_blocks`
* **Configuration:** :class:`PageDraftConfig`
* **Errors:** Every :class:`PageDraftError` subclass and :class:`ErrorCode`
* **Models:** All value dataclasses and enums

Usage::

    from pagedraft import EditorSession, HttpCmsBackend, PageDraftConfig

    config = PageDraftConfig(worker_base_url="https://cms.example.dev")
    session = EditorSession(HttpCmsBackend(config), config)
"""

from __future__ import annotations

# ── Backend ─────────────────────────────────────────────────────────────
from pagedraft.backend import AsyncCmsTransport, CmsBackend, HttpCmsBackend

# ── Engine ──────────────────────────────────────────────────────────────
from pagedraft.blocks import (
    assign_identities,
    compute_signature,
    detect_block,
    parse_blocks,
)
from pagedraft.canonical import canonicalize, compose_document

# ── Configuration ───────────────────────────────────────────────────────
from pagedraft.config import PageDraftConfig
from pagedraft.edit import CommandQueue, EditLog

# ── Errors ──────────────────────────────────────────────────────────────
from pagedraft.errors import (
    BackendAuthError,
    BackendConflictError,
    BackendError,
    BackendNetworkError,
    BackendNotFoundError,
    BackendPermissionError,
    BackendRateLimitError,
    BackendServerError,
    BackendValidationError,
    EditLogError,
    ErrorCode,
    MarkerError,
    PageDraftError,
    StoreError,
)
from pagedraft.merge import classify, merge, resolve_anchors

# ── Models ──────────────────────────────────────────────────────────────
from pagedraft.models import (
    Anchor,
    Block,
    BlockInfo,
    BlockRef,
    BlockStatus,
    CanonicalResult,
    ChangeFile,
    ClassifiedBlock,
    ConsistencyWarning,
    DirtyPageEntry,
    EditAction,
    EditKind,
    EditRecord,
    EditStatus,
    MergedBlock,
    PageStatus,
    PageView,
    Placement,
    RequestState,
    RequestStatus,
    SubmitResult,
)

# ── Session ─────────────────────────────────────────────────────────────
from pagedraft.session import EditorSession
from pagedraft.store import DirtyPageStore, SessionLedger

__all__ = [
    # Session
    "EditorSession",
    "DirtyPageStore",
    "SessionLedger",
    # Backend
    "AsyncCmsTransport",
    "CmsBackend",
    "HttpCmsBackend",
    # Engine
    "CommandQueue",
    "EditLog",
    "assign_identities",
    "canonicalize",
    "classify",
    "compose_document",
    "compute_signature",
    "detect_block",
    "merge",
    "parse_blocks",
    "resolve_anchors",
    # Configuration
    "PageDraftConfig",
    # Errors
    "BackendAuthError",
    "BackendConflictError",
    "BackendError",
    "BackendNetworkError",
    "BackendNotFoundError",
    "BackendPermissionError",
    "BackendRateLimitError",
    "BackendServerError",
    "BackendValidationError",
    "EditLogError",
    "ErrorCode",
    "MarkerError",
    "PageDraftError",
    "StoreError",
    # Models
    "Anchor",
    "Block",
    "BlockInfo",
    "BlockRef",
    "BlockStatus",
    "CanonicalResult",
    "ChangeFile",
    "ClassifiedBlock",
    "ConsistencyWarning",
    "DirtyPageEntry",
    "EditAction",
    "EditKind",
    "EditRecord",
    "EditStatus",
    "MergedBlock",
    "PageStatus",
    "PageView",
    "Placement",
    "RequestState",
    "RequestStatus",
    "SubmitResult",
]

__version__ = "0.1.0"
