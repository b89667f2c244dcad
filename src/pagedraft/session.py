"""Editor session: the single owner of all editing state.

:class:`EditorSession` holds every open page (baseline, edit log, status),
the durable dirty-page store and the session ledger.  All edit-log
mutations go through one :class:`~pagedraft.edit.commands.CommandQueue`;
after each command the page's log is normalized, its anchors resolved,
the page re-merged and the result persisted.

Usage::

    import asyncio
    from pagedraft import EditorSession, HttpCmsBackend, PageDraftConfig
    from pagedraft.edit import InsertBlock

    async def main():
        config = PageDraftConfig(worker_base_url="https://cms.example.dev", api_key="...")
        async with HttpCmsBackend(config) as backend:
            session = EditorSession(backend, config)
            view = await session.open_page("about/working-style.html")
            first = view.blocks[0]
            session.dispatch(InsertBlock(
                path=view.path,
                html="<p>New paragraph</p>",
                anchor=session.anchor_for(view.path, first.identity),
            ))
            result = await session.commit(title="Update working style")
            print(result.url)

    asyncio.run(main())
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from pagedraft.backend.protocol import CmsBackend
from pagedraft.blocks.identity import parse_blocks, stamp_identity
from pagedraft.canonical import canonicalize, compose_document, split_page
from pagedraft.config import PageDraftConfig
from pagedraft.edit.commands import (
    Command,
    CommandQueue,
    DiscardEdit,
    EditBlock,
    InsertBlock,
    MoveBlock,
    RemoveBlock,
    ReorderBlocks,
    RestoreBlock,
    UpdateBlock,
)
from pagedraft.edit.log import EditLog
from pagedraft.errors import BackendError, EditLogError, MarkerError, PageDraftError
from pagedraft.merge.anchors import locate_anchor, resolve_anchors
from pagedraft.merge.classify import classify
from pagedraft.merge.engine import merge
from pagedraft.models import (
    Anchor,
    Block,
    ChangeFile,
    ConsistencyWarning,
    DirtyPageEntry,
    EditKind,
    EditStatus,
    MergedBlock,
    PageStatus,
    PageView,
    Placement,
    RequestState,
    SubmitResult,
)
from pagedraft.observability import get_logger, resolve_metrics
from pagedraft.store.dirty import DirtyPageStore
from pagedraft.store.ledger import SessionLedger, refs_for
from pagedraft.utils.hashing import md5_hash

log = get_logger("pagedraft.session")

STATUS_LABELS: dict[PageStatus, str] = {
    PageStatus.LOADING: "LOADING / INITIALISING",
    PageStatus.CLEAN: "CONNECTED - CLEAN",
    PageStatus.DIRTY: "CONNECTED - DIRTY",
    PageStatus.PENDING: "CONNECTED - PENDING REVIEW",
    PageStatus.ERROR: "DISCONNECTED / ERROR",
    PageStatus.READONLY: "CONNECTED - READ ONLY",
}


@dataclass
class PageState:
    """Everything the session knows about one open page."""

    path: str
    log: EditLog
    document: str = ""
    baseline: list[Block] = field(default_factory=list)
    base_hash: str = ""
    merged: list[MergedBlock] = field(default_factory=list)
    readonly: bool = False
    loaded: bool = False
    error: str | None = None
    structural_error: bool = False
    warnings: list[ConsistencyWarning] = field(default_factory=list)


class EditorSession:
    """One editor session over a set of pages.

    Parameters
    ----------
    backend:
        Repository / pull-request collaborator.
    config:
        Session configuration; defaults to ``PageDraftConfig()``.
    store:
        Durable dirty-page store.  Created from ``config.store_path`` when
        not given.
    ledger:
        Session ledger.  A fresh one is created when not given.
    """

    def __init__(
        self,
        backend: CmsBackend,
        config: PageDraftConfig | None = None,
        store: DirtyPageStore | None = None,
        ledger: SessionLedger | None = None,
    ) -> None:
        self.config = config or PageDraftConfig()
        self.backend = backend
        self._metrics = resolve_metrics(self.config)
        self.store = store if store is not None else DirtyPageStore(
            self.config.store_path, metrics=self._metrics
        )
        self.ledger = ledger if ledger is not None else SessionLedger()
        self._pages: dict[str, PageState] = {}
        self._loading: set[str] = set()
        self._queue = CommandQueue(self._handle)

    # ------------------------------------------------------------------
    # Page access
    # ------------------------------------------------------------------

    @property
    def pages(self) -> list[str]:
        return list(self._pages)

    def page(self, path: str) -> PageState:
        state = self._pages.get(path)
        if state is None:
            raise EditLogError(
                f"Page {path!r} is not open",
                context={"path": path, "reason": "not_open"},
            )
        return state

    def status(self, path: str) -> PageStatus:
        """Return the page-level status of *path*."""
        state = self._pages.get(path)
        if state is None or (path in self._loading and not state.loaded):
            return PageStatus.LOADING
        if state.error is not None:
            return PageStatus.ERROR
        if state.readonly:
            return PageStatus.READONLY
        if state.log.has_staged:
            return PageStatus.DIRTY
        if state.log.has_pending:
            return PageStatus.PENDING
        return PageStatus.CLEAN

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _fetch(self, path: str) -> str:
        try:
            return await self.backend.fetch_baseline(path)
        except BackendError as exc:
            self._fail(path, exc)
            raise

    def _fail(self, path: str, exc: PageDraftError) -> None:
        state = self._pages.get(path)
        if state is None:
            state = PageState(path=path, log=EditLog(config=self.config))
            self._pages[path] = state
        state.error = exc.message
        state.structural_error = isinstance(exc, MarkerError)
        log.warning(
            "page operation failed",
            extra={"extra_fields": {"path": path, "code": exc.code, "error": exc.message}},
        )

    def _apply_baseline(self, state: PageState, raw: str) -> None:
        """Install a freshly fetched baseline on *state*."""
        canon = canonicalize(raw, self.config)
        page = split_page(canon.document, self.config)
        blocks = parse_blocks(page.region(self.config.main_region).inner, self.config)

        added, removed = self.ledger.baseline_drift(state.path, blocks)
        if added or removed:
            log.info(
                "baseline changed since session start",
                extra={"extra_fields": {
                    "op": "baseline",
                    "path": state.path,
                    "added": len(added),
                    "removed": len(removed),
                }},
            )
        self.ledger.snapshot_baseline(state.path, blocks)

        state.document = canon.document
        state.baseline = blocks
        state.base_hash = md5_hash(canon.document)
        state.warnings = list(canon.warnings)
        state.loaded = True
        state.error = None
        state.structural_error = False

    async def open_page(self, path: str) -> PageView:
        """Fetch *path*'s baseline and re-merge any stored edits onto it.

        Raises
        ------
        BackendError
            If the fetch fails; the page status becomes ``error``.
        MarkerError
            If the fetched document's region markers are malformed.
        """
        self._loading.add(path)
        try:
            raw = await self._fetch(path)
        finally:
            self._loading.discard(path)

        state = self._pages.get(path)
        if state is None:
            state = PageState(path=path, log=EditLog(config=self.config))
            self._pages[path] = state
        state.readonly = not self.config.is_managed(path)

        try:
            self._apply_baseline(state, raw)
        except MarkerError as exc:
            self._fail(path, exc)
            raise

        entry = self.store.get(path)
        if entry is not None and not state.readonly and len(state.log) == 0:
            state.log = EditLog.from_list(entry.edit_log, config=self.config)
            if entry.base_hash != state.base_hash:
                log.info(
                    "baseline drifted upstream; re-merging stored edits",
                    extra={"extra_fields": {
                        "op": "open_page",
                        "path": path,
                        "records": len(state.log),
                    }},
                )

        self._reconcile(state)
        return self.view(path)

    async def refresh_baseline(self, path: str) -> PageView:
        """Re-fetch *path* and re-merge its edit log onto the new baseline.

        Commands dispatched while the fetch is in flight apply to the
        previous baseline and are re-merged once it resolves.
        """
        state = self.page(path)
        raw = await self._fetch(path)
        try:
            self._apply_baseline(state, raw)
        except MarkerError as exc:
            self._fail(path, exc)
            raise
        self._reconcile(state)
        return self.view(path)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _merge(self, state: PageState, respect_removals: bool = False) -> list[MergedBlock]:
        return merge(
            state.baseline,
            state.log.records,
            respect_removals=respect_removals,
            config=self.config,
        )

    def _reconcile(self, state: PageState) -> None:
        """Normalize, resolve anchors, merge and persist *state*."""
        if not state.loaded:
            return
        state.log.normalize(state.baseline)
        first = self._merge(state)
        resolved = resolve_anchors(state.baseline, state.log.records, first, self.config)
        if resolved != state.log.records:
            state.log.replace_all(resolved)
            state.merged = self._merge(state)
        else:
            state.merged = first
        if not state.readonly:
            self._persist(state)

    def _persist(self, state: PageState) -> None:
        if len(state.log) == 0:
            self.store.delete(state.path)
            return
        document = self._submission(state)
        dirty_hash = md5_hash(document)
        if dirty_hash == state.base_hash and not state.log.has_pending:
            self.store.delete(state.path)
            return
        self.store.put(
            DirtyPageEntry(
                path=state.path,
                html=document,
                base_hash=state.base_hash,
                dirty_hash=dirty_hash,
                edit_log=state.log.to_list(),
                updated_at=datetime.now(timezone.utc),
            )
        )

    def _submission(self, state: PageState) -> str:
        merged = self._merge(state, respect_removals=True)
        composed = compose_document(state.document, [m.block.html for m in merged], self.config)
        return canonicalize(composed, self.config).document

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def dispatch(self, command: Command) -> Any:
        """Apply *command* through the session's command queue.

        Returns the handler result (the affected record or records), or
        ``None`` when the command was queued behind one still running.

        Raises
        ------
        EditLogError
            If the page is not open, is read-only, or the command is
            invalid.
        """
        return self._queue.submit(command)

    def anchor_for(self, path: str, identity: str) -> Anchor | None:
        """Return the baseline anchor of the visible block *identity*."""
        state = self.page(path)
        for item in state.merged:
            if item.block.identity == identity and item.base_identity:
                block = locate_anchor(state.baseline, Anchor(identity=item.base_identity))
                return Anchor.for_block(block) if block is not None else None
        block = locate_anchor(state.baseline, Anchor(identity=identity))
        return Anchor.for_block(block) if block is not None else None

    def _editable(self, path: str) -> PageState:
        state = self.page(path)
        if state.readonly:
            raise EditLogError(
                f"Page {path!r} is read-only",
                context={"path": path, "reason": "readonly"},
            )
        if not state.loaded:
            raise EditLogError(
                f"Page {path!r} has no baseline loaded",
                context={"path": path, "reason": "not_loaded"},
            )
        return state

    def _visible(self, state: PageState, anchor: Anchor | None) -> MergedBlock | None:
        if anchor is None or not anchor.identity:
            return None
        for item in state.merged:
            if item.block.identity == anchor.identity:
                return item
        return None

    def _baseline_anchor(self, state: PageState, anchor: Anchor) -> Anchor:
        block = locate_anchor(state.baseline, anchor)
        if block is None:
            item = self._visible(state, anchor)
            if item is not None and item.base_identity:
                block = locate_anchor(state.baseline, Anchor(identity=item.base_identity))
        if block is None:
            raise EditLogError(
                "Anchor does not match a baseline block",
                context={"path": state.path, "reason": "unknown_anchor"},
            )
        return Anchor.for_block(block)

    def _handle(self, command: Command) -> Any:
        state = self._editable(command.path)
        result = self._apply(state, command)
        self._reconcile(state)
        return result

    def _apply(self, state: PageState, command: Command) -> Any:
        edits = state.log
        if isinstance(command, InsertBlock):
            anchor = command.anchor
            position = command.position
            visible = [m.block for m in state.merged]
            if anchor is not None and locate_anchor(state.baseline, anchor) is None:
                item = self._visible(state, anchor)
                if item is not None and item.base_identity:
                    anchor = self._baseline_anchor(state, anchor)
                elif item is not None:
                    # Next to another local insert: place by position.
                    index = state.merged.index(item)
                    position = index + (1 if command.placement == Placement.AFTER else 0)
                    anchor = None
            elif anchor is not None:
                anchor = self._baseline_anchor(state, anchor)
            return edits.insert(
                command.html,
                anchor=anchor,
                placement=command.placement,
                position=position,
                visible=visible,
            )
        if isinstance(command, RemoveBlock):
            item = self._visible(state, command.anchor)
            if item is not None and item.record_id:
                record = edits.get(item.record_id)
                if record.kind == EditKind.EDITED and record.base_id:
                    # Deleting an edited block deletes its base block.
                    base = self._baseline_anchor(state, Anchor(identity=record.base_id))
                    edits.discard(record.id)
                    return edits.remove(base)
                return edits.discard(item.record_id)
            return edits.remove(self._baseline_anchor(state, command.anchor))
        if isinstance(command, RestoreBlock):
            return edits.restore(self._baseline_anchor(state, command.anchor))
        if isinstance(command, EditBlock):
            item = self._visible(state, command.anchor)
            if item is not None and item.record_id:
                return edits.update(item.record_id, command.html)
            return edits.mark_edited(self._baseline_anchor(state, command.anchor), command.html)
        if isinstance(command, UpdateBlock):
            return edits.update(command.record_id, command.html)
        if isinstance(command, MoveBlock):
            return edits.reposition(command.record_id, command.position)
        if isinstance(command, ReorderBlocks):
            return edits.reorder(command.order)
        if isinstance(command, DiscardEdit):
            return edits.discard(command.record_id)
        raise EditLogError(
            f"Unsupported command {type(command).__name__}",
            context={"path": getattr(command, "path", None), "reason": "unsupported"},
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def view(self, path: str) -> PageView:
        """Return a classified snapshot of *path* for rendering."""
        status = self.status(path)
        label = STATUS_LABELS[status]
        state = self._pages.get(path)
        if state is None:
            return PageView(path=path, status=status, label=label)
        if state.structural_error and state.error:
            label = state.error
        if not state.loaded:
            return PageView(path=path, status=status, label=label, error=state.error)

        classified = classify(
            state.merged,
            state.log.records,
            state.baseline,
            ledger=self.ledger,
            path=path,
        )
        if self.config.stamp_identity:
            attribute = self.config.identity_attribute
            classified = [
                replace(c, html=stamp_identity(c.html, c.identity, attribute))
                for c in classified
            ]

        page = split_page(state.document, self.config)
        return PageView(
            path=path,
            status=status,
            label=label,
            hero_html=page.region(self.config.hero_region).inner,
            blocks=classified,
            document=compose_document(
                state.document, [c.html for c in classified], self.config
            ),
            error=state.error,
            warnings=list(state.warnings),
        )

    def submission_document(self, path: str) -> str:
        """Return the canonical document *path* would be submitted as."""
        state = self.page(path)
        return self._submission(state)

    # ------------------------------------------------------------------
    # Commit and review lifecycle
    # ------------------------------------------------------------------

    async def commit(
        self,
        paths: list[str] | None = None,
        title: str = "Update site content",
        body: str = "",
    ) -> SubmitResult:
        """Submit every page with staged edits as one pull request.

        Raises
        ------
        EditLogError
            If there is nothing to commit.
        BackendError
            If submission fails; affected pages move to ``error`` and keep
            their staged records.
        """
        targets = [
            p for p in (paths if paths is not None else self.pages)
            if p in self._pages
            and not self._pages[p].readonly
            and self._pages[p].log.has_staged
        ]
        if not targets:
            raise EditLogError("Nothing to commit", context={"reason": "nothing_staged"})

        submitted: dict[str, list[MergedBlock]] = {}
        files: list[ChangeFile] = []
        for path in targets:
            state = self._pages[path]
            submitted[path] = self._merge(state, respect_removals=True)
            files.append(ChangeFile(path=path, content=self._submission(state)))

        try:
            result = await self.backend.submit_change(files, title, body)
        except BackendError as exc:
            for path in targets:
                self._fail(path, exc)
            raise

        for path in targets:
            state = self._pages[path]
            state.error = None
            state.log.mark_pending(result.request_id)
            self.ledger.record_commit(
                result.request_id,
                path,
                refs_for([m.block for m in submitted[path] if m.record_id]),
            )
            self._reconcile(state)

        log.info(
            "submitted change",
            extra={"extra_fields": {
                "op": "commit",
                "request_id": result.request_id,
                "paths": targets,
            }},
        )
        return result

    def _paths_for_request(self, request_id: int) -> list[str]:
        paths = [
            path for path, state in self._pages.items()
            if any(r.pr_number == request_id for r in state.log.records)
        ]
        for path in self.ledger.paths_for(request_id):
            if path in self._pages and path not in paths:
                paths.append(path)
        return paths

    async def poll_request(self, request_id: int) -> RequestState:
        """Poll *request_id* and settle local state when it is resolved.

        * ``merged`` -- the request's records are dropped and the affected
          pages re-fetched; their blocks are labeled ``committed``.
        * ``closed`` -- the request's records return to ``staged``.
        * ``open`` -- nothing changes.
        """
        paths = self._paths_for_request(request_id)
        try:
            status = await self.backend.poll_request_status(request_id)
        except BackendError as exc:
            for path in paths:
                self._fail(path, exc)
            raise

        if status.state == RequestState.MERGED:
            fresh: dict[str, str] = {}
            for path in paths:
                fresh[path] = await self._fetch(path)
            if self.ledger.state_of(request_id) == RequestState.OPEN:
                self.ledger.set_state(request_id, RequestState.MERGED)
            for path in paths:
                state = self._pages[path]
                state.log.drop_request(request_id)
                try:
                    self._apply_baseline(state, fresh[path])
                except MarkerError as exc:
                    self._fail(path, exc)
                    raise
                self._reconcile(state)
        elif status.state == RequestState.CLOSED:
            for path in paths:
                state = self._pages[path]
                state.log.revert_pending(request_id)
                self._reconcile(state)
            self.ledger.settle(request_id)

        log.info(
            "polled request",
            extra={"extra_fields": {
                "op": "poll",
                "request_id": request_id,
                "state": status.state.value,
                "paths": paths,
            }},
        )
        return status.state

    def discard_page(self, path: str) -> PageView:
        """Drop every staged edit of *path*; submitted records are kept."""
        state = self._editable(path)
        state.log.replace_all(
            [r for r in state.log.records if r.status == EditStatus.PENDING]
        )
        self._reconcile(state)
        return self.view(path)
