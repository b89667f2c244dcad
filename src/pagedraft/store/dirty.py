"""Durable per-page store of unmerged local edits.

The store keeps one :class:`~pagedraft.models.DirtyPageEntry` per page
path.  With a file path it is backed by a single JSON file of the form::

    {
      "about/working-style.html": {
        "html": "...",
        "baseHash": "...",
        "dirtyHash": "...",
        "editLog": [...],
        "updatedAt": "2025-07-01T12:00:00+00:00"
      }
    }

The file is read once, on construction, and rewritten on every change.
Writes go to a temporary file in the same directory which then replaces
the store file, and the in-memory state only changes after that succeeds,
so a failed write leaves both the file and the store as they were.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

from pagedraft.errors import StoreError
from pagedraft.models import DirtyPageEntry
from pagedraft.observability.logger import get_logger
from pagedraft.observability.metrics import MetricsHook, NoopMetricsHook

log = get_logger("pagedraft.store")


def entry_to_dict(entry: DirtyPageEntry) -> dict[str, Any]:
    return {
        "html": entry.html,
        "baseHash": entry.base_hash,
        "dirtyHash": entry.dirty_hash,
        "editLog": list(entry.edit_log),
        "updatedAt": entry.updated_at.isoformat() if entry.updated_at else None,
    }


def entry_from_dict(path: str, data: dict[str, Any]) -> DirtyPageEntry:
    updated = data.get("updatedAt")
    return DirtyPageEntry(
        path=path,
        html=data["html"],
        base_hash=data["baseHash"],
        dirty_hash=data["dirtyHash"],
        edit_log=list(data.get("editLog") or []),
        updated_at=datetime.fromisoformat(updated) if updated else None,
    )


class DirtyPageStore:
    """Per-path store of dirty pages.

    Parameters
    ----------
    file_path:
        JSON file backing the store.  ``None`` keeps everything in memory.
    metrics:
        Receives ``pagedraft.store_writes_total``.

    Raises
    ------
    StoreError
        If the file exists but cannot be read or is not a valid store.
    """

    def __init__(
        self,
        file_path: str | os.PathLike[str] | None = None,
        metrics: MetricsHook | None = None,
    ) -> None:
        self._file = Path(file_path) if file_path is not None else None
        self._metrics: MetricsHook = metrics or NoopMetricsHook()
        self._entries: dict[str, DirtyPageEntry] = self._load()

    @property
    def file_path(self) -> Path | None:
        return self._file

    # ── Loading ─────────────────────────────────────────────────────────

    def _load(self) -> dict[str, DirtyPageEntry]:
        if self._file is None or not self._file.exists():
            return {}
        try:
            raw = json.loads(self._file.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise StoreError(
                f"Cannot read dirty-page store {self._file}",
                context={"file": str(self._file)},
                cause=exc,
            ) from exc
        if not isinstance(raw, dict):
            raise StoreError(
                f"Dirty-page store {self._file} is not a JSON object",
                context={"file": str(self._file)},
            )
        entries: dict[str, DirtyPageEntry] = {}
        for path, data in raw.items():
            try:
                entries[path] = entry_from_dict(path, data)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise StoreError(
                    f"Malformed entry for {path!r} in {self._file}",
                    context={"file": str(self._file), "path": path},
                    cause=exc,
                ) from exc
        return entries

    # ── Writing ─────────────────────────────────────────────────────────

    def _write(self, entries: dict[str, DirtyPageEntry], path: str) -> None:
        if self._file is not None:
            payload = {p: entry_to_dict(e) for p, e in entries.items()}
            tmp_name: str | None = None
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    mode="w",
                    encoding="utf-8",
                    dir=self._file.parent,
                    prefix=f".{self._file.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    json.dump(payload, tmp, ensure_ascii=False, indent=2)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, self._file)
            except OSError as exc:
                if tmp_name is not None and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise StoreError(
                    f"Cannot write dirty-page store {self._file}",
                    context={"file": str(self._file), "path": path},
                    cause=exc,
                ) from exc
        self._entries = entries
        self._metrics.increment("pagedraft.store_writes_total")

    # ── Public API ──────────────────────────────────────────────────────

    def get(self, path: str) -> DirtyPageEntry | None:
        return self._entries.get(path)

    def put(self, entry: DirtyPageEntry) -> None:
        """Create or fully replace the entry for ``entry.path``."""
        entries = dict(self._entries)
        entries[entry.path] = entry
        self._write(entries, entry.path)
        log.debug(
            "stored dirty page",
            extra={"extra_fields": {
                "op": "put",
                "path": entry.path,
                "records": len(entry.edit_log),
            }},
        )

    def delete(self, path: str) -> bool:
        """Delete the entry for *path*.  Returns ``False`` if there was none."""
        if path not in self._entries:
            return False
        entries = {p: e for p, e in self._entries.items() if p != path}
        self._write(entries, path)
        log.debug("cleared dirty page", extra={"extra_fields": {"op": "delete", "path": path}})
        return True

    def paths(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DirtyPageEntry]:
        return iter(list(self._entries.values()))
