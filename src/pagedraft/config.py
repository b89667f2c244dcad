"""Configuration for pagedraft.

:class:`PageDraftConfig` is a plain dataclass that captures every tuneable
knob of the engine, the store and the backend adapter.  One instance is
handed to :class:`~pagedraft.session.EditorSession` and passed down to
every component that needs it.

The module-level constants hold the default markup rules used when
computing block signatures.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Signature normalisation defaults
# ---------------------------------------------------------------------------

DEFAULT_VOLATILE_ATTRIBUTES: list[str] = [
    "data-highlighted",
    "data-processed",
    "contenteditable",
    "spellcheck",
    "draggable",
]
"""Attributes written by the editing surface or preview widgets.  They are
ignored when fingerprinting a block.  The identity attribute is always
ignored in addition to these."""

DEFAULT_EPHEMERAL_CLASSES: list[str] = [
    "cms-preview",
    "cms-ui",
]
"""Elements carrying any of these classes are render-only artifacts and are
dropped entirely from the signature."""

DEFAULT_DECORATION_CLASS_PREFIXES: list[str] = [
    "hljs-",
]
"""``span`` elements whose classes all start with one of these prefixes are
syntax-highlight decoration; they are unwrapped (text kept, tag dropped)."""

DEFAULT_DECORATION_CLASSES: list[str] = [
    "hljs",
    "token",
]
"""Single class tokens added by highlighters.  Stripped from class lists;
a ``span`` carrying nothing else is unwrapped."""


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class PageDraftConfig:
    """Complete configuration for an editor session.

    Every parameter has a default, so ``PageDraftConfig()`` is a working
    offline configuration.  ``worker_base_url`` must be set before using
    :class:`~pagedraft.backend.client.HttpCmsBackend`.

    Parameters
    ----------
    worker_base_url:
        Origin of the CMS worker that fronts the repository, e.g.
        ``https://cms.example.workers.dev``.  No trailing slash needed.
    api_key:
        Value sent as ``x-cms-key`` on pull-request endpoints only.
        Never logged.
    managed_pages:
        Page paths the editor may modify.  Empty means every page is
        editable; otherwise other pages open read-only.
    marker_prefix:
        Prefix inside region marker comments (``<!-- CMS:START main -->``).
    hero_region / main_region:
        Names of the two required regions.
    identity_attribute:
        Attribute used to carry a block's identity through the editing
        surface.
    persist_identity_attribute:
        Keep identity attributes in the canonical (submitted) document.
        Off by default so the repository never stores volatile ids.
    stamp_identity:
        Write identity attributes onto preview HTML handed to the
        rendering layer.
    volatile_attributes / ephemeral_classes / decoration_class_prefixes /
    decoration_classes:
        Signature normalisation rules, see the module constants.
    store_path:
        JSON file backing the dirty-page store.  ``None`` keeps the store
        in memory.
    timeout_seconds:
        HTTP request timeout in seconds.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    debug_dump_payload:
        Write the (redacted) backend request/response to *stderr*.
    debug_dump_merge:
        Log every merge result at DEBUG level.
    """

    # ── Backend ─────────────────────────────────────────────────────────
    worker_base_url: str = ""

    api_key: str = ""

    managed_pages: list[str] = field(default_factory=list)

    # ── Document markers ────────────────────────────────────────────────
    marker_prefix: str = "CMS"

    hero_region: str = "hero"

    main_region: str = "main"

    # ── Identity ────────────────────────────────────────────────────────
    identity_attribute: str = "data-cms-id"

    persist_identity_attribute: bool = False

    stamp_identity: bool = True

    # ── Signature normalisation ─────────────────────────────────────────
    volatile_attributes: list[str] = field(
        default_factory=lambda: list(DEFAULT_VOLATILE_ATTRIBUTES),
    )

    ephemeral_classes: list[str] = field(
        default_factory=lambda: list(DEFAULT_EPHEMERAL_CLASSES),
    )

    decoration_class_prefixes: list[str] = field(
        default_factory=lambda: list(DEFAULT_DECORATION_CLASS_PREFIXES),
    )

    decoration_classes: list[str] = field(
        default_factory=lambda: list(DEFAULT_DECORATION_CLASSES),
    )

    # ── Storage ─────────────────────────────────────────────────────────
    store_path: str | None = None

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    debug_dump_merge: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        if self.worker_base_url:
            self.worker_base_url = self.worker_base_url.strip().rstrip("/")
            parsed = urlparse(self.worker_base_url)
            if parsed.scheme not in ("http", "https"):
                raise ValueError(
                    f"worker_base_url must be an http(s) URL, got {self.worker_base_url!r}"
                )
            if parsed.scheme == "http" and parsed.hostname not in (
                "localhost",
                "127.0.0.1",
                "::1",
            ):
                raise ValueError(
                    f"worker_base_url uses insecure HTTP for non-local host '{parsed.hostname}'. "
                    "Use HTTPS to protect the CMS key, or target localhost for testing."
                )

        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if not self.marker_prefix or any(ch.isspace() for ch in self.marker_prefix):
            raise ValueError(f"marker_prefix must be a non-empty word, got {self.marker_prefix!r}")
        if self.hero_region == self.main_region:
            raise ValueError("hero_region and main_region must differ")
        for name in (self.hero_region, self.main_region):
            if not name or any(ch.isspace() for ch in name):
                raise ValueError(f"region names must be non-empty words, got {name!r}")
        if not self.identity_attribute:
            raise ValueError("identity_attribute must not be empty")

    @property
    def required_regions(self) -> tuple[str, str]:
        """The region names every page document must contain."""
        return (self.hero_region, self.main_region)

    def is_managed(self, path: str) -> bool:
        """Return ``True`` when *path* may be edited under this config."""
        if not self.managed_pages:
            return True
        return path.lstrip("/") in {p.lstrip("/") for p in self.managed_pages}

    def __repr__(self) -> str:
        """Mask the CMS key to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "api_key":
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"api_key='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"PageDraftConfig({', '.join(parts)})"
