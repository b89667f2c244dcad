"""Canonical serialization of full page documents.

:func:`compose_document` is the single code path that writes a block
sequence into a page's main region, both for previews and for submission.
:func:`canonicalize` re-serializes a document's main region through it and
runs three non-fatal consistency checks.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pagedraft.blocks.identity import parse_blocks, stamp_identity
from pagedraft.config import PageDraftConfig
from pagedraft.html.markers import PageDocument, split_document
from pagedraft.html.tree import TEXT, parse, serialize
from pagedraft.models import CanonicalResult, ConsistencyWarning
from pagedraft.observability.logger import get_logger
from pagedraft.observability.metrics import resolve_metrics

log = get_logger("pagedraft.canonical")

CONTENT_DRIFT = "CONTENT_DRIFT"
CONTENT_DROPPED = "CONTENT_DROPPED"
BLOCK_COUNT_MISMATCH = "BLOCK_COUNT_MISMATCH"


def split_page(document: str, config: PageDraftConfig | None = None) -> PageDocument:
    """Split *document* into regions using *config*'s marker settings.

    Raises
    ------
    MarkerError
        If the hero or main region is missing or malformed.
    """
    config = config or PageDraftConfig()
    return split_document(document, config.required_regions, config.marker_prefix)


def main_inner(blocks_html: Sequence[str]) -> str:
    """Return the main-region text for *blocks_html*."""
    return "\n" + "".join(f"{html}\n" for html in blocks_html)


def compose_document(
    document: str,
    blocks_html: Sequence[str],
    config: PageDraftConfig | None = None,
) -> str:
    """Return *document* with its main region replaced by *blocks_html*.

    Everything outside the main region, the hero region included, is kept
    byte-for-byte.
    """
    config = config or PageDraftConfig()
    page = split_page(document, config)
    return page.replace(config.main_region, main_inner(blocks_html)).render()


def loose_content(main_html: str) -> list[str]:
    """Return the text and comments sitting between main-region blocks.

    Whitespace-only text is layout, not content.  None of the returned
    spans survive canonicalization.
    """
    spans: list[str] = []
    for node in parse(main_html).children:
        if node.is_element:
            continue
        if node.tag == TEXT:
            if node.text.strip():
                spans.append(node.text.strip())
        else:
            spans.append(serialize(node))
    return spans


def _report(
    warnings: list[ConsistencyWarning],
    code: str,
    message: str,
    context: dict[str, Any],
) -> None:
    warnings.append(ConsistencyWarning(code=code, message=message, context=context))
    log.warning(message, extra={"extra_fields": {"op": "canonicalize", "code": code, **context}})


def canonicalize(document: str, config: PageDraftConfig | None = None) -> CanonicalResult:
    """Re-serialize the main region of *document* in canonical form.

    Parameters
    ----------
    document:
        A full page document with hero and main markers.
    config:
        Marker, identity and signature settings.

    Returns
    -------
    CanonicalResult
        The canonical document, the number of blocks written and any
        consistency warnings.  Canonicalizing the returned document again
        yields the same document.

    Raises
    ------
    MarkerError
        If the region markers are missing or malformed.
    """
    config = config or PageDraftConfig()
    metrics = resolve_metrics(config)
    page = split_page(document, config)

    main = page.region(config.main_region).inner
    blocks = parse_blocks(main, config)
    dropped = loose_content(main)
    if config.persist_identity_attribute:
        blocks_html = [stamp_identity(b.html, b.identity, config.identity_attribute) for b in blocks]
    else:
        blocks_html = [b.html for b in blocks]

    output = compose_document(document, blocks_html, config)

    warnings: list[ConsistencyWarning] = []
    if dropped:
        _report(
            warnings,
            CONTENT_DROPPED,
            "text or comments between main-region blocks were dropped",
            {"spans": len(dropped), "first": dropped[0][:80]},
        )

    reparsed = split_page(output, config)

    before = page.outside()
    after = reparsed.outside()
    if before != after:
        _report(
            warnings,
            CONTENT_DRIFT,
            "content outside the editable regions changed",
            {"spans_before": len(before), "spans_after": len(after)},
        )

    recount = len(parse_blocks(reparsed.region(config.main_region).inner, config))
    if recount != len(blocks_html):
        _report(
            warnings,
            BLOCK_COUNT_MISMATCH,
            "re-parsed block count differs from serialized count",
            {"serialized": len(blocks_html), "reparsed": recount},
        )

    if warnings:
        metrics.increment("pagedraft.consistency_warnings_total", len(warnings))

    return CanonicalResult(document=output, block_count=len(blocks_html), warnings=warnings)
