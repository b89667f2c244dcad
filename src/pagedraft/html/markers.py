"""Two-pass tokenizer for region markers in a full page document.

A page document contains marker-delimited regions::

    <!-- CMS:START hero --> ... <!-- CMS:END hero -->
    <!-- CMS:START main --> ... <!-- CMS:END main -->

Pass 1 walks the comments of the document and emits a
:class:`MarkerToken` for every marker comment.  Pass 2 pairs the tokens per
region name and validates them.  The result is a :class:`PageDocument`: an
ordered sequence of spans where everything outside the regions is an
opaque, byte-preserved :class:`OpaqueSpan`.

Any malformed marker layout raises :class:`~pagedraft.errors.MarkerError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace

from pagedraft.errors import MarkerError

_COMMENT_OPEN = "<!--"
_COMMENT_CLOSE = "-->"


@dataclass(frozen=True)
class MarkerToken:
    """A single marker comment found by pass 1.

    Attributes
    ----------
    kind:
        ``"START"`` or ``"END"``.
    name:
        Region name (``"hero"``, ``"main"``).
    start / end:
        Offsets of the whole comment in the document (``end`` exclusive).
    """

    kind: str
    name: str
    start: int
    end: int


@dataclass(frozen=True)
class OpaqueSpan:
    """Document text outside every region, preserved byte-for-byte."""

    text: str


@dataclass(frozen=True)
class RegionSpan:
    """A marked region: its two marker comments and the text between them."""

    name: str
    start_marker: str
    inner: str
    end_marker: str

    def render(self) -> str:
        return f"{self.start_marker}{self.inner}{self.end_marker}"


@dataclass(frozen=True)
class PageDocument:
    """A page document split into opaque spans and named regions."""

    spans: tuple[OpaqueSpan | RegionSpan, ...] = field(default_factory=tuple)

    def region(self, name: str) -> RegionSpan:
        for span in self.spans:
            if isinstance(span, RegionSpan) and span.name == name:
                return span
        raise MarkerError(
            f"Region {name!r} not present in document",
            context={"region": name, "reason": "missing"},
        )

    def region_names(self) -> list[str]:
        return [s.name for s in self.spans if isinstance(s, RegionSpan)]

    def replace(self, name: str, inner: str) -> PageDocument:
        """Return a new document with the inner text of region *name* replaced."""
        self.region(name)
        spans = tuple(
            replace(span, inner=inner)
            if isinstance(span, RegionSpan) and span.name == name
            else span
            for span in self.spans
        )
        return PageDocument(spans=spans)

    def outside(self) -> list[str]:
        """Return the opaque spans' text, in order."""
        return [s.text for s in self.spans if isinstance(s, OpaqueSpan)]

    def render(self) -> str:
        return "".join(
            span.text if isinstance(span, OpaqueSpan) else span.render()
            for span in self.spans
        )


def _marker_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(
        rf"^\s*{re.escape(prefix)}:(START|END)\s+([A-Za-z0-9_-]+)\s*$"
    )


# ---------------------------------------------------------------------------
# Pass 1: tokenize
# ---------------------------------------------------------------------------

def tokenize_markers(text: str, prefix: str = "CMS") -> list[MarkerToken]:
    """Return every marker comment in *text*, in document order.

    Comments that are not markers are skipped.  An unterminated comment
    ends the scan, as it does for an HTML parser.
    """
    pattern = _marker_pattern(prefix)
    tokens: list[MarkerToken] = []
    pos = 0
    while True:
        open_at = text.find(_COMMENT_OPEN, pos)
        if open_at == -1:
            break
        close_at = text.find(_COMMENT_CLOSE, open_at + len(_COMMENT_OPEN))
        if close_at == -1:
            break
        end = close_at + len(_COMMENT_CLOSE)
        body = text[open_at + len(_COMMENT_OPEN):close_at]
        match = pattern.match(body)
        if match:
            tokens.append(
                MarkerToken(kind=match.group(1), name=match.group(2), start=open_at, end=end)
            )
        pos = end
    return tokens


# ---------------------------------------------------------------------------
# Pass 2: pair and validate
# ---------------------------------------------------------------------------

def _pair_tokens(tokens: list[MarkerToken]) -> list[tuple[MarkerToken, MarkerToken]]:
    by_name: dict[str, list[MarkerToken]] = {}
    for token in tokens:
        by_name.setdefault(token.name, []).append(token)

    pairs: list[tuple[MarkerToken, MarkerToken]] = []
    for name, group in by_name.items():
        starts = [t for t in group if t.kind == "START"]
        ends = [t for t in group if t.kind == "END"]
        if len(starts) > 1 or len(ends) > 1:
            raise MarkerError(
                f"Duplicated markers for region {name!r}",
                context={
                    "region": name,
                    "reason": "duplicate",
                    "offsets": [t.start for t in group],
                },
            )
        if not starts or not ends:
            raise MarkerError(
                f"Unbalanced markers for region {name!r}",
                context={
                    "region": name,
                    "reason": "missing_start" if not starts else "missing_end",
                    "offsets": [t.start for t in group],
                },
            )
        start, end = starts[0], ends[0]
        if end.start < start.end:
            raise MarkerError(
                f"END marker precedes START marker for region {name!r}",
                context={"region": name, "reason": "reversed", "offsets": [start.start, end.start]},
            )
        pairs.append((start, end))

    pairs.sort(key=lambda pair: pair[0].start)
    for (a_start, a_end), (b_start, _) in zip(pairs, pairs[1:]):
        if b_start.start < a_end.end:
            raise MarkerError(
                f"Regions {a_start.name!r} and {b_start.name!r} overlap",
                context={
                    "region": b_start.name,
                    "reason": "overlap",
                    "offsets": [a_start.start, b_start.start],
                },
            )
    return pairs


def split_document(
    text: str,
    required: tuple[str, ...] = ("hero", "main"),
    prefix: str = "CMS",
) -> PageDocument:
    """Split *text* into opaque spans and marked regions.

    Parameters
    ----------
    text:
        The full page document.
    required:
        Region names that must be present exactly once.
    prefix:
        Marker prefix (``CMS`` in ``<!-- CMS:START main -->``).

    Raises
    ------
    MarkerError
        When a required region is missing or any marker pair is
        duplicated, unbalanced, reversed or overlapping.
    """
    pairs = _pair_tokens(tokenize_markers(text, prefix))
    found = {start.name for start, _ in pairs}
    missing = [name for name in required if name not in found]
    if missing:
        raise MarkerError(
            f"Missing {' + '.join(missing)} markers",
            context={"region": missing[0], "reason": "missing", "missing": missing},
        )

    spans: list[OpaqueSpan | RegionSpan] = []
    pos = 0
    for start, end in pairs:
        spans.append(OpaqueSpan(text=text[pos:start.start]))
        spans.append(
            RegionSpan(
                name=start.name,
                start_marker=text[start.start:start.end],
                inner=text[start.end:end.start],
                end_marker=text[end.start:end.end],
            )
        )
        pos = end.end
    spans.append(OpaqueSpan(text=text[pos:]))
    return PageDocument(spans=tuple(spans))
