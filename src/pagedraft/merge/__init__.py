"""Anchor resolution, the merge engine and block classification."""

from .anchors import locate_anchor, record_block, resolve_anchors
from .classify import classify, reordered_identities
from .engine import apply_reorder, authoritative_reorder, merge, merged_html
from .lcs_matcher import lcs_match

__all__ = [
    "apply_reorder",
    "authoritative_reorder",
    "classify",
    "lcs_match",
    "locate_anchor",
    "merge",
    "merged_html",
    "record_block",
    "reordered_identities",
    "resolve_anchors",
]
