"""HTML plumbing: the pure node tree and the region-marker tokenizer."""

from .markers import (
    MarkerToken,
    OpaqueSpan,
    PageDocument,
    RegionSpan,
    split_document,
    tokenize_markers,
)
from .tree import Node, element_children, parse, serialize, text_content

__all__ = [
    "MarkerToken",
    "Node",
    "OpaqueSpan",
    "PageDocument",
    "RegionSpan",
    "element_children",
    "parse",
    "serialize",
    "split_document",
    "text_content",
    "tokenize_markers",
]
