"""Block signatures, identities and template detection."""

from .detect import detect_block
from .identity import (
    assign_identities,
    block_from_node,
    identity_for_new_block,
    parse_blocks,
    stamp_identity,
    strip_identity,
    synthesize_identity,
)
from .signature import canonical_form, compute_signature

__all__ = [
    "assign_identities",
    "block_from_node",
    "canonical_form",
    "compute_signature",
    "detect_block",
    "identity_for_new_block",
    "parse_blocks",
    "stamp_identity",
    "strip_identity",
    "synthesize_identity",
]
