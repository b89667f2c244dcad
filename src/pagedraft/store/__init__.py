"""Durable dirty-page store and the session-scoped commit ledger."""

from .dirty import DirtyPageStore, entry_from_dict, entry_to_dict
from .ledger import SessionLedger, refs_for

__all__ = [
    "DirtyPageStore",
    "SessionLedger",
    "entry_from_dict",
    "entry_to_dict",
    "refs_for",
]
