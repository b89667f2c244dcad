"""The edit log and the commands that mutate it."""

from .commands import (
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
from .log import EditLog, record_from_dict, record_to_dict

__all__ = [
    "Command",
    "CommandQueue",
    "DiscardEdit",
    "EditBlock",
    "EditLog",
    "InsertBlock",
    "MoveBlock",
    "RemoveBlock",
    "ReorderBlocks",
    "RestoreBlock",
    "UpdateBlock",
    "record_from_dict",
    "record_to_dict",
]
