"""Edit commands and the serialized command queue.

Every mutation of an edit log is expressed as a command value and pushed
through a :class:`CommandQueue`.  The queue runs one handler at a time, in
submission order; a command submitted while another is being handled is
queued behind it instead of re-entering the handler.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Union

from pagedraft.models import Anchor, Placement


@dataclass(frozen=True)
class InsertBlock:
    """Insert a new block next to a baseline anchor or at a position hint."""

    path: str
    html: str
    anchor: Anchor | None = None
    placement: Placement = Placement.AFTER
    position: int | None = None


@dataclass(frozen=True)
class RemoveBlock:
    """Mark a baseline block for deletion."""

    path: str
    anchor: Anchor


@dataclass(frozen=True)
class RestoreBlock:
    """Undo a deletion mark."""

    path: str
    anchor: Anchor


@dataclass(frozen=True)
class EditBlock:
    """Replace a baseline block's content in place."""

    path: str
    anchor: Anchor
    html: str


@dataclass(frozen=True)
class UpdateBlock:
    """Replace the content of an already logged insert."""

    path: str
    record_id: str
    html: str


@dataclass(frozen=True)
class MoveBlock:
    """Drag a logged insert to a new index in the visible sequence."""

    path: str
    record_id: str
    position: int


@dataclass(frozen=True)
class ReorderBlocks:
    """Set the order of the baseline blocks."""

    path: str
    order: tuple[str, ...]


@dataclass(frozen=True)
class DiscardEdit:
    """Drop a logged record (and its edit partner)."""

    path: str
    record_id: str


Command = Union[
    InsertBlock,
    RemoveBlock,
    RestoreBlock,
    EditBlock,
    UpdateBlock,
    MoveBlock,
    ReorderBlocks,
    DiscardEdit,
]


class CommandQueue:
    """FIFO queue that drains through a single, non-reentrant handler.

    Parameters
    ----------
    handler:
        Called once per command, in submission order.
    """

    def __init__(self, handler: Callable[[Command], Any]) -> None:
        self._handler = handler
        self._queue: deque[Command] = deque()
        self._draining = False

    @property
    def pending(self) -> int:
        """Number of commands waiting to be handled."""
        return len(self._queue)

    @property
    def draining(self) -> bool:
        return self._draining

    def submit(self, command: Command) -> Any:
        """Queue *command* and drain the queue.

        Returns the handler's result for *command* when it was handled by
        this call, or ``None`` when it was queued behind a command that is
        currently being handled.  If the handler raises, the exception
        propagates and commands still queued stay queued for the next
        :meth:`submit`.
        """
        self._queue.append(command)
        if self._draining:
            return None

        self._draining = True
        result: Any = None
        try:
            while self._queue:
                current = self._queue.popleft()
                outcome = self._handler(current)
                if current is command:
                    result = outcome
        finally:
            self._draining = False
        return result
