"""The repository / pull-request backend the editor session talks to."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from pagedraft.models import ChangeFile, RequestStatus, SubmitResult


@runtime_checkable
class CmsBackend(Protocol):
    """Opaque async collaborator that owns the page repository.

    Implementations may be cancelled at any await point; the session only
    changes its own state after a call returns.
    """

    async def fetch_baseline(self, path: str) -> str:
        """Return the current full document of *path*."""
        ...

    async def submit_change(
        self,
        files: Sequence[ChangeFile],
        title: str,
        body: str,
    ) -> SubmitResult:
        """Open a pull request changing *files*."""
        ...

    async def poll_request_status(self, request_id: int) -> RequestStatus:
        """Return the current state of pull request *request_id*."""
        ...
