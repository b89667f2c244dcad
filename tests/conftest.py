"""Shared test fixtures for the pagedraft test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

import pytest

from pagedraft.config import PageDraftConfig
from pagedraft.errors import BackendNotFoundError
from pagedraft.models import ChangeFile, RequestState, RequestStatus, SubmitResult

PAGE_PATH = "about/working-style.html"


def build_document(blocks: Sequence[str], hero: str = "<h1>Working style</h1>") -> str:
    """Return a full page document with *blocks* in its main region.

    The main region is laid out the way the canonicalizer writes it, so a
    document built here is already canonical.
    """
    main = "\n" + "".join(f"{b}\n" for b in blocks)
    return (
        "<!DOCTYPE html>\n"
        "<html><head><title>Working style</title></head><body>\n"
        f"<header><!-- CMS:START hero -->{hero}<!-- CMS:END hero --></header>\n"
        f"<main><!-- CMS:START main -->{main}<!-- CMS:END main --></main>\n"
        "<footer>&copy; Example</footer>\n"
        "</body></html>\n"
    )


class FakeBackend:
    """In-memory repository with pull requests.

    ``merge_request`` plays the reviewer: it writes the submitted files into
    the repository and marks the request merged.  Setting ``gate`` to an
    :class:`asyncio.Event` makes ``fetch_baseline`` wait for it.
    """

    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self.documents: dict[str, str] = dict(documents or {})
        self.submitted: list[tuple[int, list[ChangeFile], str, str]] = []
        self.states: dict[int, RequestState] = {}
        self.fetches: list[str] = []
        self.gate: asyncio.Event | None = None
        self._next = 1

    async def fetch_baseline(self, path: str) -> str:
        self.fetches.append(path)
        if self.gate is not None:
            await self.gate.wait()
        if path not in self.documents:
            raise BackendNotFoundError(
                f"Not found on GET /api/repo/file: {path}",
                context={"status_code": 404, "path": path},
            )
        return self.documents[path]

    async def submit_change(
        self, files: Sequence[ChangeFile], title: str, body: str
    ) -> SubmitResult:
        number = self._next
        self._next += 1
        self.submitted.append((number, list(files), title, body))
        self.states[number] = RequestState.OPEN
        return SubmitResult(request_id=number, url=f"https://example.test/pull/{number}")

    async def poll_request_status(self, request_id: int) -> RequestStatus:
        return RequestStatus(request_id=request_id, state=self.states[request_id])

    def merge_request(self, request_id: int) -> None:
        for number, files, _, _ in self.submitted:
            if number == request_id:
                for change in files:
                    self.documents[change.path] = change.content
        self.states[request_id] = RequestState.MERGED

    def close_request(self, request_id: int) -> None:
        self.states[request_id] = RequestState.CLOSED


@pytest.fixture
def config() -> PageDraftConfig:
    """Default offline configuration."""
    return PageDraftConfig()


@pytest.fixture
def page_doc() -> Callable[..., str]:
    """Builder for full page documents, see :func:`build_document`."""
    return build_document


@pytest.fixture
def page_path() -> str:
    return PAGE_PATH


@pytest.fixture
def backend() -> FakeBackend:
    """Fake backend holding one three-block page."""
    return FakeBackend({PAGE_PATH: build_document(["<p>A</p>", "<p>B</p>", "<p>C</p>"])})
