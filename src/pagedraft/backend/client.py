"""HTTP implementation of :class:`~pagedraft.backend.protocol.CmsBackend`.

Thin wrapper around the CMS worker endpoints:

* ``GET  /api/repo/file?path=<path>`` -- current page document
* ``POST /api/pr``                     -- open a pull request
* ``GET  /api/pr/<number>``            -- pull request state

All HTTP concerns are delegated to :class:`AsyncCmsTransport`.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Any

from pagedraft.config import PageDraftConfig
from pagedraft.errors import BackendValidationError
from pagedraft.models import ChangeFile, RequestState, RequestStatus, SubmitResult

from .transport import AsyncCmsTransport

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


def validate_page_path(path: str) -> str:
    """Return *path* normalised for the repository API.

    Raises
    ------
    BackendValidationError
        If the path is empty, absolute, carries a URL scheme or escapes the
        repository root with ``..``.
    """
    cleaned = (path or "").strip().replace("\\", "/")
    reason = None
    if not cleaned:
        reason = "empty"
    elif _SCHEME_RE.match(cleaned) or cleaned.startswith("//"):
        reason = "scheme"
    elif cleaned.startswith("/"):
        reason = "absolute"
    elif ".." in cleaned.split("/"):
        reason = "traversal"
    if reason is not None:
        raise BackendValidationError(
            message=f"Invalid page path {path!r}",
            context={"path": path, "reason": reason},
        )
    return cleaned


def _parse_state(data: dict[str, Any]) -> RequestState:
    if data.get("merged") is True or data.get("merged_at"):
        return RequestState.MERGED
    state = str(data.get("state", "")).lower()
    if state == "merged":
        return RequestState.MERGED
    if state == "closed":
        return RequestState.CLOSED
    return RequestState.OPEN


class HttpCmsBackend:
    """Backend talking to the CMS worker over HTTP.

    Parameters
    ----------
    config:
        Supplies ``worker_base_url``, ``api_key`` and transport settings.
    transport:
        An existing transport, mainly for tests.
    """

    def __init__(
        self,
        config: PageDraftConfig,
        transport: AsyncCmsTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport or AsyncCmsTransport(config)

    async def fetch_baseline(self, path: str) -> str:
        """Return the document at *path*.

        The worker answers either ``{"content": ...}`` or the raw file.
        """
        path = validate_page_path(path)
        text = await self._transport.request_text(
            "GET",
            "/api/repo/file",
            params={"path": path},
            headers={"Accept": "application/json, text/html"},
        )
        if text.lstrip().startswith("{"):
            try:
                data = json.loads(text)
            except ValueError:
                return text
            if isinstance(data, dict) and isinstance(data.get("content"), str):
                return data["content"]
        return text

    async def submit_change(
        self,
        files: Sequence[ChangeFile],
        title: str,
        body: str,
    ) -> SubmitResult:
        """Open a pull request for *files*.

        Returns
        -------
        SubmitResult
            The request number and its URL.
        """
        if not files:
            raise BackendValidationError(
                message="A change must contain at least one file",
                context={"reason": "no_files"},
            )
        payload = {
            "title": title,
            "body": body,
            "files": [
                {"path": validate_page_path(f.path), "content": f.content}
                for f in files
            ],
        }
        data = await self._transport.request("POST", "/api/pr", json=payload)
        number = data.get("number", data.get("pr"))
        if number is None:
            raise BackendValidationError(
                message="Pull request response carried no number",
                context={"body": data},
            )
        return SubmitResult(request_id=int(number), url=str(data.get("url", data.get("html_url", ""))))

    async def poll_request_status(self, request_id: int) -> RequestStatus:
        data = await self._transport.request("GET", f"/api/pr/{int(request_id)}")
        return RequestStatus(request_id=int(request_id), state=_parse_state(data))

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> HttpCmsBackend:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
