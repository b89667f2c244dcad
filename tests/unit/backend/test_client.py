"""Tests for backend/client.py: the HTTP CmsBackend adapter."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from pagedraft.backend.client import HttpCmsBackend, validate_page_path
from pagedraft.backend.protocol import CmsBackend
from pagedraft.config import PageDraftConfig
from pagedraft.errors import BackendValidationError
from pagedraft.models import ChangeFile, RequestState


def make_backend(**transport_results) -> tuple[HttpCmsBackend, MagicMock]:
    transport = MagicMock()
    transport.request = AsyncMock(return_value=transport_results.get("request", {}))
    transport.request_text = AsyncMock(return_value=transport_results.get("request_text", ""))
    transport.close = AsyncMock()
    config = PageDraftConfig(worker_base_url="https://cms.example.dev", api_key="k" * 16)
    return HttpCmsBackend(config, transport=transport), transport


class TestValidatePagePath:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("about/index.html", "about/index.html"),
            ("  index.html ", "index.html"),
            ("about\\team.html", "about/team.html"),
            ("a/..b/c.html", "a/..b/c.html"),
        ],
    )
    def test_valid(self, path, expected):
        assert validate_page_path(path) == expected

    @pytest.mark.parametrize(
        "path, reason",
        [
            ("", "empty"),
            ("   ", "empty"),
            ("https://evil.example/x.html", "scheme"),
            ("//evil.example/x.html", "scheme"),
            ("/etc/passwd", "absolute"),
            ("../secrets.html", "traversal"),
            ("about/../../x.html", "traversal"),
        ],
    )
    def test_invalid(self, path, reason):
        with pytest.raises(BackendValidationError) as exc_info:
            validate_page_path(path)
        assert exc_info.value.context["reason"] == reason


class TestProtocol:
    def test_http_backend_satisfies_protocol(self):
        backend, _ = make_backend()
        assert isinstance(backend, CmsBackend)


class TestFetchBaseline:
    async def test_raw_document(self):
        backend, transport = make_backend(request_text="<html>raw</html>")
        assert await backend.fetch_baseline("about/index.html") == "<html>raw</html>"
        args = transport.request_text.call_args
        assert args.args == ("GET", "/api/repo/file")
        assert args.kwargs["params"] == {"path": "about/index.html"}

    async def test_json_wrapped_document(self):
        body = json.dumps({"content": "<html>wrapped</html>", "sha": "abc"})
        backend, _ = make_backend(request_text=body)
        assert await backend.fetch_baseline("index.html") == "<html>wrapped</html>"

    async def test_braced_text_that_is_not_json(self):
        backend, _ = make_backend(request_text="{ not json")
        assert await backend.fetch_baseline("index.html") == "{ not json"

    async def test_invalid_path_never_sent(self):
        backend, transport = make_backend()
        with pytest.raises(BackendValidationError):
            await backend.fetch_baseline("../x.html")
        transport.request_text.assert_not_awaited()


class TestSubmitChange:
    async def test_payload_and_result(self):
        backend, transport = make_backend(
            request={"number": 12, "url": "https://github.example/o/r/pull/12"}
        )
        result = await backend.submit_change(
            [ChangeFile(path="about/index.html", content="<html></html>")],
            "Update about",
            "Edited in the CMS",
        )
        assert result.request_id == 12
        assert result.url == "https://github.example/o/r/pull/12"
        transport.request.assert_awaited_once_with(
            "POST",
            "/api/pr",
            json={
                "title": "Update about",
                "body": "Edited in the CMS",
                "files": [{"path": "about/index.html", "content": "<html></html>"}],
            },
        )

    async def test_alternative_response_keys(self):
        backend, _ = make_backend(request={"pr": "5", "html_url": "https://x/5"})
        result = await backend.submit_change([ChangeFile("a.html", "x")], "t", "")
        assert (result.request_id, result.url) == (5, "https://x/5")

    async def test_missing_number(self):
        backend, _ = make_backend(request={"ok": True})
        with pytest.raises(BackendValidationError):
            await backend.submit_change([ChangeFile("a.html", "x")], "t", "")

    async def test_no_files(self):
        backend, transport = make_backend()
        with pytest.raises(BackendValidationError):
            await backend.submit_change([], "t", "")
        transport.request.assert_not_awaited()

    async def test_invalid_file_path(self):
        backend, transport = make_backend()
        with pytest.raises(BackendValidationError):
            await backend.submit_change([ChangeFile("/abs.html", "x")], "t", "")
        transport.request.assert_not_awaited()


class TestPollRequestStatus:
    @pytest.mark.parametrize(
        "body, state",
        [
            ({"state": "open"}, RequestState.OPEN),
            ({"state": "closed", "merged": True}, RequestState.MERGED),
            ({"state": "closed", "merged_at": "2025-07-01T00:00:00Z"}, RequestState.MERGED),
            ({"state": "merged"}, RequestState.MERGED),
            ({"state": "CLOSED"}, RequestState.CLOSED),
            ({}, RequestState.OPEN),
        ],
    )
    async def test_states(self, body, state):
        backend, transport = make_backend(request=body)
        status = await backend.poll_request_status(9)
        assert status.request_id == 9
        assert status.state == state
        transport.request.assert_awaited_once_with("GET", "/api/pr/9")


class TestLifecycle:
    async def test_close_delegates(self):
        backend, transport = make_backend()
        async with backend as entered:
            assert entered is backend
        transport.close.assert_awaited_once()
