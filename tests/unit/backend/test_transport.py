"""Unit tests for pagedraft/backend/transport.py.

Covers:
- _parse_retry_after
- _raise_for_status
- _dump_payload
- AsyncCmsTransport.request / request_text (success, error mapping, no retry)
- x-cms-key attachment rules
- AsyncCmsTransport.close / context manager
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from pagedraft.config import PageDraftConfig
from pagedraft.errors import (
    BackendAuthError,
    BackendConflictError,
    BackendError,
    BackendNetworkError,
    BackendNotFoundError,
    BackendPermissionError,
    BackendRateLimitError,
    BackendServerError,
    BackendValidationError,
    ErrorCode,
)
from pagedraft.backend.transport import (
    AsyncCmsTransport,
    _dump_payload,
    _parse_retry_after,
    _raise_for_status,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

API_KEY = "cms-secret-key-9876"


def make_response(
    status_code: int = 200,
    body: dict | list | None = None,
    headers: dict | None = None,
    text: str | None = None,
) -> httpx.Response:
    """Build a minimal httpx.Response with a request attached."""
    if text is not None:
        content = text.encode()
    elif body is not None:
        content = json.dumps(body).encode()
    else:
        content = b""
    resp = httpx.Response(status_code, content=content, headers=headers or {})
    resp.request = httpx.Request("GET", "https://cms.example.dev/api/test")
    return resp


def make_config(**overrides) -> PageDraftConfig:
    defaults = dict(worker_base_url="https://cms.example.dev", api_key=API_KEY)
    defaults.update(overrides)
    return PageDraftConfig(**defaults)


# ---------------------------------------------------------------------------
# _parse_retry_after
# ---------------------------------------------------------------------------

class TestParseRetryAfter:
    def test_numeric(self):
        assert _parse_retry_after(make_response(headers={"retry-after": "5"})) == 5.0

    def test_invalid(self):
        assert _parse_retry_after(make_response(headers={"retry-after": "soon"})) is None

    def test_missing(self):
        assert _parse_retry_after(make_response()) is None


# ---------------------------------------------------------------------------
# _raise_for_status
# ---------------------------------------------------------------------------

class TestRaiseForStatus:
    @pytest.mark.parametrize(
        "status, error_cls, code",
        [
            (400, BackendValidationError, ErrorCode.VALIDATION_ERROR),
            (401, BackendAuthError, ErrorCode.AUTH_ERROR),
            (403, BackendPermissionError, ErrorCode.PERMISSION_ERROR),
            (404, BackendNotFoundError, ErrorCode.NOT_FOUND),
            (409, BackendConflictError, ErrorCode.CONFLICT),
            (429, BackendRateLimitError, ErrorCode.RATE_LIMITED),
            (500, BackendServerError, ErrorCode.SERVER_ERROR),
            (503, BackendServerError, ErrorCode.SERVER_ERROR),
            (418, BackendValidationError, ErrorCode.VALIDATION_ERROR),
        ],
    )
    def test_status_mapping(self, status, error_cls, code):
        with pytest.raises(error_cls) as exc_info:
            _raise_for_status(make_response(status, body={"error": "nope"}), "GET", "/api/x")
        assert exc_info.value.code == code
        assert isinstance(exc_info.value, BackendError)

    def test_worker_message_in_error(self):
        with pytest.raises(BackendNotFoundError) as exc_info:
            _raise_for_status(make_response(404, body={"error": "file missing"}), "GET", "/api/repo/file")
        assert "file missing" in exc_info.value.message
        assert exc_info.value.context["path"] == "/api/repo/file"

    def test_retry_after_context(self):
        resp = make_response(429, body={}, headers={"retry-after": "12"})
        with pytest.raises(BackendRateLimitError) as exc_info:
            _raise_for_status(resp, "POST", "/api/pr")
        assert exc_info.value.context["retry_after_seconds"] == 12.0

    def test_non_json_body(self):
        with pytest.raises(BackendServerError) as exc_info:
            _raise_for_status(make_response(502, text="Bad gateway"), "GET", "/api/x")
        assert "Bad gateway" in exc_info.value.message


# ---------------------------------------------------------------------------
# _dump_payload
# ---------------------------------------------------------------------------

class TestDumpPayload:
    def test_dump_is_redacted(self, capsys):
        _dump_payload(
            method="POST",
            url="https://cms.example.dev/api/pr",
            payload={"title": "t", "note": f"key {API_KEY}"},
            response_status=201,
            response_body={"number": 4},
            secret=API_KEY,
        )
        err = capsys.readouterr().err
        data = json.loads(err)
        assert data["method"] == "POST"
        assert data["response_status"] == 201
        assert API_KEY not in err


# ---------------------------------------------------------------------------
# AsyncCmsTransport
# ---------------------------------------------------------------------------

class TestAsyncCmsTransportRequest:
    """Tests for AsyncCmsTransport.request()."""

    async def test_200_returns_json(self):
        transport = AsyncCmsTransport(make_config())
        resp = make_response(200, body={"number": 7})
        with patch.object(transport._client, "request", new=AsyncMock(return_value=resp)):
            result = await transport.request("GET", "/api/pr/7")
        assert result == {"number": 7}
        await transport.close()

    async def test_204_returns_empty_dict(self):
        transport = AsyncCmsTransport(make_config())
        resp = make_response(204)
        with patch.object(transport._client, "request", new=AsyncMock(return_value=resp)):
            assert await transport.request("GET", "/api/pr/7") == {}
        await transport.close()

    async def test_list_body_wrapped(self):
        transport = AsyncCmsTransport(make_config())
        resp = make_response(200, body=[1, 2])
        with patch.object(transport._client, "request", new=AsyncMock(return_value=resp)):
            assert await transport.request("GET", "/api/x") == {"data": [1, 2]}
        await transport.close()

    async def test_non_json_success_raises(self):
        transport = AsyncCmsTransport(make_config())
        resp = make_response(200, text="<html>")
        with (
            patch.object(transport._client, "request", new=AsyncMock(return_value=resp)),
            pytest.raises(BackendValidationError),
        ):
            await transport.request("GET", "/api/x")
        await transport.close()

    async def test_request_text(self):
        transport = AsyncCmsTransport(make_config())
        resp = make_response(200, text="<html>page</html>")
        with patch.object(transport._client, "request", new=AsyncMock(return_value=resp)):
            assert await transport.request_text("GET", "/api/repo/file") == "<html>page</html>"
        await transport.close()

    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_failures_not_retried(self, status):
        transport = AsyncCmsTransport(make_config())
        mock = AsyncMock(return_value=make_response(status, body={"error": "x"}))
        with patch.object(transport._client, "request", new=mock), pytest.raises(BackendError):
            await transport.request("GET", "/api/pr/1")
        assert mock.await_count == 1
        await transport.close()

    async def test_network_error_mapped(self):
        transport = AsyncCmsTransport(make_config())
        mock = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        with (
            patch.object(transport._client, "request", new=mock),
            pytest.raises(BackendNetworkError) as exc_info,
        ):
            await transport.request("GET", "/api/repo/file")
        assert mock.await_count == 1
        assert isinstance(exc_info.value.cause, httpx.ConnectError)
        await transport.close()

    async def test_timeout_mapped(self):
        transport = AsyncCmsTransport(make_config())
        mock = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with (
            patch.object(transport._client, "request", new=mock),
            pytest.raises(BackendNetworkError),
        ):
            await transport.request("GET", "/api/repo/file")
        await transport.close()


class TestCmsKeyHeader:
    async def test_key_sent_on_pr_endpoints(self):
        transport = AsyncCmsTransport(make_config())
        mock = AsyncMock(return_value=make_response(201, body={"number": 1}))
        with patch.object(transport._client, "request", new=mock):
            await transport.request("POST", "/api/pr", json={"title": "t"})
        assert mock.call_args.kwargs["headers"]["x-cms-key"] == API_KEY
        await transport.close()

    async def test_key_not_sent_on_repo_endpoints(self):
        transport = AsyncCmsTransport(make_config())
        mock = AsyncMock(return_value=make_response(200, text="<html></html>"))
        with patch.object(transport._client, "request", new=mock):
            await transport.request_text("GET", "/api/repo/file", params={"path": "a.html"})
        assert "x-cms-key" not in mock.call_args.kwargs["headers"]
        assert mock.call_args.kwargs["params"] == {"path": "a.html"}
        await transport.close()

    async def test_missing_key_fails_before_sending(self):
        transport = AsyncCmsTransport(make_config(api_key=""))
        mock = AsyncMock()
        with patch.object(transport._client, "request", new=mock), pytest.raises(BackendAuthError):
            await transport.request("POST", "/api/pr", json={})
        mock.assert_not_awaited()
        await transport.close()

    async def test_caller_headers_kept(self):
        transport = AsyncCmsTransport(make_config())
        mock = AsyncMock(return_value=make_response(200, text="x"))
        with patch.object(transport._client, "request", new=mock):
            await transport.request_text("GET", "/api/repo/file", headers={"Accept": "text/html"})
        assert mock.call_args.kwargs["headers"] == {"Accept": "text/html"}
        await transport.close()


class TestObservability:
    async def test_metrics_emitted(self):
        metrics = MagicMock()
        transport = AsyncCmsTransport(make_config(metrics=metrics))
        with patch.object(
            transport._client, "request", new=AsyncMock(return_value=make_response(200, body={}))
        ):
            await transport.request("GET", "/api/pr/1")
        name, = metrics.increment.call_args.args
        assert name == "pagedraft.requests_total"
        assert metrics.increment.call_args.kwargs["tags"]["status"] == "200"
        assert metrics.timing.call_args.args[0] == "pagedraft.request_duration_ms"
        await transport.close()

    async def test_debug_dump_never_contains_key(self, capsys):
        transport = AsyncCmsTransport(make_config(debug_dump_payload=True))
        resp = make_response(201, body={"number": 3, "echo": API_KEY})
        with patch.object(transport._client, "request", new=AsyncMock(return_value=resp)):
            await transport.request("POST", "/api/pr", json={"title": "t"})
        err = capsys.readouterr().err
        assert "response_status" in err
        assert API_KEY not in err
        await transport.close()


class TestLifecycle:
    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            AsyncCmsTransport(PageDraftConfig())

    async def test_external_client_used(self):
        client = MagicMock(spec=httpx.AsyncClient)
        client.request = AsyncMock(return_value=make_response(200, body={"ok": True}))
        client.aclose = AsyncMock()
        transport = AsyncCmsTransport(PageDraftConfig(api_key=API_KEY), client=client)
        assert await transport.request("GET", "/api/pr/1") == {"ok": True}
        await transport.close()
        client.aclose.assert_awaited_once()

    async def test_context_manager_closes(self):
        transport = AsyncCmsTransport(make_config())
        with patch.object(transport._client, "aclose", new=AsyncMock()) as aclose:
            async with transport as entered:
                assert entered is transport
        aclose.assert_awaited_once()
