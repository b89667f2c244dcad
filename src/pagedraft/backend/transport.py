"""Async HTTP transport for the CMS worker API.

Each request runs once:

1. Send the HTTP request, attaching ``x-cms-key`` on pull-request
   endpoints only.
2. On ``2xx`` -- return the parsed body.
3. On any other status -- raise the matching typed
   :class:`~pagedraft.errors.BackendError`.
4. On timeouts and network failures -- raise
   :class:`~pagedraft.errors.BackendNetworkError`.

Failures are never retried here; the editor retries only on an explicit
user action.
"""

from __future__ import annotations

import json as _json
import sys
import time
from typing import Any

import httpx

from pagedraft.config import PageDraftConfig
from pagedraft.errors import (
    BackendAuthError,
    BackendConflictError,
    BackendNetworkError,
    BackendNotFoundError,
    BackendPermissionError,
    BackendRateLimitError,
    BackendServerError,
    BackendValidationError,
)
from pagedraft.observability import get_logger, resolve_metrics

log = get_logger("pagedraft.transport")

PR_PATH_PREFIX = "/api/pr"
KEY_HEADER = "x-cms-key"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the :class:`BackendError` subclass matching a non-2xx status."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    worker_message = body.get("error") or body.get("message") or response.text[:500]

    if status == 400:
        raise BackendValidationError(
            message=f"Validation error on {method} {path}: {worker_message}",
            context={"status_code": status, "path": path, "body": body},
        )
    if status == 401:
        raise BackendAuthError(
            message=f"Authentication failed on {method} {path}: {worker_message}",
            context={"status_code": status},
        )
    if status == 403:
        raise BackendPermissionError(
            message=f"Permission denied on {method} {path}: {worker_message}",
            context={"status_code": status, "operation": f"{method} {path}"},
        )
    if status == 404:
        raise BackendNotFoundError(
            message=f"Not found on {method} {path}: {worker_message}",
            context={"status_code": status, "path": path},
        )
    if status == 409:
        raise BackendConflictError(
            message=f"Conflict on {method} {path}: {worker_message}",
            context={"status_code": status, "path": path},
        )
    if status == 429:
        raise BackendRateLimitError(
            message=f"Rate limited on {method} {path}: {worker_message}",
            context={"status_code": status, "retry_after_seconds": _parse_retry_after(response)},
        )
    if status >= 500:
        raise BackendServerError(
            message=f"Server error {status} on {method} {path}: {worker_message}",
            context={"status_code": status, "path": path},
        )

    # Any other non-2xx status.
    raise BackendValidationError(
        message=f"Client error {status} on {method} {path}: {worker_message}",
        context={"status_code": status, "path": path, "body": body},
    )


def _dump_payload(
    method: str,
    url: str,
    payload: Any | None,
    response_status: int | None,
    response_body: Any | None,
    secret: str | None = None,
) -> None:
    """Write a redacted debug dump of the request/response to stderr."""
    from pagedraft.utils.redact import redact

    dump: dict[str, Any] = {
        "method": method,
        "url": url,
    }
    if payload is not None:
        dump["request_body"] = payload
    if response_status is not None:
        dump["response_status"] = response_status
    if response_body is not None:
        dump["response_body"] = response_body
    safe_dump = redact(dump, secret)
    print(
        _json.dumps(safe_dump, indent=2, default=str),
        file=sys.stderr,
    )


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncCmsTransport:
    """Asynchronous HTTP transport for the CMS worker.

    Parameters
    ----------
    config:
        A :class:`PageDraftConfig` with ``worker_base_url`` set.
    client:
        An existing ``httpx.AsyncClient`` to use instead of creating one.
    """

    def __init__(
        self,
        config: PageDraftConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.worker_base_url and client is None:
            raise ValueError("worker_base_url must be set to talk to the CMS worker")
        self._config = config
        self._metrics = resolve_metrics(config)

        proxy: httpx.URL | str | None = config.http_proxy
        self._client = client or httpx.AsyncClient(
            base_url=config.worker_base_url,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(config.timeout_seconds),
            proxy=proxy,
        )

    # -- internals ---------------------------------------------------------

    def _headers_for(self, path: str, extra: dict[str, str] | None) -> dict[str, str]:
        headers = dict(extra or {})
        if path.startswith(PR_PATH_PREFIX):
            key = self._config.api_key.strip()
            if not key:
                raise BackendAuthError(
                    message=f"CMS key is not configured; cannot call {path}",
                    context={"path": path},
                )
            headers[KEY_HEADER] = key
        return headers

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers_for(path, kwargs.pop("headers", None))
        json_payload = kwargs.get("json")

        t0 = time.monotonic()
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            self._metrics.increment(
                "pagedraft.requests_total",
                tags={"method": method, "path": path, "status": "error"},
            )
            log.warning(
                "Request network error",
                extra={"extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "error": str(exc),
                }},
            )
            raise BackendNetworkError(
                message=f"Network error on {method} {path}: {exc}",
                context={"url": path},
                cause=exc,
            ) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        tags = {"method": method, "path": path, "status": str(response.status_code)}
        self._metrics.increment("pagedraft.requests_total", tags=tags)
        self._metrics.timing("pagedraft.request_duration_ms", elapsed_ms, tags=tags)

        if self._config.debug_dump_payload:
            try:
                resp_body: Any = response.json()
            except ValueError:
                resp_body = response.text[:1000]
            _dump_payload(
                method, str(response.url), json_payload,
                response.status_code, resp_body,
                secret=self._config.api_key,
            )

        if not 200 <= response.status_code < 300:
            log.warning(
                "Backend request failed",
                extra={"extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                }},
            )
            _raise_for_status(response, method, path)
        return response

    # -- public API --------------------------------------------------------

    async def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute a request and return the parsed JSON body.

        Parameters
        ----------
        method:
            HTTP method.
        path:
            API path relative to ``worker_base_url`` (e.g. ``/api/pr``).
        **kwargs:
            Forwarded to :meth:`httpx.AsyncClient.request`.

        Returns
        -------
        dict
            Parsed JSON body; ``{}`` for empty responses.

        Raises
        ------
        BackendError
            A subclass matching the failure; see the module docstring.
        """
        response = await self._send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            result = response.json()
        except ValueError as exc:
            raise BackendValidationError(
                message=f"Expected JSON from {method} {path}",
                context={"status_code": response.status_code, "path": path},
                cause=exc,
            ) from exc
        return result if isinstance(result, dict) else {"data": result}

    async def request_text(self, method: str, path: str, **kwargs: Any) -> str:
        """Execute a request and return the body as text."""
        response = await self._send(method, path, **kwargs)
        return response.text

    async def close(self) -> None:
        """Close the underlying async HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncCmsTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
