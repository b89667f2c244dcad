"""Secret and payload redaction for safe debug dumps.

Before a backend request or response is written to logs the :func:`redact`
function must be applied.  Rules:

* Values under **sensitive keys** (``x-cms-key``, ``authorization``,
  ``cookie`` …) are masked, showing at most the last four characters of the
  configured key.
* **Base64 data URIs** (images pasted into block HTML) are replaced with
  ``<data_uri:N_bytes>``.
* **Page bodies** longer than ``_CONTENT_PREVIEW_CHARS`` under a ``content``
  key are truncated to a preview plus their length.
* The full CMS key is never present in the output.
"""

from __future__ import annotations

import base64
import binascii
import copy
import re
from typing import Any

# RFC 2397 data URIs with base64 encoding.
_DATA_URI_RE = re.compile(
    r"data:[a-zA-Z0-9_.+-]+/[a-zA-Z0-9_.+-]+;base64,[A-Za-z0-9+/=]+"
)

# Substrings: if any of these appear in a key name (case-insensitive), the
# value is redacted.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "key",
    "token",
    "secret",
    "password",
    "authorization",
    "cookie",
})

_CONTENT_PREVIEW_CHARS = 200


def _mask_secret(value: str, secret: str | None) -> str:
    """Replace every occurrence of *secret* in *value* with a placeholder."""
    if secret and secret in value:
        suffix = secret[-4:] if len(secret) >= 8 else "****"
        placeholder = f"<redacted:...{suffix}>"
        if secret in placeholder:
            placeholder = "<redacted>"
        value = value.replace(secret, placeholder)
    return value


def _estimate_data_uri_bytes(uri: str) -> int:
    """Return the approximate decoded byte length of a data URI."""
    b64_part = uri.split(";base64,", 1)[-1]
    try:
        return len(base64.b64decode(b64_part, validate=True))
    except (binascii.Error, ValueError):
        return len(b64_part) * 3 // 4


def _redact_value(key: str, value: Any, secret: str | None) -> Any:
    if isinstance(value, dict):
        return _redact_dict(value, secret)
    if isinstance(value, list):
        return [_redact_value(key, item, secret) for item in value]
    if isinstance(value, str):
        if _DATA_URI_RE.search(value):
            value = _DATA_URI_RE.sub(
                lambda m: f"<data_uri:{_estimate_data_uri_bytes(m.group(0))}_bytes>",
                value,
            )
        if key == "content" and len(value) > _CONTENT_PREVIEW_CHARS:
            value = f"{value[:_CONTENT_PREVIEW_CHARS]}…<{len(value)}_chars>"
        return _mask_secret(value, secret)
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    return value


def _redact_dict(d: dict, secret: str | None) -> dict:
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            if isinstance(value, str):
                masked = _mask_secret(value, secret)
                result[key] = masked if masked != value else "<redacted>"
            else:
                result[key] = "<redacted>"
        else:
            result[key] = _redact_value(key_lower, value, secret)
    return result


def redact(payload: dict, secret: str | None = None) -> dict:
    """Return a deep copy of *payload* with sensitive data redacted.

    Parameters
    ----------
    payload:
        The dictionary to sanitize (a request body, headers, or a debug
        dump wrapping both).
    secret:
        The configured CMS key.  Any occurrence of this exact string
        anywhere in the payload is replaced.

    Returns
    -------
    dict
        A new dictionary; the original *payload* is never mutated.

    Examples
    --------
    >>> redact({"x-cms-key": "abc"})
    {'x-cms-key': '<redacted>'}
    """
    safe = copy.deepcopy(payload)
    return _redact_dict(safe, secret)
