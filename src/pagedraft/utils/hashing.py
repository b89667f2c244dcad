"""MD5 helpers for content fingerprints.

These lightweight hashes back block signatures, synthesized block
identities and the base/dirty hashes of the dirty-page store.  They are
**not** used for security purposes.
"""

from __future__ import annotations

import hashlib
import json


def md5_hash(data: str) -> str:
    """Return the hex-encoded MD5 digest of *data* (encoded as UTF-8).

    Examples
    --------
    >>> md5_hash("hello")
    '5d41402abc4b2a76b9719d911017c592'
    """
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def hash_dict(d: dict | list) -> str:
    """Return the hex-encoded MD5 of a JSON-serialized dict or list.

    Serialized with **sorted keys** and ``ensure_ascii=False`` so the digest
    is deterministic and Unicode-preserving.

    Examples
    --------
    >>> hash_dict({"b": 2, "a": 1}) == hash_dict({"a": 1, "b": 2})
    True
    """
    return md5_hash(json.dumps(d, sort_keys=True, ensure_ascii=False))
