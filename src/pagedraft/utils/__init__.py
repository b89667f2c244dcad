from .hashing import hash_dict, md5_hash
from .redact import redact

__all__ = [
    "md5_hash",
    "hash_dict",
    "redact",
]
