"""Repository / pull-request backend: the protocol and its HTTP adapter."""

from .client import HttpCmsBackend, validate_page_path
from .protocol import CmsBackend
from .transport import AsyncCmsTransport

__all__ = [
    "AsyncCmsTransport",
    "CmsBackend",
    "HttpCmsBackend",
    "validate_page_path",
]
