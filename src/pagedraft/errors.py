"""Full error hierarchy for pagedraft.

Every public error class inherits from :class:`PageDraftError`.  Each carries
a machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

Only *structural* problems (missing or duplicated region markers), invalid
edit-log commands, store I/O failures and backend failures are raised.
Consistency drift found by the canonicalizer is reported as a
:class:`~pagedraft.models.ConsistencyWarning` instead, and identity
collisions are resolved silently with a suffix counter.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the package can raise."""

    MARKER_ERROR = "MARKER_ERROR"
    EDIT_LOG_ERROR = "EDIT_LOG_ERROR"
    STORE_ERROR = "STORE_ERROR"
    BACKEND_ERROR = "BACKEND_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class PageDraftError(Exception):
    """Base exception for all pagedraft errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Core engine errors
# ---------------------------------------------------------------------------

class MarkerError(PageDraftError):
    """A region marker pair is missing, duplicated, unbalanced or overlapping.

    Fatal for the operation that hit it; the engine never guesses region
    boundaries.

    Context keys: ``region``, ``reason``, ``offsets``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.MARKER_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class EditLogError(PageDraftError):
    """An edit-log command was malformed or referenced an unknown record.

    Context keys: ``record_id``, ``path``, ``reason``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.EDIT_LOG_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class StoreError(PageDraftError):
    """The dirty-page store file could not be read or written.

    A failed write never leaves a partially written entry behind.

    Context keys: ``file``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.STORE_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Backend errors
# ---------------------------------------------------------------------------

class BackendError(PageDraftError):
    """Base class for failures talking to the repository / PR backend.

    Backend errors are surfaced to the caller as a distinct page state and
    are never retried automatically.
    """

    def __init__(
        self,
        code: str = ErrorCode.BACKEND_ERROR,
        message: str = "Backend error",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class BackendValidationError(BackendError):
    """The backend rejected the request (400) or a path failed validation.

    Context keys: ``status_code``, ``path``, ``body``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class BackendAuthError(BackendError):
    """The backend returned 401 -- the CMS key is missing or wrong."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.AUTH_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class BackendPermissionError(BackendError):
    """The backend returned 403.

    Context keys: ``status_code``, ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PERMISSION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class BackendNotFoundError(BackendError):
    """The backend returned 404 for a page or request.

    Context keys: ``status_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=message,
            context=context,
            cause=cause,
        )


class BackendConflictError(BackendError):
    """The backend returned 409 -- the branch moved under the submission."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CONFLICT,
            message=message,
            context=context,
            cause=cause,
        )


class BackendRateLimitError(BackendError):
    """The backend returned 429.

    Context keys: ``retry_after_seconds``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RATE_LIMITED,
            message=message,
            context=context,
            cause=cause,
        )


class BackendServerError(BackendError):
    """The backend returned a 5xx status.

    Context keys: ``status_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.SERVER_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class BackendNetworkError(BackendError):
    """A transport-level failure occurred (timeout, DNS, connection reset).

    Context keys: ``url``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NETWORK_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
