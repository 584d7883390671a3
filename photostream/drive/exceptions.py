"""Custom exceptions for the Drive photo stream."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from photostream.schemas.photo import Photo


class PhotoStreamError(Exception):
    """Base exception for photo stream errors."""

    def __init__(self, message: str, code: str = "PHOTOSTREAM_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class RequestCancelledError(PhotoStreamError):
    """Raised when a rate gate wait is aborted by the session's cancel signal."""

    def __init__(self, message: str = "Request cancelled while waiting for the rate gate"):
        super().__init__(message, "CANCELLED")


class RateLimitExceededError(PhotoStreamError):
    """Raised when overload retries are exhausted (only with a configured ceiling)."""

    def __init__(self, attempts: int, message: str | None = None):
        self.attempts = attempts
        msg = message or f"Rate limit exceeded after {attempts} attempts"
        super().__init__(msg, "RATE_LIMITED")


class RemoteCallError(PhotoStreamError):
    """Raised when a Drive call fails for any reason other than overload."""

    def __init__(self, message: str, status: int | None = None, code: str = "REMOTE_ERROR"):
        self.status = status
        super().__init__(message, code)


class DirectoryLookupError(RemoteCallError):
    """Raised when a single parent directory cannot be fetched."""

    def __init__(self, item_id: str, cause: BaseException, status: int | None = None):
        self.item_id = item_id
        super().__init__(f"get {item_id!r}: {cause}", status, "LOOKUP_FAILED")


class PathResolutionError(PhotoStreamError):
    """Raised when a path is only partially resolved.

    ``partial`` holds the best-effort result (path segments, or one path
    string per requested parent). The first underlying error is chained.
    """

    def __init__(self, partial: list[str], cause: BaseException):
        self.partial = partial
        super().__init__(f"path incomplete: {cause}", "PATH_INCOMPLETE")


class EnrichmentError(PhotoStreamError):
    """Raised when a raw record converts only partially into a Photo."""

    def __init__(self, item_id: str, partial: Photo, cause: BaseException):
        self.item_id = item_id
        self.partial = partial
        self.cause = cause
        super().__init__(f"convert {item_id!r}: {cause}", "ENRICHMENT_FAILED")


class TimestampParseError(PhotoStreamError):
    """Raised for an unparsable RFC 3339 timestamp when strict timestamps are enabled."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"{field}: cannot parse {value!r} as RFC 3339", "BAD_TIMESTAMP")
