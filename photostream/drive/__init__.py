"""Drive integration: rate-limited paging, path resolution and streaming."""

from photostream.drive.client import DriveClient, authorized_http_factory, build_drive_service
from photostream.drive.directory_cache import (
    DirectoryCache,
    PathResolver,
    get_directory_cache,
)
from photostream.drive.enricher import ItemEnricher, parse_rfc3339
from photostream.drive.exceptions import (
    DirectoryLookupError,
    EnrichmentError,
    PathResolutionError,
    PhotoStreamError,
    RateLimitExceededError,
    RemoteCallError,
    RequestCancelledError,
    TimestampParseError,
)
from photostream.drive.rate_limiter import OverloadPolicy, RequestGate, get_request_gate
from photostream.drive.stream import PageWalker, PhotoStream, StreamMode, stream_photos

__all__ = [
    # Streaming
    "stream_photos",
    "PhotoStream",
    "PageWalker",
    "StreamMode",
    # Components
    "DriveClient",
    "build_drive_service",
    "authorized_http_factory",
    "RequestGate",
    "OverloadPolicy",
    "get_request_gate",
    "DirectoryCache",
    "PathResolver",
    "get_directory_cache",
    "ItemEnricher",
    "parse_rfc3339",
    # Exceptions
    "PhotoStreamError",
    "RequestCancelledError",
    "RateLimitExceededError",
    "RemoteCallError",
    "DirectoryLookupError",
    "PathResolutionError",
    "EnrichmentError",
    "TimestampParseError",
]
