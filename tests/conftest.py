"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import os
import time
from collections import Counter
from typing import Any
from unittest.mock import MagicMock

import pytest

# Set config BEFORE importing photostream modules
os.environ["PHOTOSTREAM_LOG_LEVEL"] = "DEBUG"
os.environ.pop("PHOTOSTREAM_RATE_LIMIT_MAX_ATTEMPTS", None)
os.environ.pop("PHOTOSTREAM_RATE_LIMIT_MIN_QPS", None)

from googleapiclient.errors import HttpError

from photostream.drive.client import DriveClient
from photostream.drive.directory_cache import DirectoryCache, PathResolver
from photostream.drive.rate_limiter import OverloadPolicy, RequestGate


def http_error(status: int, message: str = "error", reason: str = "") -> HttpError:
    """Build an HttpError the way googleapiclient raises it."""
    resp = MagicMock()
    resp.status = status
    resp.reason = message
    body = {"error": {"code": status, "message": message, "errors": [{"reason": reason}]}}
    return HttpError(resp, json.dumps(body).encode())


def install_directories(
    service: MagicMock,
    directories: dict[str, dict[str, Any] | BaseException],
    delay: float = 0.0,
) -> Counter:
    """Make files().get(fileId=...) answer from ``directories``.

    Returns a Counter of executed lookups per file id.
    """
    calls: Counter = Counter()

    def make_request(fileId: str, fields: str) -> MagicMock:
        def execute(**kwargs: Any) -> dict[str, Any]:
            calls[fileId] += 1
            if delay:
                time.sleep(delay)
            result = directories.get(fileId)
            if result is None:
                raise http_error(404, f"File not found: {fileId}", "notFound")
            if isinstance(result, BaseException):
                raise result
            return result

        request = MagicMock()
        request.execute.side_effect = execute
        return request

    service.files.return_value.get.side_effect = make_request
    return calls


@pytest.fixture
def drive_service() -> MagicMock:
    """Mocked Drive v3 resource."""
    service = MagicMock()
    service.changes.return_value.getStartPageToken.return_value.execute.return_value = {
        "startPageToken": "start-42"
    }
    return service


@pytest.fixture
def gate() -> RequestGate:
    """Request gate fast enough not to slow tests down."""
    return RequestGate(rate=1000.0, burst=50, policy=OverloadPolicy(decay=0.9))


@pytest.fixture
def cache() -> DirectoryCache:
    """Fresh directory cache per test."""
    return DirectoryCache()


@pytest.fixture
def client(drive_service, gate) -> DriveClient:
    return DriveClient(drive_service, gate)


@pytest.fixture
def resolver(client, cache) -> PathResolver:
    return PathResolver(client, cache)
