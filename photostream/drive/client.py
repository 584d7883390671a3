"""Thin async wrapper over the Drive v3 resource.

Each method builds one googleapiclient request and runs it through the
request gate. Credential storage and refresh are the caller's concern:
the service is built from an already authorized transport.
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Any, Callable

import google_auth_httplib2
import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from photostream.core.config import settings
from photostream.core.logging import get_logger
from photostream.drive.exceptions import (
    DirectoryLookupError,
    PhotoStreamError,
    RemoteCallError,
)
from photostream.drive.rate_limiter import RequestGate, get_request_gate
from photostream.schemas.photo import DirectoryEntry, PageResult

if TYPE_CHECKING:
    from google.auth.credentials import Credentials

logger = get_logger(__name__)

# Fields requested for every photo in list and change pages
FILE_FIELDS = (
    "id,name,mimeType,description,starred,parents,properties,webContentLink,"
    "createdTime,modifiedTime,owners,originalFilename,imageMediaMetadata"
)
LIST_FIELDS = f"nextPageToken, files({FILE_FIELDS})"
CHANGE_FIELDS = f"nextPageToken, newStartPageToken, changes(fileId,removed,file({FILE_FIELDS}))"
# Path resolution needs only the chain
LOOKUP_FIELDS = "id, name, parents"


def build_drive_service(
    credentials: Credentials | None = None,
    http: httplib2.Http | None = None,
) -> Any:
    """Build a Drive v3 resource.

    Args:
        credentials: google-auth credentials, already authorized.
        http: An authorized transport (e.g. google_auth_httplib2.AuthorizedHttp).

    Returns:
        Drive API service instance.
    """
    if http is not None:
        return build("drive", "v3", http=http, cache_discovery=False)
    return build("drive", "v3", credentials=credentials, cache_discovery=False)


def authorized_http_factory(credentials: Credentials) -> Callable[[], httplib2.Http]:
    """Return a factory building a new authorized transport on every call."""

    def factory() -> httplib2.Http:
        return google_auth_httplib2.AuthorizedHttp(credentials, http=httplib2.Http())

    return factory


class DriveClient:
    """The four Drive operations the photo stream consumes.

    Requests execute in worker threads and httplib2 transports are not
    thread-safe. With ``credentials`` or an ``http_factory`` every execution
    gets its own transport; otherwise executions on the service's shared
    transport are serialized.
    """

    def __init__(
        self,
        service: Any,
        gate: RequestGate | None = None,
        spaces: str | None = None,
        *,
        credentials: Credentials | None = None,
        http_factory: Callable[[], httplib2.Http] | None = None,
    ):
        """Initialize the client.

        Args:
            service: Drive v3 resource from build_drive_service().
            gate: Request gate shared by all calls (default: process-wide gate).
            spaces: Drive space to query (default from settings).
            credentials: Authorized credentials, one transport is built per call.
            http_factory: Builds a fresh authorized transport per call.

        Raises:
            ValueError: If both credentials and http_factory are given.
        """
        if credentials is not None and http_factory is not None:
            raise ValueError("pass either credentials or http_factory, not both")
        self.service = service
        self.gate = gate or get_request_gate()
        self.spaces = spaces or settings.spaces
        if credentials is not None:
            http_factory = authorized_http_factory(credentials)
        self.http_factory = http_factory
        self._transport_lock = threading.Lock()

    def _executor(self, request: Any) -> Callable[[], dict[str, Any]]:
        if self.http_factory is not None:
            factory = self.http_factory
            return lambda: request.execute(http=factory())

        def execute() -> dict[str, Any]:
            with self._transport_lock:
                return request.execute()

        return execute

    async def _call(
        self,
        request: Any,
        operation: str,
        cancel_event: asyncio.Event | None,
    ) -> dict[str, Any]:
        try:
            return await self.gate.execute(self._executor(request), cancel_event, operation)
        except PhotoStreamError:
            raise
        except HttpError as e:
            raise RemoteCallError(f"{operation} failed: {e}", status=e.resp.status) from e
        except Exception as e:
            raise RemoteCallError(f"{operation} failed: {e}") from e

    async def get_start_cursor(self, cancel_event: asyncio.Event | None = None) -> str:
        """Get the token from which future changes should be listed."""
        request = self.service.changes().getStartPageToken()
        response = await self._call(request, "changes.getStartPageToken", cancel_event)
        return response.get("startPageToken", "")

    async def list_changes(
        self,
        cursor: str,
        page_size: int,
        cancel_event: asyncio.Event | None = None,
    ) -> PageResult:
        """List one page of changes since ``cursor``.

        Removed items are excluded server side; entries whose ``file`` is
        missing may still appear and are left for the caller to skip.
        """
        request = self.service.changes().list(
            pageToken=cursor,
            fields=CHANGE_FIELDS,
            spaces=self.spaces,
            pageSize=page_size,
            includeRemoved=False,
        )
        response = await self._call(request, "changes.list", cancel_event)
        return PageResult(
            entries=response.get("changes", []),
            next_page_token=response.get("nextPageToken") or None,
        )

    async def list_items(
        self,
        page_token: str | None,
        page_size: int,
        cancel_event: asyncio.Event | None = None,
    ) -> PageResult:
        """List one page of every photo."""
        params: dict[str, Any] = {
            "fields": LIST_FIELDS,
            "spaces": self.spaces,
            "pageSize": page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        request = self.service.files().list(**params)
        response = await self._call(request, "files.list", cancel_event)
        return PageResult(
            entries=response.get("files", []),
            next_page_token=response.get("nextPageToken") or None,
        )

    async def get_directory(
        self,
        item_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> DirectoryEntry:
        """Fetch the id, name and parents of one item.

        Raises:
            DirectoryLookupError: If the lookup fails.
            RequestCancelledError: If cancelled while waiting for the gate.
        """
        logger.debug("directory_lookup", item_id=item_id)
        request = self.service.files().get(fileId=item_id, fields=LOOKUP_FIELDS)
        try:
            response = await self._call(request, "files.get", cancel_event)
        except RemoteCallError as e:
            raise DirectoryLookupError(item_id, e.__cause__ or e, e.status) from e
        return DirectoryEntry(
            id=response.get("id", item_id),
            name=response.get("name", ""),
            parents=response.get("parents") or [],
        )
