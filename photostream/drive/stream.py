"""Streaming of photo metadata from Drive.

A session fetches pages one after another on a single driver task. Each
fetched page is handed to its own enrichment task, which resolves folder
paths and puts one PhotoBatch on the stream. Batches from different pages
may therefore arrive out of page order; items within a batch keep the
page's order.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from photostream.core.config import settings
from photostream.core.logging import get_logger
from photostream.drive.client import DriveClient
from photostream.drive.directory_cache import DirectoryCache, PathResolver
from photostream.drive.enricher import ItemEnricher
from photostream.drive.exceptions import EnrichmentError
from photostream.drive.rate_limiter import RequestGate
from photostream.schemas.photo import PageResult, PhotoBatch

if TYPE_CHECKING:
    import httplib2
    from google.auth.credentials import Credentials

logger = get_logger(__name__)

_CLOSED = object()


class StreamMode(str, Enum):
    """How a session retrieves items."""

    CHANGES = "changes"
    LISTING = "listing"


class PhotoStream:
    """Receive side of a streaming session.

    Iterate with ``async for batch in stream``; iteration ends when the
    session has delivered everything. ``next_cursor`` is the token to pass
    as ``since_cursor`` next time.

    Usage:
        async with await stream_photos(service, saved_cursor) as stream:
            save(stream.next_cursor)
            async for batch in stream:
                ...
    """

    def __init__(
        self,
        next_cursor: str,
        mode: StreamMode,
        cancel_event: asyncio.Event,
    ):
        self.next_cursor = next_cursor
        self.mode = mode
        self._cancel_event = cancel_event
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._driver: asyncio.Task[None] | None = None
        self._finished = False

    def _start(self, walker: PageWalker, since_cursor: str) -> None:
        self._driver = asyncio.create_task(walker.run(self.mode, since_cursor))

    def _put(self, batch: PhotoBatch) -> None:
        self._queue.put_nowait(batch)

    def _close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Abort pending rate gate waits.

        Fetches and lookups waiting for a token fail with
        RequestCancelledError; the stream then delivers a final error
        batch and ends. Drive calls already running complete normally.
        """
        self._cancel_event.set()

    async def aclose(self) -> None:
        """Cancel the session and wait until every page task has finished."""
        self.cancel()
        if self._driver is not None:
            await self._driver

    def __aiter__(self) -> PhotoStream:
        return self

    async def __anext__(self) -> PhotoBatch:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> PhotoStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class PageWalker:
    """Drives pagination for one session and fans pages out to enrichment tasks."""

    def __init__(
        self,
        client: DriveClient,
        enricher: ItemEnricher,
        stream: PhotoStream,
        cancel_event: asyncio.Event,
        page_size: int | None = None,
    ):
        self.client = client
        self.enricher = enricher
        self.stream = stream
        self.cancel_event = cancel_event
        self.page_size = page_size or settings.page_size
        self._tasks: set[asyncio.Task[None]] = set()
        self._pages = 0

    async def run(self, mode: StreamMode, since_cursor: str) -> None:
        """Fetch every page, then close the stream once all page tasks are done.

        A failed page fetch is reported as the last batch, after every
        already spawned page task has delivered.
        """
        failure: Exception | None = None
        try:
            if mode is StreamMode.CHANGES:
                await self._walk_changes(since_cursor)
            else:
                await self._walk_listing()
        except Exception as e:
            logger.warning(
                "session_fetch_failed",
                mode=mode.value,
                pages=self._pages,
                error=str(e),
            )
            failure = e
        finally:
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            if failure is not None:
                self.stream._put(PhotoBatch(error=failure))
            self.stream._close()
            logger.info("session_closed", mode=mode.value, pages=self._pages)

    async def _walk_changes(self, cursor: str) -> None:
        token: str | None = cursor
        while token:
            page = await self.client.list_changes(token, self.page_size, self.cancel_event)
            records = [c["file"] for c in page.entries if c.get("file") is not None]
            self._spawn(page, records, emit_empty=False)
            token = page.next_page_token

    async def _walk_listing(self) -> None:
        token: str | None = None
        while True:
            page = await self.client.list_items(token, self.page_size, self.cancel_event)
            self._spawn(page, page.entries, emit_empty=True)
            token = page.next_page_token
            if not token:
                return

    def _spawn(self, page: PageResult, records: list[dict[str, Any]], emit_empty: bool) -> None:
        self._pages += 1
        logger.debug(
            "page_fetched",
            page=self._pages,
            entries=len(page.entries),
            records=len(records),
            has_next=page.next_page_token is not None,
        )
        task = asyncio.create_task(self._deliver(self._pages, records, emit_empty))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(
        self, page_number: int, records: list[dict[str, Any]], emit_empty: bool
    ) -> None:
        photos = []
        for record in records:
            try:
                photo = await self.enricher.to_photo(record)
            except EnrichmentError as e:
                photos.append(e.partial)
                logger.warning(
                    "page_enrichment_failed",
                    page=page_number,
                    item_id=e.item_id,
                    converted=len(photos),
                    error=str(e.cause),
                )
                self.stream._put(PhotoBatch(photos=photos, error=e.cause))
                return
            except Exception as e:
                logger.exception("page_enrichment_crashed", page=page_number)
                self.stream._put(PhotoBatch(photos=photos, error=e))
                return
            photos.append(photo)

        if not photos and not emit_empty:
            return
        self.stream._put(PhotoBatch(photos=photos))
        logger.debug("page_delivered", page=page_number, photos=len(photos))


async def stream_photos(
    service: Any,
    since_cursor: str = "",
    *,
    gate: RequestGate | None = None,
    cache: DirectoryCache | None = None,
    page_size: int | None = None,
    strict_timestamps: bool | None = None,
    cancel_event: asyncio.Event | None = None,
    credentials: Credentials | None = None,
    http_factory: Callable[[], httplib2.Http] | None = None,
) -> PhotoStream:
    """Start streaming photo metadata.

    With an empty ``since_cursor`` every photo is listed; otherwise only
    photos changed since that cursor are delivered.

    Args:
        service: Drive v3 resource (see build_drive_service) or a DriveClient.
        since_cursor: ``next_cursor`` saved from a previous session.
        gate: Request gate (default: process-wide gate). Not allowed with a
            DriveClient, which already owns its gate.
        cache: Directory cache (default: process-wide cache).
        page_size: Items per page (default from settings).
        strict_timestamps: Report unparsable timestamps as errors.
        cancel_event: Externally owned cancel signal for the session.
        credentials: Authorized credentials; every Drive call gets its own
            transport built from them.
        http_factory: Builds a fresh authorized transport per Drive call.

    Returns:
        The started PhotoStream. Its ``next_cursor`` is fetched before the
        stream starts and is the only token to persist.

    Raises:
        ValueError: If a DriveClient is combined with gate, credentials or
            http_factory.
        PhotoStreamError: If the start cursor cannot be fetched.
    """
    if isinstance(service, DriveClient):
        if gate is not None or credentials is not None or http_factory is not None:
            raise ValueError(
                "gate, credentials and http_factory cannot be combined with a DriveClient"
            )
        client = service
    else:
        client = DriveClient(
            service, gate, credentials=credentials, http_factory=http_factory
        )
    if cancel_event is None:
        cancel_event = asyncio.Event()

    next_cursor = await client.get_start_cursor(cancel_event)
    mode = StreamMode.CHANGES if since_cursor else StreamMode.LISTING

    stream = PhotoStream(next_cursor, mode, cancel_event)
    resolver = PathResolver(client, cache, cancel_event)
    enricher = ItemEnricher(resolver, strict_timestamps)
    walker = PageWalker(client, enricher, stream, cancel_event, page_size)
    stream._start(walker, since_cursor)

    logger.info(
        "session_started",
        mode=mode.value,
        next_cursor=next_cursor,
        resumed=bool(since_cursor),
    )
    return stream
