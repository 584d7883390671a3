"""Directory cache and folder path resolution.

Resolved directories are kept for the lifetime of the process. Concurrent
lookups of the same identifier share one in-flight Drive call; lookups of
different identifiers run independently.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from photostream.core.logging import get_logger
from photostream.drive.client import DriveClient
from photostream.drive.exceptions import PathResolutionError, PhotoStreamError
from photostream.schemas.photo import DirectoryEntry

logger = get_logger(__name__)

Loader = Callable[[str], Awaitable[DirectoryEntry]]


class DirectoryCache:
    """Process-wide memo of Drive directories with per-key call deduplication.

    Entries are never evicted or replaced. Failed lookups are not cached.
    """

    def __init__(self) -> None:
        self._entries: dict[str, DirectoryEntry] = {}
        self._inflight: dict[str, asyncio.Task[DirectoryEntry]] = {}
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._entries

    def get(self, item_id: str) -> DirectoryEntry | None:
        """Get a cached entry without touching Drive."""
        return self._entries.get(item_id)

    async def resolve(self, item_id: str, loader: Loader) -> DirectoryEntry:
        """Return the entry for ``item_id``, loading it at most once at a time.

        Args:
            item_id: Drive identifier.
            loader: Coroutine function fetching the entry on a miss.

        Returns:
            The cached or freshly loaded entry.

        Raises:
            Whatever ``loader`` raises; every concurrent waiter sees the same error.
        """
        async with self._lock:
            entry = self._entries.get(item_id)
            if entry is not None:
                self._hits += 1
                logger.debug("directory_cache_hit", item_id=item_id)
                return entry

            task = self._inflight.get(item_id)
            if task is None:
                self._misses += 1
                task = asyncio.create_task(self._load(item_id, loader))
                self._inflight[item_id] = task

        # Shielded so one waiter being cancelled does not fail the others
        return await asyncio.shield(task)

    async def _load(self, item_id: str, loader: Loader) -> DirectoryEntry:
        try:
            entry = await loader(item_id)
        except BaseException:
            async with self._lock:
                self._inflight.pop(item_id, None)
            raise

        # Stored before any waiter is released
        async with self._lock:
            self._entries[item_id] = entry
            self._inflight.pop(item_id, None)
        return entry

    def clear(self) -> None:
        """Drop every cached entry (for tests)."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "in_flight": len(self._inflight),
        }


class PathResolver:
    """Turns parent identifiers into "/"-joined folder paths.

    Items with several parents follow the first one only.
    """

    def __init__(
        self,
        client: DriveClient,
        cache: DirectoryCache | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.client = client
        self.cache = cache or get_directory_cache()
        self.cancel_event = cancel_event

    async def _load(self, item_id: str) -> DirectoryEntry:
        return await self.client.get_directory(item_id, self.cancel_event)

    async def resolve(self, item_id: str) -> DirectoryEntry:
        return await self.cache.resolve(item_id, self._load)

    async def path_of(self, entry: DirectoryEntry) -> list[str]:
        """Return the path segments from the root down to ``entry``.

        Raises:
            PathResolutionError: With the segments resolved so far when an
                ancestor lookup fails.
        """
        if not entry.parents:
            return [entry.name]

        try:
            parent = await self.resolve(entry.parents[0])
        except PhotoStreamError as e:
            raise PathResolutionError([entry.name], e) from e

        try:
            prefix = await self.path_of(parent)
        except PathResolutionError as e:
            cause = e.__cause__ or e
            raise PathResolutionError(e.partial + [entry.name], cause) from cause
        return prefix + [entry.name]

    async def parent_paths(self, parent_ids: list[str]) -> list[str]:
        """Resolve every parent identifier into a "/"-prefixed path.

        Every position is processed even after a failure. A parent that
        cannot be fetched at all is left as "". A parent whose ancestors
        fail keeps the partial path.

        Raises:
            PathResolutionError: With the full best-effort list as ``partial``
                and the first error encountered as cause.
        """
        paths = [""] * len(parent_ids)
        first_error: BaseException | None = None

        for i, parent_id in enumerate(parent_ids):
            try:
                entry = await self.resolve(parent_id)
                segments = await self.path_of(entry)
            except PathResolutionError as e:
                paths[i] = "/" + "/".join(e.partial)
                if first_error is None:
                    first_error = e.__cause__ or e
                continue
            except PhotoStreamError as e:
                if first_error is None:
                    first_error = e
                continue
            paths[i] = "/" + "/".join(segments)

        if first_error is not None:
            raise PathResolutionError(paths, first_error) from first_error
        return paths


# Global directory cache
_directory_cache: DirectoryCache | None = None


def get_directory_cache() -> DirectoryCache:
    """Get or create the process-wide directory cache."""
    global _directory_cache
    if _directory_cache is None:
        _directory_cache = DirectoryCache()
    return _directory_cache
