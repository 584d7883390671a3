"""Conversion of raw Drive file resources into Photo records."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from photostream.core.config import settings
from photostream.core.logging import get_logger
from photostream.drive.directory_cache import PathResolver
from photostream.drive.exceptions import (
    EnrichmentError,
    PathResolutionError,
    TimestampParseError,
)
from photostream.schemas.photo import ImageMediaMetadata, Photo

logger = get_logger(__name__)


_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp such as ``2024-01-02T03:04:05.000Z``.

    Fractions of any length are accepted; digits past microseconds are
    truncated.

    Raises:
        TypeError: If the value is not a string.
        ValueError: If the value is not a full date-time with an offset.
    """
    if not isinstance(value, str):
        raise TypeError(f"expected a string timestamp, got {type(value).__name__}")
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(f"not an RFC 3339 date-time: {value!r}")
    date, clock, fraction, offset = match.groups()
    micros = f".{fraction[:6].ljust(6, '0')}" if fraction else ""
    if offset in ("Z", "z"):
        offset = "+00:00"
    return datetime.fromisoformat(f"{date}T{clock}{micros}{offset}")


class ItemEnricher:
    """Builds Photo records, resolving each parent into a folder path."""

    def __init__(self, resolver: PathResolver, strict_timestamps: bool | None = None):
        self.resolver = resolver
        self.strict_timestamps = (
            settings.strict_timestamps if strict_timestamps is None else strict_timestamps
        )

    def _timestamp(
        self, record: dict[str, Any], field: str, errors: list[BaseException]
    ) -> datetime | None:
        value = record.get(field)
        if not value:
            return None
        try:
            return parse_rfc3339(value)
        except (TypeError, ValueError):
            logger.debug(
                "timestamp_parse_failed",
                item_id=record.get("id"),
                field=field,
                value=value,
            )
            if self.strict_timestamps:
                errors.append(TimestampParseError(field, value))
            return None

    def _image_metadata(
        self, record: dict[str, Any], errors: list[BaseException]
    ) -> ImageMediaMetadata:
        try:
            return ImageMediaMetadata.model_validate(record.get("imageMediaMetadata") or {})
        except ValidationError as e:
            errors.append(e)
            return ImageMediaMetadata()

    async def to_photo(self, record: dict[str, Any] | None) -> Photo:
        """Convert one Drive file resource.

        A missing record yields an empty Photo.

        Args:
            record: File resource as returned by files.list or changes.list.

        Returns:
            The converted Photo.

        Raises:
            EnrichmentError: Carrying the partially filled Photo and the
                first error (a failed parent lookup, or a bad timestamp
                when strict timestamps are enabled).
        """
        if not record:
            return Photo()

        errors: list[BaseException] = []
        created_time = self._timestamp(record, "createdTime", errors)
        modified_time = self._timestamp(record, "modifiedTime", errors)
        image_media_metadata = self._image_metadata(record, errors)

        try:
            parents = await self.resolver.parent_paths(record.get("parents") or [])
        except PathResolutionError as e:
            parents = e.partial
            errors.append(e.__cause__ or e)

        photo = Photo(
            id=record.get("id", ""),
            name=record.get("name", ""),
            mime_type=record.get("mimeType", ""),
            description=record.get("description", ""),
            starred=bool(record.get("starred", False)),
            parents=parents,
            properties=record.get("properties") or {},
            web_content_link=record.get("webContentLink", ""),
            created_time=created_time,
            modified_time=modified_time,
            original_filename=record.get("originalFilename", ""),
            image_media_metadata=image_media_metadata,
        )

        if errors:
            raise EnrichmentError(photo.id, photo, errors[0]) from errors[0]
        return photo
