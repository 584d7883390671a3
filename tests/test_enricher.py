"""Tests for ItemEnricher - converting Drive files into Photo records."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import install_directories
from photostream.drive.enricher import ItemEnricher, parse_rfc3339
from photostream.drive.exceptions import (
    DirectoryLookupError,
    EnrichmentError,
    TimestampParseError,
)
from photostream.schemas.photo import Photo

TREE = {
    "root": {"id": "root", "name": "My Drive"},
    "photos": {"id": "photos", "name": "Photos", "parents": ["root"]},
}


def sample_record(**overrides):
    record = {
        "id": "img1",
        "name": "IMG_0001.JPG",
        "mimeType": "image/jpeg",
        "description": "Sunset",
        "starred": True,
        "parents": ["photos"],
        "properties": {"album": "holiday"},
        "webContentLink": "https://drive.google.com/uc?id=img1&export=download",
        "createdTime": "2024-01-01T10:00:00.000Z",
        "modifiedTime": "2024-01-02T11:30:00.000Z",
        "owners": [{"emailAddress": "owner@test.com"}],
        "originalFilename": "IMG_0001.JPG",
        "imageMediaMetadata": {
            "width": 4032,
            "height": 3024,
            "cameraMake": "Apple",
            "cameraModel": "iPhone 12",
            "isoSpeed": 50,
            "location": {"latitude": 47.5, "longitude": 19.04},
            "someNewField": "kept",
        },
    }
    record.update(overrides)
    return record


@pytest.fixture
def enricher(resolver) -> ItemEnricher:
    return ItemEnricher(resolver, strict_timestamps=False)


# =============================================================================
# Timestamp Parsing Tests
# =============================================================================


class TestParseRfc3339:
    """Tests for RFC 3339 parsing."""

    def test_utc_with_millis(self):
        result = parse_rfc3339("2024-01-01T10:00:00.000Z")
        assert result == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

    def test_with_offset(self):
        result = parse_rfc3339("2024-01-01T12:00:00+02:00")
        assert result == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

    def test_naive_rejected(self):
        with pytest.raises(ValueError):
            parse_rfc3339("2024-01-01T10:00:00")

    def test_date_only_rejected(self):
        with pytest.raises(ValueError):
            parse_rfc3339("2024-01-01")

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_rfc3339("yesterday")

    def test_single_digit_fraction(self):
        result = parse_rfc3339("2024-01-01T10:00:00.1Z")
        assert result == datetime(2024, 1, 1, 10, 0, 0, 100000, tzinfo=timezone.utc)

    def test_nanosecond_fraction_truncated(self):
        result = parse_rfc3339("2024-01-01T10:00:00.123456789Z")
        assert result == datetime(2024, 1, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)

    def test_lowercase_separators(self):
        result = parse_rfc3339("2024-01-01t10:00:00z")
        assert result == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

    def test_non_string_rejected(self):
        with pytest.raises(TypeError):
            parse_rfc3339(1704103200)


# =============================================================================
# Conversion Tests
# =============================================================================


class TestToPhoto:
    """Tests for to_photo."""

    @pytest.mark.asyncio
    async def test_missing_record_is_empty_photo(self, enricher: ItemEnricher):
        assert await enricher.to_photo(None) == Photo()

    @pytest.mark.asyncio
    async def test_full_conversion(self, drive_service, enricher: ItemEnricher):
        install_directories(drive_service, TREE)

        photo = await enricher.to_photo(sample_record())

        assert photo.id == "img1"
        assert photo.name == "IMG_0001.JPG"
        assert photo.mime_type == "image/jpeg"
        assert photo.description == "Sunset"
        assert photo.starred is True
        assert photo.parents == ["/My Drive/Photos"]
        assert photo.properties == {"album": "holiday"}
        assert photo.web_content_link.endswith("export=download")
        assert photo.created_time == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert photo.modified_time == datetime(2024, 1, 2, 11, 30, tzinfo=timezone.utc)
        assert photo.original_filename == "IMG_0001.JPG"

    @pytest.mark.asyncio
    async def test_image_metadata(self, drive_service, enricher: ItemEnricher):
        install_directories(drive_service, TREE)

        meta = (await enricher.to_photo(sample_record())).image_media_metadata

        assert meta.width == 4032
        assert meta.camera_make == "Apple"
        assert meta.iso_speed == 50
        assert meta.location.latitude == pytest.approx(47.5)
        assert meta.model_extra == {"someNewField": "kept"}

    @pytest.mark.asyncio
    async def test_no_parents(self, enricher: ItemEnricher):
        photo = await enricher.to_photo(sample_record(parents=[]))
        assert photo.parents == []

    @pytest.mark.asyncio
    async def test_empty_created_time_is_none(self, drive_service, enricher: ItemEnricher):
        install_directories(drive_service, TREE)

        photo = await enricher.to_photo(sample_record(createdTime=""))

        assert photo.created_time is None
        assert photo.modified_time is not None

    @pytest.mark.asyncio
    async def test_bad_timestamp_swallowed(self, drive_service, enricher: ItemEnricher):
        install_directories(drive_service, TREE)

        photo = await enricher.to_photo(sample_record(modifiedTime="not a time"))

        assert photo.modified_time is None

    @pytest.mark.asyncio
    async def test_non_string_timestamp_swallowed(self, drive_service, enricher: ItemEnricher):
        install_directories(drive_service, TREE)

        photo = await enricher.to_photo(sample_record(createdTime=1704103200))

        assert photo.created_time is None
        assert photo.modified_time is not None

    @pytest.mark.asyncio
    async def test_short_fraction_timestamp_parsed(self, drive_service, enricher: ItemEnricher):
        install_directories(drive_service, TREE)

        photo = await enricher.to_photo(sample_record(createdTime="2024-01-01T10:00:00.5Z"))

        assert photo.created_time == datetime(2024, 1, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_bad_timestamp_strict(self, drive_service, resolver):
        install_directories(drive_service, TREE)
        strict = ItemEnricher(resolver, strict_timestamps=True)

        with pytest.raises(EnrichmentError) as exc_info:
            await strict.to_photo(sample_record(createdTime="01/02/2024"))

        assert isinstance(exc_info.value.cause, TimestampParseError)
        assert exc_info.value.cause.field == "createdTime"
        # Everything else is still filled in
        assert exc_info.value.partial.parents == ["/My Drive/Photos"]
        assert exc_info.value.partial.created_time is None

    @pytest.mark.asyncio
    async def test_parent_failure_returns_partial_photo(self, drive_service, enricher: ItemEnricher):
        install_directories(drive_service, TREE)

        with pytest.raises(EnrichmentError) as exc_info:
            await enricher.to_photo(sample_record(parents=["gone", "photos"]))

        error = exc_info.value
        assert error.item_id == "img1"
        assert isinstance(error.cause, DirectoryLookupError)
        assert error.__cause__ is error.cause
        assert error.partial.name == "IMG_0001.JPG"
        assert error.partial.parents == ["", "/My Drive/Photos"]

    @pytest.mark.asyncio
    async def test_photo_is_immutable(self, enricher: ItemEnricher):
        photo = await enricher.to_photo(sample_record(parents=[]))
        with pytest.raises(Exception):
            photo.name = "changed"
