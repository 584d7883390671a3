"""Data model for streamed photo metadata."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DriveModel(BaseModel):
    """Base for models parsed from Drive v3 resources (camelCase keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Location(DriveModel):
    """Geographic location stored in the image."""

    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None


class ImageMediaMetadata(DriveModel):
    """Image-specific metadata as reported by Drive.

    Kept opaque: unknown keys are preserved as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    width: int = 0
    height: int = 0
    rotation: int = 0
    location: Location | None = None
    time: str = ""
    camera_make: str = ""
    camera_model: str = ""
    exposure_time: float = 0.0
    aperture: float = 0.0
    flash_used: bool = False
    focal_length: float = 0.0
    iso_speed: int = 0
    metering_mode: str = ""
    sensor: str = ""
    exposure_mode: str = ""
    color_space: str = ""
    white_balance: str = ""
    exposure_bias: float = 0.0
    max_aperture_value: float = 0.0
    subject_distance: int = 0
    lens: str = ""


class Photo(DriveModel):
    """One photo as delivered to the consumer.

    ``parents`` holds one "/"-joined path per raw parent identifier, in the
    same order, with an empty string for a parent that could not be resolved.
    Timestamps are None when absent or unparsable.
    """

    id: str = ""
    name: str = ""
    mime_type: str = ""
    description: str = ""
    starred: bool = False
    parents: list[str] = Field(default_factory=list)
    properties: dict[str, str] = Field(default_factory=dict)
    web_content_link: str = ""
    created_time: datetime | None = None
    modified_time: datetime | None = None
    original_filename: str = ""
    image_media_metadata: ImageMediaMetadata = Field(default_factory=ImageMediaMetadata)


class DirectoryEntry(DriveModel):
    """Minimal Drive object used for path resolution."""

    id: str
    name: str = ""
    parents: list[str] = Field(default_factory=list)


class PhotoBatch(BaseModel):
    """A delivery unit on the photo stream.

    When ``error`` is set, ``photos`` holds the items converted before the
    failure (the last one possibly partial) and nothing else follows from
    the same page.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    photos: list[Photo] = Field(default_factory=list)
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PageResult(BaseModel):
    """One page of raw Drive records plus the token for the next page."""

    entries: list[dict[str, Any]] = Field(default_factory=list)
    next_page_token: str | None = None


class RateState(BaseModel):
    """Snapshot of the request gate's permitted rate."""

    model_config = ConfigDict(frozen=True)

    rate: float
    burst: int
