"""Stream Google Drive photo metadata in rate-limited batches."""

from photostream.drive import (
    PhotoStream,
    PhotoStreamError,
    build_drive_service,
    stream_photos,
)
from photostream.schemas.photo import DirectoryEntry, ImageMediaMetadata, Photo, PhotoBatch

__version__ = "0.1.0"

__all__ = [
    "stream_photos",
    "build_drive_service",
    "PhotoStream",
    "PhotoStreamError",
    "Photo",
    "PhotoBatch",
    "ImageMediaMetadata",
    "DirectoryEntry",
]
