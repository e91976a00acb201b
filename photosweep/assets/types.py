from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class MediaSubtype(str, Enum):
    SCREENSHOT = "screenshot"
    LIVE_PHOTO = "live_photo"
    HDR = "hdr"
    PANORAMA = "panorama"
    HIGH_FRAME_RATE = "high_frame_rate"
    TIMELAPSE = "timelapse"
    FRONT_CAMERA = "front_camera"


@dataclass(frozen=True, slots=True)
class PhotoRecord:
    id: str
    created_at: datetime
    media_kind: MediaKind
    width: int
    height: int
    size_bytes: int
    subtypes: frozenset[MediaSubtype] = field(default_factory=frozenset)
    duration_seconds: float = 0.0
    is_favorite: bool = False

    @property
    def pixel_count(self) -> int:
        return max(0, self.width) * max(0, self.height)

    @property
    def is_image(self) -> bool:
        return self.media_kind == MediaKind.IMAGE

    @property
    def is_video(self) -> bool:
        return self.media_kind == MediaKind.VIDEO

    @property
    def is_screenshot(self) -> bool:
        return MediaSubtype.SCREENSHOT in self.subtypes


@dataclass(frozen=True, slots=True)
class AssetPage:
    records: list[PhotoRecord]
    has_more: bool
    total_count: int | None = None


def library_sort_key(record: PhotoRecord) -> tuple[float, str]:
    """Newest first, identifier ascending on equal timestamps."""
    return (-record.created_at.timestamp(), record.id)
