from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path

from PIL import ExifTags, Image, ImageOps, UnidentifiedImageError

from photosweep.assets.provider import AccessDeniedError, AssetNotFoundError, AssetUnreadableError
from photosweep.assets.types import AssetPage, MediaKind, MediaSubtype, PhotoRecord, library_sort_key

logger = logging.getLogger(__name__)

_IMAGE_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".bmp",
    ".gif",
    ".tif",
    ".tiff",
    ".webp",
}
_VIDEO_EXTENSIONS = {
    ".mp4",
    ".mov",
    ".m4v",
    ".avi",
    ".mkv",
    ".webm",
    ".mpeg",
    ".mpg",
    ".wmv",
}
_SCREENSHOT_NAME = re.compile(r"screen[\s_-]?shot", re.IGNORECASE)
_EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"
_EXIF_OFFSET = re.compile(r"^([+-])(\d{2}):(\d{2})$")

_TAG_DATETIME = 0x0132
_TAG_DATETIME_ORIGINAL = 0x9003
_TAG_OFFSET_TIME = 0x9010
_TAG_OFFSET_TIME_ORIGINAL = 0x9011
_TAG_USER_COMMENT = 0x9286
_TAG_LENS_MODEL = 0xA434


class DirectoryAssetProvider:
    """Indexes a library directory on the first page of every scan.

    EXIF capture times are wall-clock values. An OffsetTime tag places them
    exactly; without one they are read in ``exif_timezone``, falling back to
    the host's local zone.
    """

    def __init__(
        self,
        library_root: Path,
        *,
        ffprobe_bin: str = "ffprobe",
        ffprobe_timeout_seconds: int = 30,
        exif_timezone: tzinfo | None = None,
    ):
        self._library_root = library_root
        self._ffprobe_bin = ffprobe_bin
        self._ffprobe_timeout_seconds = ffprobe_timeout_seconds
        self._exif_timezone = exif_timezone
        self._lock = threading.Lock()
        self._index: list[PhotoRecord] = []

    def fetch_page(self, offset: int, limit: int) -> AssetPage:
        if offset < 0 or limit < 1:
            raise ValueError("offset must be >= 0 and limit >= 1")
        with self._lock:
            if offset == 0:
                self._index = self._build_index()
            index = self._index
        page = index[offset : offset + limit]
        return AssetPage(records=list(page), has_more=offset + len(page) < len(index), total_count=len(index))

    def load_thumbnail(self, photo_id: str, max_dimension: int) -> Image.Image:
        path = self._resolve(photo_id)
        try:
            with Image.open(path) as source:
                image = ImageOps.exif_transpose(source)
                image.thumbnail((max_dimension, max_dimension))
                image.load()
                return image
        except FileNotFoundError as exc:
            raise AssetNotFoundError(f"Photo not found: {photo_id}") from exc
        except PermissionError as exc:
            raise AccessDeniedError(f"Photo not readable: {photo_id}") from exc
        except (UnidentifiedImageError, OSError) as exc:
            raise AssetUnreadableError(f"Cannot decode {photo_id}: {exc}") from exc

    def _resolve(self, photo_id: str) -> Path:
        root = self._library_root.resolve(strict=False)
        candidate = (root / photo_id).resolve(strict=False)
        if candidate != root and root not in candidate.parents:
            raise AssetNotFoundError(f"Photo id escapes the library root: {photo_id}")
        return candidate

    def _build_index(self) -> list[PhotoRecord]:
        if not self._library_root.is_dir():
            raise AssetNotFoundError(f"Library root does not exist: {self._library_root.as_posix()}")
        if not os.access(self._library_root, os.R_OK | os.X_OK):
            raise AccessDeniedError(f"Library root is not readable: {self._library_root.as_posix()}")

        records: list[PhotoRecord] = []
        for dirpath, dirnames, filenames in os.walk(self._library_root):
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                path = Path(dirpath) / filename
                extension = path.suffix.lower()
                try:
                    if extension in _IMAGE_EXTENSIONS:
                        records.append(self._describe_image(path))
                    elif extension in _VIDEO_EXTENSIONS:
                        records.append(self._describe_video(path))
                except PermissionError as exc:
                    raise AccessDeniedError(f"Cannot read {path.as_posix()}") from exc
                except (UnidentifiedImageError, OSError) as exc:
                    logger.warning("Skipping unreadable media file %s: %s", path.as_posix(), exc)

        records.sort(key=library_sort_key)
        logger.info("Indexed %d media files under %s", len(records), self._library_root.as_posix())
        return records

    def _photo_id(self, path: Path) -> str:
        return path.relative_to(self._library_root).as_posix()

    def _mtime(self, path: Path) -> datetime:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

    def _describe_image(self, path: Path) -> PhotoRecord:
        subtypes: set[MediaSubtype] = set()
        with Image.open(path) as image:
            width, height = image.size
            exif = image.getexif()
            exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
            orientation = exif.get(ExifTags.Base.Orientation, 1)

        if orientation in {5, 6, 7, 8}:
            width, height = height, width

        if exif_ifd.get(_TAG_DATETIME_ORIGINAL):
            created_at = _parse_exif_datetime(
                exif_ifd.get(_TAG_DATETIME_ORIGINAL), exif_ifd.get(_TAG_OFFSET_TIME_ORIGINAL), self._exif_timezone
            )
        else:
            created_at = _parse_exif_datetime(exif.get(_TAG_DATETIME), exif_ifd.get(_TAG_OFFSET_TIME), self._exif_timezone)
        lens_model = str(exif_ifd.get(_TAG_LENS_MODEL) or "")
        user_comment = _decode_user_comment(exif_ifd.get(_TAG_USER_COMMENT))

        if "front" in lens_model.lower():
            subtypes.add(MediaSubtype.FRONT_CAMERA)
        if _SCREENSHOT_NAME.search(path.name) or user_comment.strip().lower() == "screenshot":
            subtypes.add(MediaSubtype.SCREENSHOT)

        return PhotoRecord(
            id=self._photo_id(path),
            created_at=created_at or self._mtime(path),
            media_kind=MediaKind.IMAGE,
            width=width,
            height=height,
            size_bytes=path.stat().st_size,
            subtypes=frozenset(subtypes),
        )

    def _describe_video(self, path: Path) -> PhotoRecord:
        return PhotoRecord(
            id=self._photo_id(path),
            created_at=self._mtime(path),
            media_kind=MediaKind.VIDEO,
            width=0,
            height=0,
            size_bytes=path.stat().st_size,
            duration_seconds=self._read_duration(path),
        )

    def _read_duration(self, path: Path) -> float:
        command = [
            self._ffprobe_bin,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            path.as_posix(),
        ]
        try:
            result = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=self._ffprobe_timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("ffprobe unavailable for %s: %s", path.as_posix(), exc)
            return 0.0
        if result.returncode != 0:
            logger.warning("ffprobe failed for %s: %s", path.as_posix(), result.stderr.strip())
            return 0.0
        try:
            return max(0.0, float(result.stdout.strip()))
        except ValueError:
            return 0.0


def _parse_exif_offset(raw: object) -> tzinfo | None:
    if not isinstance(raw, str):
        return None
    match = _EXIF_OFFSET.match(raw.strip())
    if match is None:
        return None
    sign, hours, minutes = match.groups()
    delta = timedelta(hours=int(hours), minutes=int(minutes))
    return timezone(-delta if sign == "-" else delta)


def _parse_exif_datetime(raw: object, offset_raw: object, fallback_zone: tzinfo | None) -> datetime | None:
    if not isinstance(raw, str):
        return None
    try:
        naive = datetime.strptime(raw.strip()[:19], _EXIF_DATETIME_FORMAT)
    except ValueError:
        return None
    zone = _parse_exif_offset(offset_raw)
    if zone is None:
        zone = fallback_zone
    if zone is None:
        # astimezone() reads a naive value as host local time.
        return naive.astimezone(timezone.utc)
    return naive.replace(tzinfo=zone).astimezone(timezone.utc)


def _decode_user_comment(raw: object) -> str:
    if isinstance(raw, bytes):
        # First 8 bytes name the character code (ASCII, UNICODE, ...).
        body = raw[8:] if len(raw) > 8 else raw
        return body.decode("utf-8", errors="ignore").strip("\x00")
    if isinstance(raw, str):
        return raw
    return ""
