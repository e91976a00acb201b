from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import imagehash
import numpy as np
from PIL import Image

from photosweep.assets.provider import AssetProvider, AssetProviderError
from photosweep.assets.types import PhotoRecord
from photosweep.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Fingerprint:
    value: int
    bit_length: int

    def distance(self, other: "Fingerprint") -> float:
        """Normalized Hamming distance in [0, 1]."""
        if self.bit_length != other.bit_length:
            raise ValueError("Cannot compare fingerprints of different lengths")
        return (self.value ^ other.value).bit_count() / self.bit_length

    @classmethod
    def from_hex(cls, raw: str, bit_length: int | None = None) -> "Fingerprint":
        return cls(value=int(raw, 16), bit_length=bit_length if bit_length is not None else len(raw) * 4)

    def to_hex(self) -> str:
        return format(self.value, f"0{(self.bit_length + 3) // 4}x")


@dataclass(frozen=True, slots=True)
class PhotoFeatures:
    photo_id: str
    fingerprint: Fingerprint | None
    sharpness: float | None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def compute_fingerprint(image: Image.Image, hash_size: int = 8) -> Fingerprint:
    phash = imagehash.phash(image, hash_size=hash_size)
    value = 0
    for bit in phash.hash.flatten():
        value = (value << 1) | int(bool(bit))
    return Fingerprint(value=value, bit_length=hash_size * hash_size)


def laplacian_variance(image: Image.Image) -> float:
    gray = np.asarray(image.convert("L"), dtype=np.float64)
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0
    center = gray[1:-1, 1:-1]
    response = gray[:-2, 1:-1] + gray[2:, 1:-1] + gray[1:-1, :-2] + gray[1:-1, 2:] - 4.0 * center
    return float(response.var())


def normalize_sharpness(variance: float, floor: float, ceiling: float) -> float:
    """Map a Laplacian variance onto [0, 1] on a log scale between floor and ceiling."""
    if variance <= floor:
        return 0.0
    if variance >= ceiling:
        return 1.0
    return (math.log10(variance) - math.log10(floor)) / (math.log10(ceiling) - math.log10(floor))


def compute_sharpness(image: Image.Image, floor: float = 10.0, ceiling: float = 500.0) -> float:
    return normalize_sharpness(laplacian_variance(image), floor, ceiling)


class FeatureExtractor:
    def __init__(self, settings: Settings, provider: AssetProvider):
        self._settings = settings
        self._provider = provider

    def extract(self, record: PhotoRecord) -> PhotoFeatures:
        """Fingerprint and sharpness for one image; failures are reported, not raised."""
        try:
            thumbnail = self._provider.load_thumbnail(record.id, int(self._settings.thumbnail_max_dimension))
            fingerprint = compute_fingerprint(thumbnail, int(self._settings.fingerprint_hash_size))
            sharpness = compute_sharpness(
                thumbnail,
                floor=float(self._settings.sharpness_variance_floor),
                ceiling=float(self._settings.sharpness_variance_ceiling),
            )
        except (AssetProviderError, OSError, ValueError) as exc:
            logger.warning("Skipping analysis for photo %s: %s", record.id, exc)
            return PhotoFeatures(photo_id=record.id, fingerprint=None, sharpness=None, error=str(exc) or type(exc).__name__)
        return PhotoFeatures(photo_id=record.id, fingerprint=fingerprint, sharpness=sharpness)
