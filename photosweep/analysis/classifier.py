from __future__ import annotations

from dataclasses import dataclass

from photosweep.analysis.features import PhotoFeatures
from photosweep.assets.types import MediaSubtype, PhotoRecord
from photosweep.core.config import AnalysisSettings, ScanSettings, Settings
from photosweep.db.models import GroupType


@dataclass(frozen=True, slots=True)
class PhotoLabels:
    photo_id: str
    labels: frozenset[GroupType]


class PhotoClassifier:
    """Assigns the metadata and sharpness labels a photo qualifies for.

    Similar/duplicate membership comes from the similarity analyzer; the
    assembler resolves precedence across both sources.
    """

    def __init__(self, settings: Settings, analysis: AnalysisSettings, scan: ScanSettings):
        self._settings = settings
        self._scan = scan
        self._sharpness_cutoff = 1.0 - analysis.blur_threshold

    def classify(self, record: PhotoRecord, features: PhotoFeatures | None) -> PhotoLabels:
        labels: set[GroupType] = set()

        if self._scan.include_screenshots and record.is_screenshot:
            labels.add(GroupType.SCREENSHOT)

        if record.is_image:
            if self.is_blurry(features):
                labels.add(GroupType.BLURRY)
            if self._scan.include_selfies and MediaSubtype.FRONT_CAMERA in record.subtypes:
                labels.add(GroupType.SELFIE)

        if self._scan.include_videos and self.is_large_video(record):
            labels.add(GroupType.LARGE_VIDEO)

        return PhotoLabels(photo_id=record.id, labels=frozenset(labels))

    def is_blurry(self, features: PhotoFeatures | None) -> bool:
        if features is None or features.sharpness is None:
            return False
        return features.sharpness < self._sharpness_cutoff

    def is_large_video(self, record: PhotoRecord) -> bool:
        if not record.is_video:
            return False
        return (
            record.duration_seconds >= float(self._settings.large_video_min_duration_seconds)
            or record.size_bytes >= int(self._settings.large_video_min_bytes)
        )
