from __future__ import annotations

from pathlib import Path

from photo_factory import at, make_record
from photosweep.analysis.classifier import PhotoClassifier
from photosweep.analysis.features import Fingerprint, PhotoFeatures
from photosweep.assets.types import MediaKind, MediaSubtype
from photosweep.core.config import AnalysisSettings, ScanSettings, Settings
from photosweep.db.models import GroupType


def features(photo_id: str, sharpness: float | None) -> PhotoFeatures:
    return PhotoFeatures(photo_id=photo_id, fingerprint=Fingerprint(value=0, bit_length=64), sharpness=sharpness)


def make_classifier(tmp_path: Path, scan: ScanSettings | None = None) -> PhotoClassifier:
    return PhotoClassifier(Settings(state_root=tmp_path), AnalysisSettings(blur_threshold=0.3), scan or ScanSettings())


def test_screenshot_needs_no_features(tmp_path: Path) -> None:
    classifier = make_classifier(tmp_path)
    record = make_record("shot", at(0), subtypes=[MediaSubtype.SCREENSHOT])

    assert classifier.classify(record, None).labels == frozenset({GroupType.SCREENSHOT})


def test_blur_uses_inverted_threshold(tmp_path: Path) -> None:
    classifier = make_classifier(tmp_path)
    record = make_record("photo", at(0))

    assert GroupType.BLURRY in classifier.classify(record, features("photo", 0.69)).labels
    assert GroupType.BLURRY not in classifier.classify(record, features("photo", 0.7)).labels
    assert classifier.classify(record, features("photo", None)).labels == frozenset()


def test_selfie_requires_front_camera_image(tmp_path: Path) -> None:
    classifier = make_classifier(tmp_path)
    selfie = make_record("selfie", at(0), subtypes=[MediaSubtype.FRONT_CAMERA])
    plain = make_record("plain", at(0))

    assert classifier.classify(selfie, features("selfie", 0.9)).labels == frozenset({GroupType.SELFIE})
    assert classifier.classify(plain, features("plain", 0.9)).labels == frozenset()


def test_large_video_by_duration_or_size(tmp_path: Path) -> None:
    classifier = make_classifier(tmp_path)
    long_clip = make_record("long", at(0), media_kind=MediaKind.VIDEO, duration_seconds=61, size_bytes=10)
    big_clip = make_record("big", at(0), media_kind=MediaKind.VIDEO, size_bytes=100 * 1024 * 1024)
    short_clip = make_record("short", at(0), media_kind=MediaKind.VIDEO, duration_seconds=5, size_bytes=10)

    assert classifier.classify(long_clip, None).labels == frozenset({GroupType.LARGE_VIDEO})
    assert classifier.classify(big_clip, None).labels == frozenset({GroupType.LARGE_VIDEO})
    assert classifier.classify(short_clip, None).labels == frozenset()


def test_scan_settings_switch_off_labels(tmp_path: Path) -> None:
    classifier = make_classifier(
        tmp_path,
        ScanSettings(include_videos=False, include_screenshots=False, include_selfies=True),
    )
    shot = make_record("shot", at(0), subtypes=[MediaSubtype.SCREENSHOT])
    clip = make_record("clip", at(0), media_kind=MediaKind.VIDEO, duration_seconds=600)

    assert classifier.classify(shot, features("shot", 0.9)).labels == frozenset()
    assert classifier.classify(clip, None).labels == frozenset()


def test_blurry_selfie_carries_both_labels(tmp_path: Path) -> None:
    classifier = make_classifier(tmp_path)
    record = make_record("soft-selfie", at(0), subtypes=[MediaSubtype.FRONT_CAMERA])

    assert classifier.classify(record, features("soft-selfie", 0.1)).labels == frozenset(
        {GroupType.BLURRY, GroupType.SELFIE}
    )
