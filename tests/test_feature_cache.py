from __future__ import annotations

import asyncio
import threading
from collections import Counter
from pathlib import Path

import pytest
from PIL import Image

from photo_factory import at, build_orchestrator, configure_env, make_record, noise_image
from photosweep.analysis.cache import FeatureCache, analysis_key
from photosweep.analysis.features import Fingerprint, PhotoFeatures
from photosweep.assets.provider import InMemoryAssetProvider
from photosweep.assets.types import PhotoRecord
from photosweep.core.config import Settings
from photosweep.db.session import get_session_factory


class CountingProvider(InMemoryAssetProvider):
    def __init__(self, records, thumbnails):  # type: ignore[no-untyped-def]
        super().__init__(records, thumbnails)
        self.thumbnail_calls: Counter[str] = Counter()
        self._count_lock = threading.Lock()

    def load_thumbnail(self, photo_id: str, max_dimension: int) -> Image.Image:
        with self._count_lock:
            self.thumbnail_calls[photo_id] += 1
        return super().load_thumbnail(photo_id, max_dimension)


def pair_library(size_bytes: int = 1_000) -> tuple[list[PhotoRecord], dict[str, Image.Image]]:
    records = [
        make_record("pair-0", at(0), size_bytes=size_bytes),
        make_record("pair-1", at(1), size_bytes=size_bytes + 1),
        make_record("lone", at(9_000), size_bytes=5_000),
    ]
    thumbnails = {"pair-0": noise_image(1), "pair-1": noise_image(1), "lone": noise_image(2)}
    return records, thumbnails


def test_rescan_reuses_cached_features(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = configure_env(monkeypatch, tmp_path)
    records, thumbnails = pair_library()

    first_provider = CountingProvider(records, thumbnails)
    first = asyncio.run(build_orchestrator(settings, first_provider).execute())
    first_groups = build_orchestrator(settings, first_provider).load_saved_groups()

    second_provider = CountingProvider(records, thumbnails)
    second = asyncio.run(build_orchestrator(settings, second_provider).execute())

    assert first is not None and second is not None
    assert sum(first_provider.thumbnail_calls.values()) == 3
    assert sum(second_provider.thumbnail_calls.values()) == 0
    assert second.groups_found == first.groups_found == 1
    assert build_orchestrator(settings, second_provider).load_saved_groups() == first_groups


def test_changed_photo_is_analyzed_again(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = configure_env(monkeypatch, tmp_path)
    records, thumbnails = pair_library()
    asyncio.run(build_orchestrator(settings, CountingProvider(records, thumbnails)).execute())

    edited = [make_record("pair-0", at(0), size_bytes=1_234), records[1], make_record("lone", at(8_000), size_bytes=5_000)]
    provider = CountingProvider(edited, thumbnails)
    asyncio.run(build_orchestrator(settings, provider).execute())

    assert dict(provider.thumbnail_calls) == {"pair-0": 1, "lone": 1}


def test_failed_extraction_is_retried_next_scan(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = configure_env(monkeypatch, tmp_path)
    records, thumbnails = pair_library()
    del thumbnails["lone"]

    first = asyncio.run(build_orchestrator(settings, CountingProvider(records, thumbnails)).execute())
    provider = CountingProvider(records, thumbnails)
    second = asyncio.run(build_orchestrator(settings, provider).execute())

    assert first is not None and second is not None
    assert first.skipped_photos == second.skipped_photos == 1
    assert dict(provider.thumbnail_calls) == {"lone": 1}


def test_disabled_cache_always_loads_thumbnails(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = configure_env(monkeypatch, tmp_path, feature_cache_enabled="false")
    records, thumbnails = pair_library()
    asyncio.run(build_orchestrator(settings, CountingProvider(records, thumbnails)).execute())

    provider = CountingProvider(records, thumbnails)
    asyncio.run(build_orchestrator(settings, provider).execute())

    assert sum(provider.thumbnail_calls.values()) == 3


def test_rows_from_other_analysis_parameters_are_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    configure_env(monkeypatch, tmp_path)
    record = make_record("a", at(0))
    feature = PhotoFeatures(photo_id="a", fingerprint=Fingerprint(value=0x1F, bit_length=25), sharpness=0.42)

    cache = FeatureCache(get_session_factory(), "phash5-t256-s10:500")
    assert cache.store([record], [feature]) == 1
    assert cache.lookup([record]) == {"a": feature}

    other = FeatureCache(get_session_factory(), "phash8-t256-s10:500")
    assert other.lookup([record]) == {}

    cache.clear()
    assert cache.lookup([record]) == {}


def test_analysis_key_tracks_extraction_settings(tmp_path: Path) -> None:
    base = Settings(state_root=tmp_path)
    assert analysis_key(base) == "phash8-t256-s10:500"
    assert analysis_key(Settings(state_root=tmp_path, fingerprint_hash_size=16)) != analysis_key(base)
    assert analysis_key(Settings(state_root=tmp_path, sharpness_variance_ceiling=800)) != analysis_key(base)
