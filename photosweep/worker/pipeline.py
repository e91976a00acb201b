from __future__ import annotations

import asyncio
from pathlib import Path

from photosweep.analysis.cache import FeatureCache
from photosweep.assets.directory import DirectoryAssetProvider
from photosweep.core.config import AnalysisSettings, ScanSettings, get_settings
from photosweep.db.init_db import initialize_database
from photosweep.db.session import get_session_factory
from photosweep.groups.store import GroupStore
from photosweep.groups.types import PhotoGroup
from photosweep.scans.history import ScanHistoryService
from photosweep.scans.service import ScanOrchestrator
from photosweep.scans.types import ScanResult


class LibraryNotConfiguredError(RuntimeError):
    pass


def run_scan_once(
    library_root: str | Path | None = None,
    *,
    analysis_settings: AnalysisSettings | None = None,
    scan_settings: ScanSettings | None = None,
) -> ScanResult | None:
    settings = get_settings()
    root = Path(library_root) if library_root is not None else settings.library_root
    if root is None:
        raise LibraryNotConfiguredError("No library root given and PHOTOSWEEP_LIBRARY_ROOT is not set")

    initialize_database()
    session_factory = get_session_factory()
    orchestrator = ScanOrchestrator(
        settings,
        DirectoryAssetProvider(
            root,
            ffprobe_bin=settings.ffprobe_bin,
            ffprobe_timeout_seconds=int(settings.ffprobe_timeout_seconds),
            exif_timezone=settings.exif_tzinfo,
        ),
        GroupStore(session_factory),
        history=ScanHistoryService(session_factory),
        feature_cache=FeatureCache.from_settings(session_factory, settings) if settings.feature_cache_enabled else None,
    )
    return asyncio.run(orchestrator.execute(analysis_settings, scan_settings))


def load_saved_groups() -> list[PhotoGroup]:
    initialize_database()
    return GroupStore(get_session_factory()).load()
