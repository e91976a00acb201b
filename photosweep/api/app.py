from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from photosweep.analysis.cache import FeatureCache
from photosweep.api.routes.groups import router as groups_router
from photosweep.api.routes.health import router as health_router
from photosweep.api.routes.scans import router as scans_router
from photosweep.assets.directory import DirectoryAssetProvider
from photosweep.assets.provider import AssetProvider
from photosweep.core.config import Settings, get_settings
from photosweep.core.logging import configure_logging
from photosweep.db.init_db import initialize_database
from photosweep.db.session import get_session_factory
from photosweep.groups.store import GroupStore
from photosweep.scans.history import ScanHistoryService
from photosweep.scans.service import ScanOrchestrator

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, provider: AssetProvider | None = None) -> ScanOrchestrator | None:
    if provider is None:
        if settings.library_root is None:
            logger.warning("PHOTOSWEEP_LIBRARY_ROOT is not set; scans are disabled")
            return None
        provider = DirectoryAssetProvider(
            settings.library_root,
            ffprobe_bin=settings.ffprobe_bin,
            ffprobe_timeout_seconds=int(settings.ffprobe_timeout_seconds),
            exif_timezone=settings.exif_tzinfo,
        )
    session_factory = get_session_factory()
    return ScanOrchestrator(
        settings,
        provider,
        GroupStore(session_factory),
        history=ScanHistoryService(session_factory),
        feature_cache=FeatureCache.from_settings(session_factory, settings) if settings.feature_cache_enabled else None,
    )


def create_app(provider: AssetProvider | None = None) -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        initialize_database()
        app.state.orchestrator = build_orchestrator(settings, provider)
        app.state.scan_task = None
        yield
        orchestrator: ScanOrchestrator | None = app.state.orchestrator
        task = app.state.scan_task
        if orchestrator is not None and task is not None and not task.done():
            orchestrator.cancel()
            await task

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(scans_router, prefix="/api/v1")
    app.include_router(groups_router, prefix="/api/v1")
    return app
