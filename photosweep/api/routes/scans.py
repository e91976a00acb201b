from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from photosweep.api.schemas.scans import (
    ScanHistoryResponse,
    ScanProgressResponse,
    ScanResultResponse,
    ScanRunResponse,
    ScanStatusResponse,
    StartScanRequest,
)
from photosweep.assets.provider import AccessDeniedError
from photosweep.core.config import AnalysisSettings, ScanSettings, get_settings
from photosweep.db.session import get_session_factory
from photosweep.scans.history import ScanHistoryService
from photosweep.scans.service import AlreadyScanningError, ScanFailedError, ScanOrchestrator
from photosweep.scans.types import result_to_dict, run_snapshot_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])


def get_orchestrator(request: Request) -> ScanOrchestrator:
    orchestrator: ScanOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No photo library is configured")
    return orchestrator


def get_history_service() -> ScanHistoryService:
    return ScanHistoryService(session_factory=get_session_factory())


def _status_response(orchestrator: ScanOrchestrator) -> ScanStatusResponse:
    progress = orchestrator.latest_progress
    result = orchestrator.last_result
    return ScanStatusResponse(
        state=orchestrator.state.value,
        is_scanning=orchestrator.is_scanning,
        progress=ScanProgressResponse.model_validate(progress.to_dict()) if progress is not None else None,
        last_result=ScanResultResponse.model_validate(result_to_dict(result)) if result is not None else None,
        last_error=orchestrator.last_error,
    )


def _resolve_settings(request: StartScanRequest | None) -> tuple[AnalysisSettings, ScanSettings]:
    settings = get_settings()
    analysis = settings.analysis_settings()
    scan = settings.scan_settings()
    if request is None:
        return analysis, scan
    try:
        if request.analysis is not None:
            analysis = AnalysisSettings(**{**analysis.model_dump(), **request.analysis.model_dump(exclude_none=True)})
        if request.scan is not None:
            scan = ScanSettings(**{**scan.model_dump(), **request.scan.model_dump(exclude_none=True)})
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return analysis, scan


async def _run_scan(orchestrator: ScanOrchestrator, analysis: AnalysisSettings, scan: ScanSettings) -> None:
    try:
        await orchestrator.execute(analysis, scan)
    except AlreadyScanningError:
        logger.warning("Background scan not started: another scan is running")
    except (AccessDeniedError, ScanFailedError) as exc:
        logger.warning("Background scan ended with an error: %s", exc)


@router.post("", response_model=ScanStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_scan(
    request: Request,
    body: StartScanRequest | None = None,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> ScanStatusResponse:
    analysis, scan = _resolve_settings(body)
    task: asyncio.Task[None] | None = getattr(request.app.state, "scan_task", None)
    if orchestrator.is_scanning or (task is not None and not task.done()):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A scan is already in progress")
    request.app.state.scan_task = asyncio.create_task(_run_scan(orchestrator, analysis, scan))
    return _status_response(orchestrator)


@router.get("/current", response_model=ScanStatusResponse)
def get_current_scan(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ScanStatusResponse:
    return _status_response(orchestrator)


@router.post("/cancel", response_model=ScanStatusResponse, status_code=status.HTTP_202_ACCEPTED)
def cancel_scan(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ScanStatusResponse:
    orchestrator.cancel()
    return _status_response(orchestrator)


@router.get("/progress")
async def stream_progress(
    follow: bool = Query(default=False),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Newline-delimited JSON progress events.

    While a scan runs (or with ``follow=true``) the stream stays open until
    the terminal event. Otherwise it carries the latest event and closes.
    """
    if not follow and not orchestrator.is_scanning:
        latest = orchestrator.latest_progress
        events = [latest.to_dict()] if latest is not None else []

        async def replay() -> AsyncIterator[str]:
            for event in events:
                yield json.dumps(event) + "\n"

        return StreamingResponse(replay(), media_type="application/x-ndjson")

    subscription = orchestrator.broadcaster.subscribe()

    async def stream() -> AsyncIterator[str]:
        try:
            async for event in subscription:
                yield json.dumps(event.to_dict()) + "\n"
        finally:
            subscription.close()

    return StreamingResponse(stream(), media_type="application/x-ndjson")


@router.get("/history", response_model=ScanHistoryResponse)
def list_scan_history(
    limit: int = Query(default=20, ge=1, le=200),
    service: ScanHistoryService = Depends(get_history_service),
) -> ScanHistoryResponse:
    runs = service.list_runs(limit=limit)
    return ScanHistoryResponse(items=[ScanRunResponse.model_validate(run_snapshot_to_dict(run)) for run in runs])
