from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from photosweep.analysis.cache import FeatureCache
from photosweep.analysis.classifier import PhotoClassifier, PhotoLabels
from photosweep.analysis.features import FeatureExtractor, PhotoFeatures
from photosweep.analysis.similarity import SimilarityAnalyzer
from photosweep.assets.provider import AccessDeniedError, AssetProvider, FetchCancelledError
from photosweep.assets.types import AssetPage, PhotoRecord
from photosweep.core.config import AnalysisSettings, ScanSettings, Settings
from photosweep.db.models import ScanState
from photosweep.groups.assembler import GroupAssembler
from photosweep.groups.store import GroupSaveError, GroupStore
from photosweep.groups.types import PhotoGroup, empty_breakdown
from photosweep.ingestion.service import MetadataIngestion
from photosweep.scans.history import ScanHistoryService
from photosweep.scans.progress import CancellationToken, ProgressBroadcaster
from photosweep.scans.types import ScanProgress, ScanResult

logger = logging.getLogger(__name__)

FETCH_PROGRESS_SHARE = 0.9
SAVE_PROGRESS = 0.95

TASK_FETCHING = "Fetching photos"
TASK_GROUPING = "Grouping photos"
TASK_SAVING = "Saving results"
TASK_COMPLETED = "Scan complete"
TASK_CANCELLED = "Scan cancelled"
TASK_FAILED = "Scan failed"


class InvalidScanStateError(RuntimeError):
    pass


class AlreadyScanningError(RuntimeError):
    pass


class ScanFailedError(RuntimeError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class _ScanCancelled(Exception):
    pass


ALLOWED_TRANSITIONS: dict[ScanState, set[ScanState]] = {
    ScanState.IDLE: {ScanState.FETCHING, ScanState.FAILED},
    ScanState.FETCHING: {ScanState.ANALYZING, ScanState.FINALIZING, ScanState.CANCELLED, ScanState.FAILED},
    ScanState.ANALYZING: {ScanState.GROUPING, ScanState.CANCELLED, ScanState.FAILED},
    ScanState.GROUPING: {ScanState.FETCHING, ScanState.FINALIZING, ScanState.CANCELLED, ScanState.FAILED},
    ScanState.FINALIZING: {ScanState.COMPLETED, ScanState.FAILED},
    ScanState.COMPLETED: {ScanState.IDLE},
    ScanState.CANCELLED: {ScanState.IDLE},
    ScanState.FAILED: {ScanState.IDLE},
}


@dataclass(slots=True)
class _ScanRun:
    analysis: AnalysisSettings
    scan: ScanSettings
    token: CancellationToken
    run_id: str = field(default_factory=lambda: str(uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    started_monotonic: float = field(default_factory=time.monotonic)
    records: list[PhotoRecord] = field(default_factory=list)
    features: dict[str, PhotoFeatures] = field(default_factory=dict)
    labels: dict[str, PhotoLabels] = field(default_factory=dict)
    processed: int = 0
    total: int = 0
    skipped: int = 0
    reused: int = 0
    progress: float = 0.0


class ScanOrchestrator:
    """Runs one scan at a time and owns the scan state machine.

    ``execute`` is a coroutine; page fetches and persistence go through
    ``asyncio.to_thread`` and per-photo analysis runs on a bounded thread
    pool. Cancellation is cooperative and observed between pages.
    """

    def __init__(
        self,
        settings: Settings,
        provider: AssetProvider,
        store: GroupStore,
        *,
        history: ScanHistoryService | None = None,
        broadcaster: ProgressBroadcaster | None = None,
        feature_cache: FeatureCache | None = None,
    ):
        self._settings = settings
        self._provider = provider
        self._store = store
        self._history = history
        self._feature_cache = feature_cache
        self.broadcaster = broadcaster or ProgressBroadcaster(int(settings.progress_buffer_size))
        self._lock = threading.Lock()
        self._state = ScanState.IDLE
        self._scanning = False
        self._token: CancellationToken | None = None
        self._last_result: ScanResult | None = None
        self.last_error: str | None = None

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._state

    @property
    def is_scanning(self) -> bool:
        with self._lock:
            return self._scanning

    @property
    def last_result(self) -> ScanResult | None:
        return self._last_result

    @property
    def latest_progress(self) -> ScanProgress | None:
        return self.broadcaster.latest

    def cancel(self) -> None:
        with self._lock:
            if not self._scanning or self._token is None:
                return
            if not self._token.cancelled:
                logger.info("Cancellation requested for the running scan")
            self._token.cancel()

    def has_saved_groups(self) -> bool:
        return self._store.exists()

    def load_saved_groups(self) -> list[PhotoGroup]:
        return self._store.load()

    def _transition(self, to_state: ScanState) -> None:
        with self._lock:
            from_state = self._state
            if to_state not in ALLOWED_TRANSITIONS[from_state]:
                raise InvalidScanStateError(f"Illegal transition: {from_state.value} -> {to_state.value}")
            self._state = to_state
        logger.debug("Scan state %s -> %s", from_state.value, to_state.value)

    def _begin(self, analysis: AnalysisSettings, scan: ScanSettings) -> _ScanRun:
        with self._lock:
            if self._scanning:
                raise AlreadyScanningError("A scan is already in progress")
            self._scanning = True
            self._token = CancellationToken()
            if self._state.is_terminal:
                self._state = ScanState.IDLE
            return _ScanRun(analysis=analysis, scan=scan, token=self._token)

    def _end(self) -> None:
        with self._lock:
            self._scanning = False
            self._token = None

    def _publish(self, run: _ScanRun, task: str, progress: float | None = None) -> None:
        if progress is not None:
            run.progress = min(1.0, max(run.progress, progress))
        self.broadcaster.publish(
            ScanProgress(
                processed_count=run.processed,
                total_count=max(run.total, run.processed),
                current_task=task,
                progress=run.progress,
                state=self.state,
            )
        )

    async def execute(
        self,
        analysis_settings: AnalysisSettings | None = None,
        scan_settings: ScanSettings | None = None,
    ) -> ScanResult | None:
        """Run a full scan and persist its groups.

        Returns ``None`` when the scan is cancelled. Raises
        ``AlreadyScanningError`` if another scan is active,
        ``AccessDeniedError`` when the library cannot be read, and
        ``ScanFailedError`` for anything else that stops the scan.
        """
        analysis = analysis_settings or self._settings.analysis_settings()
        scan = scan_settings or self._settings.scan_settings()
        run = self._begin(analysis, scan)
        self.last_error = None
        logger.info(
            "Starting scan %s (similarity_threshold=%.2f blur_threshold=%.2f min_group_size=%d)",
            run.run_id,
            analysis.similarity_threshold,
            analysis.blur_threshold,
            analysis.min_group_size,
        )
        try:
            result = await self._run(run)
        except _ScanCancelled:
            self._finish(run, ScanState.CANCELLED, TASK_CANCELLED)
            logger.info("Scan %s cancelled after %d photos", run.run_id, run.processed)
            return None
        except AccessDeniedError as exc:
            self._fail(run, f"Access denied: {exc}")
            raise
        except ScanFailedError as exc:
            self._fail(run, exc.reason)
            raise
        except Exception as exc:
            logger.exception("Scan %s failed unexpectedly", run.run_id)
            self._fail(run, f"{type(exc).__name__}: {exc}")
            raise ScanFailedError(str(exc) or type(exc).__name__) from exc
        else:
            self._last_result = result
            self._finish(run, ScanState.COMPLETED, TASK_COMPLETED, result=result)
        finally:
            self._end()

        logger.info(
            "Scan %s completed: %d photos (%d reused from cache), %d groups, %d bytes reclaimable in %.2fs",
            run.run_id,
            result.total_photos_scanned,
            run.reused,
            result.groups_found,
            result.potential_savings,
            result.duration_seconds,
        )
        return result

    async def _run(self, run: _ScanRun) -> ScanResult:
        ingestion = MetadataIngestion(self._provider, int(self._settings.page_size))
        extractor = FeatureExtractor(self._settings, self._provider)
        classifier = PhotoClassifier(self._settings, run.analysis, run.scan)
        analyzer = SimilarityAnalyzer(
            similarity_threshold=run.analysis.similarity_threshold,
            window_seconds=float(self._settings.similarity_window_seconds),
        )

        self._transition(ScanState.FETCHING)
        self._publish(run, TASK_FETCHING, 0.0)
        with ThreadPoolExecutor(
            max_workers=self._settings.effective_analysis_workers,
            thread_name_prefix="photosweep-analysis",
        ) as executor:
            while True:
                try:
                    page = await asyncio.to_thread(ingestion.next_page)
                except FetchCancelledError as exc:
                    raise _ScanCancelled() from exc
                if page is None:
                    break

                self._transition(ScanState.ANALYZING)
                await self._analyze_page(run, page, extractor, classifier, executor)

                self._transition(ScanState.GROUPING)
                for record in page.records:
                    feature = run.features.get(record.id)
                    if feature is not None and feature.fingerprint is not None:
                        analyzer.add(record, feature.fingerprint)

                run.processed += len(page.records)
                if page.total_count is not None:
                    run.total = page.total_count
                elif page.has_more:
                    run.total = run.processed + int(self._settings.page_size)
                else:
                    run.total = run.processed

                if run.token.cancelled:
                    raise _ScanCancelled()
                fraction = run.processed / run.total if run.total else 1.0
                self._publish(run, TASK_FETCHING, FETCH_PROGRESS_SHARE * min(1.0, fraction))
                self._transition(ScanState.FETCHING)

        self._transition(ScanState.FINALIZING)
        run.total = run.processed
        self._publish(run, TASK_GROUPING, FETCH_PROGRESS_SHARE)
        groups = await asyncio.to_thread(self._assemble, run, analyzer)

        self._publish(run, TASK_SAVING, SAVE_PROGRESS)
        try:
            await asyncio.to_thread(self._store.save, groups)
        except GroupSaveError as exc:
            raise ScanFailedError(f"Could not save groups: {exc}") from exc

        breakdown = empty_breakdown()
        for group in groups:
            breakdown[group.type] += 1
        return ScanResult(
            total_photos_scanned=run.processed,
            groups_found=len(groups),
            potential_savings=sum(group.reclaimable_size for group in groups),
            duration_seconds=time.monotonic() - run.started_monotonic,
            group_breakdown=breakdown,
            completed_at=datetime.now(tz=timezone.utc),
            skipped_photos=run.skipped,
        )

    def _assemble(self, run: _ScanRun, analyzer: SimilarityAnalyzer) -> list[PhotoGroup]:
        clusters = analyzer.finalize(min_group_size=run.analysis.min_group_size)
        return GroupAssembler(self._settings, run.analysis).assemble(run.records, clusters, run.labels, run.features)

    async def _analyze_page(
        self,
        run: _ScanRun,
        page: AssetPage,
        extractor: FeatureExtractor,
        classifier: PhotoClassifier,
        executor: ThreadPoolExecutor,
    ) -> None:
        loop = asyncio.get_running_loop()
        images = [record for record in page.records if record.is_image]
        cached: dict[str, PhotoFeatures] = {}
        if self._feature_cache is not None and images:
            cached = await asyncio.to_thread(self._feature_cache.lookup, images)
        pending = [record for record in images if record.id not in cached]
        extracted = await asyncio.gather(
            *(loop.run_in_executor(executor, extractor.extract, record) for record in pending)
        )
        if self._feature_cache is not None and extracted:
            await asyncio.to_thread(self._feature_cache.store, pending, extracted)
        run.reused += len(cached)

        for feature in [*cached.values(), *extracted]:
            run.features[feature.photo_id] = feature
            if feature.failed:
                run.skipped += 1

        for record in page.records:
            run.records.append(record)
            run.labels[record.id] = classifier.classify(record, run.features.get(record.id))

    def _fail(self, run: _ScanRun, reason: str) -> None:
        self.last_error = reason
        logger.error("Scan %s failed: %s", run.run_id, reason)
        self._finish(run, ScanState.FAILED, TASK_FAILED, error_message=reason)

    def _finish(
        self,
        run: _ScanRun,
        state: ScanState,
        task: str,
        *,
        result: ScanResult | None = None,
        error_message: str | None = None,
    ) -> None:
        self._transition(state)
        self._publish(run, task, 1.0 if state == ScanState.COMPLETED else None)
        if self._history is None:
            return
        self._history.record(
            run_id=run.run_id,
            status=state,
            started_at=run.started_at,
            finished_at=datetime.now(tz=timezone.utc),
            total_photos=max(run.total, run.processed),
            processed_photos=run.processed,
            groups_found=result.groups_found if result is not None else 0,
            potential_savings=result.potential_savings if result is not None else 0,
            error_message=error_message,
        )
