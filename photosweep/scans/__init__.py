from photosweep.scans.history import ScanHistoryService
from photosweep.scans.progress import CancellationToken, ProgressBroadcaster, ProgressSubscription
from photosweep.scans.service import (
    ALLOWED_TRANSITIONS,
    AlreadyScanningError,
    InvalidScanStateError,
    ScanFailedError,
    ScanOrchestrator,
)
from photosweep.scans.types import ScanProgress, ScanResult, ScanRunSnapshot

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AlreadyScanningError",
    "CancellationToken",
    "InvalidScanStateError",
    "ProgressBroadcaster",
    "ProgressSubscription",
    "ScanFailedError",
    "ScanHistoryService",
    "ScanOrchestrator",
    "ScanProgress",
    "ScanResult",
    "ScanRunSnapshot",
]
