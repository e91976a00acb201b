from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from photosweep.db.models import GroupType, ScanState


@dataclass(frozen=True, slots=True)
class ScanProgress:
    processed_count: int
    total_count: int
    current_task: str
    progress: float
    state: ScanState

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed_count": self.processed_count,
            "total_count": self.total_count,
            "current_task": self.current_task,
            "progress": self.progress,
            "state": self.state.value,
            "is_terminal": self.is_terminal,
        }


@dataclass(frozen=True, slots=True)
class ScanResult:
    total_photos_scanned: int
    groups_found: int
    potential_savings: int
    duration_seconds: float
    group_breakdown: dict[GroupType, int]
    completed_at: datetime
    skipped_photos: int = 0


@dataclass(slots=True)
class ScanRunSnapshot:
    id: str
    status: ScanState
    started_at: datetime
    finished_at: datetime
    total_photos: int
    processed_photos: int
    groups_found: int
    potential_savings: int
    error_message: str | None = None


def result_to_dict(result: ScanResult) -> dict[str, Any]:
    return {
        "total_photos_scanned": result.total_photos_scanned,
        "groups_found": result.groups_found,
        "potential_savings": result.potential_savings,
        "duration_seconds": result.duration_seconds,
        "group_breakdown": {group_type.value: count for group_type, count in result.group_breakdown.items()},
        "completed_at": result.completed_at,
        "skipped_photos": result.skipped_photos,
    }


def run_snapshot_to_dict(snapshot: ScanRunSnapshot) -> dict[str, Any]:
    return {
        "id": snapshot.id,
        "status": snapshot.status.value,
        "started_at": snapshot.started_at,
        "finished_at": snapshot.finished_at,
        "total_photos": snapshot.total_photos,
        "processed_photos": snapshot.processed_photos,
        "groups_found": snapshot.groups_found,
        "potential_savings": snapshot.potential_savings,
        "error_message": snapshot.error_message,
    }
