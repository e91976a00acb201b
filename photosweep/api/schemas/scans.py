from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AnalysisSettingsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    blur_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    min_group_size: int | None = Field(default=None, ge=2)


class ScanSettingsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    include_videos: bool | None = None
    include_screenshots: bool | None = None
    include_selfies: bool | None = None


class StartScanRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    analysis: AnalysisSettingsRequest | None = None
    scan: ScanSettingsRequest | None = None


class ScanProgressResponse(BaseModel):
    processed_count: int
    total_count: int
    current_task: str
    progress: float
    state: str
    is_terminal: bool


class ScanResultResponse(BaseModel):
    total_photos_scanned: int
    groups_found: int
    potential_savings: int
    duration_seconds: float
    group_breakdown: dict[str, int]
    completed_at: datetime
    skipped_photos: int


class ScanStatusResponse(BaseModel):
    state: str
    is_scanning: bool
    progress: ScanProgressResponse | None
    last_result: ScanResultResponse | None
    last_error: str | None


class ScanRunResponse(BaseModel):
    id: str
    status: str
    started_at: datetime
    finished_at: datetime
    total_photos: int
    processed_photos: int
    groups_found: int
    potential_savings: int
    error_message: str | None


class ScanHistoryResponse(BaseModel):
    items: list[ScanRunResponse]
