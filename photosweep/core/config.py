from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class AnalysisSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    blur_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    min_group_size: int = Field(default=2, ge=2)


class ScanSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    include_videos: bool = True
    include_screenshots: bool = True
    include_selfies: bool = True

    @model_validator(mode="after")
    def _require_content_type(self) -> "ScanSettings":
        if not (self.include_videos or self.include_screenshots or self.include_selfies):
            raise ValueError("At least one content type must be included in a scan")
        return self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PHOTOSWEEP_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "photosweep"
    environment: str = "production"
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    log_level: str = "INFO"

    state_root: Path = Field(default=Path("/state"))
    database_url: str | None = None
    library_root: Path | None = None

    page_size: PositiveInt = 200
    thumbnail_max_dimension: PositiveInt = 256
    fingerprint_hash_size: PositiveInt = 8
    analysis_workers: PositiveInt | None = None
    progress_buffer_size: PositiveInt = 64
    feature_cache_enabled: bool = True

    similarity_window_seconds: PositiveFloat = 120.0
    large_video_min_duration_seconds: PositiveFloat = 60.0
    large_video_min_bytes: PositiveInt = 100 * 1024 * 1024
    sharpness_variance_floor: PositiveFloat = 10.0
    sharpness_variance_ceiling: PositiveFloat = 500.0

    best_shot_sharpness_weight: float = Field(default=0.5, ge=0.0)
    best_shot_resolution_weight: float = Field(default=0.2, ge=0.0)
    best_shot_favorite_weight: float = Field(default=0.25, ge=0.0)
    best_shot_recency_weight: float = Field(default=0.05, ge=0.0)

    ffprobe_bin: str = "ffprobe"
    ffprobe_timeout_seconds: PositiveInt = 30
    exif_timezone: str | None = None

    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    blur_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    min_group_size: int = Field(default=2, ge=2)
    include_videos: bool = True
    include_screenshots: bool = True
    include_selfies: bool = True

    @field_validator("state_root", "library_root", mode="before")
    @classmethod
    def _normalize_path(cls, value: str | Path | None) -> Path | None:
        if value is None or value == "":
            return None
        raw = str(value)
        if "~" in raw:
            raise ValueError("Home expansion syntax is not allowed in paths")
        if "$" in raw:
            raise ValueError("Environment variable syntax is not allowed in paths")
        path = Path(raw)
        if not path.is_absolute():
            raise ValueError("Path settings must be absolute")
        return path

    @field_validator("exif_timezone")
    @classmethod
    def _validate_exif_timezone(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        try:
            ZoneInfo(value.strip())
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value}") from exc
        return value.strip()

    @model_validator(mode="after")
    def _validate_runtime_constraints(self) -> "Settings":
        if self.state_root is None:
            raise ValueError("state_root is required")
        self.state_root = self.state_root.resolve(strict=False)
        self.state_root.mkdir(parents=True, exist_ok=True)
        if self.library_root is not None:
            self.library_root = self.library_root.resolve(strict=False)

        normalized_level = self.log_level.upper().strip()
        if normalized_level not in SUPPORTED_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(SUPPORTED_LOG_LEVELS)}")
        self.log_level = normalized_level

        if self.sharpness_variance_ceiling <= self.sharpness_variance_floor:
            raise ValueError("sharpness_variance_ceiling must be greater than sharpness_variance_floor")

        weights = (
            self.best_shot_sharpness_weight,
            self.best_shot_resolution_weight,
            self.best_shot_favorite_weight,
            self.best_shot_recency_weight,
        )
        if sum(weights) <= 0.0:
            raise ValueError("At least one best-shot weight must be positive")

        if not (self.include_videos or self.include_screenshots or self.include_selfies):
            raise ValueError("At least one of include_videos, include_screenshots, include_selfies must be true")

        return self

    @property
    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        db_path = self.state_root / "photosweep.sqlite3"
        return f"sqlite:///{db_path.as_posix()}"

    @property
    def exif_tzinfo(self) -> ZoneInfo | None:
        return ZoneInfo(self.exif_timezone) if self.exif_timezone else None

    @property
    def effective_analysis_workers(self) -> int:
        if self.analysis_workers is not None:
            return int(self.analysis_workers)
        return max(1, os.cpu_count() or 1)

    def analysis_settings(self) -> AnalysisSettings:
        return AnalysisSettings(
            similarity_threshold=self.similarity_threshold,
            blur_threshold=self.blur_threshold,
            min_group_size=self.min_group_size,
        )

    def scan_settings(self) -> ScanSettings:
        return ScanSettings(
            include_videos=self.include_videos,
            include_screenshots=self.include_screenshots,
            include_selfies=self.include_selfies,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
