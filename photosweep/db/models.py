from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Enum as SAEnum,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class GroupType(str, Enum):
    SIMILAR = "similar"
    DUPLICATE = "duplicate"
    SCREENSHOT = "screenshot"
    BLURRY = "blurry"
    SELFIE = "selfie"
    LARGE_VIDEO = "largeVideo"

    @property
    def precedence(self) -> int:
        return GROUP_TYPE_PRECEDENCE.index(self)

    @property
    def has_best_shot(self) -> bool:
        return _HAS_BEST_SHOT[self]

    @property
    def sort_order(self) -> int:
        return _DASHBOARD_SORT_ORDER[self]


# Highest precedence first; a photo lands in the first emitted group it qualifies for.
GROUP_TYPE_PRECEDENCE: tuple[GroupType, ...] = (
    GroupType.DUPLICATE,
    GroupType.SIMILAR,
    GroupType.SCREENSHOT,
    GroupType.BLURRY,
    GroupType.SELFIE,
    GroupType.LARGE_VIDEO,
)

_HAS_BEST_SHOT: dict[GroupType, bool] = {
    GroupType.DUPLICATE: True,
    GroupType.SIMILAR: True,
    GroupType.SCREENSHOT: False,
    GroupType.BLURRY: False,
    GroupType.SELFIE: True,
    GroupType.LARGE_VIDEO: False,
}

_DASHBOARD_SORT_ORDER: dict[GroupType, int] = {
    GroupType.DUPLICATE: 0,
    GroupType.SIMILAR: 1,
    GroupType.BLURRY: 2,
    GroupType.SCREENSHOT: 3,
    GroupType.SELFIE: 4,
    GroupType.LARGE_VIDEO: 5,
}


class ScanState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    GROUPING = "grouping"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {ScanState.COMPLETED, ScanState.CANCELLED, ScanState.FAILED}


class GroupSet(Base):
    __tablename__ = "group_sets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False)
    group_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[list[dict[str, Any]]] = mapped_column(JSON(none_as_null=True), nullable=False, default=list)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ScanRun(Base):
    __tablename__ = "scan_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[ScanState] = mapped_column(
        SAEnum(ScanState, native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_photos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_photos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    groups_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    potential_savings: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_scan_runs_started_id", "started_at", "id"),)


class PhotoFeature(Base):
    """Cached analysis of one photo, valid while its size, capture time and analysis key match."""

    __tablename__ = "photo_features"

    photo_id: Mapped[str] = mapped_column(String(1024), primary_key=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at_epoch: Mapped[float] = mapped_column(Float, nullable=False)
    analysis_key: Mapped[str] = mapped_column(String(64), nullable=False)
    fingerprint_hex: Mapped[str] = mapped_column(String(256), nullable=False)
    fingerprint_bits: Mapped[int] = mapped_column(Integer, nullable=False)
    sharpness: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class SchemaMigration(Base):
    __tablename__ = "schema_migrations"

    version: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
