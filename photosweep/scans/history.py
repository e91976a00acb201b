from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from photosweep.db.models import ScanRun, ScanState
from photosweep.scans.types import ScanRunSnapshot

logger = logging.getLogger(__name__)


class ScanHistoryService:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _coerce_utc(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def record(
        self,
        *,
        run_id: str,
        status: ScanState,
        started_at: datetime,
        finished_at: datetime,
        total_photos: int,
        processed_photos: int,
        groups_found: int = 0,
        potential_savings: int = 0,
        error_message: str | None = None,
    ) -> bool:
        """Store one finished scan; returns False when the row could not be written."""
        if not status.is_terminal:
            raise ValueError(f"Scan history only records terminal states, got {status.value}")
        try:
            with self._session_factory() as session:
                session.add(
                    ScanRun(
                        id=run_id,
                        status=status,
                        started_at=started_at,
                        finished_at=finished_at,
                        total_photos=total_photos,
                        processed_photos=processed_photos,
                        groups_found=groups_found,
                        potential_savings=potential_savings,
                        error_message=error_message,
                    )
                )
                session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to record scan run %s", run_id)
            return False
        return True

    def list_runs(self, limit: int = 20) -> list[ScanRunSnapshot]:
        bounded_limit = max(1, min(limit, 200))
        with self._session_factory() as session:
            rows = session.scalars(
                select(ScanRun).order_by(ScanRun.started_at.desc(), ScanRun.id.desc()).limit(bounded_limit)
            ).all()
            return [self._to_snapshot(row) for row in rows]

    def _to_snapshot(self, row: ScanRun) -> ScanRunSnapshot:
        return ScanRunSnapshot(
            id=row.id,
            status=row.status,
            started_at=self._coerce_utc(row.started_at),
            finished_at=self._coerce_utc(row.finished_at),
            total_photos=row.total_photos,
            processed_photos=row.processed_photos,
            groups_found=row.groups_found,
            potential_savings=row.potential_savings,
            error_message=row.error_message,
        )
