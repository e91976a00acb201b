from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from photosweep.analysis.features import Fingerprint, PhotoFeatures
from photosweep.assets.types import PhotoRecord
from photosweep.core.config import Settings
from photosweep.db.models import PhotoFeature

logger = logging.getLogger(__name__)

_LOOKUP_CHUNK = 500


def analysis_key(settings: Settings) -> str:
    """Identifies the extraction parameters a cached row was computed with."""
    return (
        f"phash{int(settings.fingerprint_hash_size)}"
        f"-t{int(settings.thumbnail_max_dimension)}"
        f"-s{float(settings.sharpness_variance_floor):g}:{float(settings.sharpness_variance_ceiling):g}"
    )


class FeatureCache:
    """Per-photo fingerprints and sharpness kept across scans.

    A row is reused only while the photo's byte size and capture time are
    unchanged and it was computed with the current analysis key. The cache
    is an optimization: read or write failures are logged and the photo is
    simply analyzed again.
    """

    def __init__(self, session_factory: sessionmaker[Session], key: str):
        self._session_factory = session_factory
        self._key = key

    @classmethod
    def from_settings(cls, session_factory: sessionmaker[Session], settings: Settings) -> "FeatureCache":
        return cls(session_factory, analysis_key(settings))

    def lookup(self, records: Sequence[PhotoRecord]) -> dict[str, PhotoFeatures]:
        by_id = {record.id: record for record in records}
        found: dict[str, PhotoFeatures] = {}
        ids = list(by_id)
        try:
            with self._session_factory() as session:
                for start in range(0, len(ids), _LOOKUP_CHUNK):
                    chunk = ids[start : start + _LOOKUP_CHUNK]
                    rows = session.scalars(select(PhotoFeature).where(PhotoFeature.photo_id.in_(chunk))).all()
                    for row in rows:
                        record = by_id[row.photo_id]
                        if not self._is_fresh(row, record):
                            continue
                        found[row.photo_id] = PhotoFeatures(
                            photo_id=row.photo_id,
                            fingerprint=Fingerprint.from_hex(row.fingerprint_hex, row.fingerprint_bits),
                            sharpness=row.sharpness,
                        )
        except (SQLAlchemyError, ValueError) as exc:
            logger.warning("Feature cache lookup failed, analyzing %d photos from scratch: %s", len(ids), exc)
            return {}
        return found

    def store(self, records: Sequence[PhotoRecord], features: Iterable[PhotoFeatures]) -> int:
        by_id = {record.id: record for record in records}
        usable = [
            feature
            for feature in features
            if not feature.failed
            and feature.fingerprint is not None
            and feature.sharpness is not None
            and feature.photo_id in by_id
        ]
        if not usable:
            return 0
        try:
            with self._session_factory() as session:
                with session.begin():
                    ids = [feature.photo_id for feature in usable]
                    existing = {
                        row.photo_id: row
                        for start in range(0, len(ids), _LOOKUP_CHUNK)
                        for row in session.scalars(
                            select(PhotoFeature).where(PhotoFeature.photo_id.in_(ids[start : start + _LOOKUP_CHUNK]))
                        ).all()
                    }
                    for feature in usable:
                        record = by_id[feature.photo_id]
                        row = existing.get(feature.photo_id)
                        if row is None:
                            row = PhotoFeature(photo_id=feature.photo_id)
                            session.add(row)
                        row.size_bytes = record.size_bytes
                        row.created_at_epoch = record.created_at.timestamp()
                        row.analysis_key = self._key
                        row.fingerprint_hex = feature.fingerprint.to_hex()
                        row.fingerprint_bits = feature.fingerprint.bit_length
                        row.sharpness = feature.sharpness
        except SQLAlchemyError as exc:
            logger.warning("Failed to cache features for %d photos: %s", len(usable), exc)
            return 0
        return len(usable)

    def clear(self) -> None:
        with self._session_factory() as session:
            with session.begin():
                session.execute(delete(PhotoFeature))

    def _is_fresh(self, row: PhotoFeature, record: PhotoRecord) -> bool:
        return (
            row.analysis_key == self._key
            and row.size_bytes == record.size_bytes
            and row.created_at_epoch == record.created_at.timestamp()
        )
