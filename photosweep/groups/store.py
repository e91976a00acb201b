from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from photosweep.db.models import GroupSet, GroupType
from photosweep.groups.types import GroupInvariantError, PhotoGroup

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
_GROUP_SET_ROW_ID = 1


class GroupLoadError(RuntimeError):
    pass


class GroupSaveError(RuntimeError):
    pass


class StoredGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    photo_ids: list[str]
    file_sizes: list[int]
    best_shot_index: int | None = None
    similarity_score: float | None = None


class StoredGroupSet(BaseModel):
    model_config = ConfigDict(extra="ignore")

    schema_version: int = Field(ge=1)
    groups: list[StoredGroup]


def _serialize(group: PhotoGroup) -> dict[str, Any]:
    return StoredGroup(
        id=group.id,
        type=group.type.value,
        photo_ids=list(group.photo_ids),
        file_sizes=list(group.file_sizes),
        best_shot_index=group.best_shot_index,
        similarity_score=group.similarity_score,
    ).model_dump()


class GroupStore:
    """Keeps the latest complete group set as a single row.

    A save replaces the row inside one transaction, so readers see either the
    previous set or the new one, never a mix.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def save(self, groups: Sequence[PhotoGroup]) -> None:
        payload = [_serialize(group) for group in groups]
        try:
            with self._session_factory() as session:
                with session.begin():
                    row = session.get(GroupSet, _GROUP_SET_ROW_ID)
                    if row is None:
                        row = GroupSet(id=_GROUP_SET_ROW_ID)
                        session.add(row)
                    row.schema_version = SCHEMA_VERSION
                    row.group_count = len(payload)
                    row.payload = payload
                    row.saved_at = datetime.now(tz=timezone.utc)
        except SQLAlchemyError as exc:
            raise GroupSaveError(f"Failed to save {len(payload)} groups: {exc}") from exc
        logger.info("Saved group set with %d groups", len(payload))

    def load(self) -> list[PhotoGroup]:
        try:
            with self._session_factory() as session:
                row = session.get(GroupSet, _GROUP_SET_ROW_ID)
                if row is None:
                    raise GroupLoadError("No saved group set")
                raw = {"schema_version": row.schema_version, "groups": row.payload}
        except (SQLAlchemyError, ValueError) as exc:
            # ValueError covers a payload column that is not valid JSON.
            raise GroupLoadError(f"Failed to read saved groups: {exc}") from exc

        try:
            stored = StoredGroupSet.model_validate(raw)
        except ValidationError as exc:
            raise GroupLoadError(f"Saved group set is corrupt: {exc}") from exc
        if stored.schema_version > SCHEMA_VERSION:
            logger.warning(
                "Saved group set uses schema version %d, newer than %d; reading known fields only",
                stored.schema_version,
                SCHEMA_VERSION,
            )

        groups: list[PhotoGroup] = []
        for item in stored.groups:
            try:
                group_type = GroupType(item.type)
            except ValueError:
                logger.warning("Skipping saved group %s with unknown type %r", item.id, item.type)
                continue
            try:
                groups.append(
                    PhotoGroup(
                        id=item.id,
                        type=group_type,
                        photo_ids=tuple(item.photo_ids),
                        file_sizes=tuple(item.file_sizes),
                        best_shot_index=item.best_shot_index,
                        similarity_score=item.similarity_score,
                    )
                )
            except GroupInvariantError as exc:
                raise GroupLoadError(f"Saved group {item.id} is invalid: {exc}") from exc
        return groups

    def exists(self) -> bool:
        with self._session_factory() as session:
            return session.scalar(select(GroupSet.id).where(GroupSet.id == _GROUP_SET_ROW_ID)) is not None

    def clear(self) -> None:
        with self._session_factory() as session:
            with session.begin():
                session.execute(delete(GroupSet))
        logger.info("Cleared saved group set")
