from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from photosweep.api.schemas.groups import GroupSummaryResponse, PhotoGroupListResponse, PhotoGroupResponse
from photosweep.db.models import GroupType
from photosweep.db.session import get_session_factory
from photosweep.groups.store import GroupLoadError, GroupStore
from photosweep.groups.types import PhotoGroup, group_to_dict, statistics_to_dict, summarize_groups

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_store() -> GroupStore:
    return GroupStore(session_factory=get_session_factory())


def _load_or_empty(store: GroupStore) -> list[PhotoGroup]:
    try:
        return store.load()
    except GroupLoadError as exc:
        logger.info("No usable saved groups: %s", exc)
        return []


@router.get("", response_model=PhotoGroupListResponse)
def list_groups(
    group_type: GroupType | None = Query(default=None, alias="type"),
    store: GroupStore = Depends(get_group_store),
) -> PhotoGroupListResponse:
    groups = _load_or_empty(store)
    if group_type is not None:
        groups = [group for group in groups if group.type == group_type]
    return PhotoGroupListResponse(items=[PhotoGroupResponse.model_validate(group_to_dict(group)) for group in groups])


@router.get("/summary", response_model=GroupSummaryResponse)
def get_group_summary(store: GroupStore = Depends(get_group_store)) -> GroupSummaryResponse:
    stats = summarize_groups(_load_or_empty(store))
    return GroupSummaryResponse.model_validate(statistics_to_dict(stats))
