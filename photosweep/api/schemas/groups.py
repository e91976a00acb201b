from __future__ import annotations

from pydantic import BaseModel


class PhotoGroupResponse(BaseModel):
    id: str
    type: str
    photo_ids: list[str]
    file_sizes: list[int]
    best_shot_index: int | None
    similarity_score: float | None
    count: int
    total_size: int
    reclaimable_size: int
    best_shot_id: str | None


class PhotoGroupListResponse(BaseModel):
    items: list[PhotoGroupResponse]


class GroupSummaryResponse(BaseModel):
    total_groups: int
    total_photos: int
    total_size: int
    reclaimable_size: int
    savings_percentage: float
    count_by_type: dict[str, int]
    reclaimable_size_by_type: dict[str, int]
