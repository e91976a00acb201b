from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence
from uuid import NAMESPACE_URL, uuid5

from photosweep.db.models import GroupType

_GROUP_ID_NAMESPACE = uuid5(NAMESPACE_URL, "photosweep:photo-group")


class GroupInvariantError(RuntimeError):
    pass


def derive_group_id(group_type: GroupType, photo_ids: Sequence[str]) -> str:
    material = "\x1f".join([group_type.value, *photo_ids])
    return str(uuid5(_GROUP_ID_NAMESPACE, material))


@dataclass(frozen=True, slots=True)
class PhotoGroup:
    id: str
    type: GroupType
    photo_ids: tuple[str, ...]
    file_sizes: tuple[int, ...]
    best_shot_index: int | None = None
    similarity_score: float | None = None

    def __post_init__(self) -> None:
        if not self.photo_ids:
            raise GroupInvariantError(f"Group {self.id} has no photos")
        if len(self.photo_ids) != len(self.file_sizes):
            raise GroupInvariantError(
                f"Group {self.id} has {len(self.photo_ids)} photos but {len(self.file_sizes)} sizes"
            )
        if len(set(self.photo_ids)) != len(self.photo_ids):
            raise GroupInvariantError(f"Group {self.id} lists a photo more than once")
        if any(size < 0 for size in self.file_sizes):
            raise GroupInvariantError(f"Group {self.id} has a negative file size")
        if self.best_shot_index is not None and not 0 <= self.best_shot_index < len(self.photo_ids):
            raise GroupInvariantError(
                f"Group {self.id} best_shot_index {self.best_shot_index} is outside [0, {len(self.photo_ids)})"
            )

    @classmethod
    def create(
        cls,
        group_type: GroupType,
        photos: Iterable[tuple[str, int]],
        *,
        best_shot_index: int | None = None,
        similarity_score: float | None = None,
    ) -> "PhotoGroup":
        pairs = list(photos)
        photo_ids = tuple(photo_id for photo_id, _ in pairs)
        return cls(
            id=derive_group_id(group_type, photo_ids),
            type=group_type,
            photo_ids=photo_ids,
            file_sizes=tuple(size for _, size in pairs),
            best_shot_index=best_shot_index,
            similarity_score=similarity_score,
        )

    @property
    def count(self) -> int:
        return len(self.photo_ids)

    @property
    def total_size(self) -> int:
        return sum(self.file_sizes)

    @property
    def reclaimable_size(self) -> int:
        if self.best_shot_index is None:
            return self.total_size
        return self.total_size - self.file_sizes[self.best_shot_index]

    @property
    def best_shot_id(self) -> str | None:
        if self.best_shot_index is None:
            return None
        return self.photo_ids[self.best_shot_index]


@dataclass(slots=True)
class GroupStatistics:
    total_groups: int = 0
    total_photos: int = 0
    total_size: int = 0
    reclaimable_size: int = 0
    count_by_type: dict[GroupType, int] = field(default_factory=dict)
    reclaimable_size_by_type: dict[GroupType, int] = field(default_factory=dict)

    @property
    def savings_percentage(self) -> float:
        if self.total_size <= 0:
            return 0.0
        return self.reclaimable_size / self.total_size * 100.0


def empty_breakdown() -> dict[GroupType, int]:
    return {group_type: 0 for group_type in GroupType}


def summarize_groups(groups: Iterable[PhotoGroup]) -> GroupStatistics:
    stats = GroupStatistics(count_by_type=empty_breakdown(), reclaimable_size_by_type=empty_breakdown())
    for group in groups:
        stats.total_groups += 1
        stats.total_photos += group.count
        stats.total_size += group.total_size
        stats.reclaimable_size += group.reclaimable_size
        stats.count_by_type[group.type] += 1
        stats.reclaimable_size_by_type[group.type] += group.reclaimable_size
    return stats


def group_to_dict(group: PhotoGroup) -> dict[str, Any]:
    return {
        "id": group.id,
        "type": group.type.value,
        "photo_ids": list(group.photo_ids),
        "file_sizes": list(group.file_sizes),
        "best_shot_index": group.best_shot_index,
        "similarity_score": group.similarity_score,
        "count": group.count,
        "total_size": group.total_size,
        "reclaimable_size": group.reclaimable_size,
        "best_shot_id": group.best_shot_id,
    }


def statistics_to_dict(stats: GroupStatistics) -> dict[str, Any]:
    return {
        "total_groups": stats.total_groups,
        "total_photos": stats.total_photos,
        "total_size": stats.total_size,
        "reclaimable_size": stats.reclaimable_size,
        "savings_percentage": stats.savings_percentage,
        "count_by_type": {group_type.value: count for group_type, count in stats.count_by_type.items()},
        "reclaimable_size_by_type": {
            group_type.value: size for group_type, size in stats.reclaimable_size_by_type.items()
        },
    }
