from __future__ import annotations

import logging
from typing import Mapping, Sequence

from photosweep.analysis.classifier import PhotoLabels
from photosweep.analysis.features import PhotoFeatures
from photosweep.analysis.similarity import SimilarityCluster
from photosweep.assets.types import PhotoRecord
from photosweep.core.config import AnalysisSettings, Settings
from photosweep.db.models import GROUP_TYPE_PRECEDENCE, GroupType
from photosweep.groups.types import GroupInvariantError, PhotoGroup

logger = logging.getLogger(__name__)

_CLUSTER_TYPES = (GroupType.DUPLICATE, GroupType.SIMILAR)


class BestShotSelector:
    """Picks the representative photo of a group by weighted score.

    Components are each in [0, 1]: normalized sharpness (0 when unknown),
    pixel count relative to the largest member, the favorite flag, and the
    creation-time rank (newest 1.0). Ties keep the earliest member.
    """

    def __init__(
        self,
        *,
        sharpness_weight: float,
        resolution_weight: float,
        favorite_weight: float,
        recency_weight: float,
    ):
        self._sharpness_weight = sharpness_weight
        self._resolution_weight = resolution_weight
        self._favorite_weight = favorite_weight
        self._recency_weight = recency_weight

    @classmethod
    def from_settings(cls, settings: Settings) -> "BestShotSelector":
        return cls(
            sharpness_weight=float(settings.best_shot_sharpness_weight),
            resolution_weight=float(settings.best_shot_resolution_weight),
            favorite_weight=float(settings.best_shot_favorite_weight),
            recency_weight=float(settings.best_shot_recency_weight),
        )

    def scores(self, records: Sequence[PhotoRecord], features: Mapping[str, PhotoFeatures]) -> list[float]:
        max_pixels = max((record.pixel_count for record in records), default=0)
        timestamps = sorted({record.created_at.timestamp() for record in records})
        rank_of = {timestamp: rank for rank, timestamp in enumerate(timestamps)}
        rank_span = len(timestamps) - 1

        result: list[float] = []
        for record in records:
            feature = features.get(record.id)
            sharpness = feature.sharpness if feature is not None and feature.sharpness is not None else 0.0
            resolution = record.pixel_count / max_pixels if max_pixels > 0 else 0.0
            favorite = 1.0 if record.is_favorite else 0.0
            recency = rank_of[record.created_at.timestamp()] / rank_span if rank_span > 0 else 0.0
            result.append(
                self._sharpness_weight * sharpness
                + self._resolution_weight * resolution
                + self._favorite_weight * favorite
                + self._recency_weight * recency
            )
        return result

    def select(self, records: Sequence[PhotoRecord], features: Mapping[str, PhotoFeatures]) -> int:
        if not records:
            raise GroupInvariantError("Cannot select a best shot from an empty group")
        scores = self.scores(records, features)
        best_index = 0
        for index, score in enumerate(scores):
            if score > scores[best_index]:
                best_index = index
        return best_index


class GroupAssembler:
    def __init__(self, settings: Settings, analysis: AnalysisSettings, selector: BestShotSelector | None = None):
        self._min_group_size = analysis.min_group_size
        self._selector = selector or BestShotSelector.from_settings(settings)

    def assemble(
        self,
        records: Sequence[PhotoRecord],
        clusters: Sequence[SimilarityCluster],
        labels: Mapping[str, PhotoLabels],
        features: Mapping[str, PhotoFeatures],
    ) -> list[PhotoGroup]:
        """Build the final, mutually exclusive group set.

        ``records`` must be in discovery order. Groups come out in precedence
        order, then by the discovery position of their first member.
        """
        by_id = {record.id: record for record in records}
        position = {record.id: index for index, record in enumerate(records)}
        claimed: set[str] = set()
        groups: list[PhotoGroup] = []
        discarded = 0

        for group_type in GROUP_TYPE_PRECEDENCE:
            if group_type in _CLUSTER_TYPES:
                candidates = [
                    [photo_id for photo_id in cluster.photo_ids if photo_id in by_id]
                    for cluster in clusters
                    if cluster.kind == group_type
                ]
                scores = [cluster.similarity_score for cluster in clusters if cluster.kind == group_type]
            else:
                candidates = [
                    [record.id for record in records if group_type in self._labels_for(labels, record.id)]
                ]
                scores = [None]

            for member_ids, similarity_score in zip(candidates, scores):
                member_ids = [photo_id for photo_id in member_ids if photo_id not in claimed]
                member_ids.sort(key=position.__getitem__)
                if not member_ids:
                    continue
                if len(member_ids) < self._min_group_size:
                    discarded += 1
                    continue
                members = [by_id[photo_id] for photo_id in member_ids]
                groups.append(self._build(group_type, members, features, similarity_score))
                claimed.update(member_ids)

        groups.sort(key=lambda group: (group.type.precedence, position[group.photo_ids[0]]))
        logger.info(
            "Assembled %d groups from %d photos (%d candidates below minimum size)",
            len(groups),
            len(records),
            discarded,
        )
        return groups

    def _labels_for(self, labels: Mapping[str, PhotoLabels], photo_id: str) -> frozenset[GroupType]:
        entry = labels.get(photo_id)
        return entry.labels if entry is not None else frozenset()

    def _build(
        self,
        group_type: GroupType,
        members: list[PhotoRecord],
        features: Mapping[str, PhotoFeatures],
        similarity_score: float | None,
    ) -> PhotoGroup:
        best_shot_index = self._selector.select(members, features) if group_type.has_best_shot else None
        group = PhotoGroup.create(
            group_type,
            ((record.id, record.size_bytes) for record in members),
            best_shot_index=best_shot_index,
            similarity_score=similarity_score,
        )
        if group.count < self._min_group_size:
            raise GroupInvariantError(f"Group {group.id} has {group.count} photos, below {self._min_group_size}")
        return group
