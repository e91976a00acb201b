"""
Time-windowed perceptual similarity clustering.

Photos are fed in discovery order. Each new photo is compared only with the
photos still inside the sliding time window, and pairs whose normalized
fingerprint distance is within ``1 - similarity_threshold`` are joined in a
disjoint-set forest. Exact duplicates (distance 0 and identical byte size) are
tracked in a second forest so they can be split out of their burst.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from photosweep.analysis.features import Fingerprint
from photosweep.assets.types import PhotoRecord
from photosweep.db.models import GroupType

logger = logging.getLogger(__name__)

_DISTANCE_EPSILON = 1e-9


@dataclass(frozen=True, slots=True)
class SimilarityCluster:
    kind: GroupType
    photo_ids: tuple[str, ...]
    similarity_score: float


@dataclass(frozen=True, slots=True)
class _Entry:
    photo_id: str
    timestamp: float
    fingerprint: Fingerprint
    size_bytes: int


class _DisjointSet:
    def __init__(self) -> None:
        self._parent: list[int] = []

    def add(self) -> int:
        self._parent.append(len(self._parent))
        return len(self._parent) - 1

    def find(self, item: int) -> int:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, left: int, right: int) -> None:
        left_root, right_root = self.find(left), self.find(right)
        if left_root == right_root:
            return
        # The earlier-discovered root wins so component roots follow discovery order.
        if right_root < left_root:
            left_root, right_root = right_root, left_root
        self._parent[right_root] = left_root


class SimilarityAnalyzer:
    def __init__(self, *, similarity_threshold: float, window_seconds: float):
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be in [0.0, 1.0]")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._max_distance = 1.0 - similarity_threshold
        self._window_seconds = window_seconds
        self._entries: list[_Entry] = []
        self._similar = _DisjointSet()
        self._duplicate = _DisjointSet()
        self._active: deque[int] = deque()
        # Matching pairs found inside the window: (earlier, later, similarity).
        self._edges: list[tuple[int, int, float]] = []
        self.compared_pairs = 0

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, record: PhotoRecord, fingerprint: Fingerprint) -> None:
        entry = _Entry(
            photo_id=record.id,
            timestamp=record.created_at.timestamp(),
            fingerprint=fingerprint,
            size_bytes=record.size_bytes,
        )
        index = len(self._entries)
        self._entries.append(entry)
        self._similar.add()
        self._duplicate.add()

        self._prune(entry.timestamp)
        for other_index in self._active:
            other = self._entries[other_index]
            if abs(entry.timestamp - other.timestamp) > self._window_seconds:
                continue
            self.compared_pairs += 1
            distance = entry.fingerprint.distance(other.fingerprint)
            if distance > self._max_distance + _DISTANCE_EPSILON:
                continue
            self._edges.append((other_index, index, 1.0 - distance))
            self._similar.union(other_index, index)
            if distance == 0.0 and entry.size_bytes == other.size_bytes:
                self._duplicate.union(other_index, index)
        self._active.append(index)

    def _prune(self, timestamp: float) -> None:
        while self._active and abs(self._entries[self._active[0]].timestamp - timestamp) > self._window_seconds:
            self._active.popleft()

    def finalize(self, min_group_size: int = 2) -> list[SimilarityCluster]:
        """Clusters in first-member order.

        Duplicate sub-clusters smaller than ``min_group_size`` are left inside
        their similar remainder instead of being split out. A cluster's score is
        the mean similarity of the matching pairs found inside the window, so
        finalizing costs no more comparisons than ``add`` already made.
        """
        min_duplicate_size = max(2, min_group_size)
        components: dict[int, list[int]] = {}
        for index in range(len(self._entries)):
            components.setdefault(self._similar.find(index), []).append(index)

        cluster_of: dict[int, int] = {}
        pending: list[tuple[int, int, GroupType, list[int]]] = []
        for root, members in components.items():
            if len(members) < 2:
                continue

            duplicate_sets: dict[int, list[int]] = {}
            for index in members:
                duplicate_sets.setdefault(self._duplicate.find(index), []).append(index)

            claimed: set[int] = set()
            for duplicate_members in duplicate_sets.values():
                if len(duplicate_members) < min_duplicate_size:
                    continue
                claimed.update(duplicate_members)
                pending.append((duplicate_members[0], root, GroupType.DUPLICATE, duplicate_members))

            remainder = [index for index in members if index not in claimed]
            if len(remainder) >= 2:
                pending.append((remainder[0], root, GroupType.SIMILAR, remainder))

        for first, _, _, members in pending:
            for index in members:
                cluster_of[index] = first

        cluster_totals: dict[int, list[float]] = {}
        component_totals: dict[int, list[float]] = {}
        for left, right, similarity in self._edges:
            component = component_totals.setdefault(self._similar.find(left), [0.0, 0])
            component[0] += similarity
            component[1] += 1
            cluster = cluster_of.get(left)
            if cluster is not None and cluster == cluster_of.get(right):
                totals = cluster_totals.setdefault(cluster, [0.0, 0])
                totals[0] += similarity
                totals[1] += 1

        pending.sort(key=lambda item: item[0])
        result = []
        for first, root, kind, members in pending:
            # A remainder can be joined only through claimed duplicates; fall back to its component.
            total, count = cluster_totals.get(first) or component_totals[root]
            result.append(
                SimilarityCluster(
                    kind=kind,
                    photo_ids=tuple(self._entries[index].photo_id for index in members),
                    similarity_score=round(total / count, 6),
                )
            )
        logger.debug(
            "Similarity analysis found %d clusters among %d photos (%d comparisons)",
            len(result),
            len(self._entries),
            self.compared_pairs,
        )
        return result

    def stats(self) -> dict[str, int]:
        return {
            "photos": len(self._entries),
            "active_window": len(self._active),
            "compared_pairs": self.compared_pairs,
        }
