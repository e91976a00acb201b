from __future__ import annotations

import pytest

from photo_factory import at, make_record
from photosweep.analysis.features import Fingerprint
from photosweep.analysis.similarity import SimilarityAnalyzer
from photosweep.db.models import GroupType

BASE = 0x9F3A_5C71_0E2B_D846


def fp(flip_bits: tuple[int, ...] = (), base: int = BASE) -> Fingerprint:
    value = base
    for bit in flip_bits:
        value ^= 1 << bit
    return Fingerprint(value=value, bit_length=64)


def make_analyzer(threshold: float = 0.85, window: float = 120.0) -> SimilarityAnalyzer:
    return SimilarityAnalyzer(similarity_threshold=threshold, window_seconds=window)


def test_burst_of_near_identical_photos_forms_one_similar_cluster() -> None:
    analyzer = make_analyzer()
    for index in range(5):
        # One flipped bit per photo: about 0.02 from the shared base.
        record = make_record(f"burst-{index}", at(index * 0.5), size_bytes=1_000_000 + index)
        analyzer.add(record, fp((index,)))

    clusters = analyzer.finalize()

    assert len(clusters) == 1
    assert clusters[0].kind == GroupType.SIMILAR
    assert clusters[0].photo_ids == tuple(f"burst-{index}" for index in range(5))
    assert clusters[0].similarity_score == pytest.approx(1 - 2 / 64)


def test_photos_outside_the_window_are_not_compared() -> None:
    analyzer = make_analyzer(window=60.0)
    analyzer.add(make_record("a", at(0)), fp())
    analyzer.add(make_record("b", at(61)), fp())
    analyzer.add(make_record("c", at(200)), fp())

    assert analyzer.finalize() == []
    assert analyzer.compared_pairs == 0
    assert analyzer.stats()["active_window"] == 1


def test_chain_within_window_joins_transitively() -> None:
    analyzer = make_analyzer(window=60.0)
    analyzer.add(make_record("a", at(0)), fp((1,)))
    analyzer.add(make_record("b", at(50)), fp((1, 2)))
    analyzer.add(make_record("c", at(100)), fp((2,)))

    clusters = analyzer.finalize()

    assert [cluster.photo_ids for cluster in clusters] == [("a", "b", "c")]


def test_distance_threshold_is_inclusive() -> None:
    # 0.125 distance is exactly 1 - 0.875.
    analyzer = make_analyzer(threshold=0.875)
    analyzer.add(make_record("a", at(0)), fp())
    analyzer.add(make_record("b", at(1)), fp(tuple(range(8))))
    analyzer.add(make_record("c", at(2)), fp(tuple(range(20, 29)), base=BASE))

    clusters = analyzer.finalize()

    assert [cluster.photo_ids for cluster in clusters] == [("a", "b")]


def test_exact_duplicates_split_out_of_similar_cluster() -> None:
    analyzer = make_analyzer()
    analyzer.add(make_record("dup-1", at(0), size_bytes=500), fp())
    analyzer.add(make_record("near", at(1), size_bytes=700), fp((3,)))
    analyzer.add(make_record("dup-2", at(2), size_bytes=500), fp())
    analyzer.add(make_record("near-2", at(3), size_bytes=800), fp((4,)))

    clusters = analyzer.finalize()

    assert [(cluster.kind, cluster.photo_ids) for cluster in clusters] == [
        (GroupType.DUPLICATE, ("dup-1", "dup-2")),
        (GroupType.SIMILAR, ("near", "near-2")),
    ]
    assert clusters[0].similarity_score == 1.0


def test_identical_hash_with_different_size_is_only_similar() -> None:
    analyzer = make_analyzer()
    analyzer.add(make_record("a", at(0), size_bytes=100), fp())
    analyzer.add(make_record("b", at(1), size_bytes=101), fp())

    clusters = analyzer.finalize()

    assert [(cluster.kind, cluster.photo_ids) for cluster in clusters] == [(GroupType.SIMILAR, ("a", "b"))]


def test_small_duplicate_sets_stay_in_similar_remainder() -> None:
    analyzer = make_analyzer()
    analyzer.add(make_record("dup-1", at(0), size_bytes=500), fp())
    analyzer.add(make_record("dup-2", at(1), size_bytes=500), fp())
    analyzer.add(make_record("near", at(2), size_bytes=900), fp((7,)))

    clusters = analyzer.finalize(min_group_size=3)

    assert [(cluster.kind, cluster.photo_ids) for cluster in clusters] == [
        (GroupType.SIMILAR, ("dup-1", "dup-2", "near"))
    ]


def test_singletons_never_form_clusters_and_order_follows_first_member() -> None:
    analyzer = make_analyzer()
    other = 0x0123_4567_89AB_CDEF
    analyzer.add(make_record("lonely", at(0)), fp((10, 11, 12, 13, 14, 15, 16, 17, 18, 19, 20, 21, 22, 23)))
    analyzer.add(make_record("x-1", at(1), size_bytes=1), fp(base=other))
    analyzer.add(make_record("y-1", at(2), size_bytes=2), fp())
    analyzer.add(make_record("x-2", at(3), size_bytes=3), fp((0,), base=other))
    analyzer.add(make_record("y-2", at(4), size_bytes=4), fp((1,)))

    clusters = analyzer.finalize()

    assert [cluster.photo_ids for cluster in clusters] == [("x-1", "x-2"), ("y-1", "y-2")]


def test_rejects_invalid_parameters() -> None:
    with pytest.raises(ValueError):
        make_analyzer(threshold=1.2)
    with pytest.raises(ValueError):
        make_analyzer(window=0)


def test_cluster_score_uses_only_pairs_compared_inside_the_window() -> None:
    analyzer = make_analyzer(window=60.0)
    analyzer.add(make_record("a", at(0)), fp((1,)))
    analyzer.add(make_record("b", at(50)), fp((1, 2)))
    analyzer.add(make_record("c", at(100)), fp((2,)))

    clusters = analyzer.finalize()

    # a and c are never compared, so their 2-bit distance does not count.
    assert analyzer.compared_pairs == 2
    assert clusters[0].similarity_score == pytest.approx(1 - 1 / 64)


def test_remainder_joined_through_duplicates_scores_from_its_component() -> None:
    analyzer = make_analyzer()
    analyzer.add(make_record("near-a", at(0), size_bytes=700), fp((3,)))
    analyzer.add(make_record("dup-1", at(100), size_bytes=500), fp())
    analyzer.add(make_record("dup-2", at(101), size_bytes=500), fp())
    analyzer.add(make_record("near-b", at(210), size_bytes=800), fp((4,)))

    clusters = analyzer.finalize()

    assert [(cluster.kind, cluster.photo_ids) for cluster in clusters] == [
        (GroupType.SIMILAR, ("near-a", "near-b")),
        (GroupType.DUPLICATE, ("dup-1", "dup-2")),
    ]
    assert 0.0 < clusters[0].similarity_score < 1.0
