from __future__ import annotations

import argparse
import random
import time
from datetime import datetime, timedelta, timezone

from photosweep.analysis.features import Fingerprint
from photosweep.analysis.similarity import SimilarityAnalyzer
from photosweep.assets.types import MediaKind, PhotoRecord


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benchmark the time-windowed similarity analyzer")
    parser.add_argument("--photos", type=int, default=20000, help="Number of synthetic photos")
    parser.add_argument("--burst-size", type=int, default=4, help="Photos per synthetic burst")
    parser.add_argument("--spacing-seconds", type=float, default=5.0, help="Seconds between consecutive photos")
    parser.add_argument("--window-seconds", type=float, default=120.0, help="Comparison window")
    parser.add_argument("--threshold", type=float, default=0.85, help="Similarity threshold")
    parser.add_argument("--seed", type=int, default=7, help="Random seed")
    return parser.parse_args()


def seed_fixture(total: int, burst_size: int, spacing_seconds: float, seed: int) -> list[tuple[PhotoRecord, Fingerprint]]:
    rng = random.Random(seed)
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    items: list[tuple[PhotoRecord, Fingerprint]] = []
    base = rng.getrandbits(64)
    for index in range(total):
        if index % burst_size == 0:
            base = rng.getrandbits(64)
        # At most four flipped bits per photo keeps burst pairs within 0.15 distance.
        noise = 0
        for _ in range(rng.randint(0, 4)):
            noise |= 1 << rng.randrange(64)
        record = PhotoRecord(
            id=f"bench-{index:07d}",
            created_at=start - timedelta(seconds=index * spacing_seconds),
            media_kind=MediaKind.IMAGE,
            width=4032,
            height=3024,
            size_bytes=2_000_000 + index,
        )
        items.append((record, Fingerprint(value=base ^ noise, bit_length=64)))
    return items


def benchmark(items: list[tuple[PhotoRecord, Fingerprint]], window_seconds: float, threshold: float) -> tuple[int, int, float]:
    analyzer = SimilarityAnalyzer(similarity_threshold=threshold, window_seconds=window_seconds)
    start = time.perf_counter()
    for record, fingerprint in items:
        analyzer.add(record, fingerprint)
    clusters = analyzer.finalize()
    elapsed = time.perf_counter() - start
    return len(clusters), analyzer.compared_pairs, elapsed


def main() -> None:
    args = parse_args()
    items = seed_fixture(args.photos, args.burst_size, args.spacing_seconds, args.seed)
    clusters, compared, elapsed = benchmark(items, args.window_seconds, args.threshold)
    print(
        f"photos={args.photos} clusters={clusters} compared_pairs={compared} "
        f"elapsed_seconds={elapsed:.3f} window_seconds={args.window_seconds}"
    )


if __name__ == "__main__":
    main()
