from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from photosweep.assets.provider import AccessDeniedError
from photosweep.core.config import AnalysisSettings, ScanSettings, get_settings
from photosweep.core.logging import configure_logging
from photosweep.scans.service import ScanFailedError
from photosweep.worker.pipeline import run_scan_once


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan a photo library directory and save its groups")
    parser.add_argument("library_root", help="Absolute path of the library directory")
    parser.add_argument("--state-root", help="State root directory (defaults to PHOTOSWEEP_STATE_ROOT)")
    parser.add_argument("--similarity-threshold", type=float, default=None)
    parser.add_argument("--blur-threshold", type=float, default=None)
    parser.add_argument("--min-group-size", type=int, default=None)
    parser.add_argument("--no-videos", action="store_true", help="Skip large video detection")
    parser.add_argument("--no-screenshots", action="store_true", help="Skip screenshot detection")
    parser.add_argument("--no-selfies", action="store_true", help="Skip selfie detection")
    return parser


def build_analysis_settings(args: argparse.Namespace) -> AnalysisSettings:
    defaults = get_settings().analysis_settings().model_dump()
    overrides = {
        "similarity_threshold": args.similarity_threshold,
        "blur_threshold": args.blur_threshold,
        "min_group_size": args.min_group_size,
    }
    defaults.update({key: value for key, value in overrides.items() if value is not None})
    return AnalysisSettings(**defaults)


def build_scan_settings(args: argparse.Namespace) -> ScanSettings:
    defaults = get_settings().scan_settings()
    return ScanSettings(
        include_videos=defaults.include_videos and not args.no_videos,
        include_screenshots=defaults.include_screenshots and not args.no_screenshots,
        include_selfies=defaults.include_selfies and not args.no_selfies,
    )


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    if args.state_root:
        state_root = Path(args.state_root).resolve()
        state_root.mkdir(parents=True, exist_ok=True)
        os.environ["PHOTOSWEEP_STATE_ROOT"] = state_root.as_posix()
        get_settings.cache_clear()

    settings = get_settings()
    configure_logging(settings.log_level)
    try:
        analysis_settings = build_analysis_settings(args)
        scan_settings = build_scan_settings(args)
    except ValidationError as exc:
        parser.error("; ".join(str(error["msg"]) for error in exc.errors()))

    try:
        result = run_scan_once(
            Path(args.library_root).resolve(),
            analysis_settings=analysis_settings,
            scan_settings=scan_settings,
        )
    except AccessDeniedError as exc:
        print(f"access denied: {exc}", file=sys.stderr)
        return 2
    except ScanFailedError as exc:
        print(f"scan failed: {exc.reason}", file=sys.stderr)
        return 1

    if result is None:
        print("scan cancelled")
        return 1

    print(
        f"photos={result.total_photos_scanned} groups={result.groups_found} "
        f"reclaimable_bytes={result.potential_savings} skipped={result.skipped_photos} "
        f"elapsed_seconds={result.duration_seconds:.3f}"
    )
    for group_type, count in result.group_breakdown.items():
        print(f"- {group_type.value}: {count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
