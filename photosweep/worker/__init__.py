from photosweep.worker.pipeline import LibraryNotConfiguredError, load_saved_groups, run_scan_once

__all__ = [
    "LibraryNotConfiguredError",
    "run_scan_once",
    "load_saved_groups",
]
