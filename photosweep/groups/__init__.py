from photosweep.groups.assembler import BestShotSelector, GroupAssembler
from photosweep.groups.store import SCHEMA_VERSION, GroupLoadError, GroupSaveError, GroupStore
from photosweep.groups.types import (
    GroupInvariantError,
    GroupStatistics,
    PhotoGroup,
    derive_group_id,
    summarize_groups,
)

__all__ = [
    "BestShotSelector",
    "GroupAssembler",
    "GroupInvariantError",
    "GroupLoadError",
    "GroupSaveError",
    "GroupStatistics",
    "GroupStore",
    "PhotoGroup",
    "SCHEMA_VERSION",
    "derive_group_id",
    "summarize_groups",
]
