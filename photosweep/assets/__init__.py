from photosweep.assets.directory import DirectoryAssetProvider
from photosweep.assets.provider import (
    AccessDeniedError,
    AssetNotFoundError,
    AssetProvider,
    AssetProviderError,
    AssetUnreadableError,
    FetchCancelledError,
    InMemoryAssetProvider,
)
from photosweep.assets.types import AssetPage, MediaKind, MediaSubtype, PhotoRecord

__all__ = [
    "AccessDeniedError",
    "AssetNotFoundError",
    "AssetPage",
    "AssetProvider",
    "AssetProviderError",
    "AssetUnreadableError",
    "DirectoryAssetProvider",
    "FetchCancelledError",
    "InMemoryAssetProvider",
    "MediaKind",
    "MediaSubtype",
    "PhotoRecord",
]
