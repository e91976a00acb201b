from __future__ import annotations

import threading
from typing import Callable, Iterable, Mapping, Protocol, Union

from PIL import Image

from photosweep.assets.types import AssetPage, PhotoRecord, library_sort_key


class AssetProviderError(RuntimeError):
    pass


class AccessDeniedError(AssetProviderError):
    pass


class AssetNotFoundError(AssetProviderError):
    pass


class FetchCancelledError(AssetProviderError):
    pass


class AssetUnreadableError(AssetProviderError):
    pass


class AssetProvider(Protocol):
    def fetch_page(self, offset: int, limit: int) -> AssetPage: ...

    def load_thumbnail(self, photo_id: str, max_dimension: int) -> Image.Image: ...


ThumbnailSource = Union[Image.Image, Callable[[], Image.Image]]


class InMemoryAssetProvider:
    """Serves a fixed set of records and thumbnails, e.g. for tests or imports."""

    def __init__(
        self,
        records: Iterable[PhotoRecord],
        thumbnails: Mapping[str, ThumbnailSource] | None = None,
    ):
        self._records = sorted(records, key=library_sort_key)
        self._thumbnails = dict(thumbnails or {})
        self._lock = threading.Lock()
        self.fetch_calls = 0

    def fetch_page(self, offset: int, limit: int) -> AssetPage:
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        with self._lock:
            self.fetch_calls += 1
        page = self._records[offset : offset + limit]
        return AssetPage(
            records=list(page),
            has_more=offset + len(page) < len(self._records),
            total_count=len(self._records),
        )

    def load_thumbnail(self, photo_id: str, max_dimension: int) -> Image.Image:
        source = self._thumbnails.get(photo_id)
        if source is None:
            raise AssetNotFoundError(f"No thumbnail for photo {photo_id}")
        image = source() if callable(source) else source
        thumb = image.copy()
        thumb.thumbnail((max_dimension, max_dimension))
        return thumb
