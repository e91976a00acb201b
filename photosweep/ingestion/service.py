from __future__ import annotations

import logging
from typing import Iterator

from photosweep.assets.provider import AssetProvider
from photosweep.assets.types import AssetPage, library_sort_key

logger = logging.getLogger(__name__)


class MetadataIngestion:
    """Pages through the provider in library order for a single scan.

    Records inside a page are re-sorted (newest first, id ascending) and any
    record already delivered by an earlier page is dropped, so a provider that
    shifts under concurrent inserts never yields a photo twice. Provider errors
    propagate unchanged.
    """

    def __init__(self, provider: AssetProvider, page_size: int):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._provider = provider
        self._page_size = page_size
        self._offset = 0
        self._exhausted = False
        self._seen: set[str] = set()
        self._last_key: tuple[float, str] | None = None
        self.total_count: int | None = None

    @property
    def delivered_count(self) -> int:
        return len(self._seen)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def next_page(self) -> AssetPage | None:
        if self._exhausted:
            return None

        page = self._provider.fetch_page(self._offset, self._page_size)
        if page.total_count is not None:
            self.total_count = page.total_count
        self._offset += len(page.records)

        if not page.records and page.has_more:
            logger.warning("Provider returned an empty page at offset %d while reporting more data", self._offset)
        if not page.records or not page.has_more:
            self._exhausted = True

        fresh = [record for record in sorted(page.records, key=library_sort_key) if record.id not in self._seen]
        if fresh and self._last_key is not None and library_sort_key(fresh[0]) < self._last_key:
            logger.warning("Provider page at offset %d is out of library order", self._offset)
        if fresh:
            self._last_key = library_sort_key(fresh[-1])
        self._seen.update(record.id for record in fresh)

        if not fresh and self._exhausted:
            return None
        return AssetPage(records=fresh, has_more=not self._exhausted, total_count=self.total_count)

    def iter_pages(self) -> Iterator[AssetPage]:
        while True:
            page = self.next_page()
            if page is None:
                return
            yield page
