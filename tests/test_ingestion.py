from __future__ import annotations

import pytest

from photo_factory import at, make_record
from photosweep.assets.provider import AccessDeniedError, FetchCancelledError, InMemoryAssetProvider
from photosweep.assets.types import AssetPage, PhotoRecord
from photosweep.ingestion.service import MetadataIngestion


class ScriptedProvider:
    """Returns pre-built pages regardless of the requested offset."""

    def __init__(self, pages: list[AssetPage | Exception]):
        self._pages = list(pages)
        self.calls: list[tuple[int, int]] = []

    def fetch_page(self, offset: int, limit: int) -> AssetPage:
        self.calls.append((offset, limit))
        item = self._pages.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def load_thumbnail(self, photo_id: str, max_dimension: int):  # type: ignore[no-untyped-def]
        raise NotImplementedError


def ids(page: AssetPage) -> list[str]:
    return [record.id for record in page.records]


def test_pages_follow_library_order() -> None:
    records = [make_record(f"p{index}", at(index)) for index in range(5)]
    # Same capture time: ties are broken by id.
    records.append(make_record("p1b", at(1)))
    provider = InMemoryAssetProvider(reversed(records))

    ingestion = MetadataIngestion(provider, page_size=4)
    pages = list(ingestion.iter_pages())

    assert [ids(page) for page in pages] == [["p0", "p1", "p1b", "p2"], ["p3", "p4"]]
    assert ingestion.total_count == 6
    assert ingestion.delivered_count == 6
    assert ingestion.exhausted


def test_records_within_page_are_reordered() -> None:
    newer = make_record("newer", at(0))
    older = make_record("older", at(10))
    provider = ScriptedProvider([AssetPage(records=[older, newer], has_more=False)])

    page = MetadataIngestion(provider, page_size=10).next_page()

    assert page is not None
    assert ids(page) == ["newer", "older"]


def test_records_repeated_across_pages_are_dropped() -> None:
    a, b, c, d = (make_record(name, at(index)) for index, name in enumerate("abcd"))
    provider = ScriptedProvider(
        [
            AssetPage(records=[a, b], has_more=True, total_count=4),
            AssetPage(records=[b, c], has_more=True, total_count=4),
            AssetPage(records=[c, d], has_more=False, total_count=4),
        ]
    )

    pages = list(MetadataIngestion(provider, page_size=2).iter_pages())

    assert [ids(page) for page in pages] == [["a", "b"], ["c"], ["d"]]
    assert [call[0] for call in provider.calls] == [0, 2, 4]


def test_empty_provider_yields_nothing() -> None:
    provider = InMemoryAssetProvider([])
    ingestion = MetadataIngestion(provider, page_size=10)

    assert list(ingestion.iter_pages()) == []
    assert ingestion.next_page() is None
    assert provider.fetch_calls == 1


@pytest.mark.parametrize("error", [AccessDeniedError("no access"), FetchCancelledError("stopped")])
def test_provider_errors_pass_through(error: Exception) -> None:
    first: list[PhotoRecord] = [make_record("a", at(0))]
    provider = ScriptedProvider([AssetPage(records=first, has_more=True), error])
    ingestion = MetadataIngestion(provider, page_size=1)

    assert ingestion.next_page() is not None
    with pytest.raises(type(error)):
        ingestion.next_page()


def test_rejects_non_positive_page_size() -> None:
    with pytest.raises(ValueError):
        MetadataIngestion(InMemoryAssetProvider([]), page_size=0)
