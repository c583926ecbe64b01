# === NAVMAP v1 ===
# {
#   "module": "tests.content_reservoir.test_eviction",
#   "purpose": "Size-budget eviction order, retention safety and cleanup",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Eviction engine tests."""

from __future__ import annotations

from typing import Dict, Optional

import pytest

from ContentReservoir import Reservoir
from reservoir_fakes import StubFetcher, make_item

DOC_BYTES = 10_000
MB = 1024 * 1024


def _stock(reservoir: Reservoir, stub_fetcher: StubFetcher, channel_id: str, fetched_at: Dict[str, Optional[str]]) -> None:
    """Fetch one large document per key and pin its ``fetched_at``."""

    stub_fetcher.queue(*(make_item(name, "x" * DOC_BYTES) for name in fetched_at))
    reservoir.fetch_channel(channel_id)
    items = reservoir.store.load_item_metadata(channel_id)
    by_name = {item.file_path.rsplit("/", 1)[-1][:-3]: item for item in items}
    for name, value in fetched_at.items():
        by_name[name].fetched_at = value
    reservoir.store.save_item_metadata(channel_id, items)


def _names(reservoir: Reservoir, channel_id: str) -> set:
    return {path.stem for path in reservoir.store.resolve_channel_dir(channel_id).glob("*.md")}


def _budget_below_current(reservoir: Reservoir, margin: int) -> float:
    return (reservoir.eviction.measure() - margin) / MB


@pytest.fixture
def stocked(reservoir: Reservoir, stub_fetcher: StubFetcher, news) -> Reservoir:
    _stock(
        reservoir,
        stub_fetcher,
        news.id,
        {
            "newest": "2024-03-01T00:00:00.000Z",
            "middle": "2024-02-01T00:00:00.000Z",
            "oldest": "2024-01-01T00:00:00.000Z",
            "undated": None,
        },
    )
    return reservoir


class TestEviction:
    def test_no_budget_means_no_eviction(self, stocked: Reservoir) -> None:
        report = stocked.clean()
        assert report.evicted == 0
        assert report.budget_bytes is None
        assert _names(stocked, "news") == {"newest", "middle", "oldest", "undated"}

    def test_oldest_unretained_documents_go_first(self, stocked: Reservoir) -> None:
        report = stocked.set_max_size(_budget_below_current(stocked, int(DOC_BYTES * 1.5)))

        assert report.evicted == 2
        assert _names(stocked, "news") == {"newest", "middle"}
        assert report.bytes_freed >= 2 * DOC_BYTES
        assert report.size_after <= report.budget_bytes

    def test_missing_fetched_at_sorts_oldest(self, stocked: Reservoir) -> None:
        stocked.set_max_size(_budget_below_current(stocked, DOC_BYTES // 2))
        assert _names(stocked, "news") == {"newest", "middle", "oldest"}

    def test_retained_documents_are_never_evicted(self, stocked: Reservoir) -> None:
        for item in stocked.store.load_item_metadata("news"):
            stocked.retain_content(item.id, "keep")

        report = stocked.set_max_size(0.001)

        assert report.evicted == 0
        assert report.size_after > report.budget_bytes
        assert len(_names(stocked, "news")) == 4

    def test_retained_oldest_is_skipped(self, stocked: Reservoir) -> None:
        oldest = next(
            item for item in stocked.store.load_item_metadata("news") if item.file_path.endswith("/oldest.md")
        )
        stocked.retain_content(oldest.id)

        stocked.set_max_size(_budget_below_current(stocked, int(DOC_BYTES * 1.5)))

        assert _names(stocked, "news") == {"newest", "oldest"}

    def test_eviction_removes_metadata_ledger_and_resources(
        self, reservoir: Reservoir, stub_fetcher: StubFetcher, news
    ) -> None:
        stub_fetcher.queue(make_item("doomed", "x" * DOC_BYTES, supplementary={"img/a.png": b"\x89PNG"}))
        reservoir.fetch_channel(news.id)
        channel_dir = reservoir.store.resolve_channel_dir(news.id)
        assert (channel_dir / "doomed" / "img" / "a.png").is_file()

        report = reservoir.set_max_size(0.001)

        assert report.deleted_ids == ["1"]
        assert not (channel_dir / "doomed.md").exists()
        assert not (channel_dir / "doomed").exists()
        assert reservoir.store.load_item_metadata(news.id) == []
        assert reservoir.ledger.location_of("1") is None
        assert reservoir.ledger.assign("channels/news/next.md") == "2"

    def test_budget_is_reread_from_disk(self, stocked: Reservoir) -> None:
        stocked.set_max_size(None)
        other = Reservoir.load(stocked.directory)
        other.set_max_size(0.001)
        assert stocked.config.max_size_mb == 0.001
        assert stocked.clean().evicted == 0
        assert _names(stocked, "news") == set()
