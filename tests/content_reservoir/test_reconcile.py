"""Filesystem reconciliation between the ledger, channel metadata and disk."""

from __future__ import annotations

import os

from ContentReservoir import Reservoir
from ContentReservoir.metadata import ContentMetadata
from reservoir_fakes import StubFetcher, make_item, read_metadata, write_metadata


class TestAdoption:
    def test_untracked_markdown_is_adopted(self, reservoir: Reservoir, news) -> None:
        channel_dir = reservoir.store.resolve_channel_dir(news.id)
        dropped = channel_dir / "dropped.md"
        dropped.write_text("# Dropped\n", encoding="utf-8")
        os.utime(dropped, (1_700_000_000, 1_700_000_000))
        (channel_dir / "notes.txt").write_text("ignored", encoding="utf-8")

        report = reservoir.sync_content_tracking()

        assert report.discovered == 1
        assert report.channels_written == [news.id]
        (item,) = reservoir.store.load_item_metadata(news.id)
        assert item.file_path == "channels/news/dropped.md"
        assert item.fetched_at == "2023-11-14T22:13:20.000Z"
        assert reservoir.ledger.location_of(item.id) == "channels/news/dropped.md"

    def test_adopted_documents_receive_channel_locks(self, reservoir: Reservoir, news) -> None:
        reservoir.retain_channel(news.id, "keep")
        (reservoir.store.resolve_channel_dir(news.id) / "dropped.md").write_text("x", encoding="utf-8")
        reservoir.sync_content_tracking()
        (item,) = reservoir.store.load_item_metadata(news.id)
        assert item.locks == ["keep"]

    def test_nested_markdown_is_not_adopted(self, reservoir: Reservoir, news) -> None:
        nested = reservoir.store.resolve_channel_dir(news.id) / "post" / "inner.md"
        nested.parent.mkdir()
        nested.write_text("# Inner\n", encoding="utf-8")
        assert reservoir.sync_content_tracking().discovered == 0


class TestRemoval:
    def test_deleted_document_drops_record_and_binding(
        self, reservoir: Reservoir, stub_fetcher: StubFetcher, news
    ) -> None:
        stub_fetcher.queue(make_item("a"), make_item("b"))
        reservoir.fetch_channel(news.id)
        (reservoir.store.resolve_channel_dir(news.id) / "a.md").unlink()

        report = reservoir.sync_content_tracking()

        assert report.stale_ledger_ids == ["1"]
        assert report.removed == 1
        assert [item.id for item in reservoir.store.load_item_metadata(news.id)] == ["2"]
        assert reservoir.ledger.all() == {"2": "channels/news/b.md"}

    def test_record_pointing_outside_channel_is_dropped(self, reservoir: Reservoir, news) -> None:
        other = reservoir.add_channel({"name": "Other", "fetch_method": "stub"})
        stray = reservoir.store.resolve_channel_dir(other.id) / "stray.md"
        stray.write_text("# Stray\n", encoding="utf-8")
        reservoir.sync_content_tracking()
        (adopted,) = reservoir.store.load_item_metadata(other.id)
        write_metadata(
            reservoir,
            news.id,
            {"items": [{"id": adopted.id, "locks": [], "file_path": "channels/other/stray.md"}]},
        )

        reservoir.sync_content_tracking()

        assert reservoir.store.load_item_metadata(news.id) == []
        assert [item.id for item in reservoir.store.load_item_metadata(other.id)] == [adopted.id]

    def test_duplicate_records_keep_the_first(self, reservoir: Reservoir, stub_fetcher: StubFetcher, news) -> None:
        stub_fetcher.queue(make_item("a"))
        reservoir.fetch_channel(news.id)
        document = read_metadata(reservoir, news.id)
        document["items"].append(dict(document["items"][0]))
        write_metadata(reservoir, news.id, document)

        assert reservoir.sync_content_tracking().removed == 1
        assert len(reservoir.store.load_item_metadata(news.id)) == 1


class TestRepair:
    def test_file_path_drift_is_repaired_from_ledger(
        self, reservoir: Reservoir, stub_fetcher: StubFetcher, news
    ) -> None:
        stub_fetcher.queue(make_item("a"))
        reservoir.fetch_channel(news.id)
        write_metadata(
            reservoir,
            news.id,
            {"items": [{"id": "1", "locks": ["global"], "fetched_at": "2024-01-01T00:00:00.000Z", "file_path": "channels/news/gone.md"}]},
        )

        report = reservoir.sync_content_tracking()

        assert report.repaired == 1
        assert reservoir.store.load_item_metadata(news.id) == [
            ContentMetadata(
                id="1",
                locks=["global"],
                fetched_at="2024-01-01T00:00:00.000Z",
                file_path="channels/news/a.md",
            )
        ]

    def test_lost_ledger_binding_is_restored(self, reservoir: Reservoir, stub_fetcher: StubFetcher, news) -> None:
        stub_fetcher.queue(make_item("a"))
        reservoir.fetch_channel(news.id)
        reservoir.ledger.map_path.unlink()
        reservoir.ledger.counter_path.unlink()

        reservoir.sync_content_tracking()

        assert reservoir.ledger.all() == {"1": "channels/news/a.md"}
        assert reservoir.ledger.high_water_mark() == 1
        assert reservoir.ledger.assign("channels/news/b.md") == "2"

    def test_missing_fetched_at_is_filled_from_mtime(self, reservoir: Reservoir, news) -> None:
        path = reservoir.store.resolve_channel_dir(news.id) / "a.md"
        path.write_text("# A\n", encoding="utf-8")
        os.utime(path, (1_600_000_000, 1_600_000_000))
        reservoir.ledger.bind("5", "channels/news/a.md")
        write_metadata(reservoir, news.id, {"items": [{"id": "5", "read": False}]})

        reservoir.sync_content_tracking()

        (item,) = reservoir.store.load_item_metadata(news.id)
        assert item.locks == ["global"]
        assert item.fetched_at == "2020-09-13T12:26:40.000Z"
        assert item.file_path == "channels/news/a.md"


class TestIdempotence:
    def test_second_pass_writes_nothing(self, reservoir: Reservoir, stub_fetcher: StubFetcher, news) -> None:
        stub_fetcher.queue(make_item("a"), make_item("b"))
        reservoir.fetch_channel(news.id)
        (reservoir.store.resolve_channel_dir(news.id) / "dropped.md").write_text("x", encoding="utf-8")
        assert reservoir.sync_content_tracking().changed is True

        metadata_path = reservoir.store.resolve_channel_dir(news.id) / "metadata.json"
        before = (metadata_path.read_text(encoding="utf-8"), metadata_path.stat().st_mtime_ns)
        map_before = reservoir.ledger.map_path.read_text(encoding="utf-8")

        report = reservoir.sync_content_tracking()

        assert report.changed is False
        assert report.channels_written == []
        assert (metadata_path.read_text(encoding="utf-8"), metadata_path.stat().st_mtime_ns) == before
        assert reservoir.ledger.map_path.read_text(encoding="utf-8") == map_before
