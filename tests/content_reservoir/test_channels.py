# === NAVMAP v1 ===
# {
#   "module": "tests.content_reservoir.test_channels",
#   "purpose": "Channel store creation, updates, deletion and document migration",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Channel store tests."""

from __future__ import annotations

import json

import pytest

from ContentReservoir import Reservoir
from ContentReservoir.config import DEFAULT_REFRESH_INTERVAL_SECONDS
from ContentReservoir.errors import ChannelNotFoundError, InvalidInputError


def _channel_json(reservoir: Reservoir, channel_id: str) -> dict:
    path = reservoir.store.resolve_channel_dir(channel_id) / "channel.json"
    return json.loads(path.read_text(encoding="utf-8"))


class TestCreate:
    def test_id_is_slug_of_name(self, reservoir: Reservoir) -> None:
        channel = reservoir.add_channel({"name": "Hacker News", "fetch_method": "rss"})
        assert channel.id == "hacker-news"
        assert channel.duplicate_strategy == "keep-both"
        assert channel.refresh_interval == DEFAULT_REFRESH_INTERVAL_SECONDS
        channel_dir = reservoir.directory / "channels" / "hacker-news"
        assert (channel_dir / "channel.json").is_file()
        assert json.loads((channel_dir / "metadata.json").read_text(encoding="utf-8")) == {"items": []}

    def test_slug_collisions_get_numeric_suffix(self, reservoir: Reservoir) -> None:
        ids = [
            reservoir.add_channel({"name": name, "fetch_method": "rss"}).id
            for name in ("Hacker News", "hacker news", "HACKER-NEWS")
        ]
        assert ids == ["hacker-news", "hacker-news-2", "hacker-news-3"]

    def test_unsluggable_name_falls_back(self, reservoir: Reservoir) -> None:
        assert reservoir.add_channel({"name": "!!!", "fetch_method": "rss"}).id == "channel"

    def test_inputs_are_normalised(self, reservoir: Reservoir) -> None:
        channel = reservoir.add_channel(
            {
                "name": "  Blog  ",
                "fetch_method": "web_page",
                "fetch_params": {" url ": " https://example.com ", "": "x", "n": 3},
                "id_field": "   ",
                "retained_locks": ["keep", " keep ", "", "archive"],
                "refresh_interval": 0,
            }
        )
        assert channel.name == "Blog"
        assert channel.fetch_params == {"url": "https://example.com"}
        assert channel.id_field is None
        assert channel.retained_locks == ["keep", "archive"]
        assert channel.refresh_interval == DEFAULT_REFRESH_INTERVAL_SECONDS

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"name": "  "}, "name must not be empty"),
            ({"duplicate_strategy": "replace"}, "Invalid duplicate strategy 'replace'"),
            ({"rate_limit_interval": -1}, "rate_limit_interval must be >= 0"),
            ({"retained_locks": ["a,b"]}, "commas are not allowed"),
            ({"colour": "red"}, "colour"),
        ],
    )
    def test_invalid_input_is_rejected_before_writing(
        self, reservoir: Reservoir, overrides: dict, message: str
    ) -> None:
        with pytest.raises(InvalidInputError) as excinfo:
            reservoir.add_channel({"name": "Blog", "fetch_method": "rss", **overrides})
        assert message in str(excinfo.value)
        assert reservoir.list_channels() == []


class TestUpdate:
    def test_update_merges_provided_fields(self, reservoir: Reservoir) -> None:
        channel = reservoir.add_channel(
            {"name": "Blog", "fetch_method": "rss", "fetch_params": {"url": "https://a"}}
        )
        updated = reservoir.edit_channel(channel.id, {"rate_limit_interval": 600, "id_field": "guid"})
        assert updated.rate_limit_interval == 600
        assert updated.id_field == "guid"
        assert updated.fetch_params == {"url": "https://a"}
        assert updated.created_at == channel.created_at
        assert reservoir.view_channel(channel.id) == updated

    def test_non_positive_refresh_interval_resets_to_default(self, reservoir: Reservoir) -> None:
        channel = reservoir.add_channel({"name": "Blog", "fetch_method": "rss", "refresh_interval": 60})
        updated = reservoir.edit_channel(channel.id, {"refresh_interval": 0})
        assert updated.refresh_interval == DEFAULT_REFRESH_INTERVAL_SECONDS

    def test_unknown_channel_raises(self, reservoir: Reservoir) -> None:
        with pytest.raises(ChannelNotFoundError, match="Channel not found: ghost"):
            reservoir.edit_channel("ghost", {"name": "x"})

    def test_renamed_directory_is_still_resolved(self, reservoir: Reservoir) -> None:
        channel = reservoir.add_channel({"name": "Blog", "fetch_method": "rss"})
        channels_root = reservoir.directory / "channels"
        (channels_root / "blog").rename(channels_root / "renamed-by-hand")
        assert reservoir.view_channel(channel.id).name == "Blog"
        assert reservoir.store.resolve_channel_dir(channel.id).name == "renamed-by-hand"


class TestDelete:
    def test_delete_removes_directory_and_ledger_bindings(self, reservoir: Reservoir) -> None:
        blog = reservoir.add_channel({"name": "Blog", "fetch_method": "rss"})
        other = reservoir.add_channel({"name": "Other", "fetch_method": "rss"})
        (reservoir.directory / "channels" / "blog" / "post.md").write_text("# Post\n", encoding="utf-8")
        (reservoir.directory / "channels" / "other" / "keep.md").write_text("# Keep\n", encoding="utf-8")
        reservoir.sync_content_tracking()
        assert len(reservoir.ledger.all()) == 2

        reservoir.delete_channel(blog.id)

        assert not (reservoir.directory / "channels" / "blog").exists()
        assert list(reservoir.ledger.all().values()) == ["channels/other/keep.md"]
        assert [channel.id for channel in reservoir.list_channels()] == [other.id]
        with pytest.raises(ChannelNotFoundError):
            reservoir.view_channel(blog.id)


class TestChannelMigration:
    def test_camel_case_document_is_rewritten_once(self, reservoir: Reservoir) -> None:
        channel_dir = reservoir.directory / "channels" / "legacy"
        channel_dir.mkdir()
        (channel_dir / "channel.json").write_text(
            json.dumps(
                {
                    "id": "legacy",
                    "name": "Legacy",
                    "createdAt": "2023-01-01T00:00:00.000Z",
                    "fetchMethod": "rss",
                    "fetchArgs": {"url": "https://example.com/rss"},
                    "refreshInterval": -5,
                    "duplicateStrategy": "sometimes",
                    "retentionStrategy": "retain_all",
                }
            ),
            encoding="utf-8",
        )

        channel = reservoir.view_channel("legacy")

        assert channel.fetch_params == {"url": "https://example.com/rss"}
        assert channel.refresh_interval == DEFAULT_REFRESH_INTERVAL_SECONDS
        assert channel.duplicate_strategy == "keep-both"
        assert channel.created_at == "2023-01-01T00:00:00.000Z"
        stored = _channel_json(reservoir, "legacy")
        assert stored == channel.to_document()
        assert "retentionStrategy" not in stored

    def test_top_level_url_folds_into_fetch_params(self, reservoir: Reservoir) -> None:
        channel_dir = reservoir.directory / "channels" / "old"
        channel_dir.mkdir()
        (channel_dir / "channel.json").write_text(
            json.dumps({"id": "old", "name": "Old", "fetchMethod": "web_page", "url": "https://a"}),
            encoding="utf-8",
        )
        assert reservoir.view_channel("old").fetch_params == {"url": "https://a"}

    def test_documents_without_id_are_ignored(self, reservoir: Reservoir) -> None:
        channel_dir = reservoir.directory / "channels" / "broken"
        channel_dir.mkdir()
        (channel_dir / "channel.json").write_text(json.dumps({"name": "Broken"}), encoding="utf-8")
        assert reservoir.list_channels() == []
