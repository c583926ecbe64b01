# === NAVMAP v1 ===
# {
#   "module": "tests.content_reservoir.test_fetchers",
#   "purpose": "Built-in RSS/web page fetchers over MockTransport and custom executables",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Fetcher tests."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path
from typing import Callable, List

import httpx
import pytest

from ContentReservoir.content_parser import parse_front_matter
from ContentReservoir.errors import FetchError, InvalidInputError
from ContentReservoir.fetchers import (
    CustomFetcher,
    RssFetcher,
    WebPageFetcher,
    list_custom_fetchers,
    register_custom_fetcher,
    resolve_fetcher,
)
from ContentReservoir.settings import ReservoirSettings

FEED_URL = "https://example.com/feed.xml"
PAGE_URL = "https://example.com/article"

RSS_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example</title>
    <link>https://example.com/</link>
    <description>Example feed</description>
    <item>
      <title>First Post</title>
      <link>https://example.com/first</link>
      <guid>urn:example:1</guid>
      <pubDate>Wed, 01 May 2024 12:00:00 GMT</pubDate>
      <description>&lt;p&gt;Hello &lt;b&gt;readers&lt;/b&gt;&lt;/p&gt;&lt;script&gt;alert(1)&lt;/script&gt;</description>
    </item>
    <item>
      <title>Second: The Sequel</title>
      <link>https://example.com/second</link>
      <guid>urn:example:2</guid>
      <description>Plain summary</description>
    </item>
  </channel>
</rss>
"""

ARTICLE_HTML = """<!DOCTYPE html>
<html>
  <head><title>An Important Article</title></head>
  <body>
    <nav>Home | About</nav>
    <article>
      <h1>An Important Article</h1>
      <p>This important paragraph explains how reservoirs keep fetched documents until a size budget forces eviction of the oldest unretained items.</p>
      <p>A second paragraph adds more detail so that main-content extraction has enough text to work with.</p>
    </article>
  </body>
</html>
"""


def _settings(retries: int = 3) -> ReservoirSettings:
    return ReservoirSettings(http_retries=retries, http_timeout=5.0)


def _transport(responses: List[httpx.Response], seen: List[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.pop(0)

    return httpx.MockTransport(handler)


def _no_sleep() -> Callable[[float], None]:
    return lambda _seconds: None


class TestRssFetcher:
    def test_entries_become_markdown_documents(self) -> None:
        seen: List[httpx.Request] = []
        transport = _transport([httpx.Response(200, text=RSS_DOCUMENT)], seen)
        fetcher = RssFetcher(settings=_settings(), transport=transport, sleep=_no_sleep())

        items = fetcher.fetch({"url": FEED_URL}, "news")

        assert [item.source_file_name for item in items] == ["first-post.md", "second-the-sequel.md"]
        first = items[0]
        front = parse_front_matter(first.content)
        assert front["title"] == "First Post"
        assert front["url"] == "https://example.com/first"
        assert front["guid"] == "urn:example:1"
        assert "Hello" in first.content and "readers" in first.content
        assert "alert" not in first.content
        assert first.url == "https://example.com/first"
        assert parse_front_matter(items[1].content)["title"] == "Second: The Sequel"
        assert seen[0].headers["user-agent"].startswith("ContentReservoir/")

    def test_missing_url_param(self) -> None:
        with pytest.raises(FetchError, match="rss fetcher requires --fetch-param"):
            RssFetcher(settings=_settings()).fetch({}, "news")

    def test_http_error_status(self) -> None:
        transport = _transport([httpx.Response(404)], [])
        fetcher = RssFetcher(settings=_settings(), transport=transport, sleep=_no_sleep())
        with pytest.raises(FetchError) as excinfo:
            fetcher.fetch({"url": FEED_URL}, "news")
        assert str(excinfo.value) == f"Failed to fetch {FEED_URL}: 404 Not Found"
        assert excinfo.value.details == {"status": 404}

    def test_retryable_statuses_are_retried(self) -> None:
        seen: List[httpx.Request] = []
        transport = _transport(
            [httpx.Response(503), httpx.Response(429), httpx.Response(200, text=RSS_DOCUMENT)], seen
        )
        fetcher = RssFetcher(settings=_settings(retries=3), transport=transport, sleep=_no_sleep())
        assert len(fetcher.fetch({"url": FEED_URL}, "news")) == 2
        assert len(seen) == 3

    def test_retries_exhausted_returns_last_status(self) -> None:
        seen: List[httpx.Request] = []
        transport = _transport([httpx.Response(503), httpx.Response(503)], seen)
        fetcher = RssFetcher(settings=_settings(retries=2), transport=transport, sleep=_no_sleep())
        with pytest.raises(FetchError, match="503 Service Unavailable"):
            fetcher.fetch({"url": FEED_URL}, "news")
        assert len(seen) == 2

    def test_unparseable_feed(self) -> None:
        transport = _transport([httpx.Response(200, text="<<<not a feed")], [])
        fetcher = RssFetcher(settings=_settings(), transport=transport, sleep=_no_sleep())
        with pytest.raises(FetchError, match="Failed to parse feed"):
            fetcher.fetch({"url": FEED_URL}, "news")


class TestWebPageFetcher:
    def test_page_becomes_single_document(self) -> None:
        transport = _transport(
            [httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html; charset=utf-8"})], []
        )
        fetcher = WebPageFetcher(settings=_settings(), transport=transport, sleep=_no_sleep())

        (item,) = fetcher.fetch({"url": PAGE_URL}, "web")

        assert item.source_file_name == "an-important-article.md"
        assert item.url == PAGE_URL
        assert "important paragraph" in item.content

    def test_non_html_is_rejected(self) -> None:
        transport = _transport(
            [httpx.Response(200, json={"a": 1})], []
        )
        fetcher = WebPageFetcher(settings=_settings(), transport=transport, sleep=_no_sleep())
        with pytest.raises(FetchError, match="Unsupported content type for .*: application/json"):
            fetcher.fetch({"url": PAGE_URL}, "web")


@pytest.mark.skipif(sys.platform == "win32", reason="shell script fetchers need a POSIX shell")
class TestCustomFetcher:
    def _script(self, directory: Path, body: str) -> Path:
        script = directory / "fetch.sh"
        script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        return script

    def test_outputs_and_resources_are_collected(self, tmp_path: Path) -> None:
        script = self._script(
            tmp_path,
            'mkdir -p outs/report/img\n'
            'printf "# Report\\n\\nargs: %s\\nchannel: %s\\n" "$*" "$RES_CHANNEL_ID" > outs/report.md\n'
            'printf "png" > outs/report/img/chart.png\n'
            'printf "# Other\\n" > outs/other.md\n'
            'printf "ignored" > outs/notes.txt\n',
        )

        items = CustomFetcher(script).fetch({"url": "https://example.com", "limit": "5"}, "custom-chan")

        assert [item.source_file_name for item in items] == ["other.md", "report.md"]
        report = items[1]
        assert "url=https://example.com" in report.content
        assert "limit=5" in report.content
        assert "channel: custom-chan" in report.content
        assert [(f.relative_path, f.content) for f in report.supplementary_files] == [("img/chart.png", b"png")]
        assert items[0].supplementary_files == []

    def test_nonzero_exit_raises_with_stderr(self, tmp_path: Path) -> None:
        script = self._script(tmp_path, 'echo "feed unreachable" >&2\nexit 3\n')
        with pytest.raises(FetchError) as excinfo:
            CustomFetcher(script).fetch({}, "chan")
        assert str(excinfo.value) == "Custom fetcher fetch.sh exited with status 3: feed unreachable"
        assert excinfo.value.details == {"returncode": 3, "stderr": "feed unreachable"}

    def test_invalid_utf8_output_is_replaced(self, tmp_path: Path) -> None:
        script = self._script(
            tmp_path,
            'printf "# Caf\\351\\n\\377\\376 body\\n" > outs/cafe.md\n'
            'printf "warn \\377\\n" >&2\n'
            'printf "\\377\\n"\n',
        )

        (item,) = CustomFetcher(script).fetch({}, "chan")

        assert item.content == "# Caf\ufffd\n\ufffd\ufffd body\n"

    def test_invalid_utf8_stderr_still_raises_fetch_error(self, tmp_path: Path) -> None:
        script = self._script(tmp_path, 'printf "bad \\377 bytes\\n" >&2\nexit 2\n')
        with pytest.raises(FetchError) as excinfo:
            CustomFetcher(script).fetch({}, "chan")
        assert excinfo.value.details == {"returncode": 2, "stderr": "bad \ufffd bytes"}

    def test_missing_executable(self, tmp_path: Path) -> None:
        with pytest.raises(FetchError, match="Custom fetcher not found"):
            CustomFetcher(tmp_path / "absent").fetch({}, "chan")


class TestRegistry:
    def test_register_copies_and_marks_executable(self, tmp_path: Path) -> None:
        source = tmp_path / "source.sh"
        source.write_text("#!/bin/sh\n", encoding="utf-8")
        fetchers_dir = tmp_path / "fetchers"

        target = register_custom_fetcher("hn", source, fetchers_dir)

        assert target == fetchers_dir / "hn"
        assert target.read_text(encoding="utf-8") == "#!/bin/sh\n"
        assert os.access(target, os.X_OK)
        assert list_custom_fetchers(fetchers_dir) == ["hn"]

    @pytest.mark.parametrize("name", ["", "  ", "../evil", "a/b", ".."])
    def test_invalid_names_are_rejected(self, tmp_path: Path, name: str) -> None:
        source = tmp_path / "source.sh"
        source.write_text("#!/bin/sh\n", encoding="utf-8")
        with pytest.raises(InvalidInputError, match="Invalid fetcher name"):
            register_custom_fetcher(name, source, tmp_path / "fetchers")

    def test_missing_source_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidInputError, match="Fetcher executable not found"):
            register_custom_fetcher("hn", tmp_path / "nope.sh", tmp_path / "fetchers")

    def test_list_without_directory_is_empty(self, tmp_path: Path) -> None:
        assert list_custom_fetchers(tmp_path / "absent") == []

    def test_resolve_builtin_and_custom(self, tmp_path: Path) -> None:
        assert isinstance(resolve_fetcher("rss", tmp_path), RssFetcher)
        assert isinstance(resolve_fetcher("web_page", tmp_path), WebPageFetcher)
        custom = resolve_fetcher("hn", tmp_path)
        assert isinstance(custom, CustomFetcher)
        assert custom.executable == tmp_path / "hn"
