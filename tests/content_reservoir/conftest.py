"""Fixtures for reservoir tests: a scriptable fetcher and a fresh reservoir."""

from __future__ import annotations

from pathlib import Path

import pytest

from ContentReservoir import Reservoir
from ContentReservoir.config import Channel
from reservoir_fakes import StubFetcher


@pytest.fixture
def stub_fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def reservoir_dir(tmp_path: Path) -> Path:
    return tmp_path / "reservoir"


@pytest.fixture
def reservoir(reservoir_dir: Path, stub_fetcher: StubFetcher) -> Reservoir:
    return Reservoir.initialize(reservoir_dir, fetcher_resolver=lambda method: stub_fetcher)


@pytest.fixture
def news(reservoir: Reservoir) -> Channel:
    """A ``keep-both`` channel named ``News`` served by the stub fetcher."""

    return reservoir.add_channel(
        {"name": "News", "fetch_method": "stub", "fetch_params": {"url": "https://example.com/feed"}}
    )
