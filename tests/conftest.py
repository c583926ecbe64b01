"""
Pytest Configuration

Puts ``src`` on ``sys.path`` and isolates every test from the user's
configuration directory and ``RES_*`` environment.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point user config and custom fetchers at a throwaway directory."""

    config_home = tmp_path_factory.mktemp("xdg-config")
    for name in (
        "RES_LOG_LEVEL",
        "RES_LOCK_TIMEOUT",
        "RES_LOCK_POLL_INTERVAL",
        "RES_LOCK_USE_SOFT",
        "RES_TICK_INTERVAL",
        "RES_HTTP_RETRIES",
        "RES_DIR",
        "APPDATA",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("RES_FETCHERS_DIR", str(config_home / "res" / "fetchers"))
    return config_home
