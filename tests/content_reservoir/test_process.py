"""Background fetcher process marker and start/stop/status control."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import psutil
import pytest

from ContentReservoir import Reservoir, ReservoirNotFoundError
from ContentReservoir.errors import FetcherAlreadyRunningError
from ContentReservoir.scheduler import (
    SchedulerState,
    claim_marker,
    get_status,
    release_marker,
    run_foreground,
    start,
    stop,
    write_status,
)
from ContentReservoir.scheduler.process import NOT_RUNNING_MESSAGE, is_process_running, read_marker
from ContentReservoir.scheduler.state import pid_path


def _dead_pid() -> int:
    candidate = 999_999
    while psutil.pid_exists(candidate):
        candidate -= 1
    return candidate


class TestMarker:
    def test_claim_writes_pid(self, tmp_path: Path) -> None:
        claim_marker(tmp_path, os.getpid())
        assert pid_path(tmp_path).read_text(encoding="utf-8").strip() == str(os.getpid())
        assert read_marker(tmp_path) == os.getpid()

    def test_claim_by_same_pid_is_idempotent(self, tmp_path: Path) -> None:
        claim_marker(tmp_path, os.getpid())
        claim_marker(tmp_path, os.getpid())
        assert read_marker(tmp_path) == os.getpid()

    def test_live_holder_blocks_claim(self, tmp_path: Path) -> None:
        claim_marker(tmp_path, os.getpid())
        with pytest.raises(FetcherAlreadyRunningError) as excinfo:
            claim_marker(tmp_path, _dead_pid())
        assert excinfo.value.pid == os.getpid()

    def test_stale_marker_is_replaced(self, tmp_path: Path) -> None:
        pid_path(tmp_path).write_text(f"{_dead_pid()}\n", encoding="utf-8")
        claim_marker(tmp_path, os.getpid())
        assert read_marker(tmp_path) == os.getpid()

    def test_garbage_marker_is_replaced(self, tmp_path: Path) -> None:
        pid_path(tmp_path).write_text("garbage", encoding="utf-8")
        claim_marker(tmp_path, os.getpid())
        assert read_marker(tmp_path) == os.getpid()

    def test_release_only_removes_own_marker(self, tmp_path: Path) -> None:
        claim_marker(tmp_path, os.getpid())
        release_marker(tmp_path, os.getpid() + 1)
        assert pid_path(tmp_path).exists()
        release_marker(tmp_path, os.getpid())
        assert not pid_path(tmp_path).exists()

    def test_liveness_checks(self) -> None:
        assert is_process_running(os.getpid()) is True
        assert is_process_running(_dead_pid()) is False
        assert is_process_running(None) is False
        assert is_process_running(0) is False


class TestStatus:
    def test_not_running_without_marker(self, tmp_path: Path) -> None:
        assert get_status(tmp_path).running is False

    def test_stale_marker_is_cleaned(self, tmp_path: Path) -> None:
        pid_path(tmp_path).write_text(f"{_dead_pid()}\n", encoding="utf-8")
        status = get_status(tmp_path)
        assert status.running is False
        assert status.pid is None
        assert not pid_path(tmp_path).exists()

    def test_running_status_includes_persisted_fields(self, tmp_path: Path) -> None:
        claim_marker(tmp_path, os.getpid())
        write_status(
            tmp_path,
            os.getpid(),
            SchedulerState(started_at="2024-05-01T00:00:00.000Z", last_error_by_channel={"news": "boom"}),
        )
        status = get_status(tmp_path)
        assert status.running is True
        assert status.pid == os.getpid()
        assert status.started_at == "2024-05-01T00:00:00.000Z"
        assert status.last_error_by_channel == {"news": "boom"}
        assert status.last_heartbeat_at is not None


class TestStop:
    def test_stop_without_marker(self, tmp_path: Path) -> None:
        result = stop(tmp_path)
        assert result.stopped is False
        assert result.message == NOT_RUNNING_MESSAGE == "Background fetcher is not running"

    def test_stop_with_stale_marker(self, tmp_path: Path) -> None:
        pid_path(tmp_path).write_text(f"{_dead_pid()}\n", encoding="utf-8")
        result = stop(tmp_path)
        assert result.stopped is False
        assert not pid_path(tmp_path).exists()

    @pytest.mark.slow
    def test_stop_terminates_live_process(self, tmp_path: Path) -> None:
        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
        try:
            claim_marker(tmp_path, child.pid)
            result = stop(tmp_path)
            assert result.stopped is True
            assert result.pid == child.pid
            assert result.message == f"Stopped background fetcher (pid {child.pid})"
            assert child.wait(timeout=10) != 0
            assert not pid_path(tmp_path).exists()
        finally:
            if child.poll() is None:
                child.kill()
                child.wait()


class TestStart:
    def test_start_requires_reservoir(self, tmp_path: Path) -> None:
        with pytest.raises(ReservoirNotFoundError):
            start(tmp_path / "missing")

    def test_start_refuses_when_running(self, reservoir: Reservoir) -> None:
        claim_marker(reservoir.directory, os.getpid())
        with pytest.raises(FetcherAlreadyRunningError, match=f"pid {os.getpid()}"):
            start(reservoir.directory)

    def test_run_foreground_releases_marker(self, reservoir: Reservoir) -> None:
        observed: list = []

        class RecordingFetcher:
            def __init__(self, root, *, settings=None, on_shutdown=None) -> None:
                self.root = root
                self.on_shutdown = on_shutdown

            def run(self) -> None:
                observed.append(read_marker(self.root))
                self.on_shutdown()

        run_foreground(reservoir.directory, fetcher_factory=RecordingFetcher)

        assert observed == [os.getpid()]
        assert not pid_path(reservoir.directory).exists()

    def test_run_foreground_releases_marker_on_error(self, reservoir: Reservoir) -> None:
        class FailingFetcher:
            def __init__(self, root, **_kwargs) -> None:
                pass

            def run(self) -> None:
                raise RuntimeError("loop crashed")

        with pytest.raises(RuntimeError, match="loop crashed"):
            run_foreground(reservoir.directory, fetcher_factory=FailingFetcher)
        assert not pid_path(reservoir.directory).exists()
