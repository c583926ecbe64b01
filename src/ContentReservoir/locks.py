# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.locks",
#   "purpose": "Cross-process file lock guarding the identifier ledger",
#   "sections": [
#     {"id": "ledger-lock", "name": "ledger_lock", "anchor": "function-ledger-lock", "kind": "function"},
#     {"id": "lock-metrics-snapshot", "name": "lock_metrics_snapshot", "anchor": "function-lock-metrics-snapshot", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""File-based locking for the identifier ledger.

Responsibilities
----------------
- Provide :func:`ledger_lock`, a context manager that serialises counter and
  map updates across threads and OS processes sharing one reservoir.
- Translate :class:`filelock.Timeout` into :class:`LedgerLockTimeout` so
  callers never depend on :mod:`filelock` directly.
- Capture acquisition/hold timing via :func:`lock_metrics_snapshot` to
  troubleshoot contention between the background fetcher and interactive
  commands.

Design Notes
------------
- Locks use :class:`filelock.FileLock` by default; ``RES_LOCK_USE_SOFT=1``
  switches to :class:`filelock.SoftFileLock` for filesystems without
  ``flock`` support.
- ``thread_local=False`` lets the lock be released from the thread that
  acquired it even when executor threads hand work around.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from filelock import FileLock, SoftFileLock, Timeout

from .errors import LedgerLockTimeout
from .settings import ReservoirSettings, get_settings

__all__ = ["ledger_lock", "lock_metrics_snapshot"]

LOGGER = logging.getLogger(__name__)
logging.getLogger("filelock").setLevel(logging.INFO)


@dataclass
class _LockMetrics:
    acquire_total: int = 0
    timeout_total: int = 0
    wait_ms_sum: float = 0.0
    hold_ms_sum: float = 0.0


_metrics_guard = threading.RLock()
_metrics: Dict[str, _LockMetrics] = {}


def _select_lock_class(settings: ReservoirSettings):
    return SoftFileLock if settings.lock_use_soft else FileLock


@contextlib.contextmanager
def ledger_lock(
    lock_path: Path,
    *,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
) -> Iterator[None]:
    """Hold the ledger lock at ``lock_path`` for the duration of the block.

    Args:
        lock_path: Lock file inside the reservoir root.
        timeout: Seconds to wait; defaults to ``RES_LOCK_TIMEOUT`` (10s).
        poll_interval: Retry delay; defaults to ``RES_LOCK_POLL_INTERVAL`` (10ms).

    Raises:
        LedgerLockTimeout: If the lock is not acquired within ``timeout``.
    """

    settings = get_settings()
    lock_timeout = settings.lock_timeout if timeout is None else float(timeout)
    interval = settings.lock_poll_interval if poll_interval is None else float(poll_interval)
    lock_cls = _select_lock_class(settings)
    lock = lock_cls(str(lock_path), timeout=lock_timeout, thread_local=False)

    start = time.monotonic()
    try:
        lock.acquire(timeout=lock_timeout, poll_interval=interval)
    except Timeout as exc:
        wait_ms = max((time.monotonic() - start) * 1000.0, 0.0)
        LOGGER.info("lock-timeout wait_ms=%.3f lock_file=%s", wait_ms, lock_path)
        with _metrics_guard:
            metrics = _metrics.setdefault("ledger", _LockMetrics())
            metrics.timeout_total += 1
            metrics.wait_ms_sum += wait_ms
        raise LedgerLockTimeout(str(lock_path), lock_timeout) from exc

    acquired_at = time.monotonic()
    wait_ms = max((acquired_at - start) * 1000.0, 0.0)
    LOGGER.debug("lock-acquired wait_ms=%.3f lock_file=%s", wait_ms, lock_path)
    try:
        yield None
    finally:
        lock.release()
        hold_ms = max((time.monotonic() - acquired_at) * 1000.0, 0.0)
        with _metrics_guard:
            metrics = _metrics.setdefault("ledger", _LockMetrics())
            metrics.acquire_total += 1
            metrics.wait_ms_sum += wait_ms
            metrics.hold_ms_sum += hold_ms
        LOGGER.debug("lock-release hold_ms=%.3f wait_ms=%.3f", hold_ms, wait_ms)


def lock_metrics_snapshot(*, reset: bool = False) -> Dict[str, Dict[str, Union[int, float]]]:
    """Return collected lock metrics, optionally clearing them."""

    with _metrics_guard:
        snapshot = {
            name: {
                "acquire_total": metrics.acquire_total,
                "timeout_total": metrics.timeout_total,
                "wait_ms_sum": metrics.wait_ms_sum,
                "hold_ms_sum": metrics.hold_ms_sum,
            }
            for name, metrics in _metrics.items()
        }
        if reset:
            _metrics.clear()
        return snapshot
