"""
Background Scheduler Package

Polling scheduler for reservoir channels: the per-tick due logic, the
long-running loop with filesystem watching, and process control.

Example:
    from ContentReservoir.scheduler import get_status, start, stop

    pid = start("/srv/reservoir")
    print(get_status("/srv/reservoir").running)
    stop("/srv/reservoir")
"""

from .loop import (
    BackgroundFetcher,
    TickHooks,
    poll_interval_seconds,
    run_scheduled_fetch_tick,
)
from .process import (
    FetcherProcessStatus,
    StopResult,
    claim_marker,
    get_status,
    is_process_running,
    release_marker,
    run_foreground,
    start,
    stop,
)
from .state import FetcherStatusDocument, SchedulerState, read_status, write_status

__all__ = [
    # Loop
    "BackgroundFetcher",
    "TickHooks",
    "SchedulerState",
    "poll_interval_seconds",
    "run_scheduled_fetch_tick",
    # Process control
    "FetcherProcessStatus",
    "StopResult",
    "claim_marker",
    "release_marker",
    "is_process_running",
    "get_status",
    "run_foreground",
    "start",
    "stop",
    # Status documents
    "FetcherStatusDocument",
    "read_status",
    "write_status",
]
