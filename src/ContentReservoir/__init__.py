"""Directory-backed content reservoir.

Core modules:
- ledger: Reservoir-wide content id sequence and id-to-location map
- channels / metadata: Channel configuration and per-channel item records
- retention: Named retention locks
- eviction: Size-budget enforcement
- reconcile: Ledger/metadata/disk repair pass
- ingest: Fetch-result deduplication and persistence
- scheduler: Polling loop and background process control
- reservoir: The :class:`Reservoir` facade used by the ``res`` CLI
"""

from __future__ import annotations

from .errors import (
    ChannelNotFoundError,
    ContentNotFoundError,
    FetchError,
    InvalidInputError,
    LedgerLockTimeout,
    NotFoundError,
    RangeBoundaryNotFoundError,
    ReservoirError,
    ReservoirNotFoundError,
)
from .ingest import ContentItem
from .reservoir import Reservoir

__version__ = "0.3.0"

__all__ = [
    "Reservoir",
    "ContentItem",
    "ReservoirError",
    "NotFoundError",
    "ReservoirNotFoundError",
    "ChannelNotFoundError",
    "ContentNotFoundError",
    "RangeBoundaryNotFoundError",
    "InvalidInputError",
    "LedgerLockTimeout",
    "FetchError",
    "__version__",
]
