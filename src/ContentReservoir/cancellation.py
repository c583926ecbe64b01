"""Cooperative cancellation for the background fetch loop.

Signal handlers and the CLI request a stop through :class:`CancellationToken`;
the scheduler checks it between channels and sleeps on it between ticks, so a
stop request takes effect at the next boundary and status can be flushed
before the process exits.
"""

from __future__ import annotations

import threading
from typing import Optional


class CancellationToken:
    """Thread-safe cancellation flag that loops can also sleep on.

    Examples:
        >>> token = CancellationToken()
        >>> token.wait(0.01)
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    def wait(self, timeout: Optional[float]) -> bool:
        """Block for up to ``timeout`` seconds; return ``True`` once cancelled."""
        return self._is_cancelled.wait(timeout)

    def reset(self) -> None:
        """Clear the flag. Only meant for tests reusing a token."""
        self._is_cancelled.clear()
