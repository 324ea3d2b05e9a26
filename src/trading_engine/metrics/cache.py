"""Cache for the portfolio's trade-log statistics.

Performance figures are recomputed from the whole trade log, so the
aggregator keeps the last result of each statistic until a trade is recorded
or ``ttl_seconds`` pass. Results are pydantic models and leave as copies.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


class MetricsCache:
    """Named statistics stamped with the monotonic time they were computed.

    ``ttl_seconds`` of zero or less turns caching off.
    """

    def __init__(self, ttl_seconds: float = 60.0) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[float, BaseModel]] = {}

    def get_or_compute(self, name: str, compute: Callable[[], M]) -> M:
        """Return a copy of the cached *name*, calling *compute* when absent or expired."""
        now = time.monotonic()
        entry = self._entries.get(name)
        if entry is not None and now - entry[0] <= self.ttl_seconds:
            return entry[1].model_copy()

        value = compute()
        if self.ttl_seconds > 0:
            self._entries[name] = (now, value)
        return value.model_copy()

    def invalidate(self, name: str | None = None) -> None:
        """Drop one statistic, or every statistic when *name* is None."""
        if name is None:
            self._entries.clear()
        else:
            self._entries.pop(name, None)

    def __contains__(self, name: str) -> bool:
        entry = self._entries.get(name)
        return entry is not None and time.monotonic() - entry[0] <= self.ttl_seconds
