"""MarketDataCache — last tick per symbol, fed by the inbound tick feed."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Iterator

import structlog

from trading_engine.models import MarketTick

log = structlog.get_logger("market_data")


@dataclass
class TickEntry:
    """A cached tick with the monotonic time it arrived."""

    tick: MarketTick
    received_at: float  # time.monotonic()


class MarketDataCache:
    """In-process tick cache.

    Ticks older than the cached one for the same symbol (by feed timestamp)
    are dropped, which also absorbs duplicates from a lossy feed.
    """

    def __init__(self, staleness_threshold_s: float | None = None) -> None:
        self._staleness_s = staleness_threshold_s
        self._ticks: dict[str, TickEntry] = {}

    def update(self, tick: MarketTick) -> bool:
        """Cache *tick*; return False if it was out of order or a duplicate."""
        current = self._ticks.get(tick.symbol)
        if current is not None and tick.timestamp <= current.tick.timestamp:
            log.debug("tick_dropped", symbol=tick.symbol, ts=tick.timestamp,
                      last_ts=current.tick.timestamp)
            return False
        self._ticks[tick.symbol] = TickEntry(tick=tick, received_at=time.monotonic())
        return True

    def is_stale(self, symbol: str) -> bool:
        entry = self._ticks.get(symbol)
        if entry is None:
            return True
        if self._staleness_s is None:
            return False
        return (time.monotonic() - entry.received_at) > self._staleness_s

    def get_price(self, symbol: str) -> Decimal | None:
        """Return the last fresh price for a symbol, or None."""
        if self.is_stale(symbol):
            return None
        return self._ticks[symbol].tick.price

    def last_tick(self, symbol: str) -> MarketTick | None:
        entry = self._ticks.get(symbol)
        return entry.tick if entry is not None else None

    def symbols(self) -> list[str]:
        return sorted(self._ticks)


def read_tick_file(path: str | Path) -> Iterator[MarketTick]:
    """Yield ticks from a JSON-lines file; malformed lines are logged and skipped.

    Each line: {"symbol": "TCS", "price": 3500.5, "volume": 10, "timestamp": "..."}
    """
    with open(path, encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield MarketTick.model_validate(json.loads(line))
            except ValueError:
                log.warning("tick_line_invalid", path=str(path), line=lineno)
