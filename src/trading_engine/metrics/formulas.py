"""Pure metric computation functions over the trade log."""

from __future__ import annotations

from typing import Sequence

import numpy as np

# Below this a return series is treated as flat
_MIN_STDDEV = 1e-12


def win_rate(wins: int, total: int) -> float:
    """Win rate as a percentage 0-100."""
    if total <= 0:
        return 0.0
    return wins / total * 100


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """Gross profit / gross loss.  *gross_loss* should be a positive number."""
    if gross_loss <= 0:
        return 0.0
    return gross_profit / gross_loss


def average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(np.array(values, dtype=np.float64)))


def expectancy(win_rate_pct: float, avg_win: float, avg_loss: float) -> float:
    """Expected value per trade: wr * avg_win - (1-wr) * |avg_loss|."""
    wr = win_rate_pct / 100.0
    return wr * avg_win - (1 - wr) * abs(avg_loss)


def sharpe_ratio(returns: Sequence[float]) -> float:
    """Per-trade Sharpe ratio: mean / population std, not annualised."""
    if len(returns) < 2:
        return 0.0
    arr = np.array(returns, dtype=np.float64)
    std = np.std(arr)
    if std < _MIN_STDDEV:
        return 0.0
    return float(np.mean(arr) / std)


def max_drawdown(pnls: Sequence[float]) -> float:
    """Largest fall of cumulative P&L from its running peak, in currency units.

    The running peak starts at zero, before the first trade.
    """
    if not pnls:
        return 0.0
    cumulative = np.concatenate(([0.0], np.cumsum(np.array(pnls, dtype=np.float64))))
    peak = np.maximum.accumulate(cumulative)
    return float(np.max(peak - cumulative))
