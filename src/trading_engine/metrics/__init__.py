"""Trading metrics — formulas and caching."""

from trading_engine.metrics.cache import MetricsCache
from trading_engine.metrics.formulas import (
    average,
    expectancy,
    max_drawdown,
    profit_factor,
    sharpe_ratio,
    win_rate,
)

__all__ = [
    "MetricsCache",
    "average",
    "expectancy",
    "max_drawdown",
    "profit_factor",
    "sharpe_ratio",
    "win_rate",
]
