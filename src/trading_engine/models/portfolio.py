"""Portfolio read models — summary, performance and attribution."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

ZERO = Decimal("0")


class PortfolioSummary(BaseModel):
    """Point-in-time rollup of the open positions plus broker cash/margin."""

    total_value: Decimal = ZERO
    total_invested: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    total_pnl: Decimal = ZERO
    total_pnl_pct: Decimal = ZERO
    day_pnl: Decimal = ZERO
    day_pnl_pct: Decimal = ZERO
    available_cash: Decimal = ZERO
    margin_used: Decimal = ZERO
    margin_available: Decimal = ZERO
    position_count: int = 0


class PerformanceMetrics(BaseModel):
    """Trade-log statistics."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0


class StrategyPnL(BaseModel):
    strategy_id: str
    realized_pnl: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    total_pnl: Decimal = ZERO
    trade_count: int = 0


class OrderStatistics(BaseModel):
    total: int = 0
    pending: int = 0
    placed: int = 0
    filled: int = 0
    cancelled: int = 0
    rejected: int = 0
    buy_orders: int = 0
    sell_orders: int = 0
    total_volume: Decimal = ZERO
    total_value: Decimal = ZERO
