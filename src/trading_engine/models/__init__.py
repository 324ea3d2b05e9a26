"""Pydantic domain models."""

from trading_engine.models.market import (
    BrokerBalance,
    BrokerOrderStatus,
    FillConfirmation,
    MarketTick,
)
from trading_engine.models.order import (
    TERMINAL_STATUSES,
    Order,
    OrderRequest,
    OrderStatus,
    OrderType,
    Side,
    Validity,
)
from trading_engine.models.portfolio import (
    OrderStatistics,
    PerformanceMetrics,
    PortfolioSummary,
    StrategyPnL,
)
from trading_engine.models.position import Position
from trading_engine.models.signal import Signal
from trading_engine.models.trade import Trade

__all__ = [
    "BrokerBalance",
    "BrokerOrderStatus",
    "FillConfirmation",
    "MarketTick",
    "Order",
    "OrderRequest",
    "OrderStatistics",
    "OrderStatus",
    "OrderType",
    "PerformanceMetrics",
    "PortfolioSummary",
    "Position",
    "Side",
    "Signal",
    "StrategyPnL",
    "TERMINAL_STATUSES",
    "Trade",
    "Validity",
]
