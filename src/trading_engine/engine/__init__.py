"""Trading engine — order book, risk gate, position ledger and portfolio."""

from trading_engine.engine.core import TradingEngine, market_open_on, next_market_open
from trading_engine.engine.ledger import PositionLedger, refresh_metrics
from trading_engine.engine.market_data import MarketDataCache, TickEntry, read_tick_file
from trading_engine.engine.monitor import OrderMonitor
from trading_engine.engine.order_book import OrderBook
from trading_engine.engine.portfolio import PortfolioAggregator
from trading_engine.engine.risk import (
    RiskGate,
    RiskVerdict,
    check_max_order_quantity,
    check_max_position,
    check_price_deviation,
    evaluate_risk,
)
from trading_engine.engine.state import (
    ORDER_ALLOWED_TRANSITIONS,
    is_terminal_state,
    is_valid_transition,
    require_transition,
)

__all__ = [
    "MarketDataCache",
    "ORDER_ALLOWED_TRANSITIONS",
    "OrderBook",
    "OrderMonitor",
    "PortfolioAggregator",
    "PositionLedger",
    "RiskGate",
    "RiskVerdict",
    "TickEntry",
    "TradingEngine",
    "check_max_order_quantity",
    "check_max_position",
    "check_price_deviation",
    "evaluate_risk",
    "is_terminal_state",
    "is_valid_transition",
    "market_open_on",
    "next_market_open",
    "read_tick_file",
    "refresh_metrics",
    "require_transition",
]
