"""Event bus, event kinds and notification sinks."""

from trading_engine.events.bus import WILDCARD, EventBus, EventSink
from trading_engine.events.kinds import (
    EVENT_KINDS,
    DayReset,
    Event,
    MarketTickReceived,
    OrderCancelled,
    OrderFilled,
    OrderModified,
    OrderPlaced,
    OrderRejectedEvent,
    PortfolioUpdated,
    PositionUpdated,
    TradeRecorded,
)
from trading_engine.events.sinks import JsonLinesSink, LoggingSink

__all__ = [
    "DayReset",
    "EVENT_KINDS",
    "Event",
    "EventBus",
    "EventSink",
    "JsonLinesSink",
    "LoggingSink",
    "MarketTickReceived",
    "OrderCancelled",
    "OrderFilled",
    "OrderModified",
    "OrderPlaced",
    "OrderRejectedEvent",
    "PortfolioUpdated",
    "PositionUpdated",
    "TradeRecorded",
    "WILDCARD",
]
