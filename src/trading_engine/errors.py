"""Engine error taxonomy.

Validation and transition errors are raised synchronously to the caller of
the component that detected them. Broker adapters raise ``BrokerRejected``
or ``BrokerCommunicationFailure``; the order book decides what each means for
the order's state.
"""

from __future__ import annotations

from decimal import Decimal


class TradingEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(TradingEngineError):
    """Malformed order request; nothing was stored."""


class OrderNotFound(TradingEngineError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class OrderRejected(TradingEngineError):
    """Risk gate or broker refused the order.

    A refused submission is stored as REJECTED; a refused modification leaves
    the order PLACED.
    """

    def __init__(self, reason: str, order_id: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.order_id = order_id


class InvalidTransition(TradingEngineError):
    """Operation not allowed in the order's current status."""

    def __init__(self, order_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Order {order_id}: cannot move from {current} to {requested}"
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class UnsupportedPositionFlip(TradingEngineError):
    """A SELL fill larger than the open long quantity."""

    def __init__(self, symbol: str, held: Decimal, sell_quantity: Decimal) -> None:
        super().__init__(
            f"SELL {sell_quantity} {symbol} would flip position of {held} to short"
        )
        self.symbol = symbol
        self.held = held
        self.sell_quantity = sell_quantity


class BrokerRejected(TradingEngineError):
    """Broker refused the request (business-level failure)."""


class BrokerCommunicationFailure(TradingEngineError):
    """Transient transport failure talking to a broker; safe to retry."""
