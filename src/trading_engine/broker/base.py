"""Broker connection contract.

The engine treats a broker as an opaque capability: place, cancel, modify
and query an order. Adapters raise ``BrokerRejected`` when the broker refuses
a request and ``BrokerCommunicationFailure`` when it cannot be reached.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from trading_engine.models import BrokerOrderStatus, Order

# Broker-side status strings -> engine order status
BROKER_STATUS_MAP: dict[str, str] = {
    "PENDING": "PENDING",
    "TRANSIT": "PENDING",
    "OPEN": "PLACED",
    "PLACED": "PLACED",
    "COMPLETE": "FILLED",
    "FILLED": "FILLED",
    "TRADED": "FILLED",
    "CANCELLED": "CANCELLED",
    "REJECTED": "REJECTED",
}


def map_broker_status(raw: str | None) -> str:
    """Map a broker status string onto an engine status; unknown -> PENDING."""
    if not raw:
        return "PENDING"
    return BROKER_STATUS_MAP.get(raw.strip().upper(), "PENDING")


@runtime_checkable
class BrokerConnection(Protocol):
    async def place_order(self, order: Order) -> str:
        """Send the order; return the broker's order id."""
        ...

    async def cancel_order(self, order: Order) -> None:
        ...

    async def modify_order(
        self,
        order: Order,
        quantity: Decimal | None = None,
        price: Decimal | None = None,
    ) -> None:
        ...

    async def order_status(self, order: Order) -> BrokerOrderStatus | None:
        """Current broker view of the order, or None if unknown."""
        ...
