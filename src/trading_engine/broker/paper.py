"""PaperBroker — in-memory simulated venue."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

import structlog

from trading_engine.broker.base import map_broker_status
from trading_engine.errors import BrokerCommunicationFailure, BrokerRejected
from trading_engine.models import BrokerOrderStatus, Order

log = structlog.get_logger("paper_broker")

PriceSource = Callable[[str], Decimal | None]


@dataclass
class _PaperOrder:
    broker_order_id: str
    symbol: str
    quantity: Decimal
    price: Decimal | None
    status: str = "OPEN"
    fill_price: Decimal | None = None
    fill_quantity: Decimal | None = None


class PaperBroker:
    """Accepts every order and keeps its status in memory.

    Fills happen when ``fill()`` is called, or on placement when
    ``auto_fill`` is set (at the order's limit price, else the price source).
    Status is reported back through ``order_status`` for the order monitor.
    """

    def __init__(
        self,
        broker_id: str = "paper",
        auto_fill: bool = False,
        price_source: PriceSource | None = None,
        rejected_symbols: set[str] | None = None,
    ) -> None:
        self.broker_id = broker_id
        self.auto_fill = auto_fill
        self.price_source = price_source
        self.rejected_symbols = set(rejected_symbols or ())
        self.connected = True
        self._orders: dict[str, _PaperOrder] = {}
        self._by_engine_id: dict[str, str] = {}
        self._ids = itertools.count(1)

    def _require_connection(self) -> None:
        if not self.connected:
            raise BrokerCommunicationFailure(f"Broker {self.broker_id} is not connected")

    def _lookup(self, order: Order) -> _PaperOrder:
        broker_order_id = order.broker_order_id or self._by_engine_id.get(order.id)
        record = self._orders.get(broker_order_id or "")
        if record is None:
            raise BrokerRejected(f"Unknown order {order.id}")
        return record

    async def place_order(self, order: Order) -> str:
        self._require_connection()
        if order.symbol in self.rejected_symbols:
            raise BrokerRejected(f"Symbol {order.symbol} is not tradable")

        broker_order_id = f"{self.broker_id}-{next(self._ids)}"
        record = _PaperOrder(
            broker_order_id=broker_order_id,
            symbol=order.symbol,
            quantity=order.quantity,
            price=order.price,
        )
        self._orders[broker_order_id] = record
        self._by_engine_id[order.id] = broker_order_id

        if self.auto_fill:
            price = order.price
            if price is None and self.price_source is not None:
                price = self.price_source(order.symbol)
            if price is not None:
                record.status = "COMPLETE"
                record.fill_price = price
                record.fill_quantity = order.quantity

        log.info("paper_order_accepted", broker_order_id=broker_order_id,
                 symbol=order.symbol, status=record.status)
        return broker_order_id

    async def cancel_order(self, order: Order) -> None:
        self._require_connection()
        record = self._lookup(order)
        if record.status != "OPEN":
            raise BrokerRejected(f"Order {order.id} is {record.status}")
        record.status = "CANCELLED"

    async def modify_order(
        self,
        order: Order,
        quantity: Decimal | None = None,
        price: Decimal | None = None,
    ) -> None:
        self._require_connection()
        record = self._lookup(order)
        if record.status != "OPEN":
            raise BrokerRejected(f"Order {order.id} is {record.status}")
        if quantity is not None:
            record.quantity = quantity
        if price is not None:
            record.price = price

    async def order_status(self, order: Order) -> BrokerOrderStatus | None:
        self._require_connection()
        broker_order_id = order.broker_order_id or self._by_engine_id.get(order.id)
        record = self._orders.get(broker_order_id or "")
        if record is None:
            return None
        return BrokerOrderStatus(
            status=map_broker_status(record.status),
            fill_price=record.fill_price,
            fill_quantity=record.fill_quantity,
        )

    # ── Simulation controls ───────────────────────────────────

    def fill(
        self,
        order_id: str,
        price: Decimal,
        quantity: Decimal | None = None,
    ) -> None:
        """Mark an order executed; ``order_id`` may be the engine or broker id."""
        broker_order_id = self._by_engine_id.get(order_id, order_id)
        record = self._orders[broker_order_id]
        record.status = "COMPLETE"
        record.fill_price = Decimal(str(price))
        record.fill_quantity = Decimal(str(quantity)) if quantity is not None else record.quantity

    def reject(self, order_id: str) -> None:
        broker_order_id = self._by_engine_id.get(order_id, order_id)
        self._orders[broker_order_id].status = "REJECTED"
