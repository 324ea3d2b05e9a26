"""OrderBook — order lifecycle, the only writer of order status."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pydantic
import structlog

from trading_engine.broker.base import BrokerConnection
from trading_engine.engine.risk import RiskGate
from trading_engine.engine.state import require_transition
from trading_engine.errors import (
    BrokerCommunicationFailure,
    BrokerRejected,
    InvalidTransition,
    OrderNotFound,
    OrderRejected,
    ValidationError,
)
from trading_engine.events import (
    EventBus,
    OrderCancelled,
    OrderFilled,
    OrderModified,
    OrderPlaced,
    OrderRejectedEvent,
)
from trading_engine.models import Order, OrderRequest, OrderStatistics

log = structlog.get_logger("order_book")


class OrderBook:
    """Holds orders by id, enforces the state machine and emits order events.

    Callers only ever receive copies; the stored orders are never shared.
    """

    def __init__(
        self,
        bus: EventBus,
        risk_gate: RiskGate,
        brokers: Mapping[str, BrokerConnection] | None = None,
    ) -> None:
        self._bus = bus
        self._risk_gate = risk_gate
        self._brokers: dict[str, BrokerConnection] = dict(brokers or {})
        self._orders: dict[str, Order] = {}
        self._history: list[Order] = []
        self._in_flight: set[str] = set()

    # ── Broker connections ────────────────────────────────────

    def add_broker(self, broker_id: str, connection: BrokerConnection) -> None:
        self._brokers[broker_id] = connection
        log.info("broker_added", broker_id=broker_id)

    def remove_broker(self, broker_id: str) -> BrokerConnection | None:
        connection = self._brokers.pop(broker_id, None)
        if connection is not None:
            log.info("broker_removed", broker_id=broker_id)
        return connection

    def broker(self, broker_id: str) -> BrokerConnection | None:
        return self._brokers.get(broker_id)

    @property
    def broker_ids(self) -> list[str]:
        return sorted(self._brokers)

    # ── Submission ────────────────────────────────────────────

    def _validate(self, request: OrderRequest | Mapping[str, Any]) -> OrderRequest:
        if not isinstance(request, OrderRequest):
            try:
                request = OrderRequest.model_validate(request)
            except pydantic.ValidationError as exc:
                raise ValidationError(str(exc)) from exc
        if request.broker_id not in self._brokers:
            raise ValidationError(f"Broker {request.broker_id} is not connected")
        return request

    async def submit(self, request: OrderRequest | Mapping[str, Any]) -> Order:
        """Validate, risk-check and place an order with its broker.

        Raises ValidationError (nothing stored), OrderRejected (stored as
        REJECTED) or BrokerCommunicationFailure (stored, left PENDING).
        """
        request = self._validate(request)
        order = Order.from_request(request)
        self._orders[order.id] = order
        log.info(
            "order_submitted",
            order_id=order.id,
            broker_id=order.broker_id,
            symbol=order.symbol,
            side=order.side,
            quantity=order.quantity,
            price=order.price,
            order_type=order.order_type,
        )

        verdict = self._risk_gate.check(order)
        if not verdict.passed:
            log.info("risk_rejected", order_id=order.id, reason=verdict.reason)
            self._reject(order, verdict.reason)
            raise OrderRejected(f"Risk check failed: {verdict.reason}", order_id=order.id)

        return await self._place(order)

    async def retry(self, order_id: str) -> Order:
        """Re-send a PENDING order after a broker communication failure."""
        order = self._require(order_id)
        if order.status != "PENDING":
            raise InvalidTransition(order_id, order.status, "PLACED")
        return await self._place(order)

    async def _place(self, order: Order) -> Order:
        if order.id in self._in_flight:
            raise InvalidTransition(order.id, order.status, "PLACED")
        broker = self._brokers.get(order.broker_id)
        if broker is None:
            raise BrokerCommunicationFailure(f"Broker {order.broker_id} is not connected")

        self._in_flight.add(order.id)
        try:
            broker_order_id = await broker.place_order(order.model_copy())
        except BrokerRejected as exc:
            log.warning("broker_rejected", order_id=order.id, reason=str(exc))
            self._reject(order, str(exc))
            raise OrderRejected(str(exc), order_id=order.id) from exc
        except BrokerCommunicationFailure:
            log.warning("broker_unreachable", order_id=order.id, broker_id=order.broker_id)
            raise
        finally:
            self._in_flight.discard(order.id)

        self._transition(order, "PLACED")
        order.broker_order_id = broker_order_id
        log.info(
            "order_placed",
            order_id=order.id,
            broker_order_id=broker_order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=order.quantity,
            price=order.price or "MARKET",
        )
        self._bus.publish(OrderPlaced(order=order.model_copy()))
        return order.model_copy()

    def _reject(self, order: Order, reason: str) -> None:
        self._transition(order, "REJECTED")
        order.reject_reason = reason
        self._bus.publish(OrderRejectedEvent(order=order.model_copy(), reason=reason))

    # ── Lifecycle ─────────────────────────────────────────────

    def record_fill(
        self,
        order_id: str,
        fill_price: Decimal,
        fill_quantity: Decimal,
    ) -> Order:
        """Mark a PLACED order FILLED and emit order_filled."""
        order = self._require(order_id)
        require_transition(order_id, order.status, "FILLED")

        fill_price = Decimal(str(fill_price))
        fill_quantity = Decimal(str(fill_quantity))
        if fill_price <= 0:
            raise ValidationError(f"Fill price must be positive, got {fill_price}")
        if fill_quantity <= 0 or fill_quantity > order.quantity:
            raise ValidationError(
                f"Fill quantity {fill_quantity} outside (0, {order.quantity}]"
            )

        order.filled_price = fill_price
        order.filled_quantity = fill_quantity
        self._transition(order, "FILLED")
        self._history.append(order.model_copy())
        log.info(
            "order_filled",
            order_id=order.id,
            symbol=order.symbol,
            side=order.side,
            fill_price=fill_price,
            fill_quantity=fill_quantity,
        )
        self._bus.publish(OrderFilled(order=order.model_copy()))
        return order.model_copy()

    async def cancel(self, order_id: str) -> bool:
        """Cancel a PLACED order with its broker, then mark it CANCELLED."""
        order = self._require(order_id)
        require_transition(order_id, order.status, "CANCELLED")

        broker = self._brokers.get(order.broker_id)
        if broker is None:
            raise BrokerCommunicationFailure(f"Broker {order.broker_id} is not connected")
        try:
            await broker.cancel_order(order.model_copy())
        except BrokerRejected as exc:
            log.warning("broker_cancel_refused", order_id=order.id, reason=str(exc))
            raise BrokerCommunicationFailure(
                f"Broker refused to cancel order {order_id}: {exc}"
            ) from exc

        # A fill may have landed while the broker call was in flight
        require_transition(order_id, order.status, "CANCELLED")
        self._transition(order, "CANCELLED")
        log.info("order_cancelled", order_id=order.id)
        self._bus.publish(OrderCancelled(order=order.model_copy()))
        return True

    def apply_broker_cancel(self, order_id: str, reason: str | None = None) -> Order:
        """Record a cancellation the broker reported on its own."""
        order = self._require(order_id)
        require_transition(order_id, order.status, "CANCELLED")
        self._transition(order, "CANCELLED")
        if reason:
            order.reject_reason = reason
        log.info("order_cancelled_by_broker", order_id=order.id, reason=reason)
        self._bus.publish(OrderCancelled(order=order.model_copy()))
        return order.model_copy()

    async def modify(
        self,
        order_id: str,
        quantity: Decimal | None = None,
        price: Decimal | None = None,
    ) -> Order:
        """Change quantity and/or price of a PLACED order.

        The changed order goes through the risk gate again. A refusal from
        the gate or the broker raises OrderRejected and leaves it PLACED.
        """
        order = self._require(order_id)
        if order.status != "PLACED":
            raise InvalidTransition(order_id, order.status, "PLACED")
        if quantity is not None:
            quantity = Decimal(str(quantity))
            if quantity <= 0:
                raise ValidationError("Valid quantity is required")
        if price is not None:
            price = Decimal(str(price))
            if price <= 0:
                raise ValidationError("Price must be positive")
        if quantity is None and price is None:
            return order.model_copy()

        changes = {"quantity": quantity, "price": price}
        candidate = order.model_copy(update={k: v for k, v in changes.items() if v is not None})
        verdict = self._risk_gate.check(candidate)
        if not verdict.passed:
            log.info("risk_rejected", order_id=order.id, reason=verdict.reason)
            raise OrderRejected(f"Risk check failed: {verdict.reason}", order_id=order.id)

        broker = self._brokers.get(order.broker_id)
        if broker is None:
            raise BrokerCommunicationFailure(f"Broker {order.broker_id} is not connected")
        try:
            await broker.modify_order(order.model_copy(), quantity=quantity, price=price)
        except BrokerRejected as exc:
            log.warning("broker_modify_refused", order_id=order.id, reason=str(exc))
            raise OrderRejected(str(exc), order_id=order.id) from exc

        if order.status != "PLACED":
            raise InvalidTransition(order_id, order.status, "PLACED")
        if quantity is not None:
            order.quantity = quantity
        if price is not None:
            order.price = price
        order.updated_at = datetime.now(timezone.utc)
        log.info("order_modified", order_id=order.id, quantity=order.quantity, price=order.price)
        self._bus.publish(OrderModified(order=order.model_copy()))
        return order.model_copy()

    def _transition(self, order: Order, status: str) -> None:
        require_transition(order.id, order.status, status)
        order.status = status
        order.updated_at = datetime.now(timezone.utc)

    # ── Queries ───────────────────────────────────────────────

    def _require(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get(self, order_id: str) -> Order | None:
        order = self._orders.get(order_id)
        return order.model_copy() if order is not None else None

    def list_orders(
        self,
        broker_id: str | None = None,
        status: str | None = None,
        strategy_id: str | None = None,
    ) -> list[Order]:
        orders = [
            o for o in self._orders.values()
            if (broker_id is None or o.broker_id == broker_id)
            and (status is None or o.status == status)
            and (strategy_id is None or o.strategy_id == strategy_id)
        ]
        return [o.model_copy() for o in orders]

    def history(self, limit: int | None = None) -> list[Order]:
        """Filled orders, newest first."""
        history = [o.model_copy() for o in reversed(self._history)]
        return history[:limit] if limit else history

    def statistics(self, broker_id: str | None = None) -> OrderStatistics:
        orders = [
            o for o in self._orders.values()
            if broker_id is None or o.broker_id == broker_id
        ]
        by_status = {s: 0 for s in ("PENDING", "PLACED", "FILLED", "CANCELLED", "REJECTED")}
        for o in orders:
            by_status[o.status] += 1
        return OrderStatistics(
            total=len(orders),
            pending=by_status["PENDING"],
            placed=by_status["PLACED"],
            filled=by_status["FILLED"],
            cancelled=by_status["CANCELLED"],
            rejected=by_status["REJECTED"],
            buy_orders=sum(1 for o in orders if o.side == "BUY"),
            sell_orders=sum(1 for o in orders if o.side == "SELL"),
            total_volume=sum((o.filled_quantity for o in orders), Decimal("0")),
            total_value=sum((o.filled_value for o in orders), Decimal("0")),
        )
