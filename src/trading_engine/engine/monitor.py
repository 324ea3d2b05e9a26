"""OrderMonitor — one cancellable polling task per open order."""

from __future__ import annotations

import asyncio

import structlog

from trading_engine.engine.order_book import OrderBook
from trading_engine.errors import (
    BrokerCommunicationFailure,
    BrokerRejected,
    TradingEngineError,
)
from trading_engine.events import EventBus
from trading_engine.models import BrokerOrderStatus, Order

log = structlog.get_logger("order_monitor")


class OrderMonitor:
    """Polls brokers for fills and cancellations of PLACED orders.

    A watch ends as soon as its order reaches a terminal state, whether the
    monitor observed it or the order book reported it on the bus.
    """

    def __init__(
        self,
        order_book: OrderBook,
        bus: EventBus,
        poll_interval_s: float = 5.0,
    ) -> None:
        self._order_book = order_book
        self._poll_interval_s = poll_interval_s
        self._tasks: dict[str, asyncio.Task] = {}

        for kind in ("order_filled", "order_cancelled"):
            bus.subscribe(kind, self._handle_terminal)

    @property
    def watched(self) -> set[str]:
        return set(self._tasks)

    def watch(self, order_id: str) -> asyncio.Task:
        """Start polling *order_id*; must be called from a running event loop."""
        task = self._tasks.get(order_id)
        if task is not None and not task.done():
            return task
        task = asyncio.get_running_loop().create_task(
            self._poll(order_id), name=f"order-monitor-{order_id}",
        )
        self._tasks[order_id] = task
        task.add_done_callback(lambda t, oid=order_id: self._forget(oid, t))
        log.debug("order_watch_started", order_id=order_id)
        return task

    def unwatch(self, order_id: str) -> None:
        task = self._tasks.pop(order_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _forget(self, order_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]

    def _handle_terminal(self, event) -> None:
        self.unwatch(event.order.id)

    async def stop(self) -> None:
        """Cancel every watch and wait for the tasks to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            log.info("order_monitor_stopped", cancelled=len(tasks))

    async def _poll(self, order_id: str) -> None:
        while True:
            await asyncio.sleep(self._poll_interval_s)

            order = self._order_book.get(order_id)
            if order is None or order.is_terminal:
                return

            broker = self._order_book.broker(order.broker_id)
            if broker is None:
                log.warning("order_watch_no_broker", order_id=order_id, broker_id=order.broker_id)
                return

            try:
                status = await broker.order_status(order)
            except BrokerCommunicationFailure:
                log.warning("order_status_unavailable", order_id=order_id)
                continue
            except BrokerRejected as exc:
                # Broker no longer knows the order
                log.warning("order_status_rejected", order_id=order_id, reason=str(exc))
                return
            except Exception:
                log.exception("order_status_error", order_id=order_id)
                continue

            if status is not None and self._apply(order, status):
                return

    def _apply(self, order: Order, status: BrokerOrderStatus) -> bool:
        """Feed a broker status into the order book; True once the order is terminal."""
        try:
            if status.status == "FILLED":
                fill_price = status.fill_price or order.price
                if fill_price is None:
                    log.warning("fill_without_price", order_id=order.id)
                    return False
                self._order_book.record_fill(
                    order.id,
                    fill_price,
                    status.fill_quantity or order.quantity,
                )
                return True
            if status.status == "CANCELLED":
                self._order_book.apply_broker_cancel(order.id)
                return True
            if status.status == "REJECTED":
                self._order_book.apply_broker_cancel(
                    order.id, reason="Rejected by broker after placement",
                )
                return True
        except TradingEngineError:
            log.exception("order_status_apply_failed", order_id=order.id,
                          broker_status=status.status)
            return True
        return False
