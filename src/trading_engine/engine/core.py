"""TradingEngine — composition root wiring the bus, book, ledger and portfolio."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from trading_engine.broker.base import BrokerConnection
from trading_engine.config.schema import AppConfig
from trading_engine.engine.ledger import PositionLedger
from trading_engine.engine.market_data import MarketDataCache
from trading_engine.engine.monitor import OrderMonitor
from trading_engine.engine.order_book import OrderBook
from trading_engine.engine.portfolio import PortfolioAggregator
from trading_engine.engine.risk import RiskGate
from trading_engine.errors import TradingEngineError
from trading_engine.events import EventBus, MarketTickReceived, OrderPlaced
from trading_engine.models import (
    BrokerBalance,
    FillConfirmation,
    MarketTick,
    Order,
    OrderRequest,
    OrderStatistics,
    PerformanceMetrics,
    PortfolioSummary,
    Position,
    Signal,
    StrategyPnL,
    Trade,
)

log = structlog.get_logger("trading_engine")


def market_open_on(now: datetime, market_open: str, tz_name: str = "UTC") -> datetime:
    """Return today's *market_open* ("HH:MM") in the market's timezone."""
    tz = ZoneInfo(tz_name)
    hours, minutes = (int(part) for part in market_open.split(":"))
    return datetime.combine(now.astimezone(tz).date(), time(hours, minutes), tzinfo=tz)


def next_market_open(now: datetime, market_open: str, tz_name: str = "UTC") -> datetime:
    """Return the next occurrence of *market_open* strictly after *now*."""
    candidate = market_open_on(now, market_open, tz_name)
    if candidate <= now:
        candidate = market_open_on(now + timedelta(days=1), market_open, tz_name)
    return candidate


class TradingEngine:
    """Owns one instance of every component and exposes the inbound contracts."""

    def __init__(
        self,
        config: AppConfig | None = None,
        brokers: Mapping[str, BrokerConnection] | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.bus = bus or EventBus()
        self.market_data = MarketDataCache(
            staleness_threshold_s=self.config.market_data.staleness_threshold_s,
        )
        self.ledger = PositionLedger(self.bus, self.config.ledger)
        self.risk_gate = RiskGate(self.config.risk, self.market_data, self.ledger)
        self.order_book = OrderBook(self.bus, self.risk_gate)
        self.portfolio = PortfolioAggregator(self.bus, self.ledger, self.config.portfolio)
        self.monitor = OrderMonitor(
            self.order_book, self.bus,
            poll_interval_s=self.config.monitor.poll_interval_s,
        )
        self.bus.subscribe("order_placed", self._handle_order_placed)

        for broker_id, connection in (brokers or {}).items():
            self.add_broker(broker_id, connection)

        self._running = False
        self._background: set[asyncio.Task] = set()
        self._day_task: asyncio.Task | None = None

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        if self.config.ledger.market_open:
            self._day_task = asyncio.create_task(self._day_reset_loop(), name="day-reset")
        log.info("engine_started", brokers=self.order_book.broker_ids)

    async def stop(self) -> None:
        """Cancel background work, close broker clients and the bus."""
        self._running = False
        await self.monitor.stop()

        tasks = list(self._background)
        if self._day_task is not None:
            tasks.append(self._day_task)
            self._day_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._background.clear()

        for broker_id in self.order_book.broker_ids:
            close_fn = getattr(self.order_book.broker(broker_id), "close", None)
            if close_fn is not None:
                await close_fn()
        self.bus.close()
        log.info("engine_stopped")

    async def _day_reset_loop(self) -> None:
        cfg = self.config.ledger
        now = datetime.now(timezone.utc)
        if market_open_on(now, cfg.market_open, cfg.market_timezone) <= now:
            # Started after today's open: current prices become the baseline
            self.ledger.reset_day_baseline()
        while True:
            now = datetime.now(timezone.utc)
            wait_s = (next_market_open(now, cfg.market_open, cfg.market_timezone) - now).total_seconds()
            log.debug("day_reset_scheduled", in_seconds=round(wait_s))
            await asyncio.sleep(wait_s)
            try:
                self.ledger.reset_day_baseline()
            except Exception:
                log.exception("day_reset_error")

    def _handle_order_placed(self, event: OrderPlaced) -> None:
        if self.config.monitor.enabled and self._running:
            self.monitor.watch(event.order.id)

    # ── Brokers ───────────────────────────────────────────────

    def add_broker(self, broker_id: str, connection: BrokerConnection) -> None:
        self.order_book.add_broker(broker_id, connection)

    def remove_broker(self, broker_id: str) -> None:
        self.order_book.remove_broker(broker_id)

    def set_broker_balance(
        self,
        broker_id: str,
        balance: BrokerBalance | Mapping[str, Any],
    ) -> None:
        if not isinstance(balance, BrokerBalance):
            balance = BrokerBalance.model_validate(balance)
        self.portfolio.set_broker_balance(broker_id, balance)

    # ── Inbound ───────────────────────────────────────────────

    async def submit_order(self, request: OrderRequest | Mapping[str, Any]) -> Order:
        return await self.order_book.submit(request)

    def submit_order_nowait(self, request: OrderRequest | Mapping[str, Any]) -> asyncio.Task:
        """Schedule a submission so the caller (e.g. tick handling) never waits on the broker.

        The outcome reaches subscribers as order_placed or order_rejected.
        """
        task = asyncio.get_running_loop().create_task(self.order_book.submit(request))
        self._background.add(task)
        task.add_done_callback(self._submission_done)
        return task

    def _submission_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("background_submit_failed", error=str(exc),
                        error_type=type(exc).__name__)

    async def cancel_order(self, order_id: str) -> bool:
        return await self.order_book.cancel(order_id)

    async def modify_order(
        self,
        order_id: str,
        quantity: Decimal | None = None,
        price: Decimal | None = None,
    ) -> Order:
        return await self.order_book.modify(order_id, quantity=quantity, price=price)

    async def retry_order(self, order_id: str) -> Order:
        return await self.order_book.retry(order_id)

    def on_tick(self, tick: MarketTick | Mapping[str, Any]) -> bool:
        """Accept a market tick (fire-and-forget); False if it was dropped."""
        if not isinstance(tick, MarketTick):
            try:
                tick = MarketTick.model_validate(tick)
            except ValueError:
                log.warning("tick_invalid", tick=dict(tick))
                return False
        if not self.market_data.update(tick):
            return False
        self.bus.publish(MarketTickReceived(tick=tick))
        return True

    def on_fill_confirmation(self, confirmation: FillConfirmation | Mapping[str, Any]) -> Order:
        if not isinstance(confirmation, FillConfirmation):
            confirmation = FillConfirmation.model_validate(confirmation)
        return self.order_book.record_fill(
            confirmation.order_id, confirmation.fill_price, confirmation.fill_quantity,
        )

    async def on_strategy_signal(self, signal: Signal) -> Order | None:
        """Turn a BUY/SELL signal into an order; failures are logged, not raised."""
        if not signal.is_actionable:
            return None
        try:
            return await self.order_book.submit(signal.to_order_request())
        except TradingEngineError as exc:
            log.warning("strategy_signal_failed", strategy_id=signal.strategy_id,
                        symbol=signal.symbol, error=str(exc))
            return None

    # ── Queries ───────────────────────────────────────────────

    def get_order(self, order_id: str) -> Order | None:
        return self.order_book.get(order_id)

    def orders(
        self,
        broker_id: str | None = None,
        status: str | None = None,
        strategy_id: str | None = None,
    ) -> list[Order]:
        return self.order_book.list_orders(broker_id=broker_id, status=status,
                                           strategy_id=strategy_id)

    def order_history(self, limit: int | None = None) -> list[Order]:
        return self.order_book.history(limit)

    def order_statistics(self, broker_id: str | None = None) -> OrderStatistics:
        return self.order_book.statistics(broker_id)

    def positions(self) -> list[Position]:
        return self.ledger.get_all()

    def position(self, symbol: str) -> Position | None:
        return self.ledger.get(symbol)

    def summary(self) -> PortfolioSummary:
        return self.portfolio.summary()

    def performance_metrics(self) -> PerformanceMetrics:
        return self.portfolio.performance_metrics()

    def trades(
        self,
        limit: int | None = None,
        symbol: str | None = None,
        strategy_id: str | None = None,
    ) -> list[Trade]:
        return self.portfolio.trades(limit=limit, symbol=symbol, strategy_id=strategy_id)

    def pnl_by_strategy(self, strategy_id: str) -> StrategyPnL:
        return self.portfolio.pnl_by_strategy(strategy_id)

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self._running,
            "connected_brokers": len(self.order_book.broker_ids),
            "active_orders": len(self.order_book.list_orders(status="PLACED")),
            "positions": len(self.ledger.get_all()),
            "monitored_orders": len(self.monitor.watched),
            "market_data_symbols": len(self.market_data.symbols()),
        }
