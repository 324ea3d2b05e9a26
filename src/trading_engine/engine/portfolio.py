"""PortfolioAggregator — summary, trade log and performance statistics.

Reads positions from the ledger but never writes them. Every fill yields one
Trade. Fills the ledger applied are recorded from its fill-driven
position_updated, so trade_recorded follows the position_updated that caused
it; a fill the ledger refused is recorded straight from order_filled with
zero P&L.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

import structlog

from trading_engine.config.schema import PortfolioConfig
from trading_engine.engine.ledger import PositionLedger
from trading_engine.events import (
    EventBus,
    OrderFilled,
    PortfolioUpdated,
    PositionUpdated,
    TradeRecorded,
)
from trading_engine.metrics import (
    MetricsCache,
    average,
    expectancy,
    max_drawdown,
    profit_factor,
    sharpe_ratio,
    win_rate,
)
from trading_engine.models import (
    BrokerBalance,
    Order,
    PerformanceMetrics,
    PortfolioSummary,
    StrategyPnL,
    Trade,
)

log = structlog.get_logger("portfolio")

ZERO = Decimal("0")
HUNDRED = Decimal("100")

_PERFORMANCE_KEY = "performance"


def _pct(part: Decimal, whole: Decimal) -> Decimal:
    return part / whole * HUNDRED if whole else ZERO


class PortfolioAggregator:
    def __init__(
        self,
        bus: EventBus,
        ledger: PositionLedger,
        config: PortfolioConfig | None = None,
    ) -> None:
        self._bus = bus
        self._ledger = ledger
        self.config = config or PortfolioConfig()
        self._trades: list[Trade] = []
        self._balances: dict[str, BrokerBalance] = {}
        self._cache = MetricsCache(ttl_seconds=self.config.metrics_cache_ttl_s)

        # Subscribed after the ledger, so it has seen each order_filled first
        bus.subscribe("order_filled", self._handle_order_filled)
        bus.subscribe("position_updated", self._handle_position_updated)

    def _handle_order_filled(self, event: OrderFilled) -> None:
        if self._ledger.take_refused_fill(event.order.id):
            self.on_order_filled(event.order)

    def _handle_position_updated(self, event: PositionUpdated) -> None:
        if event.order is not None:
            self.on_order_filled(event.order, event.realized_pnl)
        self._bus.publish(PortfolioUpdated(summary=self.summary()))

    # ── Trade log ─────────────────────────────────────────────

    def on_order_filled(self, order: Order, realized_pnl: Decimal = ZERO) -> Trade:
        """Append the Trade for a filled order and emit trade_recorded."""
        if order.filled_price is None:
            raise ValueError(f"Order {order.id} has no fill price")
        trade = Trade(
            order_id=order.id,
            symbol=order.symbol,
            side=order.side,
            quantity=order.filled_quantity,
            price=order.filled_price,
            value=order.filled_price * order.filled_quantity,
            broker_id=order.broker_id,
            strategy_id=order.strategy_id,
            pnl=realized_pnl,
        )
        self._trades.append(trade)
        self._cache.invalidate()
        log.info("trade_recorded", trade_id=trade.id, order_id=order.id,
                 symbol=trade.symbol, side=trade.side, value=trade.value, pnl=trade.pnl)
        self._bus.publish(TradeRecorded(trade=trade))
        return trade

    def trades(
        self,
        limit: int | None = None,
        symbol: str | None = None,
        strategy_id: str | None = None,
    ) -> list[Trade]:
        """Trade history, newest first."""
        selected = [
            t for t in reversed(self._trades)
            if (symbol is None or t.symbol == symbol)
            and (strategy_id is None or t.strategy_id == strategy_id)
        ]
        return selected[:limit] if limit else selected

    # ── Cash & margin ─────────────────────────────────────────

    def set_broker_balance(self, broker_id: str, balance: BrokerBalance) -> None:
        self._balances[broker_id] = balance
        log.info("broker_balance_set", broker_id=broker_id,
                 available_cash=balance.available_cash)

    # ── Summary ───────────────────────────────────────────────

    def summary(self) -> PortfolioSummary:
        """Recompute the portfolio rollup from the current positions."""
        positions = self._ledger.get_all()

        total_value = sum((p.market_value for p in positions), ZERO)
        invested = sum((p.invested for p in positions), ZERO)
        unrealized = sum((p.unrealized_pnl for p in positions), ZERO)
        realized = sum((p.realized_pnl for p in positions), ZERO) + self._ledger.realized_pnl
        day_pnl = sum((p.day_change * p.quantity for p in positions), ZERO)
        total_pnl = unrealized + realized

        if self._balances:
            cash = sum((b.available_cash for b in self._balances.values()), ZERO)
            margin_used = sum((b.margin_used for b in self._balances.values()), ZERO)
            margin_available = sum((b.margin_available for b in self._balances.values()), ZERO)
        else:
            cash = Decimal(str(self.config.default_cash))
            margin_used = ZERO
            margin_available = cash

        return PortfolioSummary(
            total_value=total_value,
            total_invested=invested,
            unrealized_pnl=unrealized,
            realized_pnl=realized,
            total_pnl=total_pnl,
            total_pnl_pct=_pct(total_pnl, invested),
            day_pnl=day_pnl,
            day_pnl_pct=_pct(day_pnl, invested),
            available_cash=cash,
            margin_used=margin_used,
            margin_available=margin_available,
            position_count=len(positions),
        )

    # ── Performance ───────────────────────────────────────────

    def performance_metrics(self) -> PerformanceMetrics:
        return self._cache.get_or_compute(_PERFORMANCE_KEY, self._compute_performance)

    def _compute_performance(self) -> PerformanceMetrics:
        pnls = [float(t.pnl) for t in self._trades]
        wins = [p for p in pnls if p > 0]
        losses = [p for p in pnls if p < 0]
        wr = win_rate(len(wins), len(pnls))
        avg_win = average(wins)
        avg_loss = average(losses)

        return PerformanceMetrics(
            total_trades=len(pnls),
            winning_trades=len(wins),
            losing_trades=len(losses),
            win_rate=wr,
            avg_win=avg_win,
            avg_loss=avg_loss,
            profit_factor=profit_factor(sum(wins), abs(sum(losses))),
            expectancy=expectancy(wr, avg_win, avg_loss),
            max_drawdown=max_drawdown(pnls),
            sharpe_ratio=sharpe_ratio(
                [float(t.pnl / t.value) for t in self._trades if t.value]
            ),
        )

    def pnl_by_strategy(self, strategy_id: str) -> StrategyPnL:
        """Replay a strategy's trades per symbol at average cost.

        SELLs realize against the running average cost; an open remainder
        contributes the ledger's current unrealized P&L for that symbol.
        """
        by_symbol: dict[str, list[Trade]] = defaultdict(list)
        for trade in self._trades:
            if trade.strategy_id == strategy_id:
                by_symbol[trade.symbol].append(trade)

        realized = ZERO
        unrealized = ZERO
        count = 0
        for symbol, trades in by_symbol.items():
            open_qty = ZERO
            cost = ZERO
            for trade in sorted(trades, key=lambda t: t.timestamp):
                count += 1
                if trade.side == "BUY":
                    open_qty += trade.quantity
                    cost += trade.value
                else:
                    avg_cost = cost / open_qty if open_qty > 0 else ZERO
                    sell_cost = avg_cost * trade.quantity
                    realized += trade.value - sell_cost
                    open_qty -= trade.quantity
                    cost -= sell_cost

            if open_qty > 0:
                position = self._ledger.get(symbol)
                if position is not None:
                    unrealized += position.unrealized_pnl

        return StrategyPnL(
            strategy_id=strategy_id,
            realized_pnl=realized,
            unrealized_pnl=unrealized,
            total_pnl=realized + unrealized,
            trade_count=count,
        )
