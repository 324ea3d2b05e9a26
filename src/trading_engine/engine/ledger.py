"""PositionLedger — positions derived from fills and marked to market by ticks."""

from __future__ import annotations

from decimal import Decimal

import structlog

from trading_engine.config.schema import LedgerConfig
from trading_engine.errors import UnsupportedPositionFlip, ValidationError
from trading_engine.events import (
    DayReset,
    EventBus,
    MarketTickReceived,
    OrderFilled,
    PositionUpdated,
)
from trading_engine.models import Order, Position

log = structlog.get_logger("position_ledger")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def refresh_metrics(position: Position) -> None:
    """Recompute the derived fields of *position* from price and quantity."""
    position.market_value = position.current_price * position.quantity
    position.unrealized_pnl = (position.current_price - position.average_price) * position.quantity
    position.pnl = position.unrealized_pnl + position.realized_pnl
    invested = position.invested
    position.pnl_pct = position.pnl / invested * HUNDRED if invested else ZERO

    baseline = position.day_start_price
    if baseline:
        position.day_change = position.current_price - baseline
        position.day_change_pct = position.day_change / baseline * HUNDRED
    else:
        position.day_change = ZERO
        position.day_change_pct = ZERO


class PositionLedger:
    """Owns the open positions; updated only through fill and tick events.

    Long-only: a SELL larger than the open quantity raises
    UnsupportedPositionFlip and leaves the position untouched.
    """

    def __init__(self, bus: EventBus, config: LedgerConfig | None = None) -> None:
        self._bus = bus
        self.config = config or LedgerConfig()
        self._epsilon = Decimal(str(self.config.tick_epsilon_pct))
        self._positions: dict[str, Position] = {}
        # Price last announced downstream, per symbol
        self._published_price: dict[str, Decimal] = {}
        self._realized_total = ZERO
        # Ids of bus-delivered fills refused as position flips
        self._refused_fills: set[str] = set()

        bus.subscribe("order_filled", self._handle_order_filled)
        bus.subscribe("market_tick", self._handle_market_tick)

    # ── Event handlers ────────────────────────────────────────

    def _handle_order_filled(self, event: OrderFilled) -> None:
        try:
            self.on_fill(event.order)
        except UnsupportedPositionFlip:
            self._refused_fills.add(event.order.id)
            raise

    def _handle_market_tick(self, event: MarketTickReceived) -> None:
        self.on_tick(event.tick.symbol, event.tick.price)

    # ── Updates ───────────────────────────────────────────────

    def on_fill(self, order: Order) -> Position:
        """Apply one fill and emit exactly one position_updated.

        Returns a snapshot of the position after the fill (quantity 0 when
        the fill closed it).
        """
        if order.filled_price is None or order.filled_quantity <= 0:
            raise ValidationError(f"Order {order.id} carries no fill")

        symbol = order.symbol
        price = order.filled_price
        qty = order.filled_quantity
        position = self._positions.get(symbol)
        realized = ZERO

        if order.side == "BUY":
            if position is None:
                position = Position(
                    symbol=symbol,
                    quantity=qty,
                    average_price=price,
                    current_price=price,
                    day_start_price=price,
                )
                self._positions[symbol] = position
                self._published_price[symbol] = price
            else:
                notional = position.average_price * position.quantity + price * qty
                position.quantity += qty
                position.average_price = notional / position.quantity
        else:
            held = position.quantity if position is not None else ZERO
            if position is None or qty > held:
                log.error("position_flip_unsupported", symbol=symbol, held=held,
                          sell_quantity=qty, order_id=order.id)
                raise UnsupportedPositionFlip(symbol, held, qty)
            realized = (price - position.average_price) * qty
            position.realized_pnl += realized
            position.quantity -= qty

        refresh_metrics(position)
        snapshot = position.model_copy()
        closed = position.quantity == 0
        if closed:
            self._realized_total += position.realized_pnl
            del self._positions[symbol]
            self._published_price.pop(symbol, None)
            log.info("position_closed", symbol=symbol, realized_pnl=position.realized_pnl,
                     realized_total=self._realized_total)
        else:
            log.info("position_updated", symbol=symbol, quantity=position.quantity,
                     average_price=position.average_price, realized=realized)

        self._bus.publish(
            PositionUpdated(position=snapshot, order=order, realized_pnl=realized, closed=closed)
        )
        return snapshot

    def on_tick(self, symbol: str, price: Decimal) -> bool:
        """Mark an open position to *price*; return True if an update was emitted."""
        position = self._positions.get(symbol)
        if position is None:
            return False

        price = Decimal(str(price))
        position.current_price = price
        refresh_metrics(position)

        last = self._published_price.get(symbol)
        if last and abs(price - last) / last <= self._epsilon:
            return False
        self._published_price[symbol] = price
        self._bus.publish(PositionUpdated(position=position.model_copy()))
        return True

    def reset_day_baseline(self) -> dict[str, Decimal]:
        """Use every open position's current price as its start-of-day baseline."""
        baselines: dict[str, Decimal] = {}
        for symbol, position in self._positions.items():
            position.day_start_price = position.current_price
            refresh_metrics(position)
            baselines[symbol] = position.current_price
        log.info("day_baseline_reset", positions=len(baselines))
        self._bus.publish(DayReset(baselines=baselines))
        return baselines

    def set_day_baseline(self, symbol: str, price: Decimal) -> None:
        position = self._positions.get(symbol)
        if position is None:
            return
        position.day_start_price = Decimal(str(price))
        refresh_metrics(position)

    # ── Queries ───────────────────────────────────────────────

    def get(self, symbol: str) -> Position | None:
        position = self._positions.get(symbol)
        return position.model_copy() if position is not None else None

    def get_all(self) -> list[Position]:
        return [p.model_copy() for p in self._positions.values()]

    def take_refused_fill(self, order_id: str) -> bool:
        """True (once) if the fill of *order_id* arrived on the bus and was refused."""
        if order_id in self._refused_fills:
            self._refused_fills.discard(order_id)
            return True
        return False

    def quantity(self, symbol: str) -> Decimal:
        position = self._positions.get(symbol)
        return position.quantity if position is not None else ZERO

    @property
    def realized_pnl(self) -> Decimal:
        """Realized P&L flushed from positions that have been closed."""
        return self._realized_total
