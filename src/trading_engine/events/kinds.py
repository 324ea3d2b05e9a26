"""Event models — one tagged variant per event kind.

Every event carries snapshots, never the live objects owned by a component.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from trading_engine.models import MarketTick, Order, PortfolioSummary, Position, Trade


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OrderPlaced(_Event):
    kind: Literal["order_placed"] = "order_placed"
    order: Order


class OrderRejectedEvent(_Event):
    kind: Literal["order_rejected"] = "order_rejected"
    order: Order
    reason: str


class OrderFilled(_Event):
    kind: Literal["order_filled"] = "order_filled"
    order: Order


class OrderCancelled(_Event):
    kind: Literal["order_cancelled"] = "order_cancelled"
    order: Order


class OrderModified(_Event):
    kind: Literal["order_modified"] = "order_modified"
    order: Order


class PositionUpdated(_Event):
    """Position change caused by a fill (``order`` set) or by a price tick."""

    kind: Literal["position_updated"] = "position_updated"
    position: Position
    order: Order | None = None
    realized_pnl: Decimal = Decimal("0")
    closed: bool = False


class PortfolioUpdated(_Event):
    kind: Literal["portfolio_updated"] = "portfolio_updated"
    summary: PortfolioSummary


class TradeRecorded(_Event):
    kind: Literal["trade_recorded"] = "trade_recorded"
    trade: Trade


class MarketTickReceived(_Event):
    kind: Literal["market_tick"] = "market_tick"
    tick: MarketTick


class DayReset(_Event):
    kind: Literal["day_reset"] = "day_reset"
    baselines: dict[str, Decimal] = Field(default_factory=dict)


Event = Annotated[
    Union[
        OrderPlaced,
        OrderRejectedEvent,
        OrderFilled,
        OrderCancelled,
        OrderModified,
        PositionUpdated,
        PortfolioUpdated,
        TradeRecorded,
        MarketTickReceived,
        DayReset,
    ],
    Field(discriminator="kind"),
]

EVENT_KINDS: frozenset[str] = frozenset(
    {
        "order_placed",
        "order_rejected",
        "order_filled",
        "order_cancelled",
        "order_modified",
        "position_updated",
        "portfolio_updated",
        "trade_recorded",
        "market_tick",
        "day_reset",
    }
)
