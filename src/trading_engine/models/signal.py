"""Signal model — emitted by strategies, turned into order requests."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

from trading_engine.models.order import OrderRequest, OrderType


class Signal(BaseModel):
    """A trading signal emitted by a strategy."""

    strategy_id: str
    broker_id: str
    symbol: str
    action: Literal["BUY", "SELL", "HOLD"]
    quantity: Decimal = Field(gt=0)
    price: Decimal | None = None
    order_type: OrderType = "MARKET"
    metadata: dict[str, Any] = Field(default_factory=dict)
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_actionable(self) -> bool:
        return self.action in ("BUY", "SELL")

    def to_order_request(self) -> OrderRequest:
        if not self.is_actionable:
            raise ValueError(f"signal action {self.action} does not place orders")
        return OrderRequest(
            broker_id=self.broker_id,
            symbol=self.symbol,
            side=self.action,
            quantity=self.quantity,
            price=self.price,
            order_type=self.order_type,
            strategy_id=self.strategy_id,
        )
