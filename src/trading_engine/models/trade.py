"""Trade model — immutable record of one fill."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from trading_engine.models.order import Side


class Trade(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"trade_{uuid.uuid4().hex}")
    order_id: str
    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal
    value: Decimal
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    broker_id: str
    strategy_id: str | None = None
    # Realized P&L booked by this fill; zero for fills that open or add
    pnl: Decimal = Decimal("0")
