"""Position model — net holding in one symbol."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

ZERO = Decimal("0")


class Position(BaseModel):
    """An open position. Derived fields are refreshed by the position ledger."""

    symbol: str
    quantity: Decimal
    average_price: Decimal
    current_price: Decimal
    realized_pnl: Decimal = ZERO
    day_start_price: Decimal | None = None

    # Derived
    market_value: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    pnl: Decimal = ZERO
    pnl_pct: Decimal = ZERO
    day_change: Decimal = ZERO
    day_change_pct: Decimal = ZERO

    @property
    def invested(self) -> Decimal:
        return self.average_price * abs(self.quantity)
