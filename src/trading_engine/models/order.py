"""Order models — inbound request and the order book's order record."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Side = Literal["BUY", "SELL"]
OrderType = Literal["MARKET", "LIMIT", "STOP_LOSS"]
Validity = Literal["DAY", "IOC", "GTD"]
OrderStatus = Literal["PENDING", "PLACED", "FILLED", "CANCELLED", "REJECTED"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"FILLED", "CANCELLED", "REJECTED"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderRequest(BaseModel):
    """A request to place an order, as received from a caller or strategy.

    Accepts both snake_case and camelCase keys (``brokerId``, ``orderType``).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    broker_id: str = Field(min_length=1)
    symbol: str
    side: Side
    quantity: Decimal = Field(gt=0)
    price: Decimal | None = Field(default=None, gt=0)
    order_type: OrderType = "MARKET"
    validity: Validity = "DAY"
    strategy_id: str | None = None

    @field_validator("symbol")
    @classmethod
    def _strip_symbol(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("symbol is required")
        return value

    @model_validator(mode="after")
    def _limit_needs_price(self) -> OrderRequest:
        if self.order_type == "LIMIT" and self.price is None:
            raise ValueError("price is required for LIMIT orders")
        return self


class Order(BaseModel):
    """One trading instruction. Mutated only by the order book."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    broker_id: str
    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal | None = None
    order_type: OrderType = "MARKET"
    validity: Validity = "DAY"
    strategy_id: str | None = None

    status: OrderStatus = "PENDING"
    filled_price: Decimal | None = None
    filled_quantity: Decimal = Decimal("0")
    broker_order_id: str | None = None
    reject_reason: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_request(cls, request: OrderRequest) -> Order:
        return cls(
            broker_id=request.broker_id,
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            price=request.price,
            order_type=request.order_type,
            validity=request.validity,
            strategy_id=request.strategy_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def filled_value(self) -> Decimal:
        if self.filled_price is None:
            return Decimal("0")
        return self.filled_price * self.filled_quantity
