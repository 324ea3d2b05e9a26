"""Market data and broker feedback models."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trading_engine.models.order import OrderStatus


class MarketTick(BaseModel):
    """A single price/volume observation for a symbol."""

    symbol: str = Field(min_length=1)
    price: Decimal = Field(gt=0)
    volume: Decimal = Field(default=Decimal("0"), ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FillConfirmation(BaseModel):
    """Broker confirmation that an order executed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: str
    fill_price: Decimal = Field(gt=0)
    fill_quantity: Decimal = Field(gt=0)


class BrokerOrderStatus(BaseModel):
    """Order state as reported by a broker, mapped to engine statuses."""

    status: OrderStatus
    fill_price: Decimal | None = None
    fill_quantity: Decimal | None = None


class BrokerBalance(BaseModel):
    """Cash and margin reported by one broker account."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    available_cash: Decimal = Decimal("0")
    margin_used: Decimal = Decimal("0")
    margin_available: Decimal = Decimal("0")
