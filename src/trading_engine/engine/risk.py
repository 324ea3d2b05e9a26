"""Pre-trade risk checks — pure functions plus a gate bound to live state."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from trading_engine.config.schema import RiskConfig
from trading_engine.models import Order

if TYPE_CHECKING:
    from trading_engine.engine.ledger import PositionLedger
    from trading_engine.engine.market_data import MarketDataCache


@dataclass
class RiskVerdict:
    """Result of a risk check — passed or rejected with a reason."""

    passed: bool
    reason: str = ""


PASS = RiskVerdict(passed=True)


def check_max_order_quantity(quantity: Decimal, limit: Decimal) -> RiskVerdict:
    if quantity > limit:
        return RiskVerdict(
            passed=False,
            reason=f"Order quantity exceeds maximum limit ({quantity}/{limit})",
        )
    return PASS


def check_price_deviation(
    limit_price: Decimal,
    last_price: Decimal | None,
    max_deviation: Decimal,
) -> RiskVerdict:
    """Reject a limit price too far from the last tick; pass when no tick is known."""
    if last_price is None or last_price <= 0:
        return PASS
    deviation = abs(limit_price - last_price) / last_price
    if deviation > max_deviation:
        return RiskVerdict(
            passed=False,
            reason=(
                "Order price deviates too much from current market price "
                f"({limit_price} vs {last_price})"
            ),
        )
    return PASS


def check_max_position(
    current_quantity: Decimal,
    requested_quantity: Decimal,
    limit: Decimal,
) -> RiskVerdict:
    new_quantity = current_quantity + requested_quantity
    if new_quantity > limit:
        return RiskVerdict(
            passed=False,
            reason=f"Position size would exceed maximum limit ({new_quantity}/{limit})",
        )
    return PASS


def evaluate_risk(
    config: RiskConfig,
    order: Order,
    last_price: Decimal | None,
    position_quantity: Decimal,
) -> RiskVerdict:
    """Composite risk check — returns the first failing verdict or PASS."""
    verdict = check_max_order_quantity(
        order.quantity, Decimal(str(config.max_order_quantity)),
    )
    if not verdict.passed:
        return verdict

    if order.order_type == "LIMIT" and order.price is not None:
        verdict = check_price_deviation(
            order.price, last_price, Decimal(str(config.max_price_deviation_pct)),
        )
        if not verdict.passed:
            return verdict

    if order.side == "BUY":
        verdict = check_max_position(
            position_quantity, order.quantity, Decimal(str(config.max_position_quantity)),
        )
        if not verdict.passed:
            return verdict

    return PASS


class RiskGate:
    """Reads the latest tick and position for a symbol; never mutates either."""

    def __init__(
        self,
        config: RiskConfig,
        market_data: MarketDataCache,
        ledger: PositionLedger,
    ) -> None:
        self.config = config
        self._market_data = market_data
        self._ledger = ledger

    def check(self, order: Order) -> RiskVerdict:
        return evaluate_risk(
            config=self.config,
            order=order,
            last_price=self._market_data.get_price(order.symbol),
            position_quantity=self._ledger.quantity(order.symbol),
        )
