"""Order lifecycle state machine.

PENDING -> PLACED | REJECTED
PLACED  -> FILLED | CANCELLED

Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from trading_engine.errors import InvalidTransition
from trading_engine.models.order import TERMINAL_STATUSES

ORDER_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "PENDING": frozenset({"PLACED", "REJECTED"}),
    "PLACED": frozenset({"FILLED", "CANCELLED"}),
}


def is_terminal_state(status: str) -> bool:
    return status in TERMINAL_STATUSES


def is_valid_transition(current: str, requested: str) -> bool:
    """Return True if current -> requested is allowed."""
    return requested in ORDER_ALLOWED_TRANSITIONS.get(current, frozenset())


def require_transition(order_id: str, current: str, requested: str) -> None:
    """Raise InvalidTransition unless current -> requested is allowed."""
    if not is_valid_transition(current, requested):
        raise InvalidTransition(order_id, current, requested)
