"""Tests for the order book — submission, state machine, fills, cancel, modify."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from trading_engine.broker import PaperBroker
from trading_engine.engine.state import (
    ORDER_ALLOWED_TRANSITIONS,
    is_terminal_state,
    is_valid_transition,
)
from trading_engine.errors import (
    BrokerCommunicationFailure,
    InvalidTransition,
    OrderNotFound,
    OrderRejected,
    ValidationError,
)


# ── Helpers ───────────────────────────────────────────────────


def _submit(engine, **overrides):
    payload = {"broker_id": "paper", "symbol": "TCS", "side": "BUY", "quantity": "10"}
    payload.update(overrides)
    return asyncio.run(engine.submit_order(payload))


def _placed_and_filled(engine, price="100", **overrides):
    order = _submit(engine, **overrides)
    return engine.order_book.record_fill(order.id, Decimal(price), order.quantity)


class _FillDuringCancel(PaperBroker):
    """Broker whose cancel call races with a fill arriving for the same order."""

    def __init__(self, order_book):
        super().__init__(broker_id="racy")
        self.order_book = order_book

    async def cancel_order(self, order):
        self.order_book.record_fill(order.id, Decimal("100"), order.quantity)


# ── State machine ─────────────────────────────────────────────


class TestStateMachine:
    def test_allowed_transitions(self):
        assert is_valid_transition("PENDING", "PLACED")
        assert is_valid_transition("PENDING", "REJECTED")
        assert is_valid_transition("PLACED", "FILLED")
        assert is_valid_transition("PLACED", "CANCELLED")

    def test_forbidden_transitions(self):
        assert not is_valid_transition("PENDING", "FILLED")
        assert not is_valid_transition("PLACED", "REJECTED")
        assert not is_valid_transition("FILLED", "CANCELLED")
        assert not is_valid_transition("CANCELLED", "PLACED")

    def test_terminal_states_have_no_exits(self):
        for status in ("FILLED", "CANCELLED", "REJECTED"):
            assert is_terminal_state(status)
            assert status not in ORDER_ALLOWED_TRANSITIONS
        assert not is_terminal_state("PLACED")


# ── Submission ────────────────────────────────────────────────


class TestSubmit:
    def test_places_with_broker(self, engine, recorder):
        order = _submit(engine)
        assert order.status == "PLACED"
        assert order.broker_order_id == "paper-1"
        assert recorder.kinds == ["order_placed"]
        assert recorder.events[0].order.id == order.id

    def test_invalid_request_stores_nothing(self, engine, recorder):
        with pytest.raises(ValidationError):
            _submit(engine, quantity="0")
        with pytest.raises(ValidationError):
            _submit(engine, order_type="LIMIT")
        assert engine.orders() == []
        assert recorder.events == []

    def test_unknown_broker_rejected_as_invalid(self, engine):
        with pytest.raises(ValidationError, match="not connected"):
            _submit(engine, broker_id="nowhere")
        assert engine.orders() == []

    def test_risk_rejection_has_no_side_effects(self, engine, recorder):
        with pytest.raises(OrderRejected) as exc_info:
            _submit(engine, quantity="1001")

        assert exc_info.value.reason.startswith("Risk check failed:")
        (order,) = engine.orders()
        assert order.status == "REJECTED"
        assert order.id == exc_info.value.order_id
        assert "Order quantity exceeds maximum limit" in order.reject_reason
        assert recorder.kinds == ["order_rejected"]
        assert engine.positions() == []
        assert engine.trades() == []

    def test_broker_rejection(self, engine, broker, recorder):
        broker.rejected_symbols.add("BANNED")
        with pytest.raises(OrderRejected, match="not tradable"):
            _submit(engine, symbol="BANNED")
        (order,) = engine.orders()
        assert order.status == "REJECTED"
        assert recorder.kinds == ["order_rejected"]

    def test_communication_failure_leaves_order_pending(self, engine, broker, recorder):
        broker.connected = False
        with pytest.raises(BrokerCommunicationFailure):
            _submit(engine)
        (order,) = engine.orders()
        assert order.status == "PENDING"
        assert recorder.events == []

        broker.connected = True
        retried = asyncio.run(engine.retry_order(order.id))
        assert retried.status == "PLACED"
        assert recorder.kinds == ["order_placed"]

    def test_retry_requires_pending(self, engine):
        order = _submit(engine)
        with pytest.raises(InvalidTransition):
            asyncio.run(engine.retry_order(order.id))


# ── Fills ─────────────────────────────────────────────────────


class TestRecordFill:
    def test_fill_marks_order_filled(self, engine, recorder):
        order = _submit(engine)
        filled = engine.order_book.record_fill(order.id, Decimal("101.5"), Decimal("10"))
        assert filled.status == "FILLED"
        assert filled.filled_price == Decimal("101.5")
        assert filled.filled_quantity == Decimal("10")
        assert recorder.of("order_filled")[0].order.id == order.id

    def test_fill_cannot_exceed_requested_quantity(self, engine):
        order = _submit(engine)
        with pytest.raises(ValidationError):
            engine.order_book.record_fill(order.id, Decimal("100"), Decimal("11"))
        stored = engine.get_order(order.id)
        assert stored.status == "PLACED"
        assert stored.filled_quantity == 0

    def test_partial_quantity_fill(self, engine):
        order = _submit(engine)
        filled = engine.order_book.record_fill(order.id, Decimal("100"), Decimal("4"))
        assert filled.filled_quantity <= filled.quantity

    def test_fill_price_must_be_positive(self, engine):
        order = _submit(engine)
        with pytest.raises(ValidationError):
            engine.order_book.record_fill(order.id, Decimal("0"), Decimal("10"))

    def test_fill_on_pending_order_rejected(self, engine, broker):
        broker.connected = False
        with pytest.raises(BrokerCommunicationFailure):
            _submit(engine)
        (order,) = engine.orders()
        with pytest.raises(InvalidTransition):
            engine.order_book.record_fill(order.id, Decimal("100"), Decimal("10"))

    def test_fill_unknown_order(self, engine):
        with pytest.raises(OrderNotFound):
            engine.order_book.record_fill("missing", Decimal("100"), Decimal("1"))

    def test_fill_confirmation_inbound(self, engine):
        order = _submit(engine)
        filled = engine.on_fill_confirmation(
            {"orderId": order.id, "fillPrice": "99", "fillQuantity": "10"}
        )
        assert filled.status == "FILLED"


# ── Cancel ────────────────────────────────────────────────────


class TestCancel:
    def test_cancel_placed_order(self, engine, recorder):
        order = _submit(engine)
        assert asyncio.run(engine.cancel_order(order.id)) is True
        assert engine.get_order(order.id).status == "CANCELLED"
        assert recorder.kinds == ["order_placed", "order_cancelled"]

    def test_cancel_filled_order_is_invalid(self, engine):
        filled = _placed_and_filled(engine)
        with pytest.raises(InvalidTransition):
            asyncio.run(engine.cancel_order(filled.id))
        assert engine.get_order(filled.id) == filled

    def test_cancel_with_broker_down_keeps_order_placed(self, engine, broker, recorder):
        order = _submit(engine)
        broker.connected = False
        with pytest.raises(BrokerCommunicationFailure):
            asyncio.run(engine.cancel_order(order.id))
        assert engine.get_order(order.id).status == "PLACED"
        assert recorder.of("order_cancelled") == []

    def test_broker_refusing_cancel_keeps_order_placed(self, engine, broker, recorder):
        order = _submit(engine, order_type="LIMIT", price="100")
        # The venue completed the order but no fill has reached the engine yet
        broker.fill(order.broker_order_id, Decimal("100"))

        with pytest.raises(BrokerCommunicationFailure):
            asyncio.run(engine.cancel_order(order.id))
        assert engine.get_order(order.id).status == "PLACED"
        assert recorder.of("order_cancelled") == []

    def test_cancel_unknown_order(self, engine):
        with pytest.raises(OrderNotFound):
            asyncio.run(engine.cancel_order("missing"))

    def test_fill_wins_race_with_cancel(self, engine, recorder):
        engine.add_broker("racy", _FillDuringCancel(engine.order_book))
        order = _submit(engine, broker_id="racy")

        with pytest.raises(InvalidTransition):
            asyncio.run(engine.cancel_order(order.id))

        assert engine.get_order(order.id).status == "FILLED"
        assert recorder.of("order_cancelled") == []
        assert len(recorder.of("order_filled")) == 1

    def test_broker_reported_cancel(self, engine, recorder):
        order = _submit(engine)
        cancelled = engine.order_book.apply_broker_cancel(order.id, reason="Expired")
        assert cancelled.status == "CANCELLED"
        assert cancelled.reject_reason == "Expired"
        assert recorder.kinds[-1] == "order_cancelled"


# ── Modify ────────────────────────────────────────────────────


class TestModify:
    def test_modify_price_and_quantity(self, engine, recorder):
        order = _submit(engine, order_type="LIMIT", price="100")
        modified = asyncio.run(
            engine.modify_order(order.id, quantity=Decimal("20"), price=Decimal("101"))
        )
        assert modified.quantity == Decimal("20")
        assert modified.price == Decimal("101")
        assert modified.status == "PLACED"
        assert recorder.kinds == ["order_placed", "order_modified"]

    def test_modify_with_nothing_to_change(self, engine, recorder):
        order = _submit(engine)
        unchanged = asyncio.run(engine.modify_order(order.id))
        assert unchanged == engine.get_order(order.id)
        assert recorder.kinds == ["order_placed"]

    def test_modify_goes_through_risk_gate(self, engine, recorder):
        order = _submit(engine)
        with pytest.raises(OrderRejected) as exc_info:
            asyncio.run(engine.modify_order(order.id, quantity=Decimal("1000000")))

        assert exc_info.value.order_id == order.id
        stored = engine.get_order(order.id)
        assert stored.status == "PLACED"
        assert stored.quantity == Decimal("10")
        assert recorder.kinds == ["order_placed"]

    def test_modify_price_checked_against_last_tick(self, engine, recorder):
        engine.on_tick({"symbol": "TCS", "price": "100"})
        order = _submit(engine, order_type="LIMIT", price="100")
        with pytest.raises(OrderRejected):
            asyncio.run(engine.modify_order(order.id, price=Decimal("150")))

        assert engine.get_order(order.id).price == Decimal("100")
        assert recorder.of("order_modified") == []

    def test_broker_refusing_modify_keeps_order_placed(self, engine, broker):
        order = _submit(engine, order_type="LIMIT", price="100")
        broker.fill(order.broker_order_id, Decimal("100"))

        with pytest.raises(OrderRejected):
            asyncio.run(engine.modify_order(order.id, price=Decimal("101")))
        stored = engine.get_order(order.id)
        assert stored.status == "PLACED"
        assert stored.price == Decimal("100")

    def test_modify_rejects_bad_values(self, engine):
        order = _submit(engine)
        with pytest.raises(ValidationError):
            asyncio.run(engine.modify_order(order.id, quantity=Decimal("0")))
        with pytest.raises(ValidationError):
            asyncio.run(engine.modify_order(order.id, price=Decimal("-1")))


# ── Terminal immutability ─────────────────────────────────────


class TestTerminalOrders:
    @pytest.mark.parametrize("terminal", ["FILLED", "CANCELLED", "REJECTED"])
    def test_no_operation_mutates_terminal_order(self, engine, terminal):
        if terminal == "FILLED":
            order = _placed_and_filled(engine)
        elif terminal == "CANCELLED":
            order = _submit(engine)
            asyncio.run(engine.cancel_order(order.id))
        else:
            with pytest.raises(OrderRejected) as exc_info:
                _submit(engine, quantity="5000")
            order = engine.get_order(exc_info.value.order_id)
        before = engine.get_order(order.id)

        with pytest.raises(InvalidTransition):
            engine.order_book.record_fill(order.id, Decimal("100"), Decimal("1"))
        with pytest.raises(InvalidTransition):
            asyncio.run(engine.cancel_order(order.id))
        with pytest.raises(InvalidTransition):
            asyncio.run(engine.modify_order(order.id, price=Decimal("1")))
        with pytest.raises(InvalidTransition):
            engine.order_book.apply_broker_cancel(order.id)
        with pytest.raises(InvalidTransition):
            asyncio.run(engine.retry_order(order.id))

        assert engine.get_order(order.id) == before


# ── Queries ───────────────────────────────────────────────────


class TestQueries:
    def test_returned_orders_are_copies(self, engine):
        order = _submit(engine)
        order.status = "FILLED"
        order.quantity = Decimal("999")
        stored = engine.get_order(order.id)
        assert stored.status == "PLACED"
        assert stored.quantity == Decimal("10")

    def test_get_unknown_order(self, engine):
        assert engine.get_order("missing") is None

    def test_list_orders_filters(self, engine, broker):
        engine.add_broker("other", PaperBroker(broker_id="other"))
        a = _submit(engine, strategy_id="s1")
        _submit(engine, broker_id="other", strategy_id="s2")
        _placed_and_filled(engine, strategy_id="s1")

        assert len(engine.orders()) == 3
        assert len(engine.orders(broker_id="other")) == 1
        assert len(engine.orders(strategy_id="s1")) == 2
        assert [o.id for o in engine.orders(status="PLACED", strategy_id="s1")] == [a.id]

    def test_history_newest_first(self, engine):
        first = _placed_and_filled(engine, symbol="TCS")
        second = _placed_and_filled(engine, symbol="INFY")
        _submit(engine, symbol="WIPRO")  # placed, not filled

        assert [o.id for o in engine.order_history()] == [second.id, first.id]
        assert [o.id for o in engine.order_history(limit=1)] == [second.id]

    def test_history_returns_copies(self, engine):
        filled = _placed_and_filled(engine)
        (entry,) = engine.order_history()
        entry.status = "CANCELLED"
        entry.quantity = Decimal("999")

        (stored,) = engine.order_history()
        assert stored == filled
        assert stored.status == "FILLED"

    def test_statistics(self, engine):
        _placed_and_filled(engine, price="100", quantity="10")
        _submit(engine, side="SELL", quantity="5")
        with pytest.raises(OrderRejected):
            _submit(engine, quantity="2000")

        stats = engine.order_statistics()
        assert stats.total == 3
        assert stats.filled == 1
        assert stats.placed == 1
        assert stats.rejected == 1
        assert stats.buy_orders == 2
        assert stats.sell_orders == 1
        assert stats.total_volume == Decimal("10")
        assert stats.total_value == Decimal("1000")
        assert engine.order_statistics(broker_id="other").total == 0
