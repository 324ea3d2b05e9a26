"""Tests for the portfolio aggregator — summary, trade log, performance."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from trading_engine.errors import OrderRejected
from trading_engine.models import BrokerBalance

T0 = datetime(2025, 6, 16, 9, 15, tzinfo=timezone.utc)


# ── Helpers ───────────────────────────────────────────────────


def _fill(engine, side, quantity, price, symbol="TCS", strategy_id=None):
    async def _go():
        order = await engine.submit_order({
            "broker_id": "paper",
            "symbol": symbol,
            "side": side,
            "quantity": str(quantity),
            "strategy_id": strategy_id,
        })
        return engine.on_fill_confirmation({
            "order_id": order.id,
            "fill_price": str(price),
            "fill_quantity": str(quantity),
        })

    return asyncio.run(_go())


def _tick(engine, symbol, price, seconds=0):
    return engine.on_tick({
        "symbol": symbol,
        "price": str(price),
        "timestamp": (T0 + timedelta(seconds=seconds)).isoformat(),
    })


# ── Summary ───────────────────────────────────────────────────


class TestSummary:
    def test_empty_portfolio(self, engine):
        s = engine.summary()
        assert s.total_value == 0
        assert s.total_pnl == 0
        assert s.total_pnl_pct == 0
        assert s.day_pnl_pct == 0
        assert s.available_cash == Decimal("100000")
        assert s.margin_available == Decimal("100000")
        assert s.position_count == 0

    def test_marked_to_market(self, engine):
        _fill(engine, "BUY", 10, 100)
        _tick(engine, "TCS", 110)

        s = engine.summary()
        assert s.total_value == Decimal("1100")
        assert s.total_invested == Decimal("1000")
        assert s.unrealized_pnl == Decimal("100")
        assert s.total_pnl == Decimal("100")
        assert s.total_pnl_pct == Decimal("10")
        assert s.position_count == 1

    def test_day_pnl(self, engine):
        _fill(engine, "BUY", 10, 100)
        _tick(engine, "TCS", 105)

        assert engine.position("TCS").day_change == Decimal("5")
        assert engine.summary().day_pnl == Decimal("50")

    def test_realized_survives_position_close(self, engine):
        _fill(engine, "BUY", 10, 100)
        _fill(engine, "SELL", 10, 110)

        s = engine.summary()
        assert engine.positions() == []
        assert s.position_count == 0
        assert s.realized_pnl == Decimal("100")
        assert s.total_pnl == Decimal("100")
        # Nothing invested any more
        assert s.total_pnl_pct == 0

    def test_realized_includes_open_positions(self, engine):
        _fill(engine, "BUY", 10, 100)
        _fill(engine, "SELL", 4, 110)
        assert engine.summary().realized_pnl == Decimal("40")

    def test_summary_is_idempotent(self, engine):
        _fill(engine, "BUY", 10, 100)
        _tick(engine, "TCS", 103)
        assert engine.summary() == engine.summary()

    def test_broker_balances(self, engine):
        engine.set_broker_balance("paper", BrokerBalance(
            available_cash=Decimal("5000"),
            margin_used=Decimal("1000"),
            margin_available=Decimal("4000"),
        ))
        engine.set_broker_balance("dhan", {"availableCash": "2500", "marginAvailable": "2500"})

        s = engine.summary()
        assert s.available_cash == Decimal("7500")
        assert s.margin_used == Decimal("1000")
        assert s.margin_available == Decimal("6500")


# ── Event ordering ────────────────────────────────────────────


class TestFillEvents:
    def test_fill_yields_one_position_update_then_one_trade(self, engine, recorder):
        _fill(engine, "BUY", 10, 100)

        kinds = recorder.kinds
        assert kinds.count("position_updated") == 1
        assert kinds.count("trade_recorded") == 1
        assert kinds.index("order_filled") < kinds.index("position_updated")
        assert kinds.index("position_updated") < kinds.index("trade_recorded")

    def test_portfolio_updated_after_fill(self, engine, recorder):
        _fill(engine, "BUY", 10, 100)
        (update,) = recorder.of("portfolio_updated")
        assert update.summary.position_count == 1
        assert update.summary.total_invested == Decimal("1000")

    def test_tick_updates_portfolio_without_trade(self, engine, recorder):
        _fill(engine, "BUY", 10, 100)
        recorder.clear()
        _tick(engine, "TCS", 120)
        assert recorder.kinds == ["market_tick", "position_updated", "portfolio_updated"]


# ── Trade log ─────────────────────────────────────────────────


class TestTrades:
    def test_trade_per_fill(self, engine):
        buy = _fill(engine, "BUY", 10, 100, strategy_id="s1")
        sell = _fill(engine, "SELL", 10, 110, strategy_id="s1")

        trades = engine.trades()
        assert [t.order_id for t in trades] == [sell.id, buy.id]
        assert trades[0].pnl == Decimal("100")
        assert trades[0].value == Decimal("1100")
        assert trades[1].pnl == 0
        assert trades[1].strategy_id == "s1"

    def test_trade_filters(self, engine):
        _fill(engine, "BUY", 1, 100, symbol="TCS", strategy_id="s1")
        _fill(engine, "BUY", 1, 200, symbol="INFY", strategy_id="s2")
        _fill(engine, "BUY", 1, 300, symbol="TCS", strategy_id="s2")

        assert len(engine.trades(symbol="TCS")) == 2
        assert len(engine.trades(strategy_id="s2")) == 2
        assert engine.trades(limit=1)[0].price == Decimal("300")

    def test_rejected_order_records_no_trade(self, engine):
        with pytest.raises(OrderRejected):
            _fill(engine, "BUY", 5000, 100)
        assert engine.trades() == []
        assert engine.positions() == []

    def test_refused_flip_still_records_trade(self, engine, recorder):
        order = _fill(engine, "SELL", 5, 100)

        assert order.status == "FILLED"
        assert engine.positions() == []
        (trade,) = engine.trades()
        assert trade.order_id == order.id
        assert trade.side == "SELL"
        assert trade.pnl == 0
        assert recorder.kinds.count("trade_recorded") == 1
        assert "position_updated" not in recorder.kinds

    def test_refused_flip_does_not_leak_into_next_fill(self, engine, recorder):
        _fill(engine, "SELL", 5, 100)
        recorder.clear()
        _fill(engine, "BUY", 10, 100)

        assert len(engine.trades()) == 2
        kinds = recorder.kinds
        assert kinds.count("trade_recorded") == 1
        assert kinds.index("position_updated") < kinds.index("trade_recorded")


# ── Performance ───────────────────────────────────────────────


class TestPerformanceMetrics:
    def test_no_trades(self, engine):
        m = engine.performance_metrics()
        assert m.total_trades == 0
        assert m.win_rate == 0
        assert m.profit_factor == 0
        assert m.max_drawdown == 0
        assert m.sharpe_ratio == 0

    def test_round_trips(self, engine):
        _fill(engine, "BUY", 10, 100)
        _fill(engine, "SELL", 10, 110)   # +100
        _fill(engine, "BUY", 10, 100)
        _fill(engine, "SELL", 10, 95)    # -50

        m = engine.performance_metrics()
        assert m.total_trades == 4
        assert m.winning_trades == 1
        assert m.losing_trades == 1
        assert m.win_rate == pytest.approx(25.0)
        assert m.avg_win == pytest.approx(100.0)
        assert m.avg_loss == pytest.approx(-50.0)
        assert m.profit_factor == pytest.approx(2.0)
        assert m.expectancy == pytest.approx(-12.5)
        assert m.max_drawdown == pytest.approx(50.0)

    def test_new_trade_invalidates_cache(self, engine):
        _fill(engine, "BUY", 10, 100)
        assert engine.performance_metrics().total_trades == 1
        _fill(engine, "SELL", 10, 110)
        assert engine.performance_metrics().total_trades == 2


# ── Strategy attribution ──────────────────────────────────────


class TestPnlByStrategy:
    def test_realized_and_unrealized(self, engine):
        _fill(engine, "BUY", 10, 100, strategy_id="s1")
        _fill(engine, "SELL", 4, 110, strategy_id="s1")
        _tick(engine, "TCS", 120)

        pnl = engine.pnl_by_strategy("s1")
        assert pnl.trade_count == 2
        assert pnl.realized_pnl == Decimal("40")
        assert pnl.unrealized_pnl == Decimal("120")
        assert pnl.total_pnl == Decimal("160")

    def test_unknown_strategy(self, engine):
        _fill(engine, "BUY", 10, 100, strategy_id="s1")
        pnl = engine.pnl_by_strategy("s2")
        assert pnl.trade_count == 0
        assert pnl.total_pnl == 0
