"""Shared test fixtures."""

import pytest

from trading_engine.broker import PaperBroker
from trading_engine.config.schema import AppConfig, LedgerConfig, MonitorConfig
from trading_engine.engine import TradingEngine


class EventRecorder:
    """Collects every event published on a bus, in delivery order."""

    def __init__(self, bus):
        self.events = []
        bus.subscribe("*", self.events.append)

    @property
    def kinds(self):
        return [e.kind for e in self.events]

    def of(self, kind):
        return [e for e in self.events if e.kind == kind]

    def clear(self):
        self.events.clear()


@pytest.fixture
def config():
    """Engine config with no background work (no day reset, no order monitor)."""
    return AppConfig(
        ledger=LedgerConfig(market_open=None),
        monitor=MonitorConfig(enabled=False),
    )


@pytest.fixture
def broker():
    return PaperBroker(broker_id="paper")


@pytest.fixture
def engine(config, broker):
    return TradingEngine(config, brokers={"paper": broker})


@pytest.fixture
def recorder(engine):
    return EventRecorder(engine.bus)


@pytest.fixture
def make_recorder():
    """Attach an EventRecorder to any bus."""
    return EventRecorder
