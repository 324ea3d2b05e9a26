"""Broker connections."""

from trading_engine.broker.base import (
    BROKER_STATUS_MAP,
    BrokerConnection,
    map_broker_status,
)
from trading_engine.broker.http import HttpBroker
from trading_engine.broker.paper import PaperBroker

__all__ = [
    "BROKER_STATUS_MAP",
    "BrokerConnection",
    "HttpBroker",
    "PaperBroker",
    "map_broker_status",
]
