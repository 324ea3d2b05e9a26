"""Configuration schema — Pydantic models for config.yaml."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class RiskConfig(BaseModel):
    max_order_quantity: float = 1000
    # Fraction of the last tick price, LIMIT orders only
    max_price_deviation_pct: float = 0.10
    max_position_quantity: float = 5000


class LedgerConfig(BaseModel):
    # Relative price move a tick must exceed before position_updated fires
    tick_epsilon_pct: float = 0.001
    # "HH:MM" in market_timezone; None disables the daily baseline reset
    market_open: str | None = "09:15"
    market_timezone: str = "UTC"

    @field_validator("market_open")
    @classmethod
    def _check_market_open(cls, value: str | None) -> str | None:
        if value is None:
            return value
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit()):
            raise ValueError(f"market_open must be HH:MM, got {value!r}")
        if int(hours) > 23 or int(minutes) > 59:
            raise ValueError(f"market_open out of range: {value!r}")
        return value


class PortfolioConfig(BaseModel):
    # Cash reported when no broker balance has been set
    default_cash: float = 100000
    metrics_cache_ttl_s: float = 60.0


class MonitorConfig(BaseModel):
    enabled: bool = True
    poll_interval_s: float = 5.0


class MarketDataConfig(BaseModel):
    # None keeps the last tick usable forever
    staleness_threshold_s: float | None = None
    replay_delay_s: float = 0.0


class BrokerConfig(BaseModel):
    kind: Literal["paper", "http"] = "paper"
    base_url: str | None = None
    access_token: str | None = None
    timeout_s: float = 15.0
    # Paper broker only: fill at the order/last tick price on placement
    auto_fill: bool = False


class EventsConfig(BaseModel):
    log_events: bool = True
    record_path: str | None = None


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"


class AppConfig(BaseModel):
    risk: RiskConfig = Field(default_factory=RiskConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    brokers: dict[str, BrokerConfig] = Field(default_factory=dict)
    events: EventsConfig = Field(default_factory=EventsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
