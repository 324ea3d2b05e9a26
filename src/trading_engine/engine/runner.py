"""Engine runner — builds brokers from config, replays a tick feed, runs until stopped."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from trading_engine.broker import HttpBroker, PaperBroker
from trading_engine.broker.base import BrokerConnection
from trading_engine.config.loader import load_config
from trading_engine.config.schema import AppConfig
from trading_engine.engine.core import TradingEngine
from trading_engine.engine.market_data import read_tick_file
from trading_engine.events import JsonLinesSink, LoggingSink
from trading_engine.logging.setup import setup_logging

log = structlog.get_logger("engine_runner")


def build_brokers(config: AppConfig, engine: TradingEngine) -> dict[str, BrokerConnection]:
    """Instantiate one connection per configured broker."""
    brokers: dict[str, BrokerConnection] = {}
    for broker_id, broker_cfg in config.brokers.items():
        if broker_cfg.kind == "http":
            if not broker_cfg.base_url:
                log.warning("broker_missing_base_url", broker_id=broker_id)
                continue
            brokers[broker_id] = HttpBroker(
                base_url=broker_cfg.base_url,
                access_token=broker_cfg.access_token,
                timeout_s=broker_cfg.timeout_s,
            )
        else:
            brokers[broker_id] = PaperBroker(
                broker_id=broker_id,
                auto_fill=broker_cfg.auto_fill,
                price_source=engine.market_data.get_price,
            )
    return brokers


def build_engine(config: AppConfig) -> TradingEngine:
    engine = TradingEngine(config)
    for broker_id, connection in build_brokers(config, engine).items():
        engine.add_broker(broker_id, connection)
    if config.events.log_events:
        engine.bus.register(LoggingSink())
    if config.events.record_path:
        engine.bus.register(JsonLinesSink(config.events.record_path))
    return engine


async def run(config: AppConfig, ticks_path: str | Path | None = None) -> TradingEngine:
    """Start the engine; replay *ticks_path* if given, otherwise run until cancelled."""
    engine = build_engine(config)
    await engine.start()
    try:
        if ticks_path is None:
            await asyncio.Event().wait()
        else:
            delay = config.market_data.replay_delay_s
            replayed = 0
            for tick in read_tick_file(ticks_path):
                engine.on_tick(tick)
                replayed += 1
                # Yield so monitor and submission tasks make progress
                await asyncio.sleep(delay)
            log.info(
                "tick_replay_finished",
                ticks=replayed,
                summary=engine.summary(),
                status=engine.status(),
            )
    finally:
        await engine.stop()
    return engine


def main(config_path: str | None = None, ticks_path: str | None = None) -> None:
    """Entry point — load config, set up logging, run the async loop."""
    config = load_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    asyncio.run(run(config, ticks_path))
