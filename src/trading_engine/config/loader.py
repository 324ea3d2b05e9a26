"""Config loader — reads YAML, applies TRADING_* env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from trading_engine.config.schema import AppConfig


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from a YAML file, then apply env var overrides.

    If *path* is None or the file doesn't exist, returns defaults.

    Environment variable overrides:
        TRADING_LOG_LEVEL            -> logging.level
        TRADING_LOG_FORMAT           -> logging.format
        TRADING_MAX_ORDER_QUANTITY   -> risk.max_order_quantity
        TRADING_BROKER_<ID>_TOKEN    -> brokers.<id>.access_token (existing brokers only)
    """
    data: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}

    log_level = os.environ.get("TRADING_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level

    log_format = os.environ.get("TRADING_LOG_FORMAT")
    if log_format:
        data.setdefault("logging", {})["format"] = log_format

    max_qty = os.environ.get("TRADING_MAX_ORDER_QUANTITY")
    if max_qty:
        data.setdefault("risk", {})["max_order_quantity"] = float(max_qty)

    for broker_id, broker_data in (data.get("brokers") or {}).items():
        token = os.environ.get(f"TRADING_BROKER_{broker_id.upper()}_TOKEN")
        if token:
            if broker_data is None:
                broker_data = data["brokers"][broker_id] = {}
            broker_data["access_token"] = token

    return AppConfig.model_validate(data)
