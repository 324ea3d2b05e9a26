"""Configuration system."""

from trading_engine.config.loader import load_config
from trading_engine.config.schema import AppConfig

__all__ = ["AppConfig", "load_config"]
