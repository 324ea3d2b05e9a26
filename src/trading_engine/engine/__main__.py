"""Allow running the engine as: python -m trading_engine.engine [--config path] [--ticks path]."""

import argparse

from trading_engine.engine.runner import main

parser = argparse.ArgumentParser(description="In-process trading engine")
parser.add_argument("--config", default=None, help="Path to config.yaml")
parser.add_argument("--ticks", default=None, help="JSON-lines tick file to replay")
args = parser.parse_args()
main(config_path=args.config, ticks_path=args.ticks)
