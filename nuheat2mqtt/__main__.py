#!/usr/bin/env python3
"""Command line entry point: ``nuheat2mqtt`` / ``python -m nuheat2mqtt``."""

import argparse
import logging
import sys
from typing import Optional, Sequence

import yaml

from . import __version__
from .bridge import NuHeatBridge
from .config import PARAM_SCALE, PARAM_USERNAME, load_config, validate_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are only useful at DEBUG
NOISY_LOGGERS = ("paho", "aiohttp")

EXIT_OK = 0
EXIT_ERROR = 1


def setup_logging(level: str = "INFO"):
    """Log to stdout at ``level``; third-party chatter stays at WARNING."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nuheat2mqtt",
        description="Expose NuHeat cloud thermostats to a home-automation hub over MQTT",
    )
    parser.add_argument("-c", "--config", metavar="PATH", help="YAML config file (default: search config.yaml)")
    parser.add_argument("-v", "--version", action="version", version=f"nuheat2mqtt {__version__}")
    parser.add_argument("--debug", action="store_true", help="log at DEBUG, overriding options.log_level")
    parser.add_argument("--validate", action="store_true", help="check the configuration, print a summary and exit")
    return parser


def config_summary(config: dict) -> list[str]:
    """Human readable lines describing the effective configuration."""
    mqtt_config = config["mqtt"]
    params = config.get("params") or {}
    options = config["options"]
    return [
        f"  MQTT Broker: {mqtt_config['host']}:{mqtt_config['port']}",
        f"  Base Topic: {mqtt_config['base_topic']}",
        f"  NuHeat Account: {params.get(PARAM_USERNAME, 'not set')}",
        f"  Scale: {params.get(PARAM_SCALE, 'not set')}",
        f"  Polls: short {options['short_poll']}s, long {options['long_poll']}s",
        f"  State Dir: {options['state_dir']}",
    ]


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments, then validate or run the bridge.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging("DEBUG" if args.debug else config["options"].get("log_level", "INFO"))
    logger = logging.getLogger(__name__)
    logger.info(f"Loaded config from: {config.get('_config_path', 'defaults')}")

    errors = validate_config(config)
    for error in errors:
        logger.error(f"Config error: {error}")

    if args.validate:
        print("Configuration is INVALID" if errors else "Configuration is valid")
        if not errors:
            print("\n".join(config_summary(config)))
    if errors or args.validate:
        return EXIT_ERROR if errors else EXIT_OK

    logger.info(f"nuheat2mqtt v{__version__} starting...")
    try:
        NuHeatBridge(config).run_forever()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return EXIT_ERROR
    return EXIT_OK


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
