"""Command-line interface for radio-deck."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .adapters import DiscoveryService
from .app import RadioDeckApp
from .config import DeckConfig, load_config
from .core import DiscoveryTimeout, InvalidRegistration
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="radio-deck",
        description="Control bridge between a networked SDR and a display/input surface",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the radio-deck bridge")

    discover_parser = subparsers.add_parser(
        "discover", help="Listen for a radio announcement and print its address"
    )
    discover_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for an announcement (default: from configuration)",
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def run_discovery(config: DeckConfig, timeout: Optional[float] = None) -> int:
    radio = config.radio
    service = DiscoveryService(
        port=radio.discovery_port,
        marker=radio.discovery_marker,
        default_command_port=radio.port,
    )
    wait = radio.discovery_timeout_seconds if timeout is None else timeout

    try:
        result = asyncio.run(service.discover(wait))
    except OSError as exc:
        LOGGER.error("Cannot listen on udp port %s: %s", radio.discovery_port, exc)
        return 1

    if isinstance(result, DiscoveryTimeout):
        print(f"No radio found on udp port {result.port} within {result.timeout:.1f}s")
        return 2

    print(f"{result.host}:{result.port}")
    for label, value in (
        ("model", result.model),
        ("serial", result.serial),
        ("nickname", result.nickname),
        ("version", result.version),
    ):
        if value:
            print(f"  {label}: {value}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        try:
            RadioDeckApp.launch(config)
        except InvalidRegistration as exc:
            LOGGER.error("Refusing to start: %s", exc)
            return 1
        return 0

    if args.command == "discover":
        configure_logging(config.logging.level, log_network=config.logging.log_network)
        return run_discovery(config, args.timeout)

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
