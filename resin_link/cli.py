"""Command-line interface for resin-link."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import ResinLinkApp
from .backends import create_backend
from .config import LinkConfig, load_config
from .logging import configure_logging
from .status.provider import StatusProvider

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resin-link", description="Status bridge for resin printer backends"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the resin-link service")

    status_parser = subparsers.add_parser(
        "status", help="Fetch the canonical status once and print it as JSON"
    )
    status_parser.add_argument(
        "--attempts",
        type=int,
        default=1,
        help="Connection attempts before giving up (default: 1)",
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


async def fetch_status_once(config: LinkConfig, attempts: int = 1) -> Optional[dict]:
    provider = StatusProvider(create_backend(config), config.polling)
    try:
        if not await provider.establish_connection(max_attempts=max(1, attempts)):
            return None
        return provider.snapshot().to_dict()
    finally:
        await provider.aclose()


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        ResinLinkApp.start(config)
        return 0

    if args.command == "status":
        configure_logging("WARNING")
        payload = asyncio.run(fetch_status_once(config, args.attempts))
        if payload is None:
            LOGGER.error("Backend at %s is not reachable", config.backend.url)
            return 1
        print(json.dumps(payload, indent=2))
        return 0

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
