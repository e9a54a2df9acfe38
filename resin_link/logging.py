"""Process-wide log setup for the resin-link service and CLI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Per-request chatter from the HTTP session, the health server and image
# decoding; one line per poll at the fast kinematic cadence.
NETWORK_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.server", "PIL")


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Route resin-link logs to the console and, optionally, a file.

    Calling it again replaces the handlers from the previous call, so the CLI
    can reconfigure after reading the config file.

    Args:
        level: Root level name from ``[logging] level``; unknown names fall
            back to INFO.
        log_path: File that receives a copy of every record. Its directory is
            created when missing.
        log_network: Let the aiohttp request logs and Pillow through at the
            root level while diagnosing the printer link. Otherwise they are
            held at WARNING.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
