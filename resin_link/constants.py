"""Constants used across the resin-link package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "resin-link"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / "printer_data" / "config" / DEFAULT_CONFIG_FILENAME

DEFAULT_LOG_PATH = Path.home() / "printer_data" / "logs" / f"{APP_NAME}.log"

DEFAULT_BACKEND_KIND = "nanodlp"
DEFAULT_BACKEND_URL = "http://localhost"

BACKEND_NANODLP = "nanodlp"
BACKEND_ODYSSEY = "odyssey"
SUPPORTED_BACKENDS = (BACKEND_NANODLP, BACKEND_ODYSSEY)
