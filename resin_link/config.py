"""Configuration loader for resin-link."""

from __future__ import annotations

import logging
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BackendConfig:
    kind: str = constants.DEFAULT_BACKEND_KIND
    url: str = constants.DEFAULT_BACKEND_URL
    request_timeout_seconds: float = 5.0
    height_units_per_mm: float = 1000.0  # raw CurrentHeight units per millimetre


@dataclass(slots=True)
class CacheConfig:
    listing_ttl_seconds: float = 10.0
    thumbnail_ttl_seconds: float = 300.0
    placeholder_ttl_seconds: float = 5.0


@dataclass(slots=True)
class PollingConfig:
    interval_seconds: float = 2.0
    continuous_interval_seconds: float = 0.5
    backoff_max_seconds: float = 60.0
    startup_backoff_max_seconds: float = 5.0
    startup_max_attempts: int = 10
    backoff_jitter_ratio: float = 0.5
    kinematic_max_attempts: int = 3
    kinematic_retry_seconds: float = 0.5


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False


@dataclass(slots=True)
class ServerConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class LinkConfig:
    backend: BackendConfig
    cache: CacheConfig
    polling: PollingConfig
    logging: LoggingConfig
    server: ServerConfig
    raw: ConfigParser
    path: Path


def _get_float(
    parser: ConfigParser,
    section: str,
    option: str,
    default: float,
    *,
    minimum: Optional[float] = None,
) -> float:
    try:
        value = parser.getfloat(section, option, fallback=default)
    except ValueError:
        LOGGER.warning(
            "Invalid value for [%s] %s, using default %s", section, option, default
        )
        value = default
    if minimum is not None:
        value = max(minimum, value)
    return value


def _get_int(
    parser: ConfigParser,
    section: str,
    option: str,
    default: int,
    *,
    minimum: Optional[int] = None,
) -> int:
    try:
        value = parser.getint(section, option, fallback=default)
    except ValueError:
        LOGGER.warning(
            "Invalid value for [%s] %s, using default %s", section, option, default
        )
        value = default
    if minimum is not None:
        value = max(minimum, value)
    return value


def load_config(path: Optional[Path] = None) -> LinkConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    backend_defaults = BackendConfig()
    cache_defaults = CacheConfig()
    polling_defaults = PollingConfig()

    parser = ConfigParser()
    parser.read_dict(
        {
            "backend": {
                "kind": backend_defaults.kind,
                "url": backend_defaults.url,
                "request_timeout_seconds": str(
                    backend_defaults.request_timeout_seconds
                ),
                "height_units_per_mm": str(backend_defaults.height_units_per_mm),
            },
            "cache": {
                "listing_ttl_seconds": str(cache_defaults.listing_ttl_seconds),
                "thumbnail_ttl_seconds": str(cache_defaults.thumbnail_ttl_seconds),
                "placeholder_ttl_seconds": str(cache_defaults.placeholder_ttl_seconds),
            },
            "polling": {
                "interval_seconds": str(polling_defaults.interval_seconds),
                "continuous_interval_seconds": str(
                    polling_defaults.continuous_interval_seconds
                ),
                "backoff_max_seconds": str(polling_defaults.backoff_max_seconds),
                "startup_backoff_max_seconds": str(
                    polling_defaults.startup_backoff_max_seconds
                ),
                "startup_max_attempts": str(polling_defaults.startup_max_attempts),
                "backoff_jitter_ratio": str(polling_defaults.backoff_jitter_ratio),
                "kinematic_max_attempts": str(polling_defaults.kinematic_max_attempts),
                "kinematic_retry_seconds": str(
                    polling_defaults.kinematic_retry_seconds
                ),
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_network": "false",
            },
            "server": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    kind = parser.get("backend", "kind").strip().lower()
    if kind not in constants.SUPPORTED_BACKENDS:
        LOGGER.warning(
            "Unknown backend kind %r, falling back to %s",
            kind,
            constants.DEFAULT_BACKEND_KIND,
        )
        kind = constants.DEFAULT_BACKEND_KIND
        parser.set("backend", "kind", kind)

    backend = BackendConfig(
        kind=kind,
        url=parser.get("backend", "url").strip() or constants.DEFAULT_BACKEND_URL,
        request_timeout_seconds=_get_float(
            parser,
            "backend",
            "request_timeout_seconds",
            backend_defaults.request_timeout_seconds,
            minimum=0.01,
        ),
        height_units_per_mm=_get_float(
            parser,
            "backend",
            "height_units_per_mm",
            backend_defaults.height_units_per_mm,
            minimum=1.0,
        ),
    )

    cache = CacheConfig(
        listing_ttl_seconds=_get_float(
            parser,
            "cache",
            "listing_ttl_seconds",
            cache_defaults.listing_ttl_seconds,
            minimum=0.0,
        ),
        thumbnail_ttl_seconds=_get_float(
            parser,
            "cache",
            "thumbnail_ttl_seconds",
            cache_defaults.thumbnail_ttl_seconds,
            minimum=0.0,
        ),
        placeholder_ttl_seconds=_get_float(
            parser,
            "cache",
            "placeholder_ttl_seconds",
            cache_defaults.placeholder_ttl_seconds,
            minimum=0.0,
        ),
    )

    polling = PollingConfig(
        interval_seconds=_get_float(
            parser,
            "polling",
            "interval_seconds",
            polling_defaults.interval_seconds,
            minimum=0.1,
        ),
        continuous_interval_seconds=_get_float(
            parser,
            "polling",
            "continuous_interval_seconds",
            polling_defaults.continuous_interval_seconds,
            minimum=0.05,
        ),
        backoff_max_seconds=_get_float(
            parser,
            "polling",
            "backoff_max_seconds",
            polling_defaults.backoff_max_seconds,
            minimum=0.1,
        ),
        startup_backoff_max_seconds=_get_float(
            parser,
            "polling",
            "startup_backoff_max_seconds",
            polling_defaults.startup_backoff_max_seconds,
            minimum=0.1,
        ),
        startup_max_attempts=_get_int(
            parser,
            "polling",
            "startup_max_attempts",
            polling_defaults.startup_max_attempts,
            minimum=1,
        ),
        backoff_jitter_ratio=max(
            0.0,
            min(
                1.0,
                _get_float(
                    parser,
                    "polling",
                    "backoff_jitter_ratio",
                    polling_defaults.backoff_jitter_ratio,
                ),
            ),
        ),
        kinematic_max_attempts=_get_int(
            parser,
            "polling",
            "kinematic_max_attempts",
            polling_defaults.kinematic_max_attempts,
            minimum=1,
        ),
        kinematic_retry_seconds=_get_float(
            parser,
            "polling",
            "kinematic_retry_seconds",
            polling_defaults.kinematic_retry_seconds,
            minimum=0.0,
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    server = ServerConfig(
        enabled=parser.getboolean("server", "enabled", fallback=False),
        host=parser.get("server", "host", fallback="127.0.0.1"),
        port=_get_int(parser, "server", "port", 0, minimum=0),
    )

    return LinkConfig(
        backend=backend,
        cache=cache,
        polling=polling,
        logging=logging_config,
        server=server,
        raw=parser,
        path=config_path,
    )


def save_config(config: LinkConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
