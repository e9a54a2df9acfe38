"""Main application entry-point for resin-link."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .backends import create_backend
from .commands import PrinterCommands
from .config import LinkConfig, load_config
from .core.protocols import PrinterBackendClient
from .health import HealthServer
from .logging import configure_logging
from .status.provider import StatusProvider

LOGGER = logging.getLogger(__name__)


class ResinLinkApp:
    """Coordinates startup and shutdown of the status service.

    Owns the backend client, the status provider polling it, the command
    facade and, when enabled, the health/status HTTP endpoint.
    """

    def __init__(
        self,
        config: Optional[LinkConfig] = None,
        *,
        client: Optional[PrinterBackendClient] = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Application configuration. If None, loads from default path.
            client: Backend client. If None, one is created from the config.
        """
        self._config = config or load_config()
        self._client: PrinterBackendClient = client or create_backend(self._config)
        self._provider = StatusProvider(self._client, self._config.polling)
        self._commands = PrinterCommands(self._client, self._provider)
        self._health_server: Optional[HealthServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def provider(self) -> StatusProvider:
        return self._provider

    @property
    def commands(self) -> PrinterCommands:
        return self._commands

    async def run(self) -> None:
        """Run until :meth:`request_shutdown` is called or the task is cancelled."""
        self._shutdown_event = asyncio.Event()
        LOGGER.info(
            "resin-link starting (%s backend, config %s)",
            self._config.backend.kind,
            self._config.path,
        )
        try:
            await self._start_health_server()
            if not await self._provider.establish_connection():
                LOGGER.warning("Starting without backend contact; polling continues")
            await self._provider.start()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("resin-link received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[LinkConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("resin-link received shutdown signal")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _start_health_server(self) -> None:
        server_config = self._config.server
        if not server_config.enabled or server_config.port <= 0:
            return

        server = HealthServer(self._provider, server_config.host, server_config.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
        else:
            self._health_server = server

    async def _stop_services(self) -> None:
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None
        await self._provider.aclose()
        LOGGER.info("resin-link stopped")
