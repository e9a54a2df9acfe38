"""HTTP endpoint exposing connectivity and the canonical status."""

from __future__ import annotations

import contextlib
import logging
from typing import Optional

from aiohttp import web

from .status.provider import StatusProvider

LOGGER = logging.getLogger(__name__)


class HealthServer:
    """Minimal HTTP server exposing `/healthz` and `/status`."""

    def __init__(self, provider: StatusProvider, host: str, port: int) -> None:
        self._provider = provider
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/status", self._handle_status)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Health endpoint listening on http://%s:%s/healthz", self._host, self._port
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = self._provider.snapshot()
        healthy = snapshot.has_ever_connected and snapshot.connected
        payload = {
            "status": "ok" if healthy else "degraded",
            "connected": snapshot.connected,
            "hasEverConnected": snapshot.has_ever_connected,
            "continuousPolling": snapshot.continuous_polling,
            "error": snapshot.error,
        }
        return web.json_response(payload, status=200 if healthy else 503)

    async def _handle_status(self, request: web.Request) -> web.Response:
        snapshot = self._provider.snapshot()
        if snapshot.status is None:
            return web.json_response(
                {"error": snapshot.error or "no status yet"}, status=503
            )
        return web.json_response(snapshot.to_dict())
