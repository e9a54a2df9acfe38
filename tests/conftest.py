import asyncio
from collections import Counter
from typing import Any, Optional

import pytest_asyncio
from aiohttp import web

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-preview"

DEFAULT_PLATES = [
    {"PlateID": 7, "path": "cube.zip", "Preview": True, "LayerCount": 120},
    {"PlateID": 8, "path": "broken.zip", "Preview": True, "LayerCount": 40},
    {"PlateID": 9, "path": "nopreview.zip", "Preview": False},
]


class FakeNanoDlp:
    """In-memory NanoDLP backend state served by the fixture below."""

    def __init__(self, port: int) -> None:
        self._port = port
        self.calls: Counter[str] = Counter()
        self.requests: list[str] = []
        self.status: dict[str, Any] = {
            "Printing": False,
            "Paused": False,
            "State": 0,
            "CurrentHeight": 12340,
            "Curing": False,
        }
        self.plates: list[dict[str, Any]] = [dict(plate) for plate in DEFAULT_PLATES]
        self.failing_previews: set[int] = {8}
        self.status_delay: float = 0.0
        self.status_error: Optional[int] = None
        self.command_reply: Any = "ok"

    def make_url(self, path: str = "/") -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"http://127.0.0.1:{self._port}{path}"


def _build_app(state: FakeNanoDlp) -> web.Application:
    async def status_handler(request: web.Request) -> web.Response:
        state.calls["status"] += 1
        if state.status_delay:
            await asyncio.sleep(state.status_delay)
        if state.status_error is not None:
            return web.Response(status=state.status_error, text="backend error")
        return web.json_response(state.status)

    async def plates_handler(request: web.Request) -> web.Response:
        state.calls["plates"] += 1
        return web.json_response(state.plates)

    async def preview_handler(request: web.Request) -> web.Response:
        plate_id = int(request.match_info["plate_id"])
        state.calls[f"preview:{plate_id}"] += 1
        if plate_id in state.failing_previews:
            return web.Response(status=500, text="render failed")
        return web.Response(body=PNG_BYTES, content_type="image/png")

    async def command_handler(request: web.Request) -> web.Response:
        state.calls["command"] += 1
        state.requests.append(request.path)
        if isinstance(state.command_reply, (dict, list)):
            return web.json_response(state.command_reply)
        return web.Response(text=str(state.command_reply))

    async def gcode_handler(request: web.Request) -> web.Response:
        form = await request.post()
        state.calls["gcode"] += 1
        state.requests.append(f"gcode:{form.get('gcode')}")
        return web.Response(text="ok")

    app = web.Application()
    app.router.add_get("/status", status_handler)
    app.router.add_get("/plates/list/json", plates_handler)
    app.router.add_get("/static/plates/{plate_id}/3d.png", preview_handler)
    app.router.add_post("/gcode", gcode_handler)
    for prefix in ("/z-axis", "/printer"):
        app.router.add_get(prefix + "/{tail:.*}", command_handler)
    return app


@pytest_asyncio.fixture
async def nanodlp_server(unused_tcp_port_factory):
    port = unused_tcp_port_factory()
    state = FakeNanoDlp(port)

    runner = web.AppRunner(_build_app(state), handler_cancellation=True)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()

    try:
        yield state
    finally:
        await runner.cleanup()
