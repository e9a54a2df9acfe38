"""Odyssey adapter: the native backend that already speaks the canonical shape."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Hashable, Mapping, Optional

from ..config import BackendConfig, CacheConfig
from ..core.cache import Placeholder, TTLCache
from ..core.errors import BackendError, DecodeError, UnsupportedCommandError
from ..core.models import CommandResult, KinematicStatus
from ..core.utils import first_present, parse_bool, parse_float
from ..status.normalizers import OdysseyNormalizer
from .http import BoundedHttpClient, HttpResponse
from .thumbnails import generate_placeholder, thumbnail_dimensions

LOGGER = logging.getLogger(__name__)

EMERGENCY_STOP_GCODE = "M112"


class OdysseyClient:
    """Client for the Odyssey HTTP API.

    Commands are POSTs carrying their arguments as query parameters. Status and
    listings are passed through uncached; thumbnails share the NanoDLP
    caching policy, including placeholder images for failed downloads.
    """

    def __init__(
        self,
        config: BackendConfig,
        cache_config: Optional[CacheConfig] = None,
        *,
        http: Optional[BoundedHttpClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        cache_config = cache_config or CacheConfig()
        self._http = http or BoundedHttpClient(
            config.url, timeout=config.request_timeout_seconds, label="Odyssey"
        )
        self._thumbnails: TTLCache[bytes] = TTLCache(
            ttl=cache_config.thumbnail_ttl_seconds,
            placeholder_ttl=cache_config.placeholder_ttl_seconds,
            name="odyssey-thumbnails",
            clock=clock,
        )

    async def list_items(
        self,
        volume: str = "Local",
        limit: int = 20,
        offset: int = 0,
        path: str = "",
    ) -> Dict[str, Any]:
        return await self._get_object(
            "/files",
            params={
                "location": volume,
                "subdirectory": path,
                "page_index": str(offset),
                "page_size": str(limit),
            },
        )

    async def get_file_metadata(self, volume: str, path: str) -> Dict[str, Any]:
        return await self._get_object(
            "/file/metadata",
            params={"location": volume, "file_path": _clean_path(path)},
        )

    async def get_file_thumbnail(
        self, volume: str, path: str, size: str = "Small"
    ) -> bytes:
        width, height = thumbnail_dimensions(size)
        key: Hashable = ("thumbnail", volume, _clean_path(path), size)

        async def _download() -> bytes:
            response = await self._http.get(
                "/file/thumbnail",
                params={"location": volume, "file_path": _clean_path(path), "size": size},
            )
            response.raise_for_status()
            if not response.body:
                raise DecodeError(f"Empty thumbnail for {path!r}")
            return response.body

        def _placeholder(exc: Exception) -> Placeholder:
            if not isinstance(exc, BackendError):
                raise exc
            LOGGER.debug("Using placeholder thumbnail for %s: %s", path, exc)
            return Placeholder(
                reason=str(exc), payload=generate_placeholder(width, height)
            )

        value = await self._thumbnails.get_or_fetch(
            key, _download, on_error=_placeholder
        )
        if isinstance(value, Placeholder):
            return value.payload
        return value

    async def get_status(self) -> Dict[str, Any]:
        return await self._get_object("/status")

    async def get_kinematic_status(self) -> KinematicStatus:
        return self.kinematic_from_status(await self.get_status())

    def kinematic_from_status(self, status: Mapping[str, Any]) -> KinematicStatus:
        physical = status.get("physical_state")
        if not isinstance(physical, Mapping):
            physical = {}
        return KinematicStatus(
            homed=parse_bool(first_present(status, "homed", "is_homed")),
            position=parse_float(physical.get("z")) or 0.0,
            offset=parse_float(first_present(status, "z_offset", "offset")) or 0.0,
        )

    def create_normalizer(self) -> OdysseyNormalizer:
        return OdysseyNormalizer()

    async def get_printer_config(self) -> Dict[str, Any]:
        return await self._get_object("/config")

    async def manual_command(self, command: str) -> CommandResult:
        if not command or not command.strip():
            raise ValueError("Command cannot be empty")
        return await self._post(
            "/manual/hardware_command", {"command": command.strip()}
        )

    async def home(self) -> CommandResult:
        return await self._post("/manual/home")

    async def move(self, z: float) -> CommandResult:
        return await self._post("/manual", {"z": str(z)})

    async def move_delta(self, delta: float) -> CommandResult:
        current = await self.get_kinematic_status()
        return await self.move(current.position + delta)

    async def move_to_top(self) -> CommandResult:
        raise UnsupportedCommandError("Odyssey has no move-to-top endpoint")

    async def move_to_floor(self) -> CommandResult:
        return await self.move(0.0)

    async def set_z_offset(self, z: float) -> CommandResult:
        raise UnsupportedCommandError("Odyssey does not expose a Z offset")

    async def reset_z_offset(self) -> CommandResult:
        raise UnsupportedCommandError("Odyssey does not expose a Z offset")

    async def emergency_stop(self) -> CommandResult:
        return await self.manual_command(EMERGENCY_STOP_GCODE)

    async def display_test(self, pattern: str) -> CommandResult:
        return await self._post("/manual/display_test", {"test": pattern})

    async def cure(self, on: bool) -> CommandResult:
        return await self._post("/manual", {"cure": "true" if on else "false"})

    async def tare_force_sensor(self) -> CommandResult:
        raise UnsupportedCommandError("Odyssey has no force sensor endpoint")

    async def start_print(self, volume: str, path: str) -> CommandResult:
        return await self._post(
            "/print/start", {"location": volume, "file_path": _clean_path(path)}
        )

    async def pause_print(self) -> CommandResult:
        return await self._post("/print/pause")

    async def resume_print(self) -> CommandResult:
        return await self._post("/print/resume")

    async def cancel_print(self) -> CommandResult:
        return await self._post("/print/cancel")

    async def aclose(self) -> None:
        await self._thumbnails.aclose()
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _get_object(
        self, path: str, params: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Any]:
        decoded = await self._http.get_json(path, params=params)
        if not isinstance(decoded, dict):
            raise DecodeError(
                f"Odyssey {path} returned {type(decoded).__name__}, expected object"
            )
        return decoded

    async def _post(
        self, path: str, params: Optional[Mapping[str, str]] = None
    ) -> CommandResult:
        LOGGER.info("Odyssey request: POST %s %s", path, dict(params or {}))
        response = await self._http.post(path, params=params)
        return _command_result(response)


def _clean_path(path: str) -> str:
    return path.replace("//", "/")


def _command_result(response: HttpResponse) -> CommandResult:
    response.raise_for_status()
    if not response.body.strip():
        return CommandResult(ok=True)
    try:
        payload: Any = response.json()
    except DecodeError:
        payload = response.text()
    return CommandResult.from_payload(payload)
