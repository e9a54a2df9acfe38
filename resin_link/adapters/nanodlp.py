"""NanoDLP adapter: plate listings, thumbnails, status and manual control."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Callable, Hashable, Optional

from ..config import BackendConfig, CacheConfig
from ..core.cache import Placeholder, TTLCache
from ..core.errors import (
    BackendError,
    DecodeError,
    NotFoundError,
    UnsupportedCommandError,
)
from ..core.models import CommandResult, FileRef, KinematicStatus, RawStatus
from ..core.utils import first_present, normalize_path
from ..status.mapper import height_to_mm
from ..status.normalizers import NanoDlpNormalizer
from .http import BoundedHttpClient, HttpResponse
from .thumbnails import generate_placeholder, thumbnail_dimensions

LOGGER = logging.getLogger(__name__)

_PLATES_KEY = "plates"


class NanoDlpClient:
    """Client for the NanoDLP HTTP API.

    Plate listings and thumbnails are cached; status is always fetched fresh.
    Every request goes through :class:`BoundedHttpClient`, so a stalled backend
    surfaces as :class:`~resin_link.core.errors.RequestTimeoutError`.
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
            config.url, timeout=config.request_timeout_seconds, label="NanoDLP"
        )
        self._plates: TTLCache[list[FileRef]] = TTLCache(
            ttl=cache_config.listing_ttl_seconds,
            placeholder_ttl=cache_config.placeholder_ttl_seconds,
            name="nanodlp-plates",
            clock=clock,
        )
        self._listings: TTLCache[dict[str, Any]] = TTLCache(
            ttl=cache_config.listing_ttl_seconds,
            placeholder_ttl=cache_config.placeholder_ttl_seconds,
            name="nanodlp-listings",
            clock=clock,
        )
        self._thumbnails: TTLCache[bytes] = TTLCache(
            ttl=cache_config.thumbnail_ttl_seconds,
            placeholder_ttl=cache_config.placeholder_ttl_seconds,
            name="nanodlp-thumbnails",
            clock=clock,
        )
        self._background: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------
    async def list_items(
        self,
        volume: str = "local",
        limit: int = 20,
        offset: int = 0,
        path: str = "",
    ) -> dict[str, Any]:
        """Return one page of plates as file entries.

        Every pagination parameter is part of the cache key, so each page is
        cached on its own.
        """
        key: Hashable = ("list", volume, limit, offset, normalize_path(path))

        async def _build() -> dict[str, Any]:
            plates = await self._fetch_plates()
            folder = normalize_path(path)
            if folder:
                plates = [
                    plate
                    for plate in plates
                    if normalize_path(plate.parent_path) == folder
                ]
            page = plates[offset : offset + limit] if limit > 0 else plates[offset:]
            LOGGER.debug(
                "listItems: %d of %d plates (offset=%d limit=%d)",
                len(page),
                len(plates),
                offset,
                limit,
            )
            return {
                "files": [plate.to_file_entry() for plate in page],
                "dirs": [],
                "offset": offset,
                "limit": limit,
                "total": len(plates),
            }

        result = await self._listings.get_or_fetch(key, _build)
        return result  # type: ignore[return-value]

    async def get_file_metadata(self, volume: str, path: str) -> dict[str, Any]:
        plate = await self._find_plate(path)
        if plate is None:
            raise NotFoundError(f"No NanoDLP plate matches {path!r}")
        return plate.to_file_entry()

    async def get_file_thumbnail(
        self, volume: str, path: str, size: str = "Small"
    ) -> bytes:
        """Fetch the rendered preview of the plate at ``path``.

        Successful downloads are cached for the thumbnail TTL. Failures (no
        matching plate, no preview, non-2xx, timeouts) are cached as a
        placeholder image for the shorter placeholder TTL, so repeated renders
        of a broken asset do not hit the backend.
        """
        width, height = thumbnail_dimensions(size)
        key: Hashable = ("thumbnail", normalize_path(path), width, height)

        async def _download() -> bytes:
            plate = await self._find_plate(path)
            if plate is None:
                raise NotFoundError(f"No NanoDLP plate matches {path!r}")
            if plate.plate_id is None or not plate.preview_available:
                raise NotFoundError(
                    f"Plate {plate.path!r} has no preview (plate_id={plate.plate_id})"
                )
            response = await self._http.get(f"/static/plates/{plate.plate_id}/3d.png")
            response.raise_for_status()
            if not response.body:
                raise DecodeError(f"Empty preview for plate {plate.plate_id}")
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

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    async def get_status(self) -> RawStatus:
        """Fetch and decode ``/status``.

        Raises:
            RequestTimeoutError: If the backend does not answer within the bound.
            TransportError: If the backend cannot be reached.
            HttpStatusError: On a non-2xx answer.
            DecodeError: If the payload is not a JSON object.
        """
        decoded = await self._fetch_status_payload()
        raw = RawStatus.from_json(decoded)
        return self._attach_plate(raw)

    async def get_kinematic_status(self) -> KinematicStatus:
        return self.kinematic_from_status(await self.get_status())

    def kinematic_from_status(self, raw: RawStatus) -> KinematicStatus:
        """Read the Z axis out of a status that was already fetched."""
        return KinematicStatus(
            homed=bool(raw.homed),
            position=height_to_mm(
                raw.current_height, self.config.height_units_per_mm
            ),
            offset=raw.z_offset or 0.0,
        )

    def create_normalizer(self) -> NanoDlpNormalizer:
        return NanoDlpNormalizer(units_per_mm=self.config.height_units_per_mm)

    async def get_printer_config(self) -> dict[str, Any]:
        decoded = await self._fetch_status_payload()
        return {
            "general": {
                "hostname": first_present(decoded, "Hostname", "hostname") or "",
                "ip": first_present(decoded, "IP", "ip") or "",
                "status": first_present(decoded, "Status", "status") or "",
            },
            "advanced": {
                "backend": "nanodlp",
                "nanodlp": {
                    "build": first_present(decoded, "Build", "build"),
                    "version": first_present(decoded, "Version", "version"),
                },
            },
            "machine": {
                "disk": first_present(decoded, "disk", "Disk"),
                "wifi": first_present(decoded, "Wifi", "wifi"),
                "resin_level": first_present(
                    decoded, "resin", "ResinLevelMm", "resin_level_mm"
                ),
            },
            "vendor": {},
        }

    # ------------------------------------------------------------------
    # Manual control
    # ------------------------------------------------------------------
    async def manual_command(self, command: str) -> CommandResult:
        if not command or not command.strip():
            raise ValueError("Command cannot be empty")
        LOGGER.info("NanoDLP manual command: %r", command)
        response = await self._http.post("/gcode", data={"gcode": command.strip()})
        return self._command_result(response)

    async def home(self) -> CommandResult:
        return await self._command("/z-axis/calibrate")

    async def move(self, z: float) -> CommandResult:
        """Move to an absolute height by issuing the equivalent relative move."""
        current = await self.get_kinematic_status()
        return await self.move_delta(z - current.position)

    async def move_delta(self, delta: float) -> CommandResult:
        microns = round(delta * 1000)
        if microns == 0:
            return CommandResult(ok=True, message="no-op")
        direction = "up" if microns > 0 else "down"
        return await self._command(f"/z-axis/move/{direction}/micron/{abs(microns)}")

    async def move_to_top(self) -> CommandResult:
        return await self._command("/z-axis/top")

    async def move_to_floor(self) -> CommandResult:
        return await self._command("/z-axis/bottom")

    async def set_z_offset(self, z: float) -> CommandResult:
        raise UnsupportedCommandError("NanoDLP does not expose a Z offset")

    async def reset_z_offset(self) -> CommandResult:
        raise UnsupportedCommandError("NanoDLP does not expose a Z offset")

    async def emergency_stop(self) -> CommandResult:
        return await self._command("/printer/stop")

    async def display_test(self, pattern: str) -> CommandResult:
        raise UnsupportedCommandError("NanoDLP display test is not supported")

    async def cure(self, on: bool) -> CommandResult:
        raise UnsupportedCommandError("NanoDLP manual cure is not supported")

    async def tare_force_sensor(self) -> CommandResult:
        raise UnsupportedCommandError("NanoDLP has no force sensor")

    async def start_print(self, volume: str, path: str) -> CommandResult:
        plate = await self._find_plate(path)
        if plate is None or plate.plate_id is None:
            raise NotFoundError(f"No NanoDLP plate matches {path!r}")
        result = await self._command(f"/printer/start/{plate.plate_id}")
        # The running job's file metadata is resolved from a fresh listing.
        self._plates.invalidate(_PLATES_KEY)
        self._schedule_plate_prefetch()
        return result

    async def pause_print(self) -> CommandResult:
        return await self._command("/printer/pause")

    async def resume_print(self) -> CommandResult:
        return await self._command("/printer/unpause")

    async def cancel_print(self) -> CommandResult:
        return await self._command("/printer/stop")

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        for task in list(self._background):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._background.clear()
        await self._plates.aclose()
        await self._listings.aclose()
        await self._thumbnails.aclose()
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _fetch_status_payload(self) -> dict[str, Any]:
        response = await self._http.get("/status")
        response.raise_for_status()
        decoded = response.json()
        if not isinstance(decoded, dict):
            raise DecodeError(
                f"NanoDLP /status returned {type(decoded).__name__}, expected object"
            )
        decoded.pop("FillAreas", None)
        return decoded

    async def _fetch_plates(self) -> list[FileRef]:
        plates = await self._plates.get_or_fetch(_PLATES_KEY, self._load_plates)
        return plates  # type: ignore[return-value]

    async def _load_plates(self) -> list[FileRef]:
        response = await self._http.get("/plates/list/json")
        response.raise_for_status()
        entries = _extract_plate_entries(response.json())
        plates: list[FileRef] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            plates.append(FileRef.from_json(entry))
        LOGGER.debug("Loaded %d NanoDLP plates", len(plates))
        return plates

    async def _find_plate(self, path: str) -> Optional[FileRef]:
        wanted = normalize_path(path)
        for plate in await self._fetch_plates():
            if normalize_path(plate.path) == wanted:
                return plate
            if plate.name and normalize_path(plate.name) == wanted:
                return plate
        return None

    def _attach_plate(self, raw: RawStatus) -> RawStatus:
        """Fill in missing file metadata from the cached plate listing.

        Never performs I/O: if the listing is not cached and a job is running,
        a background refresh is scheduled and a later poll picks it up.
        """
        if raw.file is not None or raw.plate_id is None:
            return raw

        entry = self._plates.peek(_PLATES_KEY)
        if entry is not None and not entry.is_placeholder:
            for plate in entry.value:  # type: ignore[union-attr]
                if plate.plate_id == raw.plate_id:
                    return raw.with_file(plate)
            return raw

        if raw.printing:
            self._schedule_plate_prefetch()
        return raw

    def _schedule_plate_prefetch(self) -> None:
        if self._plates.is_inflight(_PLATES_KEY):
            return
        task = asyncio.create_task(self._prefetch_plates())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _prefetch_plates(self) -> None:
        try:
            await self._fetch_plates()
        except BackendError as exc:
            LOGGER.debug("Background plate prefetch failed: %s", exc)

    async def _command(self, path: str) -> CommandResult:
        LOGGER.info("NanoDLP request: %s", path)
        response = await self._http.get(path)
        return self._command_result(response)

    @staticmethod
    def _command_result(response: HttpResponse) -> CommandResult:
        response.raise_for_status()
        try:
            payload: Any = response.json()
        except DecodeError:
            payload = response.text()
        return CommandResult.from_payload(payload)


def _extract_plate_entries(decoded: Any) -> list[Any]:
    if isinstance(decoded, list):
        return decoded
    if isinstance(decoded, dict):
        for key in ("plates", "files", "data"):
            value = decoded.get(key)
            if isinstance(value, list):
                return value
        values = [value for value in decoded.values() if isinstance(value, dict)]
        if values:
            return values
        return [decoded]
    raise DecodeError(
        f"plates/list/json returned {type(decoded).__name__}, expected list"
    )
