"""Boolean command facade for UI collaborators."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from .core.errors import BackendError, UnsupportedCommandError
from .core.models import CommandResult
from .core.protocols import PrinterBackendClient
from .status.provider import StatusProvider

LOGGER = logging.getLogger(__name__)


class PrinterCommands:
    """Runs backend commands and reduces every outcome to ``True``/``False``.

    Expected failures (timeouts, refused connections, error replies, commands
    the backend cannot perform) are logged and reported as ``False``; callers
    decide how to surface them.
    """

    def __init__(
        self,
        client: PrinterBackendClient,
        provider: Optional[StatusProvider] = None,
    ) -> None:
        self._client = client
        self._provider = provider

    async def home(self) -> bool:
        return await self._execute("home", self._client.home)

    async def move(self, z: float) -> bool:
        return await self._execute("move", self._client.move, z)

    async def move_delta(self, delta: float) -> bool:
        return await self._execute("move_delta", self._client.move_delta, delta)

    async def move_to_top(self) -> bool:
        return await self._execute("move_to_top", self._client.move_to_top)

    async def move_to_floor(self) -> bool:
        return await self._execute("move_to_floor", self._client.move_to_floor)

    async def set_z_offset(self, z: float) -> bool:
        return await self._execute("set_z_offset", self._client.set_z_offset, z)

    async def reset_z_offset(self) -> bool:
        return await self._execute("reset_z_offset", self._client.reset_z_offset)

    async def emergency_stop(self) -> bool:
        try:
            return await self._execute("emergency_stop", self._client.emergency_stop)
        finally:
            if self._provider is not None:
                self._provider.clear_homed_status()

    async def display_test(self, pattern: str) -> bool:
        return await self._execute(
            "display_test", self._client.display_test, pattern
        )

    async def cure(self, on: bool) -> bool:
        return await self._execute("cure", self._client.cure, on)

    async def tare_force_sensor(self) -> bool:
        return await self._execute(
            "tare_force_sensor", self._client.tare_force_sensor
        )

    async def manual_command(self, command: str) -> bool:
        return await self._execute(
            "manual_command", self._client.manual_command, command
        )

    async def start_print(self, volume: str, path: str) -> bool:
        if self._provider is not None:
            self._provider.reset_transitions()
        return await self._execute(
            "start_print", self._client.start_print, volume, path
        )

    async def pause(self) -> bool:
        return await self._execute("pause", self._client.pause_print)

    async def resume(self) -> bool:
        return await self._execute("resume", self._client.resume_print)

    async def cancel(self) -> bool:
        return await self._execute("cancel", self._client.cancel_print)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _execute(
        self,
        name: str,
        call: Callable[..., Awaitable[CommandResult]],
        *args: Any,
    ) -> bool:
        try:
            result = await call(*args)
        except UnsupportedCommandError as exc:
            LOGGER.info("Command %s not supported: %s", name, exc)
            return False
        except (BackendError, ValueError) as exc:
            LOGGER.warning("Command %s failed: %s", name, exc)
            return False

        if not result.ok:
            LOGGER.warning(
                "Command %s rejected by backend: %s", name, result.message or "no detail"
            )
        return result.ok
