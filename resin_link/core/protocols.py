"""Protocol definitions for printer backend clients and status listeners."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, runtime_checkable

from .models import CanonicalStatus, CommandResult, KinematicStatus

if TYPE_CHECKING:
    from ..status.provider import StatusSnapshot


StatusListener = Callable[["StatusSnapshot"], Awaitable[None] | None]


@runtime_checkable
class StatusNormalizer(Protocol):
    """Turns one backend's raw status into the canonical model."""

    def normalize(self, raw: Any) -> CanonicalStatus:
        ...

    def reset(self) -> None:
        """Forget transition history (new job or backend switch)."""
        ...


@runtime_checkable
class PrinterBackendClient(Protocol):
    """Contract shared by the NanoDLP and Odyssey clients.

    Query methods raise :class:`~resin_link.core.errors.BackendError`
    subclasses on failure. Command methods return a :class:`CommandResult`
    for replies the backend produced and raise for transport failures or
    unsupported commands; the :mod:`resin_link.commands` facade reduces both
    to a boolean.
    """

    async def get_status(self) -> Any:
        """Fetch the backend's raw status snapshot (never cached)."""
        ...

    async def get_kinematic_status(self) -> KinematicStatus:
        ...

    def create_normalizer(self) -> StatusNormalizer:
        """Factory for the raw-to-canonical pipeline matching this backend."""
        ...

    async def list_items(
        self, volume: str, limit: int, offset: int, path: str
    ) -> dict[str, Any]:
        ...

    async def get_file_thumbnail(self, volume: str, path: str, size: str) -> bytes:
        ...

    async def get_printer_config(self) -> dict[str, Any]:
        ...

    async def manual_command(self, command: str) -> CommandResult:
        ...

    async def home(self) -> CommandResult:
        ...

    async def move(self, z: float) -> CommandResult:
        ...

    async def move_delta(self, delta: float) -> CommandResult:
        ...

    async def move_to_top(self) -> CommandResult:
        ...

    async def move_to_floor(self) -> CommandResult:
        ...

    async def set_z_offset(self, z: float) -> CommandResult:
        ...

    async def reset_z_offset(self) -> CommandResult:
        ...

    async def emergency_stop(self) -> CommandResult:
        ...

    async def display_test(self, pattern: str) -> CommandResult:
        ...

    async def cure(self, on: bool) -> CommandResult:
        ...

    async def tare_force_sensor(self) -> CommandResult:
        ...

    async def start_print(self, volume: str, path: str) -> CommandResult:
        ...

    async def pause_print(self) -> CommandResult:
        ...

    async def resume_print(self) -> CommandResult:
        ...

    async def cancel_print(self) -> CommandResult:
        ...

    async def aclose(self) -> None:
        """Close any underlying resources."""
        ...
