"""Status polling, connection lifecycle and listener fan-out."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import PollingConfig
from ..core.errors import BackendError
from ..core.models import CanonicalStatus, KinematicStatus
from ..core.protocols import PrinterBackendClient, StatusListener, StatusNormalizer
from ..core.utils import compute_backoff

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StatusSnapshot:
    """Immutable view handed to listeners; never mutated after creation."""

    sequence: int
    status: Optional[CanonicalStatus]
    has_ever_connected: bool
    connected: bool
    continuous_polling: bool = False
    kinematic: Optional[KinematicStatus] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        kinematic = None
        if self.kinematic is not None:
            kinematic = {
                "homed": self.kinematic.homed,
                "position": self.kinematic.position,
                "offset": self.kinematic.offset,
            }
        return {
            "sequence": self.sequence,
            "connected": self.connected,
            "hasEverConnected": self.has_ever_connected,
            "continuousPolling": self.continuous_polling,
            "error": self.error,
            "status": self.status.to_dict() if self.status is not None else None,
            "kinematic": kinematic,
        }


class StatusProvider:
    """Owns the single polling loop for one backend client.

    Every fetch is tagged with a sequence number when it is issued; an outcome
    is applied only if no newer outcome has been applied already, so a slow
    response can never overwrite a fresher one. Failures keep the last good
    status and only flip the connectivity flags.
    """

    def __init__(
        self,
        client: PrinterBackendClient,
        polling: Optional[PollingConfig] = None,
        *,
        normalizer: Optional[StatusNormalizer] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._client = client
        self._polling = polling or PollingConfig()
        self._normalizer = normalizer or client.create_normalizer()
        self._clock = clock
        self._rng = rng

        self._issued_sequence = 0
        self._applied_sequence = 0
        self._last_success_at: Optional[float] = None
        self._status: Optional[CanonicalStatus] = None
        self._kinematic: Optional[KinematicStatus] = None
        self._has_ever_connected = False
        self._connected = False
        self._last_error: Optional[str] = None
        self._continuous = False
        self._failures = 0

        self._listeners: list[StatusListener] = []
        self._listener_tasks: set[asyncio.Task[None]] = set()
        self._last_notified = 0
        # Clients that can read the Z axis out of a fetched status spare the
        # continuous poll a second request.
        self._kinematic_from_status: Optional[Callable[[Any], KinematicStatus]]
        self._kinematic_from_status = getattr(client, "kinematic_from_status", None)

        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def status(self) -> Optional[CanonicalStatus]:
        return self._status

    @property
    def kinematic(self) -> Optional[KinematicStatus]:
        return self._kinematic

    @property
    def has_ever_connected(self) -> bool:
        return self._has_ever_connected

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def continuous_polling(self) -> bool:
        return self._continuous

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def current_interval(self) -> float:
        if self._continuous:
            return self._polling.continuous_interval_seconds
        return self._polling.interval_seconds

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            sequence=self._applied_sequence,
            status=self._status,
            has_ever_connected=self._has_ever_connected,
            connected=self._connected,
            continuous_polling=self._continuous,
            kinematic=self._kinematic,
            error=self._last_error,
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    async def refresh(self, force: bool = False) -> bool:
        """Fetch, normalise and publish the backend status.

        Without ``force`` the fetch is skipped while the last successful
        result is younger than the current polling interval. Returns whether
        the status is current; failures are recorded, never raised.
        """
        if not force and self._is_fresh():
            return True

        self._issued_sequence += 1
        sequence = self._issued_sequence
        try:
            raw = await self._client.get_status()
            if sequence <= self._applied_sequence:
                LOGGER.debug(
                    "Discarding stale status #%d (already applied #%d)",
                    sequence,
                    self._applied_sequence,
                )
                return True
            canonical = self._normalizer.normalize(raw)
            kinematic = None
            if self._continuous and self._kinematic_from_status is not None:
                kinematic = self._kinematic_from_status(raw)
        except BackendError as exc:
            self._apply_failure(sequence, exc)
            return False

        self._apply_success(sequence, canonical, kinematic)
        return True

    async def establish_connection(self, max_attempts: Optional[int] = None) -> bool:
        """Try to reach the backend a bounded number of times at startup."""
        attempts = max_attempts or self._polling.startup_max_attempts
        for attempt in range(1, attempts + 1):
            if await self.refresh(force=True):
                return True
            if attempt >= attempts or self._stop_event.is_set():
                break
            delay = compute_backoff(
                attempt,
                base=self._polling.interval_seconds,
                maximum=self._polling.startup_backoff_max_seconds,
                jitter_ratio=self._polling.backoff_jitter_ratio,
                rng=self._rng,
            )
            LOGGER.debug(
                "Backend not reachable (attempt %d/%d); retrying in %.2fs",
                attempt,
                attempts,
                delay,
            )
            await self._wait(delay)
        LOGGER.warning("Backend unreachable after %d attempt(s)", attempts)
        return False

    # ------------------------------------------------------------------
    # Kinematics
    # ------------------------------------------------------------------
    def set_continuous_kinematic_polling(self, enabled: bool) -> None:
        """Switch the polling loop between baseline and near real-time cadence."""
        if enabled == self._continuous:
            return
        self._continuous = enabled
        LOGGER.info(
            "Continuous kinematic polling %s (interval %.2fs)",
            "enabled" if enabled else "disabled",
            self.current_interval,
        )
        self._wake_event.set()

    async def refresh_kinematic_status(
        self, max_attempts: Optional[int] = None, *, require_change: bool = False
    ) -> Optional[KinematicStatus]:
        """Read the Z axis until a valid (optionally changed) reading arrives.

        Intended for use right after a motion command. Returns the accepted
        reading, the last valid one when attempts run out, or ``None`` when
        every attempt failed.
        """
        attempts = max_attempts or self._polling.kinematic_max_attempts
        previous = self._kinematic
        latest: Optional[KinematicStatus] = None
        for attempt in range(1, attempts + 1):
            try:
                latest = await self._client.get_kinematic_status()
            except BackendError as exc:
                LOGGER.debug(
                    "Kinematic read failed (attempt %d/%d): %s", attempt, attempts, exc
                )
            else:
                if not require_change or latest != previous:
                    self._apply_kinematic(latest)
                    return latest
            if attempt < attempts:
                await asyncio.sleep(
                    compute_backoff(
                        attempt,
                        base=self._polling.kinematic_retry_seconds,
                        maximum=self._polling.kinematic_retry_seconds * 4,
                        jitter_ratio=0.0,
                    )
                )

        if latest is not None:
            self._apply_kinematic(latest)
        return latest

    def clear_homed_status(self) -> None:
        """Drop the homed flag; motion was interrupted so it cannot be trusted."""
        if self._kinematic is None:
            self._kinematic = KinematicStatus(homed=False)
        else:
            self._kinematic = replace(self._kinematic, homed=False)
        LOGGER.info("Homed status cleared")

    def reset_transitions(self) -> None:
        """Forget state-transition history, e.g. before a new job starts."""
        self._normalizer.reset()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _cancel_listener_tasks(self) -> None:
        current = asyncio.current_task()
        pending = [task for task in self._listener_tasks if task is not current]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._listener_tasks.clear()

    async def aclose(self) -> None:
        await self.stop()
        await self._cancel_listener_tasks()
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _run(self) -> None:
        LOGGER.info("Status polling started (interval %.2fs)", self.current_interval)
        while not self._stop_event.is_set():
            try:
                ok = await self._poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Status poll failed unexpectedly")
                ok = False

            if ok:
                self._failures = 0
                delay = self.current_interval
            else:
                self._failures += 1
                maximum = (
                    self._polling.backoff_max_seconds
                    if self._has_ever_connected
                    else self._polling.startup_backoff_max_seconds
                )
                delay = compute_backoff(
                    self._failures,
                    base=self.current_interval,
                    maximum=maximum,
                    jitter_ratio=self._polling.backoff_jitter_ratio,
                    rng=self._rng,
                )
                LOGGER.debug(
                    "Status poll failure #%d; next attempt in %.2fs",
                    self._failures,
                    delay,
                )
            await self._wait(delay)
        LOGGER.info("Status polling stopped")

    async def _poll_once(self) -> bool:
        ok = await self.refresh(force=True)
        if ok and self._continuous and self._kinematic_from_status is None:
            try:
                reading = await self._client.get_kinematic_status()
            except BackendError as exc:
                LOGGER.debug("Kinematic poll failed: %s", exc)
            else:
                self._apply_kinematic(reading)
        return ok

    async def _wait(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._wake_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        finally:
            self._wake_event.clear()

    def _is_fresh(self) -> bool:
        if self._status is None or self._last_success_at is None:
            return False
        return self._clock() - self._last_success_at < self.current_interval

    def _apply_success(
        self,
        sequence: int,
        canonical: CanonicalStatus,
        kinematic: Optional[KinematicStatus] = None,
    ) -> None:
        if sequence <= self._applied_sequence:
            return
        self._applied_sequence = sequence
        self._last_success_at = self._clock()
        self._status = canonical
        if kinematic is not None:
            self._kinematic = kinematic
        self._last_error = None
        if not self._connected:
            LOGGER.info("Backend connection established")
        self._connected = True
        if not self._has_ever_connected:
            self._has_ever_connected = True
        self._notify(self.snapshot())

    def _apply_failure(self, sequence: int, exc: BaseException) -> None:
        if sequence <= self._applied_sequence:
            return
        self._applied_sequence = sequence
        was_connected = self._connected
        self._connected = False
        self._last_error = str(exc) or type(exc).__name__
        if was_connected:
            LOGGER.warning("Backend connection lost: %s", self._last_error)
            self._notify(self.snapshot())
        else:
            LOGGER.debug("Status refresh failed: %s", self._last_error)
            if self._last_notified == 0:
                self._notify(self.snapshot())

    def _apply_kinematic(self, reading: KinematicStatus) -> None:
        if reading == self._kinematic:
            return
        self._kinematic = reading
        self._notify(self.snapshot())

    def _notify(self, snapshot: StatusSnapshot) -> None:
        # No await between the ordering check and dispatch.
        if snapshot.sequence < self._last_notified:
            return
        self._last_notified = snapshot.sequence
        for listener in tuple(self._listeners):
            try:
                outcome = listener(snapshot)
            except Exception:
                LOGGER.exception("Status listener failed")
                continue
            if inspect.isawaitable(outcome):
                self._schedule_listener_awaitable(outcome)

    def _schedule_listener_awaitable(self, awaitable: Awaitable[Any]) -> None:
        async def _runner() -> None:
            try:
                await awaitable
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.warning("Status listener awaitable raised", exc_info=True)

        task = asyncio.create_task(_runner())
        self._listener_tasks.add(task)
        task.add_done_callback(self._listener_tasks.discard)
