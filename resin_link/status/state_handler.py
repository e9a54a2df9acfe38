"""Canonical state tracking for NanoDLP's numeric ``State`` codes.

NanoDLP reports a transition-oriented ``State`` value alongside boolean flags
that can be stale between polls:

====  =============================================
code  meaning
====  =============================================
0     idle
1     print starting or ending (transient)
2     pause requested (transient)
3     paused
4     cancel requested (latched until a new start)
5     printing
====  =============================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..core.models import PrinterStatus, RawStatus

LOGGER = logging.getLogger(__name__)

STATE_IDLE = 0
STATE_STARTING = 1
STATE_PAUSE_REQUESTED = 2
STATE_PAUSED = 3
STATE_CANCEL_REQUESTED = 4
STATE_PRINTING = 5

_STATUS_BY_CODE = {
    STATE_IDLE: PrinterStatus.IDLE,
    STATE_STARTING: PrinterStatus.PRINTING,
    STATE_PAUSE_REQUESTED: PrinterStatus.PAUSING,
    STATE_PAUSED: PrinterStatus.PAUSED,
    STATE_CANCEL_REQUESTED: PrinterStatus.CANCELING,
    STATE_PRINTING: PrinterStatus.PRINTING,
}


@dataclass(slots=True, frozen=True)
class CanonicalState:
    status: PrinterStatus
    paused: bool = False
    finished: bool = False
    cancel_latched: bool = False
    pause_latched: bool = False
    state_code: Optional[int] = None


class StateHandler:
    """Turns successive raw snapshots into a stable status.

    One handler instance belongs to one backend session; the previous state
    code it keeps is what makes ``finished`` edge-triggered.
    """

    def __init__(self) -> None:
        self._previous_code: Optional[int] = None
        self._cancel_latched = False
        self._last_reported: Optional[CanonicalState] = None

    @property
    def previous_code(self) -> Optional[int]:
        return self._previous_code

    @property
    def cancel_latched(self) -> bool:
        return self._cancel_latched

    def reset(self) -> None:
        """Forget the previous code and any latched cancel."""
        self._previous_code = None
        self._cancel_latched = False
        self._last_reported = None

    def canonicalize(self, raw: RawStatus) -> CanonicalState:
        code = raw.state_code
        if code is None:
            code = _infer_code(raw)
        previous = self._previous_code

        if code == STATE_CANCEL_REQUESTED:
            self._cancel_latched = True
        elif previous == STATE_IDLE and code == STATE_STARTING:
            self._cancel_latched = False

        finished = (
            previous == STATE_STARTING
            and code == STATE_IDLE
            and raw.layers_count is not None
            and not self._cancel_latched
        )
        self._previous_code = code

        if self._cancel_latched:
            status = (
                PrinterStatus.CANCELED if code == STATE_IDLE else PrinterStatus.CANCELING
            )
            state = CanonicalState(
                status=status, cancel_latched=True, state_code=code
            )
        elif code in _STATUS_BY_CODE:
            status = _STATUS_BY_CODE[code]
            state = CanonicalState(
                status=status,
                paused=status is PrinterStatus.PAUSED,
                finished=finished,
                pause_latched=code == STATE_PAUSE_REQUESTED,
                state_code=code,
            )
        else:
            state = CanonicalState(status=PrinterStatus.UNKNOWN, state_code=code)

        self._report_if_changed(previous, state)
        return state

    def _report_if_changed(self, previous: Optional[int], state: CanonicalState) -> None:
        if state == self._last_reported:
            return
        last_status = self._last_reported.status.value if self._last_reported else "unknown"
        LOGGER.info(
            "state %s -> %s | status %s -> %s | cancel_latched=%s pause_latched=%s finished=%s",
            "unknown" if previous is None else previous,
            state.state_code,
            last_status,
            state.status.value,
            state.cancel_latched,
            state.pause_latched,
            state.finished,
        )
        self._last_reported = state


def _infer_code(raw: RawStatus) -> Optional[int]:
    text = (raw.state or "").strip().lower()
    if raw.paused or text == "paused":
        return STATE_PAUSED
    # Treated as the start/end code so a boolean-only backend still yields
    # the printing -> idle edge.
    if raw.printing or text == "printing":
        return STATE_STARTING
    if text == "idle":
        return STATE_IDLE
    return None
