"""Translate decoded NanoDLP status into the canonical status model."""

from __future__ import annotations

from typing import Optional

from ..core.models import (
    CanonicalStatus,
    FileData,
    PhysicalState,
    PrintData,
    PrinterStatus,
    RawStatus,
)
from .state_handler import CanonicalState, StateHandler

DEFAULT_HEIGHT_UNITS_PER_MM = 1000.0

_ACTIVE_STATUSES = (
    PrinterStatus.PRINTING,
    PrinterStatus.PAUSING,
    PrinterStatus.PAUSED,
    PrinterStatus.CANCELING,
)


def height_to_mm(
    value: Optional[int], units_per_mm: float = DEFAULT_HEIGHT_UNITS_PER_MM
) -> float:
    """Convert a raw ``CurrentHeight`` reading to millimetres."""
    if value is None or units_per_mm <= 0:
        return 0.0
    return value / units_per_mm


def nano_status_to_canonical(
    raw: RawStatus,
    state: Optional[CanonicalState] = None,
    *,
    units_per_mm: float = DEFAULT_HEIGHT_UNITS_PER_MM,
) -> CanonicalStatus:
    """Build a :class:`CanonicalStatus` from one raw snapshot.

    ``state`` is the state handler's verdict for the same snapshot. Without
    it, a throwaway handler is used, which never reports ``finished``.

    A job that is running but whose file metadata has not arrived yet still
    gets a ``print_data`` (with ``file_data`` left empty), so consumers can
    rely on "printing implies print_data".
    """
    if state is None:
        state = StateHandler().canonicalize(raw)

    file_ref = raw.file
    print_data: Optional[PrintData] = None
    if file_ref is not None:
        name = file_ref.name or file_ref.path
        print_data = PrintData(
            layer_count=file_ref.layer_count or raw.layers_count or 0,
            file_data=FileData(name=name, path=file_ref.path or name),
        )
    elif (
        raw.printing
        or raw.paused
        or state.status in _ACTIVE_STATUSES
        or raw.layer_id is not None
        or raw.layers_count is not None
    ):
        print_data = PrintData(layer_count=raw.layers_count or 0)

    layer = raw.layer_id
    if state.status is PrinterStatus.CANCELED:
        layer = None
    elif state.finished and layer is None:
        # NanoDLP clears LayerID on completion; report the final layer instead.
        if file_ref is not None and file_ref.layer_count is not None:
            layer = file_ref.layer_count
        else:
            layer = raw.layers_count

    if print_data is not None:
        print_data = PrintData(
            layer_count=print_data.layer_count,
            layer=layer,
            file_data=print_data.file_data,
        )

    return CanonicalStatus(
        status=state.status,
        paused=state.paused,
        finished=state.finished,
        physical_state=PhysicalState(
            z=height_to_mm(raw.current_height, units_per_mm),
            curing=raw.curing,
        ),
        print_data=print_data,
    )
