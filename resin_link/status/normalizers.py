"""Per-backend raw-to-canonical pipelines used by the status provider."""

from __future__ import annotations

from typing import Any, Mapping

from ..core.errors import DecodeError
from ..core.models import CanonicalStatus, RawStatus
from .mapper import DEFAULT_HEIGHT_UNITS_PER_MM, nano_status_to_canonical
from .state_handler import StateHandler


class NanoDlpNormalizer:
    """State handler followed by the NanoDLP mapper."""

    def __init__(self, *, units_per_mm: float = DEFAULT_HEIGHT_UNITS_PER_MM) -> None:
        self._units_per_mm = units_per_mm
        self.handler = StateHandler()

    def normalize(self, raw: RawStatus) -> CanonicalStatus:
        state = self.handler.canonicalize(raw)
        return nano_status_to_canonical(raw, state, units_per_mm=self._units_per_mm)

    def reset(self) -> None:
        self.handler.reset()


class OdysseyNormalizer:
    """Odyssey already reports the canonical shape; only parsing is needed."""

    def normalize(self, raw: Mapping[str, Any]) -> CanonicalStatus:
        if not isinstance(raw, Mapping):
            raise DecodeError(
                f"Odyssey status must be an object, got {type(raw).__name__}"
            )
        return CanonicalStatus.from_dict(raw)

    def reset(self) -> None:
        return None
