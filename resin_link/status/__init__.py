"""Status canonicalisation and polling."""

from .mapper import height_to_mm, nano_status_to_canonical
from .normalizers import NanoDlpNormalizer, OdysseyNormalizer
from .provider import StatusProvider, StatusSnapshot
from .state_handler import CanonicalState, StateHandler

__all__ = [
    "CanonicalState",
    "NanoDlpNormalizer",
    "OdysseyNormalizer",
    "StateHandler",
    "StatusProvider",
    "StatusSnapshot",
    "height_to_mm",
    "nano_status_to_canonical",
]
