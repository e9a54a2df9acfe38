"""Core primitives for resin-link."""

from .cache import CacheEntry, Placeholder, TTLCache
from .errors import (
    BackendError,
    DecodeError,
    HttpStatusError,
    NotFoundError,
    RequestTimeoutError,
    TransportError,
    UnsupportedCommandError,
)
from .models import (
    CanonicalStatus,
    CommandResult,
    FileData,
    FileRef,
    KinematicStatus,
    PhysicalState,
    PrintData,
    PrinterStatus,
    RawStatus,
)
from .protocols import PrinterBackendClient, StatusListener, StatusNormalizer
from .utils import compute_backoff

__all__ = [
    "BackendError",
    "CacheEntry",
    "CanonicalStatus",
    "CommandResult",
    "DecodeError",
    "FileData",
    "FileRef",
    "HttpStatusError",
    "KinematicStatus",
    "NotFoundError",
    "PhysicalState",
    "Placeholder",
    "PrintData",
    "PrinterBackendClient",
    "PrinterStatus",
    "RawStatus",
    "RequestTimeoutError",
    "StatusListener",
    "StatusNormalizer",
    "TTLCache",
    "TransportError",
    "UnsupportedCommandError",
    "compute_backoff",
]
