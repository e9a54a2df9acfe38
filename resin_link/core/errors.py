"""Error taxonomy for backend communication."""

from __future__ import annotations

from typing import Optional


class BackendError(Exception):
    """Base class for failures talking to a printer backend."""


class RequestTimeoutError(BackendError, TimeoutError):
    """No response completed within the configured bound."""


class TransportError(BackendError):
    """Connection-level failure (refused, reset, unreachable)."""


class HttpStatusError(BackendError):
    """The backend answered with a non-success HTTP status."""

    def __init__(self, status: int, detail: Optional[str] = None) -> None:
        self.status = status
        self.detail = detail
        message = f"HTTP {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DecodeError(BackendError):
    """The backend payload could not be decoded."""


class NotFoundError(BackendError):
    """A referenced plate or file does not exist on the backend."""


class UnsupportedCommandError(BackendError):
    """The active backend has no transport for the requested command."""


__all__ = [
    "BackendError",
    "DecodeError",
    "HttpStatusError",
    "NotFoundError",
    "RequestTimeoutError",
    "TransportError",
    "UnsupportedCommandError",
]
