"""Backend selection for the configured printer-control service."""

from __future__ import annotations

import logging
from typing import Union

from .. import constants
from ..adapters import NanoDlpClient, OdysseyClient
from ..config import LinkConfig

LOGGER = logging.getLogger(__name__)

BackendClient = Union[NanoDlpClient, OdysseyClient]


def create_backend(config: LinkConfig) -> BackendClient:
    """Instantiate the client for ``config.backend.kind``.

    Raises:
        ValueError: If the kind is not one of the supported backends.
    """
    kind = config.backend.kind
    LOGGER.info("Using %s backend at %s", kind, config.backend.url)
    if kind == constants.BACKEND_NANODLP:
        return NanoDlpClient(config.backend, config.cache)
    if kind == constants.BACKEND_ODYSSEY:
        return OdysseyClient(config.backend, config.cache)
    raise ValueError(f"Unsupported backend kind: {kind!r}")


__all__ = ["BackendClient", "create_backend"]
