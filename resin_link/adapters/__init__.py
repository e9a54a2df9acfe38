"""Adapter modules for the printer backends."""

from .http import BoundedHttpClient, HttpResponse
from .nanodlp import NanoDlpClient
from .odyssey import OdysseyClient
from .thumbnails import generate_placeholder, thumbnail_dimensions

__all__ = [
    "BoundedHttpClient",
    "HttpResponse",
    "NanoDlpClient",
    "OdysseyClient",
    "generate_placeholder",
    "thumbnail_dimensions",
]
