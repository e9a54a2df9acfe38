"""Placeholder thumbnail rendering.

Backends without a usable preview still hand the UI real image bytes: a
banded PNG of the requested size with a framed centre.
"""

from __future__ import annotations

import io
from functools import lru_cache
from typing import Tuple

from PIL import Image, ImageDraw

SMALL_SIZE: Tuple[int, int] = (400, 400)
LARGE_SIZE: Tuple[int, int] = (800, 480)

_BACKGROUND = (33, 33, 33)
_ACCENT = (66, 66, 66)
_HIGHLIGHT = (120, 120, 120)
_BAND = 16


def thumbnail_dimensions(size: str) -> Tuple[int, int]:
    """Map the UI's size label to pixel dimensions."""
    if (size or "").strip().lower() == "large":
        return LARGE_SIZE
    return SMALL_SIZE


@lru_cache(maxsize=8)
def generate_placeholder(width: int, height: int) -> bytes:
    """Render (and memoise) a placeholder PNG of ``width`` x ``height``."""
    image = Image.new("RGB", (width, height), _BACKGROUND)
    draw = ImageDraw.Draw(image)
    palette = (_BACKGROUND, _ACCENT, _HIGHLIGHT)
    for top in range(0, height, _BAND):
        for left in range(0, width, _BAND):
            colour = palette[((left // _BAND) + (top // _BAND)) % 3]
            draw.rectangle(
                (left, top, min(left + _BAND, width) - 1, min(top + _BAND, height) - 1),
                fill=colour,
            )

    draw.rectangle(
        (width // 4, height // 4, (width * 3) // 4, (height * 3) // 4),
        outline=_HIGHLIGHT,
    )

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()

