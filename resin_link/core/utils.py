"""Core utility functions shared across modules."""

from __future__ import annotations

import random
import re
from typing import Any, Optional

_NUMERIC_CHARS = re.compile(r"[^0-9+\-.eE]")
_DURATION = re.compile(r"~?(\d{1,2}):(\d{1,2}):(\d{1,2})")


def parse_int(value: Any) -> Optional[int]:
    """Coerce loosely typed backend values into an int.

    Booleans are rejected so that ``True`` is never read as ``1``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            try:
                return int(float(text))
            except ValueError:
                return None
    return None


def parse_float(value: Any) -> Optional[float]:
    """Coerce numbers and unit-suffixed strings (``'24.8°C'``) into a float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = _NUMERIC_CHARS.sub("", value)
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def parse_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "t", "yes", "y", "on"):
            return True
        numeric = parse_int(lowered)
        return bool(numeric)
    return False


def parse_duration_seconds(value: Any) -> Optional[float]:
    """Parse seconds from a number or an ``HH:MM:SS`` style string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    match = _DURATION.search(text)
    if match:
        hours, minutes, seconds = (int(group) for group in match.groups())
        return float(hours * 3600 + minutes * 60 + seconds)
    return parse_float(text)


def first_present(data: dict[str, Any], *keys: str) -> Any:
    """Return the value of the first key present with a non-None value."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def normalize_path(path: Optional[str]) -> str:
    """Normalise a plate/file path for comparison: no leading slash, lower case."""
    if not path:
        return ""
    return path.strip().lstrip("/").lower()


def compute_backoff(
    attempt: int,
    *,
    base: float,
    maximum: float,
    jitter_ratio: float = 0.5,
    rng: Optional[random.Random] = None,
) -> float:
    """Exponential backoff with bounded jitter.

    The delay is ``base * 2 ** (attempt - 1)`` capped at ``maximum``, plus up to
    ``jitter_ratio`` of that value, and the result never exceeds ``maximum``.
    """
    if attempt <= 0:
        return 0.0
    delay = min(base * (2 ** (attempt - 1)), maximum)
    if jitter_ratio > 0:
        source = rng or random
        delay += source.uniform(0, jitter_ratio * delay)
    return min(delay, maximum)
