"""Wall-clock helpers. Components take a ``Clock`` so tests can pin time."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def from_epoch(value: float) -> datetime:
    """Convert epoch seconds or milliseconds to an aware UTC datetime."""
    # Anything past year ~2286 in seconds is really milliseconds.
    if value > 10_000_000_000:
        value = value / 1000.0
    return datetime.fromtimestamp(value, tz=timezone.utc)
