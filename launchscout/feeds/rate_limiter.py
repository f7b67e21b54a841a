"""
Rate Limiter - Fixed-window request budget per source.

No queuing: a disallowed call is simply skipped for this cycle.
The window resets against wall-clock time once ``now >= reset_at``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from launchscout.core.clock import Clock, utc_now
from launchscout.core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    """Request counter for one source. Mutated only by RateLimiter."""
    max_requests: int
    window_ms: int
    count: int = 0
    reset_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "max_requests": self.max_requests,
            "window_ms": self.window_ms,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
        }


class RateLimiter:
    """
    Per-source fixed-window rate limiter.

    Sources without a registered window are always allowed.
    A single lock guards every read-modify-write of a window.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or utc_now
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()
        self._denied: dict[str, int] = {}

    @classmethod
    def from_sources(cls, sources: Iterable[Any], clock: Clock | None = None) -> "RateLimiter":
        """Build a limiter from SourceConfig-like objects (rate_limit_max 0 = unlimited)."""
        limiter = cls(clock=clock)
        for source in sources:
            if source.rate_limit_max > 0:
                limiter.register(source.source_id, source.rate_limit_max, source.rate_limit_window_ms)
        return limiter

    def register(self, source_id: str, max_requests: int, window_ms: int = 60_000) -> None:
        """Register (or replace) the budget for a source."""
        if max_requests < 1 or window_ms < 1:
            raise ValueError("max_requests and window_ms must be positive")
        with self._lock:
            self._windows[source_id] = RateLimitWindow(
                max_requests=max_requests,
                window_ms=window_ms,
                reset_at=self._clock() + timedelta(milliseconds=window_ms),
            )

    def _roll(self, window: RateLimitWindow, now: datetime) -> None:
        """Reset an expired window. Caller holds the lock."""
        if window.reset_at is None or now >= window.reset_at:
            window.count = 0
            window.reset_at = now + timedelta(milliseconds=window.window_ms)

    def check_and_consume(self, source_id: str) -> bool:
        """
        Consume one request from the source's budget.

        Returns:
            True if the call may proceed, False if the budget is exhausted
        """
        with self._lock:
            window = self._windows.get(source_id)
            if window is None:
                return True

            self._roll(window, self._clock())

            if window.count >= window.max_requests:
                self._denied[source_id] = self._denied.get(source_id, 0) + 1
                logger.debug(
                    f"[RATE_LIMIT] {source_id} exhausted "
                    f"({window.count}/{window.max_requests}), skipping"
                )
                return False

            window.count += 1
            return True

    def acquire(self, source_id: str) -> None:
        """
        Like check_and_consume, but raises when the budget is exhausted.

        Raises:
            RateLimitExceeded: with the time left until the window resets
        """
        if not self.check_and_consume(source_id):
            raise RateLimitExceeded(source_id, reset_in_ms=self.reset_in_ms(source_id))

    def remaining(self, source_id: str) -> Optional[int]:
        """Requests left in the current window (None = unlimited)."""
        with self._lock:
            window = self._windows.get(source_id)
            if window is None:
                return None
            self._roll(window, self._clock())
            return window.max_requests - window.count

    def reset_in_ms(self, source_id: str) -> float:
        """Milliseconds until the source's window resets (0 if unlimited)."""
        with self._lock:
            window = self._windows.get(source_id)
            if window is None or window.reset_at is None:
                return 0.0
            delta = (window.reset_at - self._clock()).total_seconds() * 1000
            return max(0.0, delta)

    def status(self) -> dict[str, dict[str, Any]]:
        """Snapshot of every window plus denial counts."""
        with self._lock:
            return {
                source_id: {**window.to_dict(), "denied": self._denied.get(source_id, 0)}
                for source_id, window in self._windows.items()
            }
