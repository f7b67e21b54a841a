"""
Error taxonomy for LaunchScout.

Each class maps to exactly one handling policy:

    TransientSourceError  -> skip this feed cycle, no escalation
    MalformedRecordError  -> drop the single record, continue the batch
    RateLimitExceeded     -> skip the source this cycle
    PriceUnavailable      -> hold the position, retry next tick
    ExecutionFailure      -> abort the entry, remain SCANNING
    ConfigError           -> fatal, startup only
"""

from __future__ import annotations


class LaunchScoutError(Exception):
    """Base class for all LaunchScout errors."""


class TransientSourceError(LaunchScoutError):
    """Upstream feed timed out, returned 5xx, or dropped the connection."""

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        super().__init__(f"[{source_id}] {message}")


class MalformedRecordError(LaunchScoutError):
    """A single raw record could not be normalized into a Candidate."""

    def __init__(self, source_id: str, message: str, record: object = None):
        self.source_id = source_id
        self.record = record
        super().__init__(f"[{source_id}] {message}")


class RateLimitExceeded(LaunchScoutError):
    """The per-source request window is exhausted."""

    def __init__(self, source_id: str, reset_in_ms: float = 0.0):
        self.source_id = source_id
        self.reset_in_ms = reset_in_ms
        super().__init__(
            f"Rate limit exceeded for {source_id} (resets in {reset_in_ms:.0f}ms)"
        )


class PriceUnavailable(LaunchScoutError):
    """The price oracle has no usable price for an address."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No price available for {address}")


class ExecutionFailure(LaunchScoutError):
    """The trade executor rejected or failed an order."""

    def __init__(self, address: str, side: str, message: str):
        self.address = address
        self.side = side
        super().__init__(f"{side} {address} failed: {message}")


class ConfigError(LaunchScoutError):
    """Invalid or incomplete startup configuration."""
