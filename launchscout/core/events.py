"""
Canonical Event Schema for LaunchScout.

All events must contain:
- event_id (uuid)
- event_type (string enum)
- timestamp (UTC ISO8601)
- payload (dict)

Acceptance, entry and exit decisions are recorded as events, not freeform logs.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types in LaunchScout."""

    # Discovery
    CANDIDATE_DISCOVERED = "CANDIDATE_DISCOVERED"
    CANDIDATE_ACCEPTED = "CANDIDATE_ACCEPTED"
    CANDIDATE_REJECTED = "CANDIDATE_REJECTED"
    CANDIDATES_EVICTED = "CANDIDATES_EVICTED"

    # Position lifecycle
    POSITION_OPENED = "POSITION_OPENED"
    POSITION_CLOSED = "POSITION_CLOSED"
    ENTRY_ABORTED = "ENTRY_ABORTED"

    # Risk
    DAILY_LOSS_TRIPPED = "DAILY_LOSS_TRIPPED"
    DAILY_LOSS_RESET = "DAILY_LOSS_RESET"

    # System
    SYSTEM_START = "SYSTEM_START"
    SYSTEM_STOP = "SYSTEM_STOP"


class Event(BaseModel):
    """
    Immutable event record.

    Events are the audit trail of every gate and position decision.
    """

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: dict[str, Any] = Field(default_factory=dict)

    # Optional metadata
    address: str | None = None
    source: str | None = None
    correlation_id: str | None = None

    model_config = {"frozen": True}

    def to_jsonl_dict(self) -> dict[str, Any]:
        """Convert to dict suitable for JSONL serialization."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
            "address": self.address,
            "source": self.source,
            "correlation_id": self.correlation_id,
        }

    @classmethod
    def from_jsonl_dict(cls, data: dict[str, Any]) -> Event:
        """Reconstruct event from JSONL dict."""
        return cls(
            event_id=data["event_id"],
            event_type=EventType(data["event_type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            payload=data.get("payload", {}),
            address=data.get("address"),
            source=data.get("source"),
            correlation_id=data.get("correlation_id"),
        )


def create_event(
    event_type: EventType,
    payload: dict[str, Any] | None = None,
    *,
    address: str | None = None,
    source: str | None = None,
    correlation_id: str | None = None,
    timestamp: datetime | None = None,
) -> Event:
    """Factory function to create events with consistent defaults."""
    return Event(
        event_type=event_type,
        payload=payload or {},
        address=address,
        source=source,
        correlation_id=correlation_id,
        timestamp=timestamp or datetime.now(timezone.utc),
    )
