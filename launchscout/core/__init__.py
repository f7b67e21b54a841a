"""Core modules: configuration, errors, events, and event sink."""

from launchscout.core.clock import Clock, utc_now
from launchscout.core.errors import (
    LaunchScoutError,
    TransientSourceError,
    MalformedRecordError,
    RateLimitExceeded,
    PriceUnavailable,
    ExecutionFailure,
    ConfigError,
)
from launchscout.core.events import Event, EventType, create_event
from launchscout.core.event_sink import EventSink

__all__ = [
    "Clock",
    "utc_now",
    # Errors
    "LaunchScoutError",
    "TransientSourceError",
    "MalformedRecordError",
    "RateLimitExceeded",
    "PriceUnavailable",
    "ExecutionFailure",
    "ConfigError",
    # Events
    "Event",
    "EventType",
    "create_event",
    "EventSink",
]
