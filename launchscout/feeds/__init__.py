"""
Discovery feeds.

Concrete adapters depend on launchscout.core.config and are imported
from their own modules (or built with launchscout.feeds.factory).
"""

from launchscout.feeds.base import (
    Candidate,
    Feed,
    FeedMode,
    PollFeed,
    PushFeed,
)
from launchscout.feeds.rate_limiter import RateLimiter, RateLimitWindow

__all__ = [
    "Candidate",
    "Feed",
    "FeedMode",
    "PollFeed",
    "PushFeed",
    "RateLimiter",
    "RateLimitWindow",
]
