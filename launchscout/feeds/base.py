"""
Feed abstraction - One contract for every discovery source.

A feed turns raw records from one external source into canonical
Candidates. Two operating modes yield the same Candidate type:

    POLL - timer driven; ``await feed.poll()`` returns a batch
    PUSH - subscription driven; ``await feed.run(on_candidate)`` delivers
           each record as it arrives until ``stop()`` is called

Every feed is an isolation boundary. Timeouts, 5xx responses, malformed
payloads and schema drift are logged and turned into an empty result;
they never propagate to the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, TYPE_CHECKING

import httpx

from launchscout.core.clock import Clock, from_epoch, utc_now
from launchscout.core.errors import MalformedRecordError, TransientSourceError

if TYPE_CHECKING:
    from launchscout.core.config import SourceConfig

logger = logging.getLogger(__name__)


class FeedMode(str, Enum):
    """How a feed delivers candidates."""
    POLL = "poll"
    PUSH = "push"


@dataclass
class Candidate:
    """
    A freshly discovered token pending scoring and acceptance.

    This is the canonical shape every feed normalizes into. Exactly one
    logical Candidate exists per address inside the CandidateStore.
    """

    # Identity
    address: str
    symbol: str = "UNKNOWN"
    name: str = "Unknown Token"

    # Market data (USD)
    price: float = 0.0
    liquidity: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    market_cap: float = 0.0
    holders: Optional[int] = None

    # Timestamps
    created_at: Optional[datetime] = None  # origin timestamp reported by the source
    discovered_at: Optional[datetime] = None  # local ingestion time
    last_update: Optional[datetime] = None

    # Source tracking
    source: str = ""
    source_priority: int = 0
    multi_source: bool = False
    sources: set[str] = field(default_factory=set)

    raw_metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.source and not self.sources:
            self.sources = {self.source}

    def copy(self) -> "Candidate":
        """Detached copy safe to hand to other components."""
        return replace(
            self,
            sources=set(self.sources),
            raw_metadata=dict(self.raw_metadata),
        )

    def age_minutes(self, now: datetime) -> float:
        """Minutes since origin (0 when unknown)."""
        origin = self.created_at or self.discovered_at
        if origin is None:
            return 0.0
        return max(0.0, (now - origin).total_seconds() / 60.0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "liquidity": self.liquidity,
            "volume_24h": self.volume_24h,
            "price_change_24h": self.price_change_24h,
            "market_cap": self.market_cap,
            "holders": self.holders,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "discovered_at": self.discovered_at.isoformat() if self.discovered_at else None,
            "source": self.source,
            "source_priority": self.source_priority,
            "multi_source": self.multi_source,
            "sources": sorted(self.sources),
        }


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------


def pick(record: dict[str, Any], *paths: str, default: Any = None) -> Any:
    """
    Return the first non-empty value among dotted field paths.

    ``pick(row, "liquidity.usd", "liquidity")`` handles both nested and
    flat variants of the same field.
    """
    for path in paths:
        value: Any = record
        for part in path.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            else:
                value = None
                break
        if value not in (None, ""):
            return value
    return default


def to_float(value: Any, default: float = 0.0) -> float:
    """Lenient float conversion (strings, None, garbage -> default)."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_utc(dt: datetime) -> datetime:
    # Sources that omit an offset report UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _epoch_or_none(value: float) -> Optional[datetime]:
    if value <= 0:
        return None
    try:
        return from_epoch(value)
    except (OverflowError, OSError, ValueError):
        return None


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Parse epoch seconds/ms or ISO-8601 into an aware UTC datetime.

    Naive values are taken as UTC. Anything unparseable or out of range
    yields None.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _epoch_or_none(float(value))
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            pass
        else:
            return _epoch_or_none(number)
        try:
            return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Feed contracts
# ---------------------------------------------------------------------------


class Feed(ABC):
    """
    Base class for all discovery feeds.

    Subclasses set ``mode`` and implement ``normalize``. Each feed carries
    a fixed interval and a trust priority used for merge tie-breaks and
    gate threshold selection.
    """

    mode: FeedMode = FeedMode.POLL

    def __init__(self, config: SourceConfig, clock: Clock | None = None):
        self.config = config
        self._clock = clock or utc_now

        # Stats
        self._records_seen = 0
        self._records_dropped = 0
        self._cycles_failed = 0
        self._last_success: datetime | None = None

    @property
    def source_id(self) -> str:
        return self.config.source_id

    @property
    def priority(self) -> int:
        return self.config.priority

    @property
    def interval_seconds(self) -> float:
        return self.config.interval_seconds

    @property
    def trusted(self) -> bool:
        return self.config.trusted

    @abstractmethod
    def normalize(self, record: dict[str, Any]) -> Candidate:
        """
        Map one raw record into a Candidate.

        Raises:
            MalformedRecordError: if the record cannot be used (e.g. no address)
        """

    def _candidate(self, address: Any, **fields: Any) -> Candidate:
        """Build a Candidate stamped with this feed's identity."""
        if not address or not isinstance(address, str):
            raise MalformedRecordError(self.source_id, "record has no address")
        return Candidate(
            address=address.strip(),
            source=self.source_id,
            source_priority=self.priority,
            discovered_at=self._clock(),
            **fields,
        )

    def normalize_batch(self, records: Iterable[Any]) -> list[Candidate]:
        """Normalize a batch, dropping (and counting) records that fail."""
        candidates: list[Candidate] = []
        for record in records:
            self._records_seen += 1
            try:
                if not isinstance(record, dict):
                    raise MalformedRecordError(self.source_id, "record is not an object", record)
                candidate = self.normalize(record)
                if candidate is None or not self.accept(candidate):
                    continue
            except MalformedRecordError as e:
                self._records_dropped += 1
                logger.debug(f"[FEED:{self.source_id}] Dropped record: {e}")
                continue
            except Exception as e:
                self._records_dropped += 1
                logger.warning(f"[FEED:{self.source_id}] Dropped unusable record: {type(e).__name__}: {e}")
                continue
            candidates.append(candidate)
        return candidates

    def accept(self, candidate: Candidate) -> bool:
        """Post-normalization filter (e.g. chain or age). Default keeps everything."""
        return True

    def get_stats(self) -> dict[str, Any]:
        """Get feed statistics."""
        return {
            "source": self.source_id,
            "mode": self.mode.value,
            "priority": self.priority,
            "interval_seconds": self.interval_seconds,
            "records_seen": self._records_seen,
            "records_dropped": self._records_dropped,
            "cycles_failed": self._cycles_failed,
            "last_success": self._last_success.isoformat() if self._last_success else None,
        }


class PollFeed(Feed):
    """
    Timer-driven feed backed by an HTTP endpoint.

    Subclasses implement ``fetch_records`` using ``get_json``.
    """

    mode = FeedMode.POLL

    def __init__(
        self,
        config: SourceConfig,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        clock: Clock | None = None,
    ):
        super().__init__(config, clock=clock)
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": "LaunchScout/1.0"},
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client if this feed created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        GET a JSON document.

        Raises:
            TransientSourceError: timeouts, connection failures, 5xx
            MalformedRecordError: 4xx or a body that is not JSON
        """
        client = await self._get_client()
        try:
            resp = await client.get(url, params=params, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500 or status == 429:
                raise TransientSourceError(self.source_id, f"HTTP {status}") from e
            raise MalformedRecordError(self.source_id, f"HTTP {status}") from e
        except httpx.RequestError as e:
            raise TransientSourceError(self.source_id, f"request error: {e}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise MalformedRecordError(self.source_id, "response is not JSON") from e

    @abstractmethod
    async def fetch_records(self) -> list[Any]:
        """Fetch one batch of raw records from the source."""

    async def poll(self) -> list[Candidate]:
        """
        Run one poll cycle.

        Returns:
            Normalized candidates, or [] if the cycle failed for any reason
        """
        try:
            records = await self.fetch_records()
            if not isinstance(records, list):
                raise MalformedRecordError(self.source_id, "schema drift: expected a list of records")
            candidates = self.normalize_batch(records)
        except TransientSourceError as e:
            self._cycles_failed += 1
            logger.warning(f"[FEED:{self.source_id}] Transient failure, skipping cycle: {e}")
            return []
        except MalformedRecordError as e:
            self._cycles_failed += 1
            logger.error(f"[FEED:{self.source_id}] Malformed response: {e}")
            return []
        except Exception as e:
            self._cycles_failed += 1
            logger.error(f"[FEED:{self.source_id}] Unexpected error: {e}", exc_info=True)
            return []

        self._last_success = self._clock()
        logger.debug(f"[FEED:{self.source_id}] {len(candidates)} candidates from {len(records)} records")
        return candidates


class PushFeed(Feed):
    """
    Subscription-driven feed.

    ``run`` keeps the subscription alive until ``stop`` is called and
    hands every normalized record to ``on_candidate``.
    """

    mode = FeedMode.PUSH

    def __init__(self, config: SourceConfig, clock: Clock | None = None):
        super().__init__(config, clock=clock)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def parse_message(self, message: Any) -> Optional[Candidate]:
        """
        Turn one pushed message into a Candidate.

        Returns None for messages that carry no new token (heartbeats,
        trades, acks) and for records that fail normalization.
        """
        self._records_seen += 1
        if not isinstance(message, dict):
            self._records_dropped += 1
            return None
        if not self.is_candidate_message(message):
            return None
        try:
            candidate = self.normalize(message)
            if not self.accept(candidate):
                return None
        except MalformedRecordError as e:
            self._records_dropped += 1
            logger.debug(f"[FEED:{self.source_id}] Dropped message: {e}")
            return None
        except Exception as e:
            self._records_dropped += 1
            logger.warning(f"[FEED:{self.source_id}] Dropped unusable message: {type(e).__name__}: {e}")
            return None
        self._last_success = self._clock()
        return candidate

    def is_candidate_message(self, message: dict[str, Any]) -> bool:
        """Whether a message announces a token (default: all do)."""
        return True

    @abstractmethod
    async def run(self, on_candidate: Callable[[Candidate], Awaitable[None]]) -> None:
        """Subscribe and deliver candidates until stopped."""

    async def stop(self) -> None:
        """Request the subscription to end."""
        self._running = False
