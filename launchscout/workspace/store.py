"""
Candidate Store - In-memory aggregator for discovered tokens.

The store is the single owner of merged candidate state. Every feed
writes into it through ``ingest``; everything else reads copies.

Merge rules:
    - One Candidate per address
    - Per field, the highest-priority reporting source wins; an
      equal-or-higher priority source overwrites, a lower one only fills
      empty fields
    - created_at resolves to the earliest value seen
    - discovered_at is the first local ingestion time
    - multi_source is set once a second distinct source reports the
      address within the confirmation window

Capacity:
    When the store grows past capacity, the oldest half by discovered_at
    is evicted (FIFO, not LRU).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Optional

from launchscout.core.clock import Clock, utc_now
from launchscout.feeds.base import Candidate
from launchscout.workspace.scoring import ScoreResult

logger = logging.getLogger(__name__)

# Fields merged by source priority
MERGE_FIELDS = (
    "symbol",
    "name",
    "price",
    "liquidity",
    "volume_24h",
    "price_change_24h",
    "market_cap",
    "holders",
)

# Placeholder values that count as "missing"
_EMPTY_VALUES = (None, "", 0, 0.0, "UNKNOWN", "Unknown Token")


def _is_empty(value: Any) -> bool:
    return value in _EMPTY_VALUES


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate copy together with its latest score and gate outcome."""
    candidate: Candidate
    score: ScoreResult
    accepted: bool


class CandidateStore:
    """
    Address-keyed workspace of discovered candidates.

    Thread-safe: a lock protects the map. Merges are field-level
    last-write-wins per address with no cross-field transactions.
    """

    def __init__(
        self,
        capacity: int = 1000,
        confirmation_window_seconds: float = 300.0,
        clock: Clock | None = None,
        on_evict: Optional[Callable[[list[str]], None]] = None,
    ):
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.capacity = capacity
        self.confirmation_window = timedelta(seconds=confirmation_window_seconds)
        self._clock = clock or utc_now
        self.on_evict = on_evict

        self._candidates: dict[str, Candidate] = {}
        self._field_priority: dict[str, dict[str, int]] = {}
        self._scores: dict[str, tuple[ScoreResult, bool]] = {}
        self._lock = Lock()

        # Stats
        self._ingested = 0
        self._merged = 0
        self._evicted = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._candidates)

    def __contains__(self, address: str) -> bool:
        with self._lock:
            return address in self._candidates

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def ingest(self, incoming: Candidate) -> Candidate:
        """
        Create or merge a candidate.

        Returns:
            A copy of the merged candidate
        """
        now = self._clock()
        evicted: list[str] = []

        with self._lock:
            self._ingested += 1
            existing = self._candidates.get(incoming.address)

            if existing is None:
                stored = incoming.copy()
                stored.discovered_at = stored.discovered_at or now
                stored.last_update = now
                stored.sources = {stored.source} if stored.source else set()
                stored.multi_source = False
                self._candidates[stored.address] = stored
                self._field_priority[stored.address] = {
                    name: incoming.source_priority
                    for name in MERGE_FIELDS
                    if not _is_empty(getattr(incoming, name))
                }
                if len(self._candidates) > self.capacity:
                    evicted = self._evict_oldest_half_locked()
            else:
                self._merge_locked(existing, incoming, now)
                stored = existing
                self._merged += 1

            result = stored.copy()

        if evicted:
            logger.info(
                f"[STORE] Capacity {self.capacity} exceeded, evicted {len(evicted)} oldest candidates"
            )
            if self.on_evict:
                self.on_evict(evicted)
        return result

    def _merge_locked(self, existing: Candidate, incoming: Candidate, now: datetime) -> None:
        priorities = self._field_priority.setdefault(existing.address, {})

        for name in MERGE_FIELDS:
            value = getattr(incoming, name)
            if _is_empty(value):
                continue
            current_priority = priorities.get(name)
            if (
                current_priority is None
                or _is_empty(getattr(existing, name))
                or incoming.source_priority >= current_priority
            ):
                setattr(existing, name, value)
                priorities[name] = max(incoming.source_priority, current_priority or 0)

        if incoming.created_at is not None:
            if existing.created_at is None or incoming.created_at < existing.created_at:
                existing.created_at = incoming.created_at

        if incoming.source_priority >= existing.source_priority:
            existing.source = incoming.source
            existing.source_priority = incoming.source_priority

        if incoming.raw_metadata:
            for key, value in incoming.raw_metadata.items():
                existing.raw_metadata.setdefault(key, value)

        is_new_source = incoming.source and incoming.source not in existing.sources
        if is_new_source:
            existing.sources.add(incoming.source)
            first_seen = existing.discovered_at or now
            seen_at = incoming.discovered_at or now
            if seen_at - first_seen <= self.confirmation_window:
                if not existing.multi_source:
                    logger.info(
                        f"[STORE] {existing.symbol} confirmed by {len(existing.sources)} sources: "
                        f"{', '.join(sorted(existing.sources))}"
                    )
                existing.multi_source = True

        existing.last_update = now

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _evict_oldest_half_locked(self) -> list[str]:
        count = len(self._candidates) // 2
        if count == 0:
            return []
        oldest = sorted(
            self._candidates.values(),
            key=lambda c: (c.discovered_at, c.address),
        )[:count]
        removed = [c.address for c in oldest]
        for address in removed:
            del self._candidates[address]
            self._field_priority.pop(address, None)
            self._scores.pop(address, None)
        self._evicted += len(removed)
        return removed

    def evict_oldest_half(self) -> list[str]:
        """Evict the oldest half of the store by discovered_at. Returns evicted addresses."""
        with self._lock:
            removed = self._evict_oldest_half_locked()
        if removed:
            logger.info(f"[STORE] Evicted {len(removed)} oldest candidates")
            if self.on_evict:
                self.on_evict(removed)
        return removed

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------

    def record_score(self, address: str, score: ScoreResult, accepted: bool) -> bool:
        """Attach the latest score and gate outcome to a stored candidate."""
        with self._lock:
            if address not in self._candidates:
                return False
            self._scores[address] = (score, accepted)
            return True

    def score_of(self, address: str) -> Optional[ScoreResult]:
        with self._lock:
            entry = self._scores.get(address)
            return entry[0] if entry else None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, address: str) -> Optional[Candidate]:
        """Get a copy of a candidate by address."""
        with self._lock:
            candidate = self._candidates.get(address)
            return candidate.copy() if candidate else None

    def snapshot(self) -> list[Candidate]:
        """Copies of every stored candidate."""
        with self._lock:
            return [c.copy() for c in self._candidates.values()]

    def viable(
        self,
        limit: int = 20,
        min_liquidity: float = 0.0,
        max_risk: float = 100.0,
    ) -> list[ScoredCandidate]:
        """
        Accepted candidates ready for trading.

        Ordered by source priority desc, then overall score desc, then
        discovery time desc.
        """
        rows: list[ScoredCandidate] = []
        with self._lock:
            for address, c in self._candidates.items():
                score, accepted = self._scores.get(address, (None, False))
                if not accepted or score is None:
                    continue
                if c.liquidity < min_liquidity or score.risk_score > max_risk:
                    continue
                rows.append(ScoredCandidate(candidate=c.copy(), score=score, accepted=accepted))

        rows.sort(
            key=lambda r: (
                r.candidate.source_priority,
                r.score.overall_score,
                r.candidate.discovered_at.timestamp() if r.candidate.discovered_at else 0.0,
            ),
            reverse=True,
        )
        return rows[:limit]

    def top_movers(self, limit: int = 10) -> list[Candidate]:
        """Candidates ranked by price_change_24h x volume_24h, descending."""
        with self._lock:
            movers = [c.copy() for c in self._candidates.values() if c.volume_24h > 0]
        movers.sort(key=lambda c: c.price_change_24h * c.volume_24h, reverse=True)
        return movers[:limit]

    def status(self) -> dict[str, Any]:
        """Get store status for monitoring."""
        with self._lock:
            by_source: dict[str, int] = {}
            for c in self._candidates.values():
                by_source[c.source] = by_source.get(c.source, 0) + 1
            return {
                "size": len(self._candidates),
                "capacity": self.capacity,
                "multi_source": sum(1 for c in self._candidates.values() if c.multi_source),
                "accepted": sum(1 for _, accepted in self._scores.values() if accepted),
                "by_source": by_source,
                "ingested": self._ingested,
                "merged": self._merged,
                "evicted": self._evicted,
            }
