"""
Discovery Pipeline - Feeds -> Store -> Scorer -> Gate.

Runs one asyncio task per poll feed (timer loop at the feed's interval,
gated by the rate limiter) and one subscription task per push feed.

Every delivered candidate is ingested into the store, scored and gated.
Accepted tokens go to the Storage collaborator and are published as
CANDIDATE_ACCEPTED events; rejections are CANDIDATE_REJECTED events.

A feed failure never halts other feeds. Once stop() returns, nothing
more is ingested: results of in-flight polls are discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from launchscout.core.clock import Clock, utc_now
from launchscout.core.errors import RateLimitExceeded
from launchscout.core.events import Event, EventType, create_event
from launchscout.feeds.base import Candidate, Feed, FeedMode, PollFeed, PushFeed
from launchscout.feeds.rate_limiter import RateLimiter
from launchscout.workspace.gate import GateResult, SelectionGate
from launchscout.workspace.scoring import CandidateScorer, ScoreResult
from launchscout.workspace.store import CandidateStore

if TYPE_CHECKING:
    from launchscout.execution.base import Storage

logger = logging.getLogger(__name__)


class DiscoveryPipeline:
    """
    Drives every feed and funnels candidates through store, scorer and gate.
    """

    def __init__(
        self,
        feeds: list[Feed],
        store: CandidateStore,
        scorer: CandidateScorer,
        gate: SelectionGate,
        limiter: Optional[RateLimiter] = None,
        storage: Optional[Storage] = None,
        emit_event: Optional[Callable[[Event], Awaitable[None]]] = None,
        clock: Clock | None = None,
    ):
        self.feeds = feeds
        self.store = store
        self.scorer = scorer
        self.gate = gate
        self.limiter = limiter or RateLimiter(clock=clock)
        self._storage = storage
        self._emit = emit_event
        self._clock = clock or utc_now

        self._running = False
        self._stopped = False
        self._tasks: list[asyncio.Task] = []

        self._pending_evictions: list[str] = []
        self.store.on_evict = self._pending_evictions.extend

        # Stats
        self._processed = 0
        self._accepted = 0
        self._rejected = 0
        self._skipped_rate_limited = 0

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Candidate flow
    # ------------------------------------------------------------------

    async def process(self, candidate: Candidate) -> Optional[GateResult]:
        """
        Ingest, score and gate one candidate.

        Returns:
            The gate result, or None if the pipeline has been stopped
        """
        if self._stopped:
            return None

        is_new = candidate.address not in self.store
        merged = self.store.ingest(candidate)
        score = self.scorer.score(merged, self._clock())
        result = self.gate.evaluate(merged, score)
        self.store.record_score(merged.address, score, result.accepted)
        self._processed += 1

        if is_new:
            await self._publish(create_event(
                EventType.CANDIDATE_DISCOVERED,
                payload=merged.to_dict(),
                address=merged.address,
                source=candidate.source,
            ))

        if self._pending_evictions:
            evicted = list(self._pending_evictions)
            self._pending_evictions.clear()
            await self._publish(create_event(
                EventType.CANDIDATES_EVICTED,
                payload={"count": len(evicted), "addresses": evicted},
            ))

        payload = {
            "candidate": merged.to_dict(),
            "score": score.to_dict(),
            "gate": result.to_event_payload(),
        }

        if result.accepted:
            self._accepted += 1
            self._save(merged, score)
            logger.info(
                f"[PIPELINE] ACCEPTED {merged.symbol} ({merged.source}) "
                f"score={score.overall_score:.1f} risk={score.risk_score:.0f}"
            )
            await self._publish(create_event(
                EventType.CANDIDATE_ACCEPTED,
                payload=payload,
                address=merged.address,
                source=merged.source,
            ))
        else:
            self._rejected += 1
            logger.debug(
                f"[PIPELINE] Rejected {merged.symbol}: "
                f"{', '.join(r.value for r in result.reasons)}"
            )
            await self._publish(create_event(
                EventType.CANDIDATE_REJECTED,
                payload=payload,
                address=merged.address,
                source=merged.source,
            ))

        return result

    async def run_poll_cycle(self, feed: PollFeed) -> int:
        """
        Run one gated poll of a feed and process its candidates.

        Returns:
            Number of candidates processed (0 if rate limited or failed)
        """
        try:
            self.limiter.acquire(feed.source_id)
        except RateLimitExceeded as e:
            self._skipped_rate_limited += 1
            logger.debug(f"[PIPELINE] {e}")
            return 0

        candidates = await feed.poll()

        count = 0
        for candidate in candidates:
            if self._stopped:
                logger.debug(f"[PIPELINE] Discarding {len(candidates) - count} results from {feed.source_id}")
                break
            try:
                await self.process(candidate)
            except Exception as e:
                logger.error(f"[PIPELINE] Failed to process {candidate.address}: {e}", exc_info=True)
                continue
            count += 1
        return count

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _poll_loop(self, feed: PollFeed) -> None:
        logger.info(f"[PIPELINE] Polling {feed.source_id} every {feed.interval_seconds}s")
        while self._running:
            try:
                await self.run_poll_cycle(feed)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[PIPELINE] {feed.source_id} cycle error: {e}", exc_info=True)
            await asyncio.sleep(feed.interval_seconds)

    async def _subscribe(self, feed: PushFeed) -> None:
        try:
            await feed.run(self._on_push)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[PIPELINE] {feed.source_id} subscription failed: {e}", exc_info=True)

    async def _on_push(self, candidate: Candidate) -> None:
        if not self._running:
            return
        try:
            await self.process(candidate)
        except Exception as e:
            logger.error(f"[PIPELINE] Failed to process {candidate.address}: {e}", exc_info=True)

    async def start(self) -> None:
        """Start one task per feed."""
        if self._running:
            logger.warning("[PIPELINE] Already running")
            return

        self._running = True
        self._stopped = False
        for feed in self.feeds:
            if feed.mode == FeedMode.PUSH:
                task = asyncio.create_task(self._subscribe(feed), name=f"feed:{feed.source_id}")
            else:
                task = asyncio.create_task(self._poll_loop(feed), name=f"feed:{feed.source_id}")
            self._tasks.append(task)

        logger.info(f"[PIPELINE] Started {len(self._tasks)} feeds")

    async def stop(self) -> None:
        """Cancel every feed task and subscription. Nothing is ingested afterwards."""
        self._running = False
        self._stopped = True

        for feed in self.feeds:
            if isinstance(feed, PushFeed):
                await feed.stop()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        for feed in self.feeds:
            if isinstance(feed, PollFeed):
                await feed.close()

        logger.info("[PIPELINE] Stopped")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _save(self, candidate: Candidate, score: ScoreResult) -> None:
        if self._storage is None:
            return
        try:
            self._storage.save_token(candidate, score)
        except Exception as e:
            logger.error(f"[PIPELINE] Failed to save {candidate.address}: {e}")

    async def _publish(self, event: Event) -> None:
        if self._emit is None:
            return
        try:
            await self._emit(event)
        except Exception as e:
            logger.error(f"[PIPELINE] Failed to emit {event.event_type.value}: {e}")

    def get_status(self) -> dict[str, Any]:
        """Get pipeline status for monitoring."""
        return {
            "running": self._running,
            "processed": self._processed,
            "accepted": self._accepted,
            "rejected": self._rejected,
            "skipped_rate_limited": self._skipped_rate_limited,
            "feeds": [feed.get_stats() for feed in self.feeds],
            "rate_limits": self.limiter.status(),
            "store": self.store.status(),
        }
