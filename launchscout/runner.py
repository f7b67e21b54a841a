"""
LaunchScout runner - Wires every component and runs them until shutdown.

    Feeds -> RateLimiter -> CandidateStore -> Scorer -> SelectionGate
                                                 |
                              PositionManager <-> BalanceLedger

Usage:
    launchscout                  # run until SIGINT/SIGTERM
    launchscout --once           # one poll of every poll feed, print status, exit
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from datetime import date
from typing import Any, Optional

import httpx

from launchscout.core.clock import Clock, utc_now
from launchscout.core.config import LaunchScoutConfig
from launchscout.core.errors import ConfigError
from launchscout.core.event_sink import EventSink
from launchscout.core.events import Event, EventType, create_event
from launchscout.execution.base import TradeExecutor
from launchscout.execution.paper import LiveTradeExecutor, PaperTradeExecutor
from launchscout.execution.position_manager import PositionManager
from launchscout.execution.price_oracle import JupiterPriceOracle
from launchscout.feeds.base import PollFeed
from launchscout.feeds.factory import build_feeds
from launchscout.feeds.rate_limiter import RateLimiter
from launchscout.persistence.repository import SqliteStorage
from launchscout.risk.ledger import BalanceLedger
from launchscout.workspace.gate import SelectionGate
from launchscout.workspace.pipeline import DiscoveryPipeline
from launchscout.workspace.scoring import CandidateScorer
from launchscout.workspace.store import CandidateStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class LaunchScout:
    """
    Top-level application object.

    Owns the event sink, discovery pipeline, position manager and ledger.
    """

    def __init__(
        self,
        config: LaunchScoutConfig,
        client: Optional[httpx.AsyncClient] = None,
        clock: Clock | None = None,
        executor: Optional[TradeExecutor] = None,
    ):
        self.config = config
        self._clock = clock or utc_now
        trading = config.trading

        self.sink = EventSink(config.runtime.event_log_dir)
        self.storage = SqliteStorage(
            config.runtime.db_path,
            min_liquidity=trading.min_liquidity,
            max_risk=config.gate.risk_ceiling,
        )

        self.store = CandidateStore(
            capacity=config.store.capacity,
            confirmation_window_seconds=config.store.confirmation_window_seconds,
            clock=self._clock,
        )
        self.scorer = CandidateScorer(config.scoring)
        self.gate = SelectionGate(config.gate)
        self.limiter = RateLimiter.from_sources(config.sources, clock=self._clock)

        self.feeds = build_feeds(config, client=client, clock=self._clock)
        self.pipeline = DiscoveryPipeline(
            feeds=self.feeds,
            store=self.store,
            scorer=self.scorer,
            gate=self.gate,
            limiter=self.limiter,
            storage=self.storage,
            emit_event=self.emit_event,
            clock=self._clock,
        )

        self.oracle = JupiterPriceOracle(client=client, timeout=config.runtime.http_timeout_seconds)
        self.ledger = BalanceLedger(
            starting_capital=trading.paper_balance,
            max_daily_loss=trading.max_daily_loss,
            max_positions=trading.max_positions,
            clock=self._clock,
        )
        if executor is None:
            if trading.paper_trading:
                executor = PaperTradeExecutor(self.oracle, trading.paper_balance, clock=self._clock)
            else:
                executor = LiveTradeExecutor()
        self.executor = executor

        self.positions = PositionManager(
            gate=self.gate,
            executor=self.executor,
            oracle=self.oracle,
            ledger=self.ledger,
            storage=self.storage,
            store=self.store,
            emit_event=self.emit_event,
            max_position_size=trading.max_position_size,
            min_liquidity=trading.min_liquidity,
            check_interval_seconds=trading.check_interval_seconds,
            candidates_per_tick=trading.candidates_per_tick,
            clock=self._clock,
        )

        self._trading_day: date = self._clock().date()
        self._running = False

    async def emit_event(self, event: Event) -> None:
        """Write an event to the JSONL sink."""
        await self.sink.emit_async(event)

    async def start(self) -> None:
        """Start discovery and the position loop."""
        if self._running:
            return
        self._running = True

        mode = "PAPER" if self.config.trading.paper_trading else "LIVE"
        logger.info(
            f"[LAUNCHSCOUT] Starting ({mode} mode, env={self.config.runtime.env}, "
            f"feeds={', '.join(f.source_id for f in self.feeds)})"
        )
        await self.emit_event(create_event(
            EventType.SYSTEM_START,
            payload={
                "mode": mode.lower(),
                "feeds": [f.source_id for f in self.feeds],
                "capital": self.ledger.starting_capital,
            },
        ))

        await self.pipeline.start()
        await self.positions.start()

    async def stop(self) -> None:
        """Stop feeds first, then the position loop."""
        if not self._running:
            return
        self._running = False

        await self.pipeline.stop()
        await self.positions.stop()
        await self.oracle.close()

        await self.emit_event(create_event(
            EventType.SYSTEM_STOP,
            payload=self.get_status(),
        ))
        logger.info("[LAUNCHSCOUT] Stopped")

    async def run_once(self) -> dict[str, Any]:
        """Poll every poll feed once, run one position tick, return status."""
        for feed in self.feeds:
            if isinstance(feed, PollFeed):
                await self.pipeline.run_poll_cycle(feed)
        await self.positions.tick()
        for feed in self.feeds:
            if isinstance(feed, PollFeed):
                await feed.close()
        await self.oracle.close()
        return self.get_status()

    async def check_trading_day(self) -> bool:
        """Reset daily counters when the UTC date rolls over. Returns True on reset."""
        today = self._clock().date()
        if today == self._trading_day:
            return False
        self._trading_day = today
        was_tripped = self.ledger.daily_loss_tripped()
        self.ledger.reset_daily()
        await self.emit_event(create_event(
            EventType.DAILY_LOSS_RESET,
            payload={"trading_day": today.isoformat(), "was_tripped": was_tripped},
        ))
        return True

    async def monitor(self, interval: float = 60.0) -> None:
        """Log a status line periodically and roll the trading day."""
        while self._running:
            await asyncio.sleep(interval)
            await self.check_trading_day()
            store = self.store.status()
            ledger = self.ledger.status()
            logger.info(
                f"[LAUNCHSCOUT] store={store['size']} multi={store['multi_source']} "
                f"accepted={store['accepted']} | positions={ledger['active_positions']} "
                f"available={ledger['available_capital']:.4f} daily_pnl={ledger['daily_pnl']:+.4f}"
            )

    def get_status(self) -> dict[str, Any]:
        return {
            "pipeline": self.pipeline.get_status(),
            "positions": self.positions.get_status(),
            "top_movers": [c.to_dict() for c in self.store.top_movers(5)],
        }


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

async def async_main(config: LaunchScoutConfig, once: bool = False) -> None:
    """Async main for the runner."""
    app = LaunchScout(config)

    if once:
        status = await app.run_once()
        print(json.dumps(status, indent=2, default=str))
        return

    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("[LAUNCHSCOUT] Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        pass

    try:
        await app.start()
        monitor_task = asyncio.create_task(app.monitor())

        try:
            await shutdown_event.wait()
        except asyncio.CancelledError:
            pass

        monitor_task.cancel()
        try:
            await monitor_task
        except asyncio.CancelledError:
            pass
    finally:
        await app.stop()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="LaunchScout token discovery and paper trading")
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file (default: search from the working directory)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Poll every feed once, print status and exit",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Override LAUNCHSCOUT_LOG_LEVEL",
    )
    args = parser.parse_args()

    try:
        config = LaunchScoutConfig.from_env(args.env_file)
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
        logger.error(f"[LAUNCHSCOUT] Invalid configuration: {e}")
        raise SystemExit(2)

    logging.basicConfig(
        level=(args.log_level or config.runtime.log_level).upper(),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    try:
        asyncio.run(async_main(config, once=args.once))
    except KeyboardInterrupt:
        logger.info("[LAUNCHSCOUT] Interrupted")


if __name__ == "__main__":
    main()
