"""
Position manager tests.

Tests for:
- Exit rule priority
- Entry sizing, guards and failed fills
- Take-profit and stop-loss closes with realized P&L
- Price gaps and failed exits
- Daily loss guard integration
- Store-driven ticks
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from launchscout.core.errors import ExecutionFailure, PriceUnavailable
from launchscout.core.events import EventType
from launchscout.execution.base import (
    ExecutionResult,
    ExitReason,
    Position,
    PositionStatus,
    PriceOracle,
    Storage,
    TradeSide,
)
from launchscout.execution.paper import PaperTradeExecutor
from launchscout.execution.position_manager import PositionManager, evaluate_exit
from launchscout.feeds.base import Candidate
from launchscout.risk.ledger import BalanceLedger
from launchscout.workspace.gate import SelectionGate
from launchscout.workspace.scoring import ScoreResult
from launchscout.workspace.store import CandidateStore


T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeOracle(PriceOracle):
    def __init__(self, prices: Optional[dict[str, float]] = None):
        self.prices = dict(prices or {})
        self.unavailable: set[str] = set()

    async def get_current_price(self, address: str) -> Optional[float]:
        if address in self.unavailable:
            raise PriceUnavailable(address)
        return self.prices.get(address)


class MemoryStorage(Storage):
    def __init__(self):
        self.tokens = []
        self.trades = []

    def save_token(self, candidate, score) -> None:
        self.tokens.append((candidate, score))

    def record_trade(self, trade) -> None:
        self.trades.append(trade)

    def viable_tokens(self, limit: int = 20):
        return []


class FailingSellExecutor(PaperTradeExecutor):
    """Paper executor whose first N sells fail."""

    def __init__(self, *args, failures: int = 1, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures

    async def execute(self, candidate, side, size, price=None) -> ExecutionResult:
        if side == TradeSide.SELL and self.failures > 0:
            self.failures -= 1
            raise ExecutionFailure(candidate.address, side.value, "rpc unavailable")
        return await super().execute(candidate, side, size, price)


class SlowBuyExecutor(PaperTradeExecutor):
    """Paper executor that yields to the loop before every buy fill."""

    async def execute(self, candidate, side, size, price=None) -> ExecutionResult:
        if side == TradeSide.BUY:
            await asyncio.sleep(0.01)
        return await super().execute(candidate, side, size, price)


class PartialFillExecutor(PaperTradeExecutor):
    """Paper executor that spends only 80% of the requested capital."""

    async def execute(self, candidate, side, size, price=None) -> ExecutionResult:
        if side == TradeSide.BUY:
            size = size * 0.8
        return await super().execute(candidate, side, size, price)


def create_candidate(address: str = "Mint1", source: str = "pumpfun", liquidity: float = 20_000.0) -> Candidate:
    return Candidate(
        address=address,
        symbol=address.upper(),
        liquidity=liquidity,
        source=source,
        source_priority=9,
        discovered_at=T0,
    )


def create_score(overall: float = 90.0, risk: float = 60.0) -> ScoreResult:
    return ScoreResult(
        liquidity_score=100.0,
        momentum_score=100.0,
        age_score=120.0,
        volume_score=60.0,
        source_score=20.0,
        overall_score=overall,
        risk_score=risk,
    )


class Harness:
    """Wires a PositionManager with in-memory collaborators."""

    def __init__(
        self,
        capital: float = 10.0,
        max_position_size: float = 0.1,
        max_daily_loss: float = 0.05,
        max_positions: int = 10,
        executor_cls=PaperTradeExecutor,
        store: Optional[CandidateStore] = None,
        closed_history: int = 500,
        **executor_kwargs,
    ):
        self.clock = FakeClock()
        self.oracle = FakeOracle({"Mint1": 1.0, "Mint2": 1.0})
        self.ledger = BalanceLedger(capital, max_daily_loss, max_positions, clock=self.clock)
        self.executor = executor_cls(self.oracle, capital, clock=self.clock, **executor_kwargs)
        self.storage = MemoryStorage()
        self.events = []

        async def emit(event):
            self.events.append(event)

        self.manager = PositionManager(
            gate=SelectionGate(),
            executor=self.executor,
            oracle=self.oracle,
            ledger=self.ledger,
            storage=self.storage,
            store=store,
            emit_event=emit,
            max_position_size=max_position_size,
            closed_history=closed_history,
            clock=self.clock,
        )

    def event_types(self) -> list[EventType]:
        return [e.event_type for e in self.events]

    def run(self, coro):
        return asyncio.run(coro)


# ============================================================================
# Exit rules
# ============================================================================


def create_position(entry_price: float = 1.0) -> Position:
    return Position(
        token_address="Mint1",
        symbol="MINT1",
        entry_price=entry_price,
        entry_time=T0,
        amount_held=100.0,
        capital_committed=100.0 * entry_price,
    )


class TestEvaluateExit:
    """Exit rule priority."""

    def test_take_profit_100(self):
        assert evaluate_exit(create_position(), 2.0, T0) == ExitReason.TAKE_PROFIT_100

    def test_take_profit_50_requires_hold_time(self):
        position = create_position()
        assert evaluate_exit(position, 1.6, T0 + timedelta(minutes=10)) is None
        assert evaluate_exit(position, 1.6, T0 + timedelta(minutes=31)) == ExitReason.TAKE_PROFIT_50

    def test_stop_loss(self):
        assert evaluate_exit(create_position(), 0.79, T0) == ExitReason.STOP_LOSS
        assert evaluate_exit(create_position(), 0.81, T0) is None

    def test_time_exit_after_a_day(self):
        position = create_position()
        assert evaluate_exit(position, 1.05, T0 + timedelta(hours=25)) == ExitReason.TIME_EXIT_24H
        assert evaluate_exit(position, 1.2, T0 + timedelta(hours=25)) is None

    def test_full_take_profit_wins_over_partial(self):
        position = create_position()
        assert evaluate_exit(position, 2.5, T0 + timedelta(hours=2)) == ExitReason.TAKE_PROFIT_100


# ============================================================================
# Entry
# ============================================================================


class TestEntry:
    """Opening positions."""

    def test_opens_position_sized_by_confidence(self):
        h = Harness()
        result = h.run(h.manager.consider(create_candidate(), create_score(overall=90.0)))

        assert result.opened
        position = result.position
        assert position.capital_committed == pytest.approx(0.1 * (0.5 + 0.5 * 0.9))
        assert position.entry_price == 1.0
        assert h.manager.status_of("Mint1") == PositionStatus.OPEN
        assert h.ledger.available_capital() == pytest.approx(10.0 - position.capital_committed)
        assert h.storage.trades[0].side == TradeSide.BUY
        assert h.event_types() == [EventType.POSITION_OPENED]

    def test_gate_rejection_does_not_open(self):
        h = Harness()
        result = h.run(h.manager.consider(create_candidate(), create_score(overall=10.0)))
        assert not result.opened
        assert result.reason.startswith("gate_rejected")
        assert h.manager.status_of("Mint1") == PositionStatus.SCANNING

    def test_second_entry_for_same_address_refused(self):
        h = Harness()
        h.run(h.manager.consider(create_candidate(), create_score()))
        result = h.run(h.manager.consider(create_candidate(), create_score()))
        assert result.reason == "already_open"
        assert len(h.manager.open_positions()) == 1

    def test_max_positions_refused(self):
        h = Harness(max_positions=1)
        h.run(h.manager.consider(create_candidate("Mint1"), create_score()))
        result = h.run(h.manager.consider(create_candidate("Mint2"), create_score()))
        assert result.reason == "max_positions"

    def test_failed_fill_aborts_entry(self):
        h = Harness()
        h.oracle.prices.pop("Mint1")

        result = h.run(h.manager.consider(create_candidate(), create_score()))

        assert not result.opened
        assert isinstance(result.error, ExecutionFailure)
        assert h.manager.status_of("Mint1") == PositionStatus.SCANNING
        assert h.ledger.available_capital() == pytest.approx(10.0)
        assert h.ledger.active_position_count() == 0
        assert h.storage.trades == []
        assert h.event_types() == [EventType.ENTRY_ABORTED]

    def test_concurrent_entries_respect_position_cap(self):
        h = Harness(max_positions=1, executor_cls=SlowBuyExecutor)

        async def scenario():
            return await asyncio.gather(
                h.manager.consider(create_candidate("Mint1"), create_score()),
                h.manager.consider(create_candidate("Mint2"), create_score()),
            )

        results = h.run(scenario())

        assert [r.opened for r in results].count(True) == 1
        refused = next(r for r in results if not r.opened)
        assert refused.reason == "max_positions"
        assert len(h.manager.open_positions()) == 1
        assert h.ledger.active_position_count() == 1
        assert h.event_types() == [EventType.POSITION_OPENED]

    def test_concurrent_entries_for_same_address_open_once(self):
        h = Harness(executor_cls=SlowBuyExecutor)

        async def scenario():
            return await asyncio.gather(
                h.manager.consider(create_candidate("Mint1"), create_score()),
                h.manager.consider(create_candidate("Mint1"), create_score()),
            )

        results = h.run(scenario())

        assert [r.opened for r in results].count(True) == 1
        assert h.ledger.active_position_count() == 1
        assert len(h.storage.trades) == 1

    def test_partial_fill_settles_reserved_capital(self):
        h = Harness(executor_cls=PartialFillExecutor)
        result = h.run(h.manager.consider(create_candidate(), create_score(overall=100.0)))

        assert result.opened
        assert result.position.capital_committed == pytest.approx(0.08)
        assert h.ledger.status()["reserved_capital"] == pytest.approx(0.08)
        assert h.ledger.available_capital() == pytest.approx(10.0 - 0.08)

    def test_insufficient_capital_refused_before_order(self):
        h = Harness(capital=0.05, max_position_size=0.1)
        result = h.run(h.manager.consider(create_candidate(), create_score()))

        assert result.reason == "insufficient_capital"
        assert h.storage.trades == []
        assert h.executor.balance == pytest.approx(0.05)


# ============================================================================
# Monitoring and exits
# ============================================================================


class TestExits:
    """Closing positions on exit rules."""

    def test_take_profit_realizes_pnl(self):
        h = Harness()
        opened = h.run(h.manager.consider(create_candidate(), create_score())).position

        h.oracle.prices["Mint1"] = 2.0
        trades = h.run(h.manager.monitor_once())

        assert len(trades) == 1
        sell = trades[0]
        exit_value = opened.amount_held * 2.0
        assert sell.side == TradeSide.SELL
        assert sell.exit_reason == "take_profit_100"
        assert sell.profit_loss == pytest.approx(exit_value - opened.capital_committed)

        closed = h.manager.closed_positions()[0]
        assert closed.status == PositionStatus.CLOSED
        assert closed.exit_reason == ExitReason.TAKE_PROFIT_100
        assert h.manager.status_of("Mint1") == PositionStatus.SCANNING
        assert h.ledger.available_capital() == pytest.approx(10.0 + sell.profit_loss)
        assert EventType.POSITION_CLOSED in h.event_types()

    def test_stop_loss_closes(self):
        h = Harness()
        h.run(h.manager.consider(create_candidate(), create_score()))

        h.oracle.prices["Mint1"] = 0.79
        trades = h.run(h.manager.monitor_once())

        assert trades[0].exit_reason == "stop_loss"
        assert trades[0].profit_loss < 0
        assert h.ledger.daily_pnl() == pytest.approx(trades[0].profit_loss)

    def test_no_exit_updates_unrealized(self):
        h = Harness()
        h.run(h.manager.consider(create_candidate(), create_score()))

        h.oracle.prices["Mint1"] = 1.2
        assert h.run(h.manager.monitor_once()) == []

        position = h.manager.get_position("Mint1")
        assert position.last_price == 1.2
        assert position.unrealized_pnl_pct == pytest.approx(20.0)

    def test_price_gap_skips_position(self):
        h = Harness()
        h.run(h.manager.consider(create_candidate(), create_score()))

        h.oracle.prices.pop("Mint1")
        assert h.run(h.manager.monitor_once()) == []
        h.oracle.unavailable.add("Mint1")
        assert h.run(h.manager.monitor_once()) == []

        position = h.manager.get_position("Mint1")
        assert position.status == PositionStatus.OPEN
        assert position.last_price == 1.0

    def test_failed_exit_retries_next_tick(self):
        h = Harness(executor_cls=FailingSellExecutor, failures=1)
        h.run(h.manager.consider(create_candidate(), create_score()))

        h.oracle.prices["Mint1"] = 2.0
        assert h.run(h.manager.monitor_once()) == []
        assert h.manager.status_of("Mint1") == PositionStatus.OPEN

        trades = h.run(h.manager.monitor_once())
        assert trades[0].exit_reason == "take_profit_100"

    def test_manual_close(self):
        h = Harness()
        h.run(h.manager.consider(create_candidate(), create_score()))
        trade = h.run(h.manager.close_position("Mint1"))
        assert trade.exit_reason == "manual"
        assert trade.profit_loss == pytest.approx(0.0)

    def test_closed_history_is_bounded(self):
        h = Harness(closed_history=1)
        h.run(h.manager.consider(create_candidate("Mint1"), create_score()))
        h.run(h.manager.consider(create_candidate("Mint2"), create_score()))

        h.oracle.prices["Mint1"] = 2.0
        h.oracle.prices["Mint2"] = 2.0
        trades = h.run(h.manager.monitor_once())

        assert len(h.manager.closed_positions()) == 1
        status = h.manager.get_status()
        assert status["closed_count"] == 2
        assert status["realized_pnl"] == pytest.approx(sum(t.profit_loss for t in trades))


class TestDailyLossGuard:
    """Guard blocks new entries once tripped."""

    def test_loss_trips_guard_and_blocks_entries(self):
        h = Harness(capital=1.0, max_position_size=0.5, max_daily_loss=0.05)
        opened = h.run(h.manager.consider(create_candidate("Mint1"), create_score(overall=100.0))).position
        assert opened.capital_committed == pytest.approx(0.5)

        h.oracle.prices["Mint1"] = 0.79
        h.run(h.manager.monitor_once())

        assert h.ledger.daily_loss_tripped()
        assert EventType.DAILY_LOSS_TRIPPED in h.event_types()

        result = h.run(h.manager.consider(create_candidate("Mint2"), create_score(overall=100.0)))
        assert not result.opened
        assert result.reason == "daily_loss_tripped"

    def test_exits_continue_while_tripped(self):
        h = Harness(capital=2.0, max_position_size=0.5, max_daily_loss=0.05)
        h.run(h.manager.consider(create_candidate("Mint1"), create_score(overall=100.0)))
        h.run(h.manager.consider(create_candidate("Mint2"), create_score(overall=100.0)))

        h.oracle.prices["Mint1"] = 0.5
        h.run(h.manager.monitor_once())
        assert h.ledger.daily_loss_tripped()

        h.oracle.prices["Mint2"] = 2.0
        trades = h.run(h.manager.monitor_once())
        assert trades[0].token_address == "Mint2"
        assert h.manager.open_positions() == []


class TestTick:
    """Store-driven entries."""

    def test_tick_enters_viable_candidates(self):
        store = CandidateStore(clock=FakeClock())
        store.ingest(create_candidate("Mint1"))
        store.record_score("Mint1", create_score(), accepted=True)
        store.ingest(create_candidate("Mint2"))
        store.record_score("Mint2", create_score(), accepted=False)

        h = Harness(store=store)
        h.run(h.manager.tick())

        assert [p.token_address for p in h.manager.open_positions()] == ["Mint1"]

    def test_start_and_stop(self):
        h = Harness()

        async def scenario():
            await h.manager.start()
            await asyncio.sleep(0)
            await h.manager.stop()

        h.run(scenario())
        assert h.manager.get_status()["running"] is False
