"""
Position Manager - Entry, monitoring and exit of token positions.

Per address the lifecycle is SCANNING -> OPEN -> CLOSED.

Entry (consider):
    candidate passes the gate, no OPEN position for the address, active
    count below max_positions, daily loss guard not tripped. Size scales
    from 50% to 100% of max_position_size with confidence. The slot and
    its capital are claimed in the ledger before the order is sent; a
    failed fill cancels the claim and leaves the address in SCANNING with
    no partial position.

Exit Priority (monitor_once, first match wins):
1. gain >= 100%                      -> take_profit_100
2. gain >= 50% and held > 30 min     -> take_profit_50
3. gain <= -20%                      -> stop_loss
4. held > 24h and gain < 10%         -> time_exit_24h

A failed price lookup skips the position for that tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from launchscout.core.clock import Clock, utc_now
from launchscout.core.errors import ExecutionFailure, PriceUnavailable
from launchscout.core.events import Event, EventType, create_event
from launchscout.execution.base import (
    ExitReason,
    Position,
    PositionStatus,
    PriceOracle,
    Storage,
    Trade,
    TradeExecutor,
    TradeSide,
)
from launchscout.feeds.base import Candidate
from launchscout.risk.ledger import BalanceLedger
from launchscout.workspace.gate import SelectionGate
from launchscout.workspace.scoring import ScoreResult

if TYPE_CHECKING:
    from launchscout.workspace.store import CandidateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExitRules:
    """Thresholds for the exit rules. Percentages are gains relative to entry."""

    take_profit_full_pct: float = 100.0
    take_profit_partial_pct: float = 50.0
    take_profit_partial_min_hold_seconds: float = 30 * 60
    stop_loss_pct: float = -20.0
    time_exit_seconds: float = 24 * 60 * 60
    time_exit_max_gain_pct: float = 10.0


@dataclass(frozen=True)
class EntryResult:
    """Outcome of one consider() call."""

    opened: bool
    address: str
    reason: str = ""
    position: Optional[Position] = None
    error: Optional[ExecutionFailure] = None


def evaluate_exit(
    position: Position,
    price: float,
    now: datetime,
    rules: ExitRules | None = None,
) -> Optional[ExitReason]:
    """Apply the exit rules in priority order. Returns None to keep holding."""
    rules = rules or ExitRules()
    gain = position.gain_pct(price)
    held = position.held_seconds(now)

    if gain >= rules.take_profit_full_pct:
        return ExitReason.TAKE_PROFIT_100
    if gain >= rules.take_profit_partial_pct and held > rules.take_profit_partial_min_hold_seconds:
        return ExitReason.TAKE_PROFIT_50
    if gain <= rules.stop_loss_pct:
        return ExitReason.STOP_LOSS
    if held > rules.time_exit_seconds and gain < rules.time_exit_max_gain_pct:
        return ExitReason.TIME_EXIT_24H
    return None


class PositionManager:
    """
    Manages positions: sizes and opens entries, monitors prices, closes on exit rules.

    Interacts with discovery only through store snapshots, and with
    capital only through the BalanceLedger.
    """

    def __init__(
        self,
        gate: SelectionGate,
        executor: TradeExecutor,
        oracle: PriceOracle,
        ledger: BalanceLedger,
        storage: Optional[Storage] = None,
        store: Optional[CandidateStore] = None,
        emit_event: Optional[Callable[[Event], Awaitable[None]]] = None,
        max_position_size: float = 0.1,
        min_liquidity: float = 0.0,
        check_interval_seconds: float = 15.0,
        candidates_per_tick: int = 10,
        exit_rules: ExitRules | None = None,
        closed_history: int = 500,
        clock: Clock | None = None,
    ):
        self._gate = gate
        self._executor = executor
        self._oracle = oracle
        self._ledger = ledger
        self._storage = storage
        self._store = store
        self._emit = emit_event
        self.max_position_size = max_position_size
        self.min_liquidity = min_liquidity
        self.check_interval_seconds = check_interval_seconds
        self.candidates_per_tick = candidates_per_tick
        self._rules = exit_rules or ExitRules()
        self._clock = clock or utc_now

        # Open positions: address -> Position
        self._positions: dict[str, Position] = {}
        # Most recent closed positions only; full history lives in Storage
        self._closed: deque[Position] = deque(maxlen=closed_history)
        self._closed_count = 0
        self._realized_pnl = 0.0
        self._entering: set[str] = set()

        self._running = False
        self._task: Optional[asyncio.Task] = None

        logger.info("[POSITION_MGR] Position manager initialized")

    # ─── Queries ──────────────────────────────────────────────────────

    def status_of(self, address: str) -> PositionStatus:
        """OPEN while a position is held, otherwise SCANNING."""
        if address in self._positions:
            return PositionStatus.OPEN
        return PositionStatus.SCANNING

    def get_position(self, address: str) -> Optional[Position]:
        return self._positions.get(address)

    def open_positions(self) -> list[Position]:
        return list(self._positions.values())

    def closed_positions(self) -> list[Position]:
        return list(self._closed)

    def position_size(self, score: ScoreResult) -> float:
        """max_position_size x (0.5 + 0.5 x confidence)."""
        return self.max_position_size * (0.5 + 0.5 * score.confidence)

    # ─── Entry ────────────────────────────────────────────────────────

    async def consider(self, candidate: Candidate, score: ScoreResult) -> EntryResult:
        """
        Try to open a position for a scored candidate.

        Never raises for execution problems: an ExecutionFailure is logged
        and returned in the EntryResult.
        """
        address = candidate.address

        gate_result = self._gate.evaluate(candidate, score)
        if not gate_result.accepted:
            reasons = ",".join(r.value for r in gate_result.reasons)
            return EntryResult(opened=False, address=address, reason=f"gate_rejected:{reasons}")

        if self.min_liquidity > 0 and candidate.liquidity < self.min_liquidity:
            return EntryResult(opened=False, address=address, reason="low_liquidity")

        if address in self._positions or address in self._entering:
            return EntryResult(opened=False, address=address, reason="already_open")

        allowed, why = self._ledger.can_open()
        if not allowed:
            return EntryResult(opened=False, address=address, reason=why)

        size = self.position_size(score)
        reserved, why = self._ledger.try_reserve(address, size)
        if not reserved:
            return EntryResult(opened=False, address=address, reason=why)

        self._entering.add(address)
        entry: Optional[EntryResult] = None
        try:
            entry = await self._enter(candidate, score, size)
            return entry
        finally:
            self._entering.discard(address)
            if entry is None or not entry.opened:
                self._ledger.cancel_reservation(address)

    async def _enter(self, candidate: Candidate, score: ScoreResult, size: float) -> EntryResult:
        address = candidate.address
        logger.info(
            f"[POSITION_MGR] ENTRY: {candidate.symbol} ({address}) "
            f"confidence={score.confidence:.2f} size={size:.4f}"
        )

        try:
            result = await self._executor.execute(candidate, TradeSide.BUY, size)
            if not result.success:
                raise ExecutionFailure(address, TradeSide.BUY.value, result.error or "executor reported failure")
            if result.price <= 0 or result.amount <= 0:
                raise ExecutionFailure(address, TradeSide.BUY.value, "fill has no price or amount")
        except ExecutionFailure as e:
            logger.error(f"[POSITION_MGR] Entry aborted for {candidate.symbol}: {e}")
            await self._publish(create_event(
                EventType.ENTRY_ABORTED,
                payload={"symbol": candidate.symbol, "size": size, "error": str(e)},
                address=address,
                source=candidate.source,
            ))
            return EntryResult(opened=False, address=address, reason="execution_failed", error=e)

        if result.sol_amount != size:
            self._ledger.settle_reservation(address, result.sol_amount)

        position = Position(
            token_address=address,
            symbol=candidate.symbol,
            entry_price=result.price,
            entry_time=self._clock(),
            amount_held=result.amount,
            capital_committed=result.sol_amount,
            source=candidate.source,
        )
        self._positions[address] = position

        self._persist_trade(Trade(
            token_address=address,
            side=TradeSide.BUY,
            amount=result.amount,
            price=result.price,
            sol_amount=result.sol_amount,
            position_id=position.position_id,
            created_at=position.entry_time,
            executed_at=result.executed_at,
        ))

        logger.info(
            f"[POSITION_MGR] OPENED: {position.symbol} {position.amount_held:.2f} @ {position.entry_price:.8f} "
            f"capital={position.capital_committed:.4f} | active={len(self._positions)}"
        )

        await self._publish(create_event(
            EventType.POSITION_OPENED,
            payload={**position.to_dict(), "score": score.to_dict(), "tx_id": result.tx_id},
            address=address,
            source=candidate.source,
            correlation_id=position.position_id,
        ))

        return EntryResult(opened=True, address=address, position=position)

    # ─── Monitoring ───────────────────────────────────────────────────

    async def _price(self, address: str) -> Optional[float]:
        try:
            price = await self._oracle.get_current_price(address)
        except PriceUnavailable:
            return None
        except Exception as e:
            logger.warning(f"[POSITION_MGR] Price lookup failed for {address}: {e}")
            return None
        if price is None or price <= 0:
            return None
        return price

    async def monitor_once(self) -> list[Trade]:
        """
        Check every OPEN position against the exit rules once.

        Returns:
            Sell trades emitted by this tick
        """
        trades: list[Trade] = []

        for address, position in list(self._positions.items()):
            price = await self._price(address)
            if price is None:
                logger.debug(f"[POSITION_MGR] No price for {position.symbol}, holding this tick")
                continue

            now = self._clock()
            position.last_price = price
            position.unrealized_pnl_pct = position.gain_pct(price)

            reason = evaluate_exit(position, price, now, self._rules)
            if reason is None:
                continue

            logger.info(
                f"[POSITION_MGR] Exit signal for {position.symbol}: {reason.value} "
                f"({position.unrealized_pnl_pct:+.1f}%)"
            )
            trade = await self._close(position, price, reason)
            if trade is not None:
                trades.append(trade)

        return trades

    async def close_position(self, address: str, reason: ExitReason = ExitReason.MANUAL) -> Optional[Trade]:
        """Close an open position at the current price."""
        position = self._positions.get(address)
        if position is None:
            return None
        price = await self._price(address)
        if price is None:
            logger.warning(f"[POSITION_MGR] Cannot close {position.symbol}: no price")
            return None
        return await self._close(position, price, reason)

    async def _close(self, position: Position, price: float, reason: ExitReason) -> Optional[Trade]:
        address = position.token_address
        candidate = Candidate(address=address, symbol=position.symbol, source=position.source, price=price)

        try:
            result = await self._executor.execute(candidate, TradeSide.SELL, position.amount_held, price=price)
            if not result.success:
                raise ExecutionFailure(address, TradeSide.SELL.value, result.error or "executor reported failure")
        except ExecutionFailure as e:
            logger.error(f"[POSITION_MGR] Exit failed for {position.symbol}, retrying next tick: {e}")
            return None

        exit_price = result.price or price
        exit_value = position.amount_held * exit_price
        pnl = exit_value - position.capital_committed
        now = self._clock()

        position.status = PositionStatus.CLOSED
        position.exit_price = exit_price
        position.exit_time = now
        position.exit_reason = reason
        position.realized_pnl = pnl
        del self._positions[address]
        self._closed.append(position)
        self._closed_count += 1
        self._realized_pnl += pnl

        tripped = self._ledger.release(address, exit_value, pnl)

        trade = Trade(
            token_address=address,
            side=TradeSide.SELL,
            amount=position.amount_held,
            price=exit_price,
            sol_amount=exit_value,
            profit_loss=pnl,
            exit_reason=reason.value,
            position_id=position.position_id,
            created_at=now,
            executed_at=result.executed_at,
        )
        self._persist_trade(trade)

        pnl_pct = pnl / position.capital_committed * 100 if position.capital_committed > 0 else 0.0
        logger.info(
            f"[POSITION_MGR] CLOSED: {position.symbol} P&L={pnl:+.4f} ({pnl_pct:+.1f}%) "
            f"reason={reason.value} | daily={self._ledger.daily_pnl():+.4f}"
        )

        await self._publish(create_event(
            EventType.POSITION_CLOSED,
            payload={
                **position.to_dict(),
                "exit_value": exit_value,
                "pnl_pct": pnl_pct,
                "hold_seconds": position.held_seconds(now),
                "daily_pnl": self._ledger.daily_pnl(),
            },
            address=address,
            source=position.source,
            correlation_id=position.position_id,
        ))

        if tripped:
            await self._publish(create_event(
                EventType.DAILY_LOSS_TRIPPED,
                payload=self._ledger.status(),
            ))

        return trade

    # ─── Loop ─────────────────────────────────────────────────────────

    async def tick(self) -> None:
        """One loop iteration: monitor exits, then look for entries."""
        await self.monitor_once()

        if self._store is None:
            return
        for row in self._store.viable(limit=self.candidates_per_tick, min_liquidity=self.min_liquidity):
            if row.candidate.address in self._positions:
                continue
            allowed, _ = self._ledger.can_open()
            if not allowed:
                break
            await self.consider(row.candidate, row.score)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[POSITION_MGR] Tick failed: {e}", exc_info=True)
            await asyncio.sleep(self.check_interval_seconds)

    async def start(self) -> None:
        """Start the background monitoring loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"[POSITION_MGR] Monitoring every {self.check_interval_seconds}s")

    async def stop(self) -> None:
        """Stop the background loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[POSITION_MGR] Stopped")

    # ─── Helpers ──────────────────────────────────────────────────────

    def _persist_trade(self, trade: Trade) -> None:
        if self._storage is None:
            return
        try:
            self._storage.record_trade(trade)
        except Exception as e:
            logger.error(f"[POSITION_MGR] Failed to persist trade {trade.trade_id}: {e}")

    async def _publish(self, event: Event) -> None:
        if self._emit is None:
            return
        try:
            await self._emit(event)
        except Exception as e:
            logger.error(f"[POSITION_MGR] Failed to emit {event.event_type.value}: {e}")

    def get_status(self) -> dict[str, Any]:
        """Get position manager status for monitoring."""
        return {
            "running": self._running,
            "open_positions": [p.to_dict() for p in self._positions.values()],
            "closed_count": self._closed_count,
            "realized_pnl": self._realized_pnl,
            "ledger": self._ledger.status(),
        }
