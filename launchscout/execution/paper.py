"""
Trade executors.

PaperTradeExecutor simulates fills at the oracle price against a paper
balance. LiveTradeExecutor is the live-mode seam: transaction signing
and broadcast are not implemented, so every call fails.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from launchscout.core.clock import Clock, utc_now
from launchscout.core.errors import ExecutionFailure, PriceUnavailable
from launchscout.execution.base import (
    ExecutionResult,
    PriceOracle,
    TradeExecutor,
    TradeSide,
    TradingMode,
)
from launchscout.feeds.base import Candidate

logger = logging.getLogger(__name__)


class PaperTradeExecutor(TradeExecutor):
    """
    Simulated executor.

    BUY:  size is capital; fills size / price tokens, debits the balance
    SELL: size is a token amount; credits size * price
    """

    mode = TradingMode.PAPER

    def __init__(
        self,
        oracle: PriceOracle,
        starting_balance: float = 10.0,
        clock: Clock | None = None,
    ):
        self._oracle = oracle
        self._balance = starting_balance
        self._clock = clock or utc_now
        self._fills = 0

        logger.info(f"[PAPER] Paper executor initialized with balance {starting_balance:.3f}")

    @property
    def balance(self) -> float:
        return self._balance

    async def _fill_price(self, candidate: Candidate, side: TradeSide, hint: Optional[float]) -> float:
        if hint is not None and hint > 0:
            return hint
        try:
            price = await self._oracle.get_current_price(candidate.address)
        except PriceUnavailable:
            price = None
        if price is None or price <= 0:
            raise ExecutionFailure(candidate.address, side.value, "no price available")
        return price

    async def execute(
        self,
        candidate: Candidate,
        side: TradeSide,
        size: float,
        price: Optional[float] = None,
    ) -> ExecutionResult:
        if size <= 0:
            raise ExecutionFailure(candidate.address, side.value, f"invalid size {size}")

        fill_price = await self._fill_price(candidate, side, price)
        tx_id = f"PAPER_{uuid.uuid4().hex[:12]}"

        if side == TradeSide.BUY:
            if self._balance < size:
                raise ExecutionFailure(
                    candidate.address, side.value,
                    f"insufficient paper balance ({self._balance:.3f} < {size:.3f})",
                )
            amount = size / fill_price
            sol_amount = size
            self._balance -= size
        else:
            amount = size
            sol_amount = size * fill_price
            self._balance += sol_amount

        self._fills += 1
        logger.info(
            f"[PAPER] {side.value.upper()} {amount:.2f} {candidate.symbol} "
            f"@ {fill_price:.8f} for {sol_amount:.4f} | balance={self._balance:.4f}"
        )

        return ExecutionResult(
            success=True,
            address=candidate.address,
            side=side,
            price=fill_price,
            amount=amount,
            sol_amount=sol_amount,
            tx_id=tx_id,
            executed_at=self._clock(),
        )


class LiveTradeExecutor(TradeExecutor):
    """Live-mode executor. On-chain signing is not available, so every trade fails."""

    mode = TradingMode.LIVE

    async def execute(
        self,
        candidate: Candidate,
        side: TradeSide,
        size: float,
        price: Optional[float] = None,
    ) -> ExecutionResult:
        logger.warning("[LIVE] Live trading not implemented - use paper trading mode")
        raise ExecutionFailure(candidate.address, side.value, "live trading is not supported")
