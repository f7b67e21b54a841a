"""
Execution Base Contract - Collaborator interfaces and trading records.

Defines:
- PriceOracle: current price lookup per address
- TradeExecutor: buy/sell execution (paper or live)
- Storage: persistence of accepted tokens and trades
- Position / Trade records owned by the PositionManager

Execution never decides what to trade. It only carries out entries and
exits the PositionManager has already approved.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from launchscout.feeds.base import Candidate
from launchscout.workspace.scoring import ScoreResult


class TradingMode(Enum):
    """Trading mode for safety control."""

    PAPER = "paper"
    LIVE = "live"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class PositionStatus(str, Enum):
    """Position lifecycle. SCANNING means no position exists yet."""

    SCANNING = "scanning"
    OPEN = "open"
    CLOSED = "closed"


class ExitReason(str, Enum):
    """Why a position was exited."""

    TAKE_PROFIT_100 = "take_profit_100"
    TAKE_PROFIT_50 = "take_profit_50"
    STOP_LOSS = "stop_loss"
    TIME_EXIT_24H = "time_exit_24h"
    MANUAL = "manual"


@dataclass(frozen=True)
class ExecutionResult:
    """Result of one executor call."""

    success: bool
    address: str
    side: TradeSide
    price: float = 0.0
    amount: float = 0.0      # tokens bought or sold
    sol_amount: float = 0.0  # capital spent or received
    tx_id: str = ""
    error: str = ""
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class Position:
    """
    A tracked position.

    Mutable because last_price and unrealized P&L change on every tick.
    """

    token_address: str
    symbol: str
    entry_price: float
    entry_time: datetime
    amount_held: float
    capital_committed: float
    status: PositionStatus = PositionStatus.OPEN
    position_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    source: str = ""

    last_price: float = 0.0
    unrealized_pnl_pct: float = 0.0

    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    exit_reason: Optional[ExitReason] = None
    realized_pnl: float = 0.0

    def __post_init__(self):
        if self.last_price == 0.0:
            self.last_price = self.entry_price

    def gain_pct(self, price: float) -> float:
        """Percent gain at a price relative to entry."""
        if self.entry_price <= 0:
            return 0.0
        return (price - self.entry_price) / self.entry_price * 100

    def held_seconds(self, now: datetime) -> float:
        return (now - self.entry_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "position_id": self.position_id,
            "token_address": self.token_address,
            "symbol": self.symbol,
            "source": self.source,
            "entry_price": self.entry_price,
            "entry_time": self.entry_time.isoformat(),
            "amount_held": self.amount_held,
            "capital_committed": self.capital_committed,
            "status": self.status.value,
            "last_price": self.last_price,
            "unrealized_pnl_pct": self.unrealized_pnl_pct,
            "exit_price": self.exit_price,
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "exit_reason": self.exit_reason.value if self.exit_reason else None,
            "realized_pnl": self.realized_pnl,
        }


@dataclass(frozen=True)
class Trade:
    """Append-only trade record handed to Storage."""

    token_address: str
    side: TradeSide
    amount: float
    price: float
    sol_amount: float
    trade_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = "executed"
    profit_loss: Optional[float] = None
    exit_reason: Optional[str] = None
    position_id: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    executed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "position_id": self.position_id,
            "token_address": self.token_address,
            "side": self.side.value,
            "amount": self.amount,
            "price": self.price,
            "sol_amount": self.sol_amount,
            "status": self.status,
            "profit_loss": self.profit_loss,
            "exit_reason": self.exit_reason,
            "created_at": self.created_at.isoformat(),
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
        }


# ============================================================================
# Collaborator contracts
# ============================================================================


class PriceOracle(ABC):
    """Current price lookup."""

    @abstractmethod
    async def get_current_price(self, address: str) -> Optional[float]:
        """
        Get the current USD price for an address.

        Returns None when no price is available. Implementations may
        instead raise PriceUnavailable; callers handle both.
        """


class TradeExecutor(ABC):
    """Carries out buys and sells."""

    mode: TradingMode = TradingMode.PAPER

    @abstractmethod
    async def execute(
        self,
        candidate: Candidate,
        side: TradeSide,
        size: float,
        price: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Execute a trade.

        Args:
            candidate: Token being traded
            side: BUY or SELL
            size: capital to spend for BUY, token amount for SELL
            price: optional price hint (e.g. the price an exit fired at)

        Raises:
            ExecutionFailure: if the trade cannot be carried out
        """


class Storage(ABC):
    """Persistence collaborator for accepted tokens and trades."""

    @abstractmethod
    def save_token(self, candidate: Candidate, score: ScoreResult) -> None:
        """Upsert an accepted token with its latest score."""

    @abstractmethod
    def record_trade(self, trade: Trade) -> None:
        """Append a trade."""

    @abstractmethod
    def viable_tokens(self, limit: int = 20) -> list[dict[str, Any]]:
        """Stored tokens ranked for trading."""
