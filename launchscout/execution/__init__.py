"""Execution: collaborator contracts, price oracle, executors and the position manager."""

from launchscout.execution.base import (
    ExecutionResult,
    ExitReason,
    Position,
    PositionStatus,
    PriceOracle,
    Storage,
    Trade,
    TradeExecutor,
    TradeSide,
    TradingMode,
)
from launchscout.execution.paper import LiveTradeExecutor, PaperTradeExecutor
from launchscout.execution.position_manager import (
    EntryResult,
    ExitRules,
    PositionManager,
    evaluate_exit,
)
from launchscout.execution.price_oracle import JupiterPriceOracle

__all__ = [
    "ExecutionResult",
    "ExitReason",
    "Position",
    "PositionStatus",
    "PriceOracle",
    "Storage",
    "Trade",
    "TradeExecutor",
    "TradeSide",
    "TradingMode",
    "LiveTradeExecutor",
    "PaperTradeExecutor",
    "EntryResult",
    "ExitRules",
    "PositionManager",
    "evaluate_exit",
    "JupiterPriceOracle",
]
