"""
Balance Ledger - Capital, open exposure and the daily loss guard.

The ledger is the single serialized owner of:
- available capital
- per-address reserved capital (one entry per OPEN or entering position)
- realized daily P&L

Daily loss guard:
    Trips when realized daily loss exceeds max_daily_loss x starting
    capital. Once tripped it stays tripped until reset_daily() is called.
    A tripped guard blocks new entries only; exits keep running.
"""

from __future__ import annotations

import logging
from datetime import datetime
from threading import Lock
from typing import Any, Optional

from launchscout.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Capital and risk ledger. All operations are serialized by a lock."""

    def __init__(
        self,
        starting_capital: float,
        max_daily_loss: float = 0.05,
        max_positions: int = 10,
        clock: Clock | None = None,
    ):
        if starting_capital <= 0:
            raise ValueError("starting_capital must be positive")
        self._starting_capital = starting_capital
        self._max_daily_loss = max_daily_loss
        self._max_positions = max_positions
        self._clock = clock or utc_now
        self._lock = Lock()

        self._available = starting_capital
        self._reserved: dict[str, float] = {}
        self._daily_pnl = 0.0
        self._daily_trades = 0
        self._tripped = False
        self._tripped_at: Optional[datetime] = None

        logger.info(
            f"[LEDGER] Initialized: capital={starting_capital:.4f}, "
            f"daily_loss_limit={self.daily_loss_limit:.4f}, max_positions={max_positions}"
        )

    @property
    def starting_capital(self) -> float:
        return self._starting_capital

    @property
    def daily_loss_limit(self) -> float:
        """Absolute loss that trips the guard."""
        return self._max_daily_loss * self._starting_capital

    def available_capital(self) -> float:
        with self._lock:
            return self._available

    def daily_pnl(self) -> float:
        with self._lock:
            return self._daily_pnl

    def active_position_count(self) -> int:
        with self._lock:
            return len(self._reserved)

    def daily_loss_tripped(self) -> bool:
        with self._lock:
            return self._tripped

    def has_reservation(self, address: str) -> bool:
        with self._lock:
            return address in self._reserved

    def can_open(self) -> tuple[bool, str]:
        """Whether a new entry is allowed right now, with a reason if not."""
        with self._lock:
            if self._tripped:
                return False, "daily_loss_tripped"
            if len(self._reserved) >= self._max_positions:
                return False, "max_positions"
            return True, ""

    def try_reserve(self, address: str, amount: float) -> tuple[bool, str]:
        """
        Claim a position slot and its capital in one step.

        The guard, the position count and the capital check are evaluated
        under the same lock that commits the reservation, so two entries
        racing for the last slot cannot both succeed.

        Returns:
            (True, "") on success, otherwise (False, reason) where reason is
            one of daily_loss_tripped, max_positions, already_reserved,
            insufficient_capital
        """
        with self._lock:
            if self._tripped:
                return False, "daily_loss_tripped"
            if address in self._reserved:
                logger.warning(f"[LEDGER] {address} already has reserved capital")
                return False, "already_reserved"
            if len(self._reserved) >= self._max_positions:
                return False, "max_positions"
            if amount <= 0 or amount > self._available:
                logger.warning(
                    f"[LEDGER] Cannot reserve {amount:.4f} for {address} "
                    f"(available {self._available:.4f})"
                )
                return False, "insufficient_capital"
            self._available -= amount
            self._reserved[address] = amount
            logger.debug(f"[LEDGER] Reserved {amount:.4f} for {address}, available={self._available:.4f}")
            return True, ""

    def reserve(self, address: str, amount: float) -> bool:
        """Commit capital to a position. See try_reserve for the refusal reasons."""
        ok, _ = self.try_reserve(address, amount)
        return ok

    def cancel_reservation(self, address: str) -> float:
        """
        Undo a reservation whose entry never filled.

        Returns the full amount to available capital and books no P&L.
        Returns the amount restored (0.0 if there was no reservation).
        """
        with self._lock:
            amount = self._reserved.pop(address, None)
            if amount is None:
                return 0.0
            self._available += amount
        logger.debug(f"[LEDGER] Cancelled reservation of {amount:.4f} for {address}")
        return amount

    def settle_reservation(self, address: str, amount: float) -> None:
        """
        Replace a reservation with the capital a fill actually consumed.

        The difference flows back to (or out of) available capital.
        """
        with self._lock:
            reserved = self._reserved.get(address)
            if reserved is None:
                logger.warning(f"[LEDGER] Settle for {address} without a reservation")
                return
            self._available += reserved - amount
            self._reserved[address] = amount

    def release(self, address: str, exit_value: float, pnl: float) -> bool:
        """
        Return a closed position's proceeds and book its realized P&L.

        Returns:
            True if this release tripped the daily loss guard
        """
        with self._lock:
            if self._reserved.pop(address, None) is None:
                logger.warning(f"[LEDGER] Release for {address} without a reservation")
            self._available += exit_value
            self._daily_pnl += pnl
            self._daily_trades += 1

            newly_tripped = False
            if not self._tripped and -self._daily_pnl > self.daily_loss_limit:
                self._tripped = True
                self._tripped_at = self._clock()
                newly_tripped = True

        if newly_tripped:
            logger.warning(
                f"[LEDGER] DAILY LOSS GUARD TRIPPED: daily_pnl={self._daily_pnl:+.4f} "
                f"limit=-{self.daily_loss_limit:.4f}. New entries blocked."
            )
        return newly_tripped

    def reset_daily(self) -> None:
        """Start a new trading day: clears daily P&L and the loss guard."""
        with self._lock:
            self._daily_pnl = 0.0
            self._daily_trades = 0
            self._tripped = False
            self._tripped_at = None
        logger.info("[LEDGER] Daily counters reset")

    def status(self) -> dict[str, Any]:
        """Get ledger status for monitoring."""
        with self._lock:
            return {
                "starting_capital": self._starting_capital,
                "available_capital": self._available,
                "reserved_capital": sum(self._reserved.values()),
                "active_positions": len(self._reserved),
                "max_positions": self._max_positions,
                "daily_pnl": self._daily_pnl,
                "daily_trades": self._daily_trades,
                "daily_loss_limit": self.daily_loss_limit,
                "daily_loss_tripped": self._tripped,
                "tripped_at": self._tripped_at.isoformat() if self._tripped_at else None,
            }
