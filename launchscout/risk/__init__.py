"""Risk: capital ledger and daily loss guard."""

from launchscout.risk.ledger import BalanceLedger

__all__ = ["BalanceLedger"]
