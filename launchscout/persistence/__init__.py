"""Persistence: SQLite storage for accepted tokens and trades."""

from launchscout.persistence.database import Database
from launchscout.persistence.repository import SqliteStorage, TokenRepository, TradeRepository

__all__ = ["Database", "SqliteStorage", "TokenRepository", "TradeRepository"]
