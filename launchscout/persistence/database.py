"""
Database - SQLite connection and schema management.

Schema designed for:
- Upserted accepted tokens (latest score wins)
- Append-only trades (crash-safe)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Tokens: accepted candidates with their latest score
CREATE TABLE IF NOT EXISTS tokens (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    address TEXT UNIQUE NOT NULL,
    symbol TEXT,
    name TEXT,

    -- Market data
    price REAL,
    market_cap REAL,
    liquidity REAL,
    volume_24h REAL,
    price_change_24h REAL,
    holders INTEGER,

    -- Source tracking
    source TEXT,
    source_priority INTEGER DEFAULT 0,
    sources TEXT,  -- JSON array of source ids
    multi_source INTEGER DEFAULT 0,

    -- Scoring
    overall_score REAL DEFAULT 0,
    risk_score REAL DEFAULT 0,
    score_details TEXT,  -- JSON with every sub-score

    -- Timestamps
    created_at TEXT,
    discovered_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,

    status TEXT DEFAULT 'accepted'
);
CREATE INDEX IF NOT EXISTS idx_tokens_discovered_at ON tokens(discovered_at);
CREATE INDEX IF NOT EXISTS idx_tokens_risk ON tokens(risk_score);

-- Trades: append-only buy and sell legs
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trade_id TEXT UNIQUE NOT NULL,
    position_id TEXT,

    token_address TEXT NOT NULL,
    side TEXT NOT NULL,  -- 'buy' or 'sell'
    amount REAL NOT NULL,
    price REAL NOT NULL,
    sol_amount REAL NOT NULL,

    status TEXT NOT NULL DEFAULT 'executed',
    profit_loss REAL,
    exit_reason TEXT,

    created_at TEXT NOT NULL,
    executed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_trades_token ON trades(token_address);
CREATE INDEX IF NOT EXISTS idx_trades_created_at ON trades(created_at);
"""


class Database:
    """SQLite database manager. One short-lived connection per operation."""

    def __init__(self, db_path: str | Path | None = None):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite file. Defaults to ./data/launchscout.db
        """
        if db_path is None:
            db_path = Path("./data/launchscout.db")

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            if cursor.fetchone() is None:
                conn.executescript(SCHEMA)
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, datetime.now(timezone.utc).isoformat())
                )
                logger.info(f"Database initialized at {self.db_path} (schema v{SCHEMA_VERSION})")

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row  # Enable dict-like access
        conn.execute("PRAGMA journal_mode=WAL")  # Better concurrency

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Execute a query and return results."""
        with self.connection() as conn:
            cursor = conn.execute(query, params)
            return cursor.fetchall()

    def insert(self, query: str, params: tuple = ()) -> int:
        """Insert a row and return the last row ID."""
        with self.connection() as conn:
            cursor = conn.execute(query, params)
            return cursor.lastrowid
