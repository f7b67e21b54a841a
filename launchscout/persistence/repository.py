"""
Repositories - Persistence for accepted tokens and trades.

SqliteStorage is the Storage collaborator handed to the discovery
pipeline and the position manager.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from launchscout.execution.base import Storage, Trade
from launchscout.feeds.base import Candidate
from launchscout.persistence.database import Database
from launchscout.workspace.scoring import ScoreResult

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    """Get current UTC timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class TokenRepository:
    """Repository for accepted token persistence."""

    def __init__(self, db: Database):
        self.db = db

    def upsert(self, candidate: Candidate, score: ScoreResult) -> None:
        """Insert a token or refresh its market data and score."""
        now = _now_iso()
        self.db.execute(
            """
            INSERT INTO tokens (
                address, symbol, name,
                price, market_cap, liquidity, volume_24h, price_change_24h, holders,
                source, source_priority, sources, multi_source,
                overall_score, risk_score, score_details,
                created_at, discovered_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(address) DO UPDATE SET
                symbol = excluded.symbol,
                name = excluded.name,
                price = excluded.price,
                market_cap = excluded.market_cap,
                liquidity = excluded.liquidity,
                volume_24h = excluded.volume_24h,
                price_change_24h = excluded.price_change_24h,
                holders = excluded.holders,
                source = excluded.source,
                source_priority = excluded.source_priority,
                sources = excluded.sources,
                multi_source = excluded.multi_source,
                overall_score = excluded.overall_score,
                risk_score = excluded.risk_score,
                score_details = excluded.score_details,
                created_at = excluded.created_at,
                updated_at = excluded.updated_at
            """,
            (
                candidate.address, candidate.symbol, candidate.name,
                candidate.price, candidate.market_cap, candidate.liquidity,
                candidate.volume_24h, candidate.price_change_24h, candidate.holders,
                candidate.source, candidate.source_priority,
                json.dumps(sorted(candidate.sources)), int(candidate.multi_source),
                score.overall_score, score.risk_score, json.dumps(score.to_dict()),
                _iso(candidate.created_at), _iso(candidate.discovered_at) or now, now,
            )
        )
        logger.debug(f"Saved token {candidate.symbol} ({candidate.address})")

    def get(self, address: str) -> dict | None:
        """Get a token by address."""
        rows = self.db.execute("SELECT * FROM tokens WHERE address = ?", (address,))
        if rows:
            return self._row(rows[0])
        return None

    def get_viable(
        self,
        limit: int = 20,
        min_liquidity: float = 0.0,
        max_risk: float = 85.0,
    ) -> list[dict]:
        """Tokens ranked by source priority, then score, then recency."""
        rows = self.db.execute(
            """
            SELECT * FROM tokens
            WHERE risk_score < ? AND liquidity >= ?
            ORDER BY source_priority DESC, overall_score DESC, discovered_at DESC
            LIMIT ?
            """,
            (max_risk, min_liquidity, limit)
        )
        return [self._row(row) for row in rows]

    @staticmethod
    def _row(row: Any) -> dict:
        data = dict(row)
        for key in ("sources", "score_details"):
            if data.get(key):
                data[key] = json.loads(data[key])
        data["multi_source"] = bool(data.get("multi_source"))
        return data


class TradeRepository:
    """Repository for append-only trade persistence."""

    def __init__(self, db: Database):
        self.db = db

    def save(self, trade: Trade) -> int:
        """Save a trade and return its row ID."""
        row_id = self.db.insert(
            """
            INSERT INTO trades (
                trade_id, position_id, token_address, side,
                amount, price, sol_amount,
                status, profit_loss, exit_reason,
                created_at, executed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                trade.trade_id, trade.position_id, trade.token_address, trade.side.value,
                trade.amount, trade.price, trade.sol_amount,
                trade.status, trade.profit_loss, trade.exit_reason,
                trade.created_at.isoformat(), _iso(trade.executed_at),
            )
        )
        logger.debug(f"Saved {trade.side.value} trade {trade.trade_id} for {trade.token_address}")
        return row_id

    def get_for_token(self, address: str) -> list[dict]:
        """All trades for a token, oldest first."""
        rows = self.db.execute(
            "SELECT * FROM trades WHERE token_address = ? ORDER BY id ASC", (address,)
        )
        return [dict(row) for row in rows]

    def get_pnl_summary(self) -> dict:
        """Realized P&L over all closed (sell) trades."""
        rows = self.db.execute(
            """
            SELECT
                COUNT(*) AS trades,
                SUM(CASE WHEN profit_loss > 0 THEN 1 ELSE 0 END) AS wins,
                COALESCE(SUM(profit_loss), 0) AS total_pnl
            FROM trades WHERE side = 'sell'
            """
        )
        row = dict(rows[0])
        trades = row["trades"] or 0
        wins = row["wins"] or 0
        return {
            "trades": trades,
            "wins": wins,
            "win_rate": wins / trades * 100 if trades else 0.0,
            "total_pnl": row["total_pnl"],
        }


class SqliteStorage(Storage):
    """Storage collaborator backed by a local SQLite file."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        min_liquidity: float = 0.0,
        max_risk: float = 85.0,
    ):
        self.db = Database(db_path)
        self.tokens = TokenRepository(self.db)
        self.trades = TradeRepository(self.db)
        self.min_liquidity = min_liquidity
        self.max_risk = max_risk

    def save_token(self, candidate: Candidate, score: ScoreResult) -> None:
        self.tokens.upsert(candidate, score)

    def record_trade(self, trade: Trade) -> None:
        self.trades.save(trade)

    def viable_tokens(self, limit: int = 20) -> list[dict[str, Any]]:
        return self.tokens.get_viable(limit=limit, min_liquidity=self.min_liquidity, max_risk=self.max_risk)
