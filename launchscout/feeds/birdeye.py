"""
Birdeye feed - Top Solana tokens by 24h volume.

Requires an API key (BIRDEYE_API_KEY). Tokens older than 24h are dropped.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from launchscout.feeds.base import Candidate, PollFeed, pick, to_datetime, to_float

logger = logging.getLogger(__name__)


class BirdeyeFeed(PollFeed):
    """Poll feed over Birdeye's token list, sorted by v24hUSD."""

    max_age = timedelta(hours=24)
    page_size = 50

    async def fetch_records(self) -> list[Any]:
        headers = {
            "X-API-KEY": self.config.api_key,
            "x-chain": "solana",
        }
        params = {
            "sort_by": "v24hUSD",
            "sort_type": "desc",
            "limit": self.page_size,
        }
        data = await self.get_json(self.config.url, params=params, headers=headers)
        tokens = pick(data, "data.tokens") if isinstance(data, dict) else None
        if tokens is None:
            logger.warning(f"[FEED:{self.source_id}] Response has no data.tokens")
            return []
        return tokens

    def normalize(self, record: dict[str, Any]) -> Candidate:
        holders = record.get("holder")
        candidate = self._candidate(
            record.get("address"),
            symbol=record.get("symbol") or "UNKNOWN",
            name=record.get("name") or "Unknown Token",
            price=to_float(record.get("price")),
            liquidity=to_float(record.get("liquidity")),
            volume_24h=to_float(pick(record, "v24hUSD", "volume24h")),
            price_change_24h=to_float(pick(record, "v24hChangePercent", "priceChange24h")),
            market_cap=to_float(pick(record, "mc", "marketCap")),
            holders=int(holders) if isinstance(holders, (int, float)) else None,
        )
        # createTime is epoch seconds
        candidate.created_at = to_datetime(record.get("createTime")) or candidate.discovered_at
        return candidate

    def accept(self, candidate: Candidate) -> bool:
        if candidate.created_at is None or candidate.discovered_at is None:
            return True
        return candidate.discovered_at - candidate.created_at < self.max_age
