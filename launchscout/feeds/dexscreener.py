"""
DexScreener feed - Recently created Solana pairs from the public search API.

Endpoint: GET /latest/dex/search?q=SOL
Response: {"pairs": [{chainId, baseToken{address,symbol,name}, priceUsd,
           liquidity{usd}, volume{h24}, priceChange{h24}, fdv, pairCreatedAt}]}
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from launchscout.core.errors import MalformedRecordError
from launchscout.feeds.base import Candidate, PollFeed, pick, to_datetime, to_float

logger = logging.getLogger(__name__)

MAX_PAIRS = 50


class DexScreenerFeed(PollFeed):
    """Poll feed over DexScreener pair search, keeping Solana pairs younger than a day."""

    chain_id = "solana"
    max_age = timedelta(hours=24)

    async def fetch_records(self) -> list[Any]:
        data = await self.get_json(self.config.url, params={"q": "SOL"})
        if not isinstance(data, dict):
            raise MalformedRecordError(self.source_id, "expected an object with pairs")
        pairs = data.get("pairs") or []
        if not isinstance(pairs, list):
            raise MalformedRecordError(self.source_id, "pairs is not a list")
        solana = [p for p in pairs if isinstance(p, dict) and p.get("chainId") == self.chain_id]
        return solana[:MAX_PAIRS]

    def normalize(self, record: dict[str, Any]) -> Candidate:
        base = record.get("baseToken") or {}
        created_at = to_datetime(pick(record, "pairCreatedAt"))
        candidate = self._candidate(
            pick(base, "address"),
            symbol=pick(base, "symbol", default="UNKNOWN"),
            name=pick(base, "name", default="Unknown Token"),
            price=to_float(pick(record, "priceUsd", "price")),
            liquidity=to_float(pick(record, "liquidity.usd", "liquidity")),
            volume_24h=to_float(pick(record, "volume.h24", "volume24h")),
            price_change_24h=to_float(pick(record, "priceChange.h24", "priceChange24h")),
            market_cap=to_float(pick(record, "fdv", "marketCap")),
            raw_metadata={
                "pair_address": record.get("pairAddress"),
                "dex_id": record.get("dexId"),
                "url": record.get("url"),
            },
        )
        candidate.created_at = created_at or candidate.discovered_at
        return candidate

    def accept(self, candidate: Candidate) -> bool:
        if candidate.created_at is None or candidate.discovered_at is None:
            return True
        return candidate.discovered_at - candidate.created_at < self.max_age
