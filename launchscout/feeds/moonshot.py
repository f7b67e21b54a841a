"""Moonshot feed - Newly launched Moonshot tokens."""

from __future__ import annotations

from typing import Any

from launchscout.core.errors import MalformedRecordError
from launchscout.feeds.base import Candidate, PollFeed, pick, to_datetime, to_float


class MoonshotFeed(PollFeed):
    """Poll feed over ``/tokens/v1/new``."""

    page_size = 50

    async def fetch_records(self) -> list[Any]:
        data = await self.get_json(self.config.url, params={"limit": self.page_size, "offset": 0})
        if not isinstance(data, dict):
            raise MalformedRecordError(self.source_id, "expected an object with tokens")
        return data.get("tokens") or []

    def normalize(self, record: dict[str, Any]) -> Candidate:
        candidate = self._candidate(
            pick(record, "mintAddress", "address", "mint"),
            symbol=record.get("symbol") or "UNKNOWN",
            name=record.get("name") or "Unknown Token",
            price=to_float(pick(record, "priceUsd", "price")),
            liquidity=to_float(record.get("liquidity")),
            volume_24h=to_float(record.get("volume24h")),
            price_change_24h=to_float(record.get("priceChange24h")),
            market_cap=to_float(record.get("marketCap")),
        )
        candidate.created_at = to_datetime(record.get("createdAt")) or candidate.discovered_at
        return candidate
