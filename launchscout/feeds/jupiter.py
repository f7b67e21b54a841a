"""
Jupiter feed - Price activity for Jupiter-listed mints.

Prices come from the Jupiter price API (``/price?ids=a,b,c``). The mint
universe is the configured watch list, or the head of Jupiter's strict
token list when no watch list is set.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from launchscout.core.clock import Clock
from launchscout.core.config import SourceConfig
from launchscout.core.errors import MalformedRecordError
from launchscout.feeds.base import Candidate, PollFeed, pick, to_datetime, to_float

logger = logging.getLogger(__name__)

TOKEN_LIST_URL = "https://token.jup.ag/strict"
MAX_IDS_PER_REQUEST = 100

# Liquidity is not reported; assume roughly 10% of daily volume.
VOLUME_TO_LIQUIDITY = 0.1


class JupiterFeed(PollFeed):
    """Poll feed over the Jupiter price API."""

    def __init__(
        self,
        config: SourceConfig,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        clock: Clock | None = None,
        token_list_url: str = TOKEN_LIST_URL,
    ):
        super().__init__(config, client=client, timeout=timeout, clock=clock)
        self.token_list_url = token_list_url
        self._token_meta: dict[str, dict[str, Any]] = {}

    async def _mints(self) -> list[str]:
        if self.config.watch_list:
            return list(self.config.watch_list)[:MAX_IDS_PER_REQUEST]

        if not self._token_meta:
            tokens = await self.get_json(self.token_list_url)
            if not isinstance(tokens, list):
                raise MalformedRecordError(self.source_id, "token list is not a list")
            for token in tokens[:MAX_IDS_PER_REQUEST]:
                if isinstance(token, dict) and token.get("address"):
                    self._token_meta[token["address"]] = token
            logger.info(f"[FEED:{self.source_id}] Loaded {len(self._token_meta)} mints from token list")
        return list(self._token_meta)

    async def fetch_records(self) -> list[Any]:
        mints = await self._mints()
        if not mints:
            return []

        data = await self.get_json(self.config.url, params={"ids": ",".join(mints)})
        prices = data.get("data") if isinstance(data, dict) else None
        if not isinstance(prices, dict):
            raise MalformedRecordError(self.source_id, "expected data keyed by mint")

        records = []
        for mint, price_data in prices.items():
            if not isinstance(price_data, dict):
                continue
            meta = self._token_meta.get(mint, {})
            records.append({**meta, **price_data, "address": mint})
        return records

    def normalize(self, record: dict[str, Any]) -> Candidate:
        price = to_float(record.get("price"))
        price_ago = to_float(record.get("price24hAgo")) or price
        change = ((price - price_ago) / price_ago) * 100 if price_ago else 0.0
        volume = to_float(record.get("volume24h"))

        candidate = self._candidate(
            pick(record, "address", "id"),
            symbol=pick(record, "mintSymbol", "symbol", default="UNKNOWN"),
            name=record.get("name") or "Unknown Token",
            price=price,
            liquidity=to_float(record.get("liquidity")) or volume * VOLUME_TO_LIQUIDITY,
            volume_24h=volume,
            price_change_24h=change,
            market_cap=to_float(pick(record, "marketCap.value", "marketCap")),
        )
        candidate.created_at = to_datetime(record.get("createdAt")) or candidate.discovered_at
        return candidate
