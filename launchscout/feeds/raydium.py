"""
Raydium feed - SOL pools listed by the Raydium v3 pool API.

Endpoint: GET /pools/info/list?poolType=all&poolSortField=default&sortType=desc
Response: {"success": true, "data": {"data": [{id, type, mintA{address,symbol,name},
           mintB{...}, price, tvl, day{volume}, openTime}]}}

``price`` is quoted as mintB per mintA. Only pools paired against wrapped
SOL are kept; the token side is whichever mint is not SOL, and its USD
price is derived from the configured SOL price.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional, TYPE_CHECKING

import httpx

from launchscout.core.clock import Clock
from launchscout.core.errors import MalformedRecordError
from launchscout.feeds.base import Candidate, PollFeed, pick, to_datetime, to_float

if TYPE_CHECKING:
    from launchscout.core.config import SourceConfig

logger = logging.getLogger(__name__)

WSOL_MINT = "So11111111111111111111111111111111111111112"
PAGE_SIZE = 100


class RaydiumFeed(PollFeed):
    """Poll feed over the newest Raydium pools, keeping SOL pairs younger than a day."""

    max_age = timedelta(hours=24)

    def __init__(
        self,
        config: SourceConfig,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        clock: Clock | None = None,
        sol_price_usd: float = 150.0,
    ):
        super().__init__(config, client=client, timeout=timeout, clock=clock)
        self.sol_price_usd = sol_price_usd

    async def fetch_records(self) -> list[Any]:
        data = await self.get_json(
            self.config.url,
            params={
                "poolType": "all",
                "poolSortField": "default",
                "sortType": "desc",
                "pageSize": PAGE_SIZE,
                "page": 1,
            },
        )
        if not isinstance(data, dict) or data.get("success") is False:
            raise MalformedRecordError(self.source_id, "pool list request was not successful")
        pools = pick(data, "data.data", default=[])
        if not isinstance(pools, list):
            raise MalformedRecordError(self.source_id, "pool list is not a list")
        sol_pools = [p for p in pools if not isinstance(p, dict) or self._is_sol_pool(p)]
        logger.debug(f"[FEED:{self.source_id}] {len(sol_pools)} SOL pools of {len(pools)}")
        return sol_pools

    @staticmethod
    def _is_sol_pool(pool: dict[str, Any]) -> bool:
        return WSOL_MINT in (pick(pool, "mintA.address"), pick(pool, "mintB.address"))

    def normalize(self, record: dict[str, Any]) -> Candidate:
        mint_a = record.get("mintA") or {}
        mint_b = record.get("mintB") or {}
        price = to_float(record.get("price"))

        if pick(mint_b, "address") == WSOL_MINT:
            token, price_sol = mint_a, price
        elif pick(mint_a, "address") == WSOL_MINT:
            token, price_sol = mint_b, (1.0 / price if price > 0 else 0.0)
        else:
            raise MalformedRecordError(self.source_id, "pool is not paired with SOL", record)

        candidate = self._candidate(
            pick(token, "address"),
            symbol=pick(token, "symbol", default="UNKNOWN"),
            name=pick(token, "name", default="Unknown Token"),
            price=price_sol * self.sol_price_usd,
            liquidity=to_float(record.get("tvl")),
            volume_24h=to_float(pick(record, "day.volume")),
            raw_metadata={
                "pool_id": record.get("id"),
                "pool_type": record.get("type"),
                "program_id": record.get("programId"),
                "price_sol": price_sol,
            },
        )
        candidate.created_at = to_datetime(record.get("openTime")) or candidate.discovered_at
        return candidate

    def accept(self, candidate: Candidate) -> bool:
        if candidate.created_at is None or candidate.discovered_at is None:
            return True
        return candidate.discovered_at - candidate.created_at < self.max_age
