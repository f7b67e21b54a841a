"""
Price Oracle - Current token prices from Jupiter, with DexScreener fallback.

Jupiter:     GET {jupiter_url}?ids=<address>   -> data[address].price
DexScreener: GET {dexscreener_url}/<address>   -> pairs[0].priceUsd
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from launchscout.execution.base import PriceOracle

logger = logging.getLogger(__name__)

JUPITER_PRICE_URL = "https://price.jup.ag/v4/price"
DEXSCREENER_TOKENS_URL = "https://api.dexscreener.com/latest/dex/tokens"


def _positive(value: Any) -> Optional[float]:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if price > 0 else None


class JupiterPriceOracle(PriceOracle):
    """
    Price oracle backed by public HTTP price APIs.

    Never raises: any failure on both endpoints yields None, which the
    PositionManager treats as "skip this position this tick".
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        jupiter_url: str = JUPITER_PRICE_URL,
        dexscreener_url: str = DEXSCREENER_TOKENS_URL,
    ):
        self.timeout = timeout
        self.jupiter_url = jupiter_url
        self.dexscreener_url = dexscreener_url
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client if the oracle created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get_current_price(self, address: str) -> Optional[float]:
        price = await self._jupiter_price(address)
        if price is not None:
            return price

        price = await self._dexscreener_price(address)
        if price is None:
            logger.debug(f"[PRICE] No price for {address}")
        return price

    async def _jupiter_price(self, address: str) -> Optional[float]:
        client = await self._get_client()
        try:
            resp = await client.get(self.jupiter_url, params={"ids": address})
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.debug(f"[PRICE] Jupiter HTTP {e.response.status_code} for {address}")
            return None
        except httpx.RequestError as e:
            logger.debug(f"[PRICE] Jupiter request error for {address}: {e}")
            return None
        except ValueError:
            logger.debug(f"[PRICE] Jupiter returned invalid JSON for {address}")
            return None

        entry = (data.get("data") or {}).get(address) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            return None
        return _positive(entry.get("price"))

    async def _dexscreener_price(self, address: str) -> Optional[float]:
        client = await self._get_client()
        try:
            resp = await client.get(f"{self.dexscreener_url}/{address}")
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.debug(f"[PRICE] DexScreener HTTP {e.response.status_code} for {address}")
            return None
        except httpx.RequestError as e:
            logger.debug(f"[PRICE] DexScreener request error for {address}: {e}")
            return None
        except ValueError:
            logger.debug(f"[PRICE] DexScreener returned invalid JSON for {address}")
            return None

        pairs = data.get("pairs") if isinstance(data, dict) else None
        if not pairs or not isinstance(pairs[0], dict):
            return None
        return _positive(pairs[0].get("priceUsd"))
