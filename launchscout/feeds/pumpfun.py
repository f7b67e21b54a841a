"""
PumpFun feed - Real-time token launches over a websocket subscription.

Protocol:
    -> {"method": "subscribeNewToken"}
    <- {"txType": "create", "mint", "symbol", "name", "vSolInBondingCurve",
        "marketCapSol", "traderPublicKey", "uri", ...}

Values arrive in SOL and are converted to USD with a configured SOL price.
The subscription reconnects with exponential backoff while running.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from launchscout.core.clock import Clock
from launchscout.core.config import SourceConfig
from launchscout.feeds.base import Candidate, PushFeed, to_datetime, to_float

logger = logging.getLogger(__name__)

SUBSCRIBE_NEW_TOKEN = {"method": "subscribeNewToken"}

# Bonding curves start with a 1B token supply.
TOTAL_SUPPLY = 1_000_000_000

# Curves with less than this many SOL are not worth tracking.
MIN_CURVE_SOL = 0.1


class PumpFunFeed(PushFeed):
    """Push feed over the PumpPortal websocket."""

    def __init__(
        self,
        config: SourceConfig,
        sol_price_usd: float = 150.0,
        clock: Clock | None = None,
        connect: Optional[Callable[..., Any]] = None,
        max_reconnect_attempts: int = 10,
    ):
        super().__init__(config, clock=clock)
        self.sol_price_usd = sol_price_usd
        self._connect = connect or websockets.connect
        self._ws = None

        self._reconnect_delay = 2.0
        self._max_reconnect_delay = 30.0
        self._max_reconnect_attempts = max_reconnect_attempts
        self._failed_attempts = 0

    def is_candidate_message(self, message: dict[str, Any]) -> bool:
        if message.get("txType") != "create":
            return False
        return to_float(message.get("vSolInBondingCurve")) >= MIN_CURVE_SOL

    def normalize(self, record: dict[str, Any]) -> Candidate:
        sol = self.sol_price_usd
        curve_sol = to_float(record.get("vSolInBondingCurve"))
        market_cap_sol = to_float(record.get("marketCapSol"))

        candidate = self._candidate(
            record.get("mint"),
            symbol=record.get("symbol") or "UNKNOWN",
            name=record.get("name") or record.get("symbol") or "Unknown Token",
            price=market_cap_sol * sol / TOTAL_SUPPLY,
            liquidity=curve_sol * sol,
            market_cap=market_cap_sol * sol,
            raw_metadata={
                "creator": record.get("traderPublicKey"),
                "uri": record.get("uri"),
                "signature": record.get("signature"),
                "liquidity_sol": curve_sol,
                "market_cap_sol": market_cap_sol,
            },
        )
        candidate.created_at = to_datetime(record.get("timestamp")) or candidate.discovered_at
        return candidate

    async def handle_message(
        self,
        message: str | bytes,
        on_candidate: Callable[[Candidate], Awaitable[None]],
    ) -> None:
        """Decode one websocket frame and deliver it if it announces a token."""
        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._records_dropped += 1
            logger.warning(f"[FEED:{self.source_id}] Invalid JSON: {e}")
            return

        candidate = self.parse_message(data)
        if candidate is None:
            return

        logger.info(f"[FEED:{self.source_id}] New token: {candidate.symbol} {candidate.address}")
        await on_candidate(candidate)

    async def run(self, on_candidate: Callable[[Candidate], Awaitable[None]]) -> None:
        """Main streaming loop with reconnection."""
        self._running = True
        self._failed_attempts = 0

        while self._running:
            try:
                logger.info(f"[FEED:{self.source_id}] Connecting to {self.config.url}...")

                async with self._connect(
                    self.config.url,
                    ping_interval=30,
                    ping_timeout=10,
                ) as ws:
                    self._ws = ws
                    self._reconnect_delay = 2.0  # Reset delay on successful connect
                    self._failed_attempts = 0

                    await ws.send(json.dumps(SUBSCRIBE_NEW_TOKEN))

                    async for message in ws:
                        if not self._running:
                            break
                        await self.handle_message(message, on_candidate)

            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(f"[FEED:{self.source_id}] Connection closed: {e}")
            except Exception as e:
                logger.error(f"[FEED:{self.source_id}] Stream error: {e}")
            finally:
                self._ws = None

            if not self._running:
                break

            self._failed_attempts += 1
            if self._failed_attempts > self._max_reconnect_attempts:
                logger.error(
                    f"[FEED:{self.source_id}] Giving up after "
                    f"{self._max_reconnect_attempts} reconnect attempts"
                )
                self._running = False
                break

            logger.info(f"[FEED:{self.source_id}] Reconnecting in {self._reconnect_delay}s...")
            await asyncio.sleep(self._reconnect_delay)
            self._reconnect_delay = min(
                self._reconnect_delay * 2,
                self._max_reconnect_delay
            )

        logger.info(f"[FEED:{self.source_id}] Subscription ended")

    async def stop(self) -> None:
        """Stop the subscription and close the socket."""
        self._running = False
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
