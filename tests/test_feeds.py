"""
Feed adapter tests.

Tests for:
- Normalization helpers
- Poll adapters (DexScreener, Birdeye, Moonshot, Raydium, Jupiter) over httpx.MockTransport
- Failure isolation (5xx, timeouts, bad JSON, schema drift)
- PumpFun push feed message handling and subscription loop
- Feed factory
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from launchscout.core.config import LaunchScoutConfig
from launchscout.core.errors import ConfigError
from launchscout.feeds.base import Candidate, FeedMode, pick, to_datetime, to_float
from launchscout.feeds.birdeye import BirdeyeFeed
from launchscout.feeds.dexscreener import DexScreenerFeed
from launchscout.feeds.factory import build_feeds
from launchscout.feeds.jupiter import JupiterFeed
from launchscout.feeds.moonshot import MoonshotFeed
from launchscout.feeds.pumpfun import PumpFunFeed
from launchscout.feeds.raydium import RaydiumFeed


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def clock() -> datetime:
    return NOW


def epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def source(source_id: str, **overrides):
    return replace(LaunchScoutConfig().source(source_id), **overrides)


# ============================================================================
# Helpers
# ============================================================================


class TestHelpers:
    """Normalization helpers."""

    def test_pick_nested_then_flat(self):
        assert pick({"liquidity": {"usd": 10}}, "liquidity.usd", "liquidity") == 10
        assert pick({"liquidity": 7}, "liquidity.usd", "liquidity") == 7
        assert pick({}, "a.b", default="x") == "x"

    def test_to_float_is_lenient(self):
        assert to_float("1.5") == 1.5
        assert to_float(None) == 0.0
        assert to_float("garbage", default=-1.0) == -1.0

    def test_to_datetime_epoch_seconds_and_ms(self):
        seconds = to_datetime(NOW.timestamp())
        millis = to_datetime(epoch_ms(NOW))
        assert seconds == NOW
        assert millis == NOW

    def test_to_datetime_iso(self):
        assert to_datetime("2025-03-01T12:00:00Z") == NOW
        assert to_datetime("not a date") is None
        assert to_datetime(None) is None

    def test_to_datetime_naive_values_are_utc(self):
        assert to_datetime("2025-03-01T12:00:00") == NOW
        assert to_datetime("2025-03-01T12:00:00").tzinfo is not None
        assert to_datetime(datetime(2025, 3, 1, 12, 0)) == NOW

    def test_to_datetime_out_of_range_epoch_is_none(self):
        assert to_datetime(1e20) is None
        assert to_datetime("1e20") is None
        assert to_datetime(float("inf")) is None
        assert to_datetime("nan") is None
        assert to_datetime(-5) is None

    def test_candidate_age_uses_created_at(self):
        c = Candidate(address="A", created_at=NOW - timedelta(minutes=3), discovered_at=NOW)
        assert c.age_minutes(NOW) == pytest.approx(3.0)

    def test_candidate_copy_is_detached(self):
        c = Candidate(address="A", source="jupiter")
        copy = c.copy()
        copy.sources.add("birdeye")
        assert c.sources == {"jupiter"}


# ============================================================================
# DexScreener
# ============================================================================


def dex_pair(address: str | None, chain: str = "solana", age: timedelta = timedelta(minutes=10)) -> dict:
    return {
        "chainId": chain,
        "pairAddress": f"pair-{address}",
        "baseToken": {"address": address, "symbol": "DOGE2", "name": "Doge Two"},
        "priceUsd": "0.0012",
        "liquidity": {"usd": 25000},
        "volume": {"h24": 80000},
        "priceChange": {"h24": 42.5},
        "fdv": 1200000,
        "pairCreatedAt": epoch_ms(NOW - age),
    }


class TestDexScreenerFeed:
    """DexScreener pair search adapter."""

    def test_normalizes_solana_pairs(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["q"] = request.url.params.get("q")
            return httpx.Response(200, json={"pairs": [
                dex_pair("Mint1"),
                dex_pair("Mint2", chain="ethereum"),
            ]})

        feed = DexScreenerFeed(source("dexscreener"), client=mock_client(handler), clock=clock)
        candidates = asyncio.run(feed.poll())

        assert seen["q"] == "SOL"
        assert len(candidates) == 1
        c = candidates[0]
        assert c.address == "Mint1"
        assert c.symbol == "DOGE2"
        assert c.price == pytest.approx(0.0012)
        assert c.liquidity == 25000
        assert c.volume_24h == 80000
        assert c.price_change_24h == 42.5
        assert c.market_cap == 1200000
        assert c.created_at == NOW - timedelta(minutes=10)
        assert c.discovered_at == NOW
        assert c.source == "dexscreener"
        assert c.source_priority == 6

    def test_drops_record_without_address(self):
        def handler(request):
            return httpx.Response(200, json={"pairs": [dex_pair(None), dex_pair("Mint1")]})

        feed = DexScreenerFeed(source("dexscreener"), client=mock_client(handler), clock=clock)
        candidates = asyncio.run(feed.poll())

        assert [c.address for c in candidates] == ["Mint1"]
        assert feed.get_stats()["records_dropped"] == 1

    def test_filters_pairs_older_than_a_day(self):
        def handler(request):
            return httpx.Response(200, json={"pairs": [dex_pair("Old", age=timedelta(hours=30))]})

        feed = DexScreenerFeed(source("dexscreener"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []

    def test_server_error_yields_empty_batch(self):
        def handler(request):
            return httpx.Response(500, text="upstream down")

        feed = DexScreenerFeed(source("dexscreener"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []
        assert feed.get_stats()["cycles_failed"] == 1

    def test_timeout_yields_empty_batch(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        feed = DexScreenerFeed(source("dexscreener"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []

    def test_invalid_json_yields_empty_batch(self):
        def handler(request):
            return httpx.Response(200, text="<html>not json</html>")

        feed = DexScreenerFeed(source("dexscreener"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []

    def test_schema_drift_yields_empty_batch(self):
        def handler(request):
            return httpx.Response(200, json={"pairs": {"unexpected": "shape"}})

        feed = DexScreenerFeed(source("dexscreener"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []
        assert feed.get_stats()["cycles_failed"] == 1


# ============================================================================
# Birdeye
# ============================================================================


class TestBirdeyeFeed:
    """Birdeye token list adapter."""

    def test_sends_key_and_normalizes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("X-API-KEY")
            seen["chain"] = request.headers.get("x-chain")
            seen["sort_by"] = request.url.params.get("sort_by")
            return httpx.Response(200, json={"data": {"tokens": [{
                "address": "BirdMint",
                "symbol": "BRD",
                "name": "Bird",
                "price": 0.5,
                "liquidity": 12000,
                "v24hUSD": 30000,
                "v24hChangePercent": 12.0,
                "mc": 500000,
                "holder": 321,
                "createTime": int((NOW - timedelta(hours=2)).timestamp()),
            }]}})

        feed = BirdeyeFeed(source("birdeye", api_key="secret"), client=mock_client(handler), clock=clock)
        candidates = asyncio.run(feed.poll())

        assert seen == {"key": "secret", "chain": "solana", "sort_by": "v24hUSD"}
        assert len(candidates) == 1
        c = candidates[0]
        assert c.address == "BirdMint"
        assert c.volume_24h == 30000
        assert c.price_change_24h == 12.0
        assert c.holders == 321
        assert c.created_at == NOW - timedelta(hours=2)

    def test_missing_tokens_yields_empty_batch(self):
        def handler(request):
            return httpx.Response(200, json={"success": False})

        feed = BirdeyeFeed(source("birdeye", api_key="k"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []

    def test_unauthorized_yields_empty_batch(self):
        def handler(request):
            return httpx.Response(401, json={"message": "bad key"})

        feed = BirdeyeFeed(source("birdeye", api_key="k"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []


# ============================================================================
# Moonshot
# ============================================================================


class TestMoonshotFeed:
    """Moonshot new-token adapter."""

    def test_normalizes_mint_address_variants(self):
        def handler(request):
            assert request.url.params.get("limit") == "50"
            return httpx.Response(200, json={"tokens": [
                {"mintAddress": "M1", "symbol": "ONE", "priceUsd": "0.01", "liquidity": 9000},
                {"mint": "M2", "symbol": "TWO"},
                {"symbol": "NOADDR"},
            ]})

        feed = MoonshotFeed(source("moonshot"), client=mock_client(handler), clock=clock)
        candidates = asyncio.run(feed.poll())

        assert [c.address for c in candidates] == ["M1", "M2"]
        assert candidates[0].price == pytest.approx(0.01)
        assert candidates[0].liquidity == 9000
        assert candidates[0].source_priority == 8
        assert candidates[1].created_at == NOW

    def test_offset_less_timestamp_is_utc(self):
        def handler(request):
            return httpx.Response(200, json={"tokens": [
                {"mintAddress": "NAIVE", "createdAt": "2025-03-01T11:58:00"},
            ]})

        feed = MoonshotFeed(source("moonshot"), client=mock_client(handler), clock=clock)
        [c] = asyncio.run(feed.poll())

        assert c.created_at == NOW - timedelta(minutes=2)
        assert c.age_minutes(NOW) == pytest.approx(2.0)

    def test_out_of_range_timestamp_keeps_rest_of_batch(self):
        def handler(request):
            return httpx.Response(200, json={"tokens": [
                {"mintAddress": "FAR", "createdAt": 1e20},
                {"mintAddress": "GOOD", "createdAt": epoch_ms(NOW)},
            ]})

        feed = MoonshotFeed(source("moonshot"), client=mock_client(handler), clock=clock)
        candidates = asyncio.run(feed.poll())

        # An unusable timestamp falls back to the discovery time
        assert [c.address for c in candidates] == ["FAR", "GOOD"]
        assert candidates[0].created_at == NOW
        assert feed.get_stats()["cycles_failed"] == 0

    def test_unexpected_record_error_drops_only_that_record(self):
        class StrictMoonshotFeed(MoonshotFeed):
            def normalize(self, record):
                if record.get("mintAddress") == "BAD":
                    raise OverflowError("timestamp out of range")
                return super().normalize(record)

        def handler(request):
            return httpx.Response(200, json={"tokens": [
                {"mintAddress": "BAD"},
                {"mintAddress": "GOOD"},
            ]})

        feed = StrictMoonshotFeed(source("moonshot"), client=mock_client(handler), clock=clock)
        candidates = asyncio.run(feed.poll())

        assert [c.address for c in candidates] == ["GOOD"]
        stats = feed.get_stats()
        assert stats["records_dropped"] == 1
        assert stats["cycles_failed"] == 0
        assert stats["last_success"] is not None


# ============================================================================
# Jupiter
# ============================================================================


class TestJupiterFeed:
    """Jupiter price adapter."""

    def test_watch_list_prices(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ids"] = request.url.params.get("ids")
            return httpx.Response(200, json={"data": {
                "MintA": {"id": "MintA", "mintSymbol": "AAA", "price": 2.0, "price24hAgo": 1.0},
                "MintB": {"id": "MintB", "mintSymbol": "BBB", "price": 1.0, "volume24h": 50000},
            }})

        feed = JupiterFeed(
            source("jupiter", watch_list=("MintA", "MintB")),
            client=mock_client(handler),
            clock=clock,
        )
        candidates = {c.address: c for c in asyncio.run(feed.poll())}

        assert seen["ids"] == "MintA,MintB"
        assert candidates["MintA"].symbol == "AAA"
        assert candidates["MintA"].price_change_24h == pytest.approx(100.0)
        assert candidates["MintB"].price_change_24h == 0.0
        # Liquidity estimated from volume when not reported
        assert candidates["MintB"].liquidity == pytest.approx(5000.0)

    def test_token_list_supplies_mints_and_metadata(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.host)
            if request.url.host == "token.jup.ag":
                return httpx.Response(200, json=[
                    {"address": "MintA", "symbol": "AAA", "name": "Alpha"},
                ])
            return httpx.Response(200, json={"data": {"MintA": {"price": 3.0}}})

        feed = JupiterFeed(source("jupiter"), client=mock_client(handler), clock=clock)
        first = asyncio.run(feed.poll())
        asyncio.run(feed.poll())

        assert first[0].name == "Alpha"
        assert first[0].symbol == "AAA"
        # Token list is fetched once and cached
        assert calls.count("token.jup.ag") == 1

    def test_unexpected_shape_yields_empty_batch(self):
        def handler(request):
            return httpx.Response(200, json={"data": ["not", "a", "map"]})

        feed = JupiterFeed(source("jupiter", watch_list=("MintA",)), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []


# ============================================================================
# Raydium
# ============================================================================


WSOL = "So11111111111111111111111111111111111111112"


def raydium_pool(mint: str, sol_side: str = "B", price: float = 0.00002, age: timedelta = timedelta(minutes=5)) -> dict:
    token = {"address": mint, "symbol": mint.upper(), "name": f"{mint} token"}
    sol = {"address": WSOL, "symbol": "WSOL", "name": "Wrapped SOL"}
    pool = {
        "type": "Standard",
        "id": f"pool-{mint}",
        "price": price,
        "tvl": 42000.5,
        "day": {"volume": 91000.0},
        "openTime": str(int((NOW - age).timestamp())),
    }
    if sol_side == "B":
        pool.update(mintA=token, mintB=sol)
    else:
        pool.update(mintA=sol, mintB=token)
    return pool


class TestRaydiumFeed:
    """Raydium v3 pool list adapter."""

    def test_normalizes_sol_pools(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["host"] = request.url.host
            seen["sort"] = request.url.params.get("sortType")
            return httpx.Response(200, json={"success": True, "data": {"count": 2, "data": [
                raydium_pool("RayMint"),
                {
                    "id": "pool-usdc",
                    "mintA": {"address": "Other"},
                    "mintB": {"address": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"},
                },
            ]}})

        feed = RaydiumFeed(source("raydium"), client=mock_client(handler), clock=clock, sol_price_usd=100.0)
        candidates = asyncio.run(feed.poll())

        assert seen == {"host": "api-v3.raydium.io", "sort": "desc"}
        assert len(candidates) == 1
        c = candidates[0]
        assert c.address == "RayMint"
        assert c.symbol == "RAYMINT"
        assert c.price == pytest.approx(0.002)
        assert c.liquidity == pytest.approx(42000.5)
        assert c.volume_24h == pytest.approx(91000.0)
        assert c.created_at == NOW - timedelta(minutes=5)
        assert c.raw_metadata["pool_id"] == "pool-RayMint"
        assert c.source_priority == 8
        assert feed.trusted

    def test_sol_as_base_mint_inverts_price(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"data": [
                raydium_pool("Flipped", sol_side="A", price=50_000.0),
            ]}})

        feed = RaydiumFeed(source("raydium"), client=mock_client(handler), clock=clock, sol_price_usd=100.0)
        [c] = asyncio.run(feed.poll())

        assert c.address == "Flipped"
        assert c.price == pytest.approx(100.0 / 50_000.0)

    def test_filters_pools_older_than_a_day(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"data": [
                raydium_pool("Fresh"),
                raydium_pool("Stale", age=timedelta(days=3)),
            ]}})

        feed = RaydiumFeed(source("raydium"), client=mock_client(handler), clock=clock)
        assert [c.address for c in asyncio.run(feed.poll())] == ["Fresh"]

    def test_unsuccessful_response_yields_empty_batch(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "msg": "busy"})

        feed = RaydiumFeed(source("raydium"), client=mock_client(handler), clock=clock)
        assert asyncio.run(feed.poll()) == []
        assert feed.get_stats()["cycles_failed"] == 1


# ============================================================================
# PumpFun
# ============================================================================


def create_message(**overrides) -> dict:
    message = {
        "txType": "create",
        "mint": "PumpMint",
        "symbol": "PUMP",
        "name": "Pump Token",
        "vSolInBondingCurve": 30.0,
        "marketCapSol": 28.0,
        "traderPublicKey": "Creator",
        "uri": "https://ipfs.example/meta.json",
        "signature": "sig",
    }
    message.update(overrides)
    return message


class FakeWebSocket:
    def __init__(self, messages: list[str]):
        self.messages = messages
        self.sent: list[str] = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message


class TestPumpFunFeed:
    """PumpPortal websocket adapter."""

    def test_mode_is_push(self):
        assert PumpFunFeed(source("pumpfun")).mode == FeedMode.PUSH

    def test_converts_sol_values_to_usd(self):
        feed = PumpFunFeed(source("pumpfun"), sol_price_usd=100.0, clock=clock)
        c = feed.parse_message(create_message())

        assert c is not None
        assert c.address == "PumpMint"
        assert c.liquidity == pytest.approx(3000.0)
        assert c.market_cap == pytest.approx(2800.0)
        assert c.price == pytest.approx(2800.0 / 1_000_000_000)
        assert c.raw_metadata["creator"] == "Creator"
        assert c.source_priority == 9
        assert c.created_at == NOW

    def test_ignores_non_create_and_dust_curves(self):
        feed = PumpFunFeed(source("pumpfun"), clock=clock)
        assert feed.parse_message(create_message(txType="buy")) is None
        assert feed.parse_message(create_message(vSolInBondingCurve=0.05)) is None
        assert feed.parse_message({"message": "Successfully subscribed"}) is None

    def test_drops_message_without_mint(self):
        feed = PumpFunFeed(source("pumpfun"), clock=clock)
        assert feed.parse_message(create_message(mint=None)) is None
        assert feed.get_stats()["records_dropped"] == 1

    def test_invalid_json_frame_is_dropped(self):
        feed = PumpFunFeed(source("pumpfun"), clock=clock)
        delivered = []

        async def on_candidate(c):
            delivered.append(c)

        asyncio.run(feed.handle_message("{not json", on_candidate))
        assert delivered == []
        assert feed.get_stats()["records_dropped"] == 1

    def test_out_of_range_timestamp_does_not_break_stream(self):
        feed = PumpFunFeed(source("pumpfun"), clock=clock)
        delivered = []

        async def on_candidate(c):
            delivered.append(c)

        asyncio.run(feed.handle_message(json.dumps(create_message(timestamp=1e20)), on_candidate))

        assert [c.address for c in delivered] == ["PumpMint"]
        assert delivered[0].created_at == NOW

    def test_unexpected_message_error_is_dropped(self):
        class StrictPumpFunFeed(PumpFunFeed):
            def normalize(self, record):
                raise OSError("value too large")

        feed = StrictPumpFunFeed(source("pumpfun"), clock=clock)
        delivered = []

        async def on_candidate(c):
            delivered.append(c)

        asyncio.run(feed.handle_message(json.dumps(create_message()), on_candidate))

        assert delivered == []
        assert feed.get_stats()["records_dropped"] == 1

    def test_run_subscribes_and_delivers_until_stopped(self):
        ws = FakeWebSocket([
            json.dumps({"message": "Successfully subscribed"}),
            json.dumps(create_message()),
            json.dumps(create_message(mint="Second")),
        ])
        feed = PumpFunFeed(source("pumpfun"), clock=clock, connect=lambda url, **kw: ws)
        delivered = []

        async def on_candidate(c):
            delivered.append(c.address)
            await feed.stop()

        asyncio.run(feed.run(on_candidate))

        assert json.loads(ws.sent[0]) == {"method": "subscribeNewToken"}
        assert delivered == ["PumpMint"]
        assert ws.closed is True
        assert feed.is_running is False

    def test_run_gives_up_after_max_reconnect_attempts(self):
        attempts = []

        def connect(url, **kwargs):
            attempts.append(url)
            raise OSError("connection refused")

        feed = PumpFunFeed(source("pumpfun"), clock=clock, connect=connect, max_reconnect_attempts=0)

        async def on_candidate(c):
            pass

        asyncio.run(feed.run(on_candidate))
        assert len(attempts) == 1
        assert feed.is_running is False


# ============================================================================
# Factory
# ============================================================================


class TestFactory:
    """Building feeds from configuration."""

    def test_keyless_birdeye_is_skipped(self):
        feeds = build_feeds(LaunchScoutConfig(), clock=clock)
        ids = [f.source_id for f in feeds]

        assert "birdeye" not in ids
        assert ids == ["pumpfun", "moonshot", "raydium", "jupiter", "dexscreener"]
        assert isinstance(feeds[0], PumpFunFeed)

    def test_keyed_birdeye_is_built(self):
        config = LaunchScoutConfig()
        sources = tuple(
            replace(s, api_key="k") if s.source_id == "birdeye" else s for s in config.sources
        )
        feeds = build_feeds(replace(config, sources=sources), clock=clock)
        assert any(isinstance(f, BirdeyeFeed) for f in feeds)

    def test_required_source_without_key_is_fatal(self):
        config = LaunchScoutConfig()
        sources = tuple(
            replace(s, required=True) if s.source_id == "birdeye" else s for s in config.sources
        )
        with pytest.raises(ConfigError):
            build_feeds(replace(config, sources=sources))

    def test_disabled_source_is_skipped(self):
        config = LaunchScoutConfig()
        sources = tuple(
            replace(s, enabled=False) if s.source_id == "pumpfun" else s for s in config.sources
        )
        ids = [f.source_id for f in build_feeds(replace(config, sources=sources))]
        assert "pumpfun" not in ids

    def test_raydium_gets_configured_sol_price(self):
        config = LaunchScoutConfig()
        config = replace(config, runtime=replace(config.runtime, sol_price_usd=210.0))
        raydium = next(f for f in build_feeds(config, clock=clock) if f.source_id == "raydium")
        assert isinstance(raydium, RaydiumFeed)
        assert raydium.sol_price_usd == 210.0
