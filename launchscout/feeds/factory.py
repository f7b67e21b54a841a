"""Feed factory - Build the enabled adapters from configuration."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from launchscout.core.clock import Clock
from launchscout.core.config import LaunchScoutConfig, SourceConfig
from launchscout.core.errors import ConfigError
from launchscout.feeds.base import Feed
from launchscout.feeds.birdeye import BirdeyeFeed
from launchscout.feeds.dexscreener import DexScreenerFeed
from launchscout.feeds.jupiter import JupiterFeed
from launchscout.feeds.moonshot import MoonshotFeed
from launchscout.feeds.pumpfun import PumpFunFeed
from launchscout.feeds.raydium import RaydiumFeed

logger = logging.getLogger(__name__)

POLL_FEEDS = {
    "dexscreener": DexScreenerFeed,
    "birdeye": BirdeyeFeed,
    "moonshot": MoonshotFeed,
    "jupiter": JupiterFeed,
    "raydium": RaydiumFeed,
}


def build_feed(
    source: SourceConfig,
    config: LaunchScoutConfig,
    client: Optional[httpx.AsyncClient] = None,
    clock: Optional[Clock] = None,
) -> Feed:
    """Build one adapter for a source config."""
    if source.source_id == "pumpfun":
        return PumpFunFeed(source, sol_price_usd=config.runtime.sol_price_usd, clock=clock)

    feed_cls = POLL_FEEDS.get(source.source_id)
    if feed_cls is None:
        raise ConfigError(f"No adapter for source: {source.source_id}")
    extra = {}
    if feed_cls is RaydiumFeed:
        extra["sol_price_usd"] = config.runtime.sol_price_usd
    return feed_cls(
        source,
        client=client,
        timeout=config.runtime.http_timeout_seconds,
        clock=clock,
        **extra,
    )


def build_feeds(
    config: LaunchScoutConfig,
    client: Optional[httpx.AsyncClient] = None,
    clock: Optional[Clock] = None,
) -> list[Feed]:
    """
    Build every enabled feed.

    Keyed sources without a key are skipped with a warning, unless the
    source is required.

    Raises:
        ConfigError: a required source is missing credentials or has no adapter
    """
    feeds: list[Feed] = []
    for source in config.sources:
        if not source.enabled:
            logger.info(f"[FEEDS] {source.source_id} disabled")
            continue
        if source.requires_api_key and not source.api_key:
            if source.required:
                raise ConfigError(
                    f"Source {source.source_id} is required but has no API key"
                )
            logger.warning(f"[FEEDS] {source.source_id} API key not configured, skipping")
            continue
        feeds.append(build_feed(source, config, client=client, clock=clock))

    logger.info(f"[FEEDS] Built {len(feeds)} feeds: {', '.join(f.source_id for f in feeds)}")
    return feeds
