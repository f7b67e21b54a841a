"""
Centralized configuration for LaunchScout.

Loads from environment variables (and a local .env file) with sensible defaults.
The resulting object is immutable and passed once to every component.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from launchscout.core.errors import ConfigError
from launchscout.workspace.gate import GateConfig
from launchscout.workspace.scoring import ScoringConfig


@dataclass(frozen=True)
class SourceConfig:
    """Per-feed settings: cadence, trust, credentials and request budget."""
    source_id: str
    enabled: bool = True
    interval_seconds: float = 15.0
    priority: int = 5
    trusted: bool = False
    required: bool = False
    api_key: str = ""
    requires_api_key: bool = False
    url: str = ""
    watch_list: tuple[str, ...] = ()  # explicit addresses to track, if the source needs them

    # Fixed-window rate limit (0 = unlimited)
    rate_limit_max: int = 0
    rate_limit_window_ms: int = 60_000


DEFAULT_SOURCES: tuple[SourceConfig, ...] = (
    SourceConfig(
        source_id="pumpfun",
        interval_seconds=0.0,
        priority=9,
        trusted=True,
        url="wss://pumpportal.fun/api/data",
    ),
    SourceConfig(
        source_id="moonshot",
        interval_seconds=30.0,
        priority=8,
        trusted=True,
        url="https://api.moonshot.cc/tokens/v1/new",
        rate_limit_max=60,
    ),
    SourceConfig(
        source_id="raydium",
        interval_seconds=20.0,
        priority=8,
        trusted=True,
        url="https://api-v3.raydium.io/pools/info/list",
        rate_limit_max=60,
    ),
    SourceConfig(
        source_id="jupiter",
        interval_seconds=20.0,
        priority=7,
        trusted=True,
        url="https://price.jup.ag/v4/price",
        rate_limit_max=300,
    ),
    SourceConfig(
        source_id="dexscreener",
        interval_seconds=15.0,
        priority=6,
        url="https://api.dexscreener.com/latest/dex/search",
        rate_limit_max=120,
    ),
    SourceConfig(
        source_id="birdeye",
        interval_seconds=20.0,
        priority=5,
        requires_api_key=True,
        url="https://public-api.birdeye.so/defi/tokenlist",
        rate_limit_max=100,
    ),
)


@dataclass(frozen=True)
class StoreConfig:
    """Candidate store sizing and cross-source confirmation."""
    capacity: int = 1000
    confirmation_window_seconds: float = 300.0


@dataclass(frozen=True)
class TradingConfig:
    """Position sizing and hard risk limits."""
    paper_trading: bool = True
    paper_balance: float = 10.0
    max_position_size: float = 0.1
    max_daily_loss: float = 0.05  # fraction of starting capital
    min_liquidity: float = 5000.0
    max_positions: int = 10
    check_interval_seconds: float = 15.0
    candidates_per_tick: int = 10


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime environment settings."""
    env: str = "development"
    log_level: str = "INFO"
    event_log_dir: Path = field(default_factory=lambda: Path("./logs/events"))
    db_path: Path = field(default_factory=lambda: Path("./data/launchscout.db"))
    http_timeout_seconds: float = 10.0
    sol_price_usd: float = 150.0  # converts SOL-denominated feed values


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _source_from_env(base: SourceConfig) -> SourceConfig:
    """Overlay LAUNCHSCOUT_<SOURCE>_* variables onto a default source config."""
    prefix = f"LAUNCHSCOUT_{base.source_id.upper()}_"
    api_key = os.getenv(f"{base.source_id.upper()}_API_KEY", base.api_key)
    enabled_default = base.enabled
    # Keyed sources are enabled implicitly when a key is present.
    if base.requires_api_key:
        enabled_default = bool(api_key)
    return replace(
        base,
        enabled=_env_bool(prefix + "ENABLED", enabled_default),
        interval_seconds=float(os.getenv(prefix + "INTERVAL", str(base.interval_seconds))),
        priority=int(os.getenv(prefix + "PRIORITY", str(base.priority))),
        trusted=_env_bool(prefix + "TRUSTED", base.trusted),
        required=_env_bool(prefix + "REQUIRED", base.required),
        api_key=api_key,
        url=os.getenv(prefix + "URL", base.url),
        watch_list=_env_list(prefix + "WATCH", base.watch_list),
        rate_limit_max=int(os.getenv(prefix + "RATE_LIMIT", str(base.rate_limit_max))),
    )


@dataclass(frozen=True)
class LaunchScoutConfig:
    """Top-level configuration container."""
    sources: tuple[SourceConfig, ...] = DEFAULT_SOURCES
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "LaunchScoutConfig":
        """Load configuration from environment variables."""
        load_dotenv(dotenv_path)

        sources = tuple(_source_from_env(s) for s in DEFAULT_SOURCES)
        trusted = frozenset(s.source_id for s in sources if s.trusted)

        trading = TradingConfig(
            paper_trading=_env_bool("PAPER_TRADING", True),
            paper_balance=float(os.getenv("PAPER_BALANCE", "10.0")),
            max_position_size=float(os.getenv("MAX_POSITION_SIZE", "0.1")),
            max_daily_loss=float(os.getenv("MAX_DAILY_LOSS", "0.05")),
            min_liquidity=float(os.getenv("MIN_LIQUIDITY", "5000")),
            max_positions=int(os.getenv("LAUNCHSCOUT_MAX_POSITIONS", "10")),
            check_interval_seconds=float(os.getenv("LAUNCHSCOUT_CHECK_INTERVAL", "15")),
        )

        config = cls(
            sources=sources,
            scoring=ScoringConfig(trusted_sources=trusted),
            gate=GateConfig(
                trusted_sources=trusted,
                trusted_threshold=float(os.getenv("LAUNCHSCOUT_TRUSTED_THRESHOLD", "20")),
                default_threshold=float(os.getenv("LAUNCHSCOUT_SCORE_THRESHOLD", "30")),
                risk_ceiling=float(os.getenv("LAUNCHSCOUT_RISK_CEILING", "85")),
                min_liquidity=trading.min_liquidity,
            ),
            store=StoreConfig(
                capacity=int(os.getenv("LAUNCHSCOUT_STORE_CAPACITY", "1000")),
                confirmation_window_seconds=float(
                    os.getenv("LAUNCHSCOUT_CONFIRMATION_WINDOW", "300")
                ),
            ),
            trading=trading,
            runtime=RuntimeConfig(
                env=os.getenv("LAUNCHSCOUT_ENV", "development"),
                log_level=os.getenv("LAUNCHSCOUT_LOG_LEVEL", "INFO"),
                event_log_dir=Path(os.getenv("LAUNCHSCOUT_EVENT_LOG_DIR", "./logs/events")),
                db_path=Path(os.getenv("LAUNCHSCOUT_DB_PATH", "./data/launchscout.db")),
                http_timeout_seconds=float(os.getenv("LAUNCHSCOUT_HTTP_TIMEOUT", "10")),
                sol_price_usd=float(os.getenv("LAUNCHSCOUT_SOL_PRICE_USD", "150")),
            ),
        )
        config.validate()
        return config

    def source(self, source_id: str) -> Optional[SourceConfig]:
        """Look up a source config by id."""
        for s in self.sources:
            if s.source_id == source_id:
                return s
        return None

    def validate(self) -> None:
        """
        Check startup invariants.

        Raises:
            ConfigError: on any invalid or incomplete setting
        """
        seen: set[str] = set()
        for s in self.sources:
            if s.source_id in seen:
                raise ConfigError(f"Duplicate source id: {s.source_id}")
            seen.add(s.source_id)
            if s.required and s.requires_api_key and not s.api_key:
                raise ConfigError(
                    f"Source {s.source_id} is required but {s.source_id.upper()}_API_KEY is not set"
                )
            if s.required and not s.enabled:
                raise ConfigError(f"Source {s.source_id} is required but disabled")
            if s.enabled and s.interval_seconds < 0:
                raise ConfigError(f"Source {s.source_id} has a negative interval")

        t = self.trading
        if t.max_position_size <= 0:
            raise ConfigError("MAX_POSITION_SIZE must be positive")
        if not 0 < t.max_daily_loss <= 1:
            raise ConfigError("MAX_DAILY_LOSS must be a fraction in (0, 1]")
        if t.max_positions < 1:
            raise ConfigError("max_positions must be at least 1")
        if t.paper_trading and t.paper_balance <= 0:
            raise ConfigError("PAPER_BALANCE must be positive in paper mode")
        if self.store.capacity < 2:
            raise ConfigError("Store capacity must be at least 2")


# Global config instance (lazy-loaded)
_config: Optional[LaunchScoutConfig] = None


def get_config() -> LaunchScoutConfig:
    """Get or create the global configuration."""
    global _config
    if _config is None:
        _config = LaunchScoutConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    global _config
    _config = None
