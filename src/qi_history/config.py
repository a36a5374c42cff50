"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class RpcSettings(BaseSettings):
    """Quai JSON-RPC node connection settings."""

    model_config = SettingsConfigDict(env_prefix="RPC_")

    url: str = "https://rpc.quai.network/cyprus1"
    timeout_seconds: float = 10.0
    max_connections: int = 64
    # 1 QI expressed in qits (3 decimals); the node answers in wei-style QUAI units
    rate_amount_hex: str = "0x3E8"


class PriceFeedSettings(BaseSettings):
    """USD reference price feed for QUAI.

    ``source`` selects between the CoinGecko simple-price endpoint and a
    ccxt exchange ticker. ``fallback_usd_price`` is only used when the feed
    has never produced a good price in this process. Passing None makes a
    cold-start outage return no data instead of a stale quote.
    """

    model_config = SettingsConfigDict(env_prefix="PRICE_FEED_")

    source: Literal["coingecko", "exchange"] = "coingecko"
    coingecko_url: str = "https://api.coingecko.com/api/v3/simple/price"
    coin_id: str = "quai-network"
    exchange_id: str = "mexc"
    exchange_symbol: str = "QUAI/USDT"
    timeout_seconds: float = 10.0
    fallback_usd_price: float | None = 0.068177


class HistorySettings(BaseSettings):
    """History reconstruction pipeline tuning.

    Per-range constants (windows, buckets, thresholds) live in
    ``qi_history.ranges``; these are the knobs shared by every range.
    """

    model_config = SettingsConfigDict(env_prefix="HISTORY_")

    min_sample_count: int = 2
    max_sample_count: int = 500
    oversample_margin: int = 5  # extra heights planned beyond the target count
    bucket_method: Literal["median", "mean"] = "median"
    densify_overshoot: float = 0.35  # clamp widening as a fraction of the local spread


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 4000
    enabled: bool = True


class CacheSettings(BaseSettings):
    """Persistent history cache (row store keyed by range and timestamp)."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    db_path: str = "data/qi_history.db"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    rpc: RpcSettings = RpcSettings()
    price_feed: PriceFeedSettings = PriceFeedSettings()
    history: HistorySettings = HistorySettings()
    api: ApiSettings = ApiSettings()
    cache: CacheSettings = CacheSettings()
