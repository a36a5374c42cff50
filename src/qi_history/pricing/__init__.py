"""USD pricing -- reference price feeds and snapshot conversion."""

from qi_history.pricing.converter import convert_snapshots, parse_rate_hex
from qi_history.pricing.feed import (
    CoinGeckoPriceFeed,
    ExchangeTickerPriceFeed,
    ReferencePriceFeed,
    build_price_feed,
)

__all__ = [
    "CoinGeckoPriceFeed",
    "ExchangeTickerPriceFeed",
    "ReferencePriceFeed",
    "build_price_feed",
    "convert_snapshots",
    "parse_rate_hex",
]
