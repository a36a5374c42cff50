"""USD reference price feeds for QUAI.

The chain only knows QI->QUAI; turning that into USD needs one external
QUAI/USD quote per history request. Two sources are provided: CoinGecko's
simple-price endpoint (httpx) and an exchange ticker via ccxt.

Each feed instance remembers its last good quote and serves it when the
source fails, so one flaky quote does not blank a chart.
"""

import math
from abc import ABC, abstractmethod

import ccxt.async_support as ccxt_async
import httpx

from qi_history.config import PriceFeedSettings
from qi_history.exceptions import UpstreamUnavailable
from qi_history.logging import get_logger

logger = get_logger(__name__)


class ReferencePriceFeed(ABC):
    """Abstract base class for USD reference price sources.

    Subclasses implement ``_fetch_price``; callers use ``fetch_usd_price``,
    which validates the quote and applies the fallback chain:
    last good quote, then ``fallback_usd_price``, then UpstreamUnavailable.
    """

    def __init__(self, fallback_usd_price: float | None = None) -> None:
        self._fallback = fallback_usd_price
        self._last_price: float | None = None

    @property
    def last_price(self) -> float | None:
        return self._last_price

    async def fetch_usd_price(self) -> float:
        """Return the current QUAI/USD price, or the best fallback."""
        try:
            price = float(await self._fetch_price())
            if not math.isfinite(price) or price <= 0:
                raise UpstreamUnavailable(f"Invalid reference price {price!r}")
        except UpstreamUnavailable as e:
            fallback = self._last_price if self._last_price is not None else self._fallback
            if fallback is None:
                logger.error("reference_price_unavailable", error=str(e))
                raise
            logger.warning(
                "reference_price_fallback",
                error=str(e),
                fallback=fallback,
                from_last_good=self._last_price is not None,
            )
            return fallback

        self._last_price = price
        return price

    @abstractmethod
    async def _fetch_price(self) -> float:
        """Fetch a fresh quote. Raise UpstreamUnavailable on failure."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...


class CoinGeckoPriceFeed(ReferencePriceFeed):
    """QUAI/USD from CoinGecko ``/simple/price``."""

    def __init__(
        self,
        settings: PriceFeedSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(settings.fallback_usd_price)
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_seconds)
        )

    async def _fetch_price(self) -> float:
        params = {"ids": self._settings.coin_id, "vs_currencies": "usd"}
        try:
            response = await self._client.get(self._settings.coingecko_url, params=params)
            response.raise_for_status()
            data = response.json()
            return float(data[self._settings.coin_id]["usd"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise UpstreamUnavailable(f"CoinGecko price fetch failed: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


class ExchangeTickerPriceFeed(ReferencePriceFeed):
    """QUAI/USD(T) last trade price from an exchange ticker via ccxt async."""

    def __init__(
        self,
        settings: PriceFeedSettings,
        exchange: ccxt_async.Exchange | None = None,
    ) -> None:
        super().__init__(settings.fallback_usd_price)
        self._settings = settings
        if exchange is None:
            exchange_cls = getattr(ccxt_async, settings.exchange_id)
            exchange = exchange_cls(
                {
                    "enableRateLimit": True,
                    "timeout": int(settings.timeout_seconds * 1000),
                }
            )
        self._exchange = exchange

    async def _fetch_price(self) -> float:
        try:
            ticker = await self._exchange.fetch_ticker(self._settings.exchange_symbol)
        except ccxt_async.BaseError as e:
            raise UpstreamUnavailable(
                f"{self._settings.exchange_id} ticker fetch failed: {e}"
            ) from e

        last = ticker.get("last") or ticker.get("close")
        if last is None:
            raise UpstreamUnavailable(
                f"{self._settings.exchange_id} ticker for "
                f"{self._settings.exchange_symbol} has no last price"
            )
        return float(last)

    async def close(self) -> None:
        """Clean up ccxt async resources. Must be called to avoid leaked sessions."""
        await self._exchange.close()


def build_price_feed(settings: PriceFeedSettings) -> ReferencePriceFeed:
    """Create the feed selected by ``settings.source``."""
    if settings.source == "exchange":
        logger.info(
            "price_feed_selected",
            source="exchange",
            exchange=settings.exchange_id,
            symbol=settings.exchange_symbol,
        )
        return ExchangeTickerPriceFeed(settings)

    logger.info("price_feed_selected", source="coingecko", coin_id=settings.coin_id)
    return CoinGeckoPriceFeed(settings)
