"""Shared test fixtures for the QI price history service.

Provides an in-memory chain (blocks + per-height rates) behind the
ChainClient interface and a fixed-quote price feed, so pipeline stages can
be exercised without any network.
"""

import asyncio
from collections.abc import Callable
from decimal import Decimal

import pytest

from qi_history.chain.client import ChainClient
from qi_history.config import HistorySettings
from qi_history.exceptions import UpstreamUnavailable
from qi_history.models import BlockInfo, PricePoint
from qi_history.pricing.feed import ReferencePriceFeed

ONE_RATE_HEX = "0x0de0b6b3a7640000"  # 1.0 with 18 decimals


def rate_to_hex(rate: float) -> str:
    """Encode a decimal rate as an 18-decimal fixed-point hex string."""
    return hex(int(Decimal(str(rate)) * Decimal(10) ** 18))


class FakeChainClient(ChainClient):
    """In-memory chain. Heights are list indices; tags map to the ends."""

    def __init__(
        self,
        blocks: list[BlockInfo],
        rates: dict[int, str] | None = None,
        default_rate: str = ONE_RATE_HEX,
    ) -> None:
        self.blocks = {b.height: b for b in blocks}
        self.latest = max(blocks, key=lambda b: b.height) if blocks else None
        self.rates = rates or {}
        self.default_rate = default_rate
        self.fail_latest = False
        self.fail_block_heights: set[int] = set()
        self.fail_rate_heights: set[int] = set()
        self.block_calls: list[str] = []
        self.rate_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def fetch_block(self, ref: str) -> BlockInfo | None:
        self.block_calls.append(ref)
        if ref == "latest":
            if self.fail_latest:
                raise UpstreamUnavailable("latest unavailable")
            return self.latest
        if ref == "earliest":
            return self.blocks.get(0)
        height = int(ref, 16)
        if height in self.fail_block_heights:
            raise UpstreamUnavailable(f"block {height} unavailable")
        return self.blocks.get(height)

    async def fetch_exchange_rate(self, amount_hex: str, block_ref: str) -> str:
        self.rate_calls.append(block_ref)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            height = int(block_ref, 16)
            if height in self.fail_rate_heights:
                raise UpstreamUnavailable(f"rate at {height} unavailable")
            return self.rates.get(height, self.default_rate)
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


class FixedPriceFeed(ReferencePriceFeed):
    """Price feed returning a fixed quote; ``price=None`` simulates an outage."""

    def __init__(self, price: float | None, fallback: float | None = None) -> None:
        super().__init__(fallback)
        self.price = price
        self.calls = 0

    async def _fetch_price(self) -> float:
        self.calls += 1
        if self.price is None:
            raise UpstreamUnavailable("feed down")
        return self.price

    async def close(self) -> None:
        pass


@pytest.fixture
def make_chain() -> Callable[..., FakeChainClient]:
    """Factory for evenly spaced chains: ``make_chain(count, spacing_ms, start_ms)``.

    Pass ``blocks=`` to use an explicit (possibly irregular) block list.
    """

    def _make(
        count: int = 0,
        spacing_ms: int = 5_000,
        start_ms: int = 1_700_000_000_000,
        rates: dict[int, str] | None = None,
        blocks: list[BlockInfo] | None = None,
    ) -> FakeChainClient:
        if blocks is None:
            blocks = [
                BlockInfo(height=i, timestamp_ms=start_ms + i * spacing_ms)
                for i in range(count)
            ]
        return FakeChainClient(blocks, rates=rates)

    return _make


@pytest.fixture
def make_feed() -> Callable[..., FixedPriceFeed]:
    """Factory for fixed-quote feeds: ``make_feed(price, fallback=None)``."""
    return FixedPriceFeed


@pytest.fixture
def to_rate_hex() -> Callable[[float], str]:
    """The 18-decimal rate encoder."""
    return rate_to_hex


@pytest.fixture
def make_points() -> Callable[..., list[PricePoint]]:
    """Factory for price series: ``make_points([p0, p1, ...], spacing_ms, start_ms)``."""

    def _make(
        prices: list[float],
        spacing_ms: int = 1_000,
        start_ms: int = 0,
    ) -> list[PricePoint]:
        return [
            PricePoint(
                timestamp_ms=start_ms + i * spacing_ms,
                price_usd=price,
                block_height_hex=hex(i),
            )
            for i, price in enumerate(prices)
        ]

    return _make


@pytest.fixture
def history_settings() -> HistorySettings:
    """Default pipeline settings."""
    return HistorySettings()


@pytest.fixture
def fixed_feed() -> FixedPriceFeed:
    """Feed quoting QUAI at $0.07."""
    return FixedPriceFeed(0.07)
