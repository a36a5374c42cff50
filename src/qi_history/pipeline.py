"""QI/USD history reconstruction pipeline.

Control flow for one request:

    latest block -> block at window start (timestamp search)
      -> sampled rate snapshots (bounded concurrency)
      -> USD price points (one reference quote)
      -> time buckets -> denoise -> stride decimation -> densify/cap

Every network failure along the way degrades to "no data": the pipeline
returns an empty list rather than raising. Only an unknown range token
raises (InvalidRange), since that is a caller bug, not missing data.
"""

import time

import structlog

from qi_history.chain.block_locator import BlockCache, BlockLocator
from qi_history.chain.client import ChainClient
from qi_history.chain.sampler import SnapshotSampler
from qi_history.config import HistorySettings
from qi_history.exceptions import UpstreamUnavailable
from qi_history.logging import get_logger
from qi_history.models import PricePoint, RangeConfig
from qi_history.pricing.converter import convert_snapshots
from qi_history.pricing.feed import ReferencePriceFeed
from qi_history.processing.aggregate import bucket_points
from qi_history.processing.denoise import denoise
from qi_history.processing.resample import densify_to_cap, resample
from qi_history.ranges import RANGE_CONFIGS, get_range_config

logger = get_logger(__name__)


class PriceHistoryPipeline:
    """Builds smoothed QI/USD price history for a range token.

    All state that outlives a call (the block cache, the price feed's last
    good quote) is injected, so tests and separate processes never share it
    by accident.

    Usage:
        pipeline = PriceHistoryPipeline(QuaiRpcClient(rpc), CoinGeckoPriceFeed(feed))
        points = await pipeline.fetch_price_history("24h")
    """

    def __init__(
        self,
        chain: ChainClient,
        price_feed: ReferencePriceFeed,
        settings: HistorySettings | None = None,
        block_cache: BlockCache | None = None,
        range_configs: dict[str, RangeConfig] | None = None,
        rate_amount_hex: str = "0x3E8",
    ) -> None:
        self._price_feed = price_feed
        self._settings = settings or HistorySettings()
        self._range_configs = range_configs or RANGE_CONFIGS
        self._locator = BlockLocator(chain, block_cache)
        self._sampler = SnapshotSampler(chain, self._locator, rate_amount_hex)

    @property
    def locator(self) -> BlockLocator:
        return self._locator

    def _sample_count(self, config: RangeConfig) -> int:
        count = min(config.target_sample_count, self._settings.max_sample_count)
        return max(count, self._settings.min_sample_count, 2)

    async def fetch_price_history(self, range_token: str) -> list[PricePoint]:
        """Return the chronological price series for ``range_token``.

        The result has strictly increasing timestamps, only finite positive
        prices and at most ``config.output_cap`` points. Empty means no data.

        Raises:
            InvalidRange: if ``range_token`` is not configured.
        """
        config = get_range_config(range_token, self._range_configs)
        started = time.monotonic()

        with structlog.contextvars.bound_contextvars(range=range_token):
            latest = await self._locator.resolve("latest")
            if latest is None:
                logger.warning("latest_block_unavailable")
                return []

            target_start_ms = max(0, latest.timestamp_ms - config.window_duration_ms)
            start = await self._locator.find_at_or_before(target_start_ms, latest)
            if start is None:
                logger.warning("start_block_unavailable", target_ms=target_start_ms)
                return []

            samples = self._sample_count(config)
            total_blocks = max(0, latest.height - start.height)
            stride = max(1, total_blocks // (samples - 1))

            snapshots = await self._sampler.sample(
                start.height,
                latest.height,
                stride,
                samples + self._settings.oversample_margin,
                config.fetch_concurrency,
            )
            if not snapshots:
                logger.warning("no_snapshots", start=start.height, end=latest.height)
                return []

            try:
                usd_price = await self._price_feed.fetch_usd_price()
            except UpstreamUnavailable:
                return []

            points = convert_snapshots(snapshots, usd_price)
            if not points:
                logger.warning("no_valid_price_points", snapshots=len(snapshots))
                return []
            converted = len(points)

            points = bucket_points(
                points, config.bucket_width_ms, self._settings.bucket_method
            )
            bucketed = len(points)
            points = denoise(config, points)
            points = resample(points, samples)
            points = densify_to_cap(config, points, self._settings.densify_overshoot)

            logger.info(
                "price_history_built",
                start_height=start.height,
                end_height=latest.height,
                stride=stride,
                snapshots=len(snapshots),
                converted=converted,
                bucketed=bucketed,
                returned=len(points),
                usd_reference=usd_price,
                duration_seconds=round(time.monotonic() - started, 2),
            )
            return points
