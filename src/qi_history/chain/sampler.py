"""Bounded-concurrency exchange-rate sampling over a block range.

Plans evenly spaced heights between two blocks and fetches block info plus
the QI->QUAI rate at each, ``concurrency`` heights at a time. Chunks run
one after another so a single history request never has more than
``concurrency`` calls of each kind in flight against the node.

Missing blocks and failed rate calls are skipped, never retried; retry
policy belongs to whoever serves the result.
"""

import asyncio

from qi_history.chain.block_locator import BlockLocator
from qi_history.chain.client import ChainClient
from qi_history.exceptions import UpstreamUnavailable
from qi_history.logging import get_logger
from qi_history.models import Snapshot

logger = get_logger(__name__)


def plan_heights(start: int, end: int, stride: int, max_samples: int) -> list[int]:
    """Heights from ``start`` toward ``end`` in ``stride`` steps.

    Works in both directions. The stride is coerced to ``max(1, |stride|)``.
    Stops after ``max_samples`` heights or before crossing ``end``.
    """
    step = max(1, abs(stride))
    direction = 1 if end >= start else -1
    heights: list[int] = []

    height = start
    while len(heights) < max_samples:
        if (direction > 0 and height > end) or (direction < 0 and height < end):
            break
        heights.append(height)
        height += step * direction

    return heights


class SnapshotSampler:
    """Fetches rate snapshots at planned heights in bounded chunks.

    Block info goes through the BlockLocator so heights already seen by the
    timestamp search are not fetched twice.
    """

    def __init__(
        self,
        chain: ChainClient,
        locator: BlockLocator,
        amount_hex: str = "0x3E8",
    ) -> None:
        self._chain = chain
        self._locator = locator
        self._amount_hex = amount_hex

    async def sample(
        self,
        start_height: int,
        end_height: int,
        stride: int,
        max_samples: int,
        concurrency: int,
    ) -> list[Snapshot]:
        """Return snapshots in the direction of ``start_height`` -> ``end_height``."""
        heights = plan_heights(start_height, end_height, stride, max_samples)
        chunk_size = max(1, concurrency)
        snapshots: list[Snapshot] = []

        for offset in range(0, len(heights), chunk_size):
            chunk = heights[offset : offset + chunk_size]
            results = await asyncio.gather(*(self._fetch_one(h) for h in chunk))
            snapshots.extend(s for s in results if s is not None)

        logger.info(
            "snapshots_sampled",
            planned=len(heights),
            fetched=len(snapshots),
            skipped=len(heights) - len(snapshots),
            stride=max(1, abs(stride)),
            concurrency=chunk_size,
        )
        return snapshots

    async def _fetch_one(self, height: int) -> Snapshot | None:
        """Fetch block info and rate for a single height; None if either is missing."""
        block = await self._locator.resolve(height)
        if block is None:
            logger.debug("snapshot_block_missing", height=height)
            return None

        try:
            rate_hex = await self._chain.fetch_exchange_rate(
                self._amount_hex, block.height_hex
            )
        except UpstreamUnavailable as e:
            logger.debug("snapshot_rate_failed", height=height, error=str(e))
            return None

        return Snapshot.from_block(block, rate_hex)
