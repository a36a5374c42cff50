"""Block reference resolution and timestamp search.

BlockLocator turns tags, ints and hex/decimal strings into BlockInfo via
the chain client, memoizing by height in an injected BlockCache, and finds
the latest block at or before a wall-clock timestamp with an exponential
back-off followed by a binary search over heights.

Heights are Python ints throughout; no float ever touches them.
"""

import re

from qi_history.chain.client import ChainClient
from qi_history.exceptions import InvalidReference, UpstreamUnavailable
from qi_history.logging import get_logger
from qi_history.models import BlockInfo

logger = get_logger(__name__)

BLOCK_TAGS = frozenset({"latest", "earliest", "pending", "safe", "finalized"})

_HEX_RE = re.compile(r"^0x[0-9a-f]+$")
_DECIMAL_RE = re.compile(r"^[0-9]+$")


def normalize_block_ref(ref: int | str) -> str:
    """Normalize a block reference to an RPC parameter.

    Tags pass through lowercased; heights become canonical 0x-prefixed hex
    without leading zeros.

    Raises:
        InvalidReference: for negative numbers, booleans, malformed hex,
            unparseable strings and unsupported types.
    """
    if isinstance(ref, bool):
        raise InvalidReference(f"Boolean is not a block reference: {ref!r}")

    if isinstance(ref, int):
        if ref < 0:
            raise InvalidReference(f"Negative block height: {ref}")
        return hex(ref)

    if isinstance(ref, str):
        value = ref.strip().lower()
        if value in BLOCK_TAGS:
            return value
        if value.startswith("0x"):
            if not _HEX_RE.match(value):
                raise InvalidReference(f"Malformed hex block reference: {ref!r}")
            return hex(int(value, 16))
        if _DECIMAL_RE.match(value):
            return hex(int(value))
        if value.startswith("-") and _DECIMAL_RE.match(value[1:]):
            raise InvalidReference(f"Negative block height: {ref!r}")
        raise InvalidReference(f"Unparseable block reference: {ref!r}")

    raise InvalidReference(f"Unsupported block reference type: {type(ref).__name__}")


class BlockCache:
    """Process-scoped memo of resolved blocks keyed by height.

    Every block is stored under both its hex and decimal height so either
    form hits. No eviction: mined heights never change, and concurrent
    writers can only write the same value.
    """

    def __init__(self) -> None:
        self._blocks: dict[str, BlockInfo] = {}

    def get(self, key: str) -> BlockInfo | None:
        return self._blocks.get(key)

    def put(self, block: BlockInfo) -> None:
        self._blocks[block.height_hex] = block
        self._blocks[block.height_key] = block

    def __len__(self) -> int:
        """Number of distinct blocks cached."""
        return len(self._blocks) // 2


class BlockLocator:
    """Resolves block references and searches blocks by timestamp.

    Usage:
        locator = BlockLocator(chain_client, BlockCache())
        latest = await locator.resolve("latest")
        start = await locator.find_at_or_before(latest.timestamp_ms - 3_600_000)
    """

    def __init__(self, chain: ChainClient, cache: BlockCache | None = None) -> None:
        self._chain = chain
        self._cache = cache if cache is not None else BlockCache()

    @property
    def cache(self) -> BlockCache:
        return self._cache

    async def resolve(self, ref: int | str) -> BlockInfo | None:
        """Resolve ``ref`` to a BlockInfo.

        Numeric references are served from the cache when possible. Tags
        always go to the node, but the block they return is cached by
        height. Returns None when the block is missing or the node cannot
        be reached; only malformed references raise.
        """
        param = normalize_block_ref(ref)

        if param not in BLOCK_TAGS:
            cached = self._cache.get(param)
            if cached is not None:
                return cached

        try:
            block = await self._chain.fetch_block(param)
        except UpstreamUnavailable as e:
            logger.debug("block_fetch_failed", ref=param, error=str(e))
            return None

        if block is not None:
            self._cache.put(block)
        return block

    async def find_at_or_before(
        self,
        target_ms: int,
        latest: BlockInfo | None = None,
    ) -> BlockInfo | None:
        """Return the latest block whose timestamp is <= ``target_ms``.

        1. If the chain head is already at or before the target, return it.
        2. Probe ``latest - step`` for step = 1, 2, 4, ... (clamped at
           genesis) until a probe is at or before the target.
        3. Binary search heights between that low bound and the last probe
           that was still after the target, until they are adjacent.

        A probe that cannot be fetched stops the search at the current
        bounds. If no lower bound was found at all, the earliest block
        reached is returned so the caller gets a truncated window rather
        than nothing. Returns None only when the head cannot be resolved.

        Pass an already resolved ``latest`` to search against that head
        instead of asking the node again.
        """
        if latest is None:
            latest = await self.resolve("latest")
        if latest is None:
            return None
        if target_ms >= latest.timestamp_ms:
            return latest

        high = latest
        low: BlockInfo | None = None
        step = 1
        probes = 0

        while high.height > 0:
            candidate_height = max(latest.height - step, 0)
            candidate = await self.resolve(candidate_height)
            probes += 1
            if candidate is None:
                logger.warning(
                    "block_search_probe_failed",
                    phase="backoff",
                    height=candidate_height,
                )
                break

            if candidate.timestamp_ms <= target_ms or candidate.height == 0:
                low = candidate
                break

            high = candidate
            step *= 2

        if low is None:
            logger.warning(
                "block_search_no_lower_bound",
                target_ms=target_ms,
                returned_height=high.height,
            )
            return high

        while high.height - low.height > 1:
            mid_height = low.height + (high.height - low.height) // 2
            mid = await self.resolve(mid_height)
            probes += 1
            if mid is None:
                logger.warning(
                    "block_search_probe_failed",
                    phase="bisect",
                    height=mid_height,
                )
                break

            if mid.timestamp_ms <= target_ms:
                low = mid
            else:
                high = mid

        found = high if high.timestamp_ms <= target_ms else low
        logger.debug(
            "block_search_complete",
            target_ms=target_ms,
            height=found.height,
            timestamp_ms=found.timestamp_ms,
            probes=probes,
        )
        return found
