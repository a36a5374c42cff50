"""Tests for block reference normalization, caching and timestamp search.

Covers tag/int/hex/decimal normalization, InvalidReference on bad input,
hex+decimal cache aliases, back-off + bisection correctness on regular,
irregular and very large heights, and aborting on failed probes.
"""

import pytest

from qi_history.chain.block_locator import BlockCache, BlockLocator, normalize_block_ref
from qi_history.exceptions import InvalidReference
from qi_history.models import BlockInfo


class TestNormalizeBlockRef:
    """Tests for normalize_block_ref."""

    @pytest.mark.parametrize("tag", ["latest", "earliest", "pending", "safe", "finalized"])
    def test_tags_pass_through(self, tag: str) -> None:
        assert normalize_block_ref(tag) == tag

    def test_tag_is_case_insensitive(self) -> None:
        assert normalize_block_ref(" Latest ") == "latest"

    def test_int_becomes_hex(self) -> None:
        assert normalize_block_ref(255) == "0xff"
        assert normalize_block_ref(0) == "0x0"

    def test_hex_is_canonicalized(self) -> None:
        assert normalize_block_ref("0x00FF") == "0xff"

    def test_decimal_string_becomes_hex(self) -> None:
        assert normalize_block_ref("1024") == "0x400"

    def test_huge_height_keeps_precision(self) -> None:
        height = 2**80 + 1
        assert normalize_block_ref(height) == hex(height)
        assert normalize_block_ref(str(height)) == hex(height)

    @pytest.mark.parametrize(
        "bad",
        [-1, "-5", "0x", "0xzz", "abc", "12ab", "", True, 1.5, None],
    )
    def test_invalid_references_raise(self, bad) -> None:
        with pytest.raises(InvalidReference):
            normalize_block_ref(bad)


class TestBlockCache:
    """Tests for the hex/decimal keyed cache."""

    def test_both_keys_hit(self) -> None:
        cache = BlockCache()
        block = BlockInfo(height=26, timestamp_ms=1000)
        cache.put(block)

        assert cache.get("0x1a") is block
        assert cache.get("26") is block
        assert cache.get("0x1b") is None
        assert len(cache) == 1

    def test_overwrite_is_idempotent(self) -> None:
        cache = BlockCache()
        cache.put(BlockInfo(height=1, timestamp_ms=5))
        cache.put(BlockInfo(height=1, timestamp_ms=5))
        assert len(cache) == 1


class TestResolve:
    """Tests for BlockLocator.resolve."""

    @pytest.mark.asyncio
    async def test_numeric_refs_are_cached(self, make_chain) -> None:
        chain = make_chain(20)
        locator = BlockLocator(chain, BlockCache())

        first = await locator.resolve(10)
        again_int = await locator.resolve(10)
        again_hex = await locator.resolve("0xa")
        again_dec = await locator.resolve("10")

        assert first == BlockInfo(height=10, timestamp_ms=first.timestamp_ms)
        assert again_int is first and again_hex is first and again_dec is first
        assert chain.block_calls == ["0xa"]

    @pytest.mark.asyncio
    async def test_tag_result_is_cached_by_height(self, make_chain) -> None:
        chain = make_chain(20)
        locator = BlockLocator(chain)

        latest = await locator.resolve("latest")
        assert latest.height == 19

        await locator.resolve(19)
        assert chain.block_calls == ["latest"]

    @pytest.mark.asyncio
    async def test_tags_always_hit_the_node(self, make_chain) -> None:
        chain = make_chain(5)
        locator = BlockLocator(chain)

        await locator.resolve("latest")
        await locator.resolve("latest")
        assert chain.block_calls == ["latest", "latest"]

    @pytest.mark.asyncio
    async def test_missing_block_returns_none(self, make_chain) -> None:
        locator = BlockLocator(make_chain(5))
        assert await locator.resolve(50) is None

    @pytest.mark.asyncio
    async def test_upstream_failure_returns_none(self, make_chain) -> None:
        chain = make_chain(5)
        chain.fail_block_heights = {3}
        locator = BlockLocator(chain)
        assert await locator.resolve(3) is None

    @pytest.mark.asyncio
    async def test_invalid_reference_raises(self, make_chain) -> None:
        locator = BlockLocator(make_chain(5))
        with pytest.raises(InvalidReference):
            await locator.resolve(-3)

    @pytest.mark.asyncio
    async def test_injected_cache_is_shared(self, make_chain) -> None:
        cache = BlockCache()
        chain = make_chain(10)
        await BlockLocator(chain, cache).resolve(4)
        await BlockLocator(chain, cache).resolve(4)
        assert chain.block_calls == ["0x4"]


class TestFindAtOrBefore:
    """Tests for the exponential back-off + binary search."""

    @pytest.mark.asyncio
    async def test_target_after_head_returns_latest(self, make_chain) -> None:
        chain = make_chain(100, spacing_ms=5_000, start_ms=0)
        locator = BlockLocator(chain)

        found = await locator.find_at_or_before(10**12)

        assert found.height == 99
        assert chain.block_calls == ["latest"]

    @pytest.mark.asyncio
    async def test_target_between_blocks(self, make_chain) -> None:
        chain = make_chain(1000, spacing_ms=5_000, start_ms=0)
        locator = BlockLocator(chain)

        found = await locator.find_at_or_before(437 * 5_000 + 2_500)

        assert found.height == 437

    @pytest.mark.asyncio
    async def test_target_exactly_on_block(self, make_chain) -> None:
        chain = make_chain(1000, spacing_ms=5_000, start_ms=0)
        locator = BlockLocator(chain)

        found = await locator.find_at_or_before(700 * 5_000)

        assert found.height == 700

    @pytest.mark.asyncio
    async def test_target_before_genesis_returns_genesis(self, make_chain) -> None:
        chain = make_chain(300, spacing_ms=5_000, start_ms=1_000_000)
        locator = BlockLocator(chain)

        found = await locator.find_at_or_before(0)

        assert found.height == 0

    @pytest.mark.asyncio
    async def test_irregular_spacing(self, make_chain) -> None:
        blocks = []
        ts = 0
        for i in range(2000):
            ts += 1_000 + (i * 7_919) % 5_000
            blocks.append(BlockInfo(height=i, timestamp_ms=ts))
        chain = make_chain(blocks=blocks)

        for target in (blocks[3].timestamp_ms + 1, blocks[1234].timestamp_ms, blocks[1998].timestamp_ms + 10):
            locator = BlockLocator(chain)
            found = await locator.find_at_or_before(target)
            expected = max(b.height for b in blocks if b.timestamp_ms <= target)
            assert found.height == expected

    @pytest.mark.asyncio
    async def test_heights_beyond_64_bits(self, make_chain) -> None:
        base = 2**70
        blocks = [BlockInfo(height=base + i, timestamp_ms=i * 5_000) for i in range(1000)]
        chain = make_chain(blocks=blocks)
        locator = BlockLocator(chain)

        found = await locator.find_at_or_before(900 * 5_000 + 1)

        assert found.height == base + 900

    @pytest.mark.asyncio
    async def test_probe_count_is_logarithmic(self, make_chain) -> None:
        chain = make_chain(100_000, spacing_ms=5_000, start_ms=0)
        locator = BlockLocator(chain)

        await locator.find_at_or_before(12_345 * 5_000)

        assert len(chain.block_calls) < 60

    @pytest.mark.asyncio
    async def test_bisect_failure_returns_low_bound(self, make_chain) -> None:
        # back-off probes 98, 97, 95, 91, 83, 67, 35; first bisection midpoint is 51
        chain = make_chain(100, spacing_ms=5_000, start_ms=0)
        chain.fail_block_heights = {51}
        locator = BlockLocator(chain)
        target = 40 * 5_000 + 1

        found = await locator.find_at_or_before(target)

        assert found.height == 35
        assert found.timestamp_ms <= target

    @pytest.mark.asyncio
    async def test_backoff_failure_returns_earliest_reached(self, make_chain) -> None:
        chain = make_chain(100, spacing_ms=5_000, start_ms=0)
        chain.fail_block_heights = {91}
        locator = BlockLocator(chain)

        found = await locator.find_at_or_before(10 * 5_000)

        assert found.height == 95

    @pytest.mark.asyncio
    async def test_given_head_is_not_refetched(self, make_chain) -> None:
        chain = make_chain(1000, spacing_ms=5_000, start_ms=0)
        locator = BlockLocator(chain)
        head = BlockInfo(height=600, timestamp_ms=600 * 5_000)

        found = await locator.find_at_or_before(300 * 5_000, head)

        assert found.height == 300
        assert "latest" not in chain.block_calls

    @pytest.mark.asyncio
    async def test_latest_unavailable_returns_none(self, make_chain) -> None:
        chain = make_chain(100)
        chain.fail_latest = True
        locator = BlockLocator(chain)

        assert await locator.find_at_or_before(0) is None
