"""Chain access layer -- Quai JSON-RPC, block search and rate sampling."""

from qi_history.chain.block_locator import (
    BLOCK_TAGS,
    BlockCache,
    BlockLocator,
    normalize_block_ref,
)
from qi_history.chain.client import ChainClient
from qi_history.chain.quai_client import QuaiRpcClient
from qi_history.chain.sampler import SnapshotSampler, plan_heights

__all__ = [
    "BLOCK_TAGS",
    "BlockCache",
    "BlockLocator",
    "ChainClient",
    "QuaiRpcClient",
    "SnapshotSampler",
    "normalize_block_ref",
    "plan_heights",
]
