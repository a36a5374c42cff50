"""Abstract chain RPC client interface.

The locator and sampler depend only on this interface, keeping the
Quai JSON-RPC wire details isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod

from qi_history.models import BlockInfo


class ChainClient(ABC):
    """Abstract base class for chain RPC clients."""

    @abstractmethod
    async def fetch_block(self, ref: str) -> BlockInfo | None:
        """Fetch height and timestamp of a block.

        ``ref`` is an already normalized RPC parameter: a block tag such as
        "latest" or a 0x-prefixed hex height. Returns None when the node
        knows no such block. Raises UpstreamUnavailable on transport or
        RPC errors.
        """
        ...

    @abstractmethod
    async def fetch_exchange_rate(self, amount_hex: str, block_ref: str) -> str:
        """Fetch the QI->QUAI conversion of ``amount_hex`` at ``block_ref``.

        Returns the raw hex-encoded amount (18 implied decimals).
        Raises UpstreamUnavailable on failure.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...
