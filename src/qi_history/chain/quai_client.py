"""Quai JSON-RPC client implementation via httpx async.

Speaks JSON-RPC 2.0 to a single zone endpoint (cyprus1 by default). Block
headers have moved around between node releases, so the block parser
accepts the header nested under ``woHeader`` or ``header`` as well as a
flat Ethereum-style object. Quai's multi-context ``number`` arrays are read
at the zone (last) position.
"""

import itertools
from typing import Any

import httpx

from qi_history.chain.client import ChainClient
from qi_history.config import RpcSettings
from qi_history.exceptions import UpstreamUnavailable
from qi_history.logging import get_logger
from qi_history.models import BlockInfo

logger = get_logger(__name__)


def _hex_to_int(value: Any) -> int | None:
    if isinstance(value, list):
        value = value[-1] if value else None
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return int(value, 16)
    except ValueError:
        return None


def parse_block(result: dict | None) -> BlockInfo | None:
    """Extract a BlockInfo from a ``quai_getBlockByNumber`` result.

    Timestamps are hex seconds on the wire and milliseconds in BlockInfo.
    Returns None for a null or non-object result, or a header without
    number/timestamp.
    """
    if not result or not isinstance(result, dict):
        return None

    header = result.get("woHeader") or result.get("header") or result
    if not isinstance(header, dict):
        return None
    number = _hex_to_int(header.get("number", result.get("number")))
    timestamp = _hex_to_int(header.get("timestamp", result.get("timestamp")))
    if number is None or timestamp is None:
        return None
    return BlockInfo(height=number, timestamp_ms=timestamp * 1000)


class QuaiRpcClient(ChainClient):
    """Concrete Quai RPC client using httpx.AsyncClient."""

    def __init__(
        self,
        settings: RpcSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_seconds),
            limits=httpx.Limits(max_connections=settings.max_connections),
            headers={"Content-Type": "application/json"},
        )
        self._ids = itertools.count(1)

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
        logger.info("quai_rpc_client_closed")

    async def fetch_block(self, ref: str) -> BlockInfo | None:
        """Fetch a block header via ``quai_getBlockByNumber``."""
        result = await self._call("quai_getBlockByNumber", [ref, False])
        return parse_block(result)

    async def fetch_exchange_rate(self, amount_hex: str, block_ref: str) -> str:
        """Fetch the QI->QUAI conversion amount via ``quai_qiToQuai``."""
        result = await self._call("quai_qiToQuai", [amount_hex, block_ref])
        if not isinstance(result, str):
            raise UpstreamUnavailable(
                f"quai_qiToQuai returned non-string result at {block_ref}"
            )
        return result

    async def _call(self, method: str, params: list) -> Any:
        """Issue one JSON-RPC request and return its ``result`` member.

        Raises UpstreamUnavailable for transport errors, non-2xx statuses,
        malformed bodies and JSON-RPC error objects.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._client.post(self._settings.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("rpc_call_failed", method=method, error=str(e))
            raise UpstreamUnavailable(f"{method} failed: {e}") from e

        if not isinstance(body, dict):
            raise UpstreamUnavailable(f"{method} returned a non-object body")
        if body.get("error"):
            error = body["error"]
            logger.debug("rpc_error_response", method=method, error=error)
            raise UpstreamUnavailable(f"{method} error: {error}")
        return body.get("result")
