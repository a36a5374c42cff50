"""Snapshot -> USD price point conversion.

The node reports rates as hex fixed-point integers with 18 implied
decimals. Scaling is done in Decimal so that e.g. 0x0de0b6b3a7640000 at a
0.07 reference comes out as exactly 0.07; only the final USD price is a
float.
"""

import math
from decimal import Decimal

from qi_history.logging import get_logger
from qi_history.models import PricePoint, Snapshot

logger = get_logger(__name__)

#: 10**18 -- fixed-point scale of on-chain amounts.
RATE_SCALE = Decimal(10) ** 18


def parse_rate_hex(rate_hex: str) -> Decimal | None:
    """Parse a hex fixed-point rate into a Decimal; None if unusable.

    Accepts values with or without a 0x prefix. Empty, malformed and
    non-positive values return None.
    """
    if not isinstance(rate_hex, str):
        return None
    try:
        raw = int(rate_hex.strip(), 16)
    except ValueError:
        return None
    if raw <= 0:
        return None
    return Decimal(raw) / RATE_SCALE


def convert_snapshots(
    snapshots: list[Snapshot],
    usd_reference_price: float,
) -> list[PricePoint]:
    """Convert snapshots into a chronological series of USD price points.

    - Timestamps are deduplicated, first occurrence wins. Adjacent heights
      can share a timestamp.
    - Points with an unparseable, non-positive or non-finite rate or price
      are dropped.
    - The result is stably sorted ascending by timestamp whatever the
      input order.
    """
    reference = Decimal(str(usd_reference_price))
    if not reference.is_finite() or reference <= 0:
        logger.warning("invalid_reference_price", price=usd_reference_price)
        return []

    seen: set[int] = set()
    points: list[PricePoint] = []
    dropped = 0

    for snapshot in snapshots:
        if snapshot.timestamp_ms in seen:
            continue
        seen.add(snapshot.timestamp_ms)

        rate = parse_rate_hex(snapshot.rate_hex)
        if rate is None:
            dropped += 1
            continue

        price = float(rate * reference)
        if not math.isfinite(price) or price <= 0:
            dropped += 1
            continue

        points.append(
            PricePoint(
                timestamp_ms=snapshot.timestamp_ms,
                price_usd=price,
                block_height_hex=snapshot.height_hex,
            )
        )

    points.sort(key=lambda p: p.timestamp_ms)

    if dropped:
        logger.debug("snapshots_dropped", dropped=dropped, kept=len(points))
    return points
