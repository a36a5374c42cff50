"""Fixed-width time bucketing of price points.

Collapses every run of points sharing a bucket key into one representative
point. Input must already be chronological (the converter guarantees it),
so aggregation is a single streaming pass with no re-sort.
"""

import math
from typing import Literal

from qi_history.models import PricePoint

BucketMethod = Literal["median", "mean"]


def median(values: list[float]) -> float:
    """Median of a non-empty list; mean of the two middle values when even."""
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _collapse(bucket: list[PricePoint], method: BucketMethod) -> PricePoint:
    prices = [p.price_usd for p in bucket]
    timestamps = [p.timestamp_ms for p in bucket]

    if method == "median":
        price = median(prices)
        timestamp = median(timestamps)
    else:
        price = sum(prices) / len(prices)
        timestamp = sum(timestamps) / len(timestamps)

    return PricePoint(
        timestamp_ms=_round_half_up(timestamp),
        price_usd=price,
        block_height_hex=bucket[-1].block_height_hex,
    )


def bucket_points(
    points: list[PricePoint],
    bucket_width_ms: int,
    method: BucketMethod = "median",
) -> list[PricePoint]:
    """Aggregate chronological points into one point per non-empty bucket.

    Bucket key is ``floor(ts / width) * width``. A bucket is flushed as soon
    as a point with a different key arrives.

    Args:
        points: Price points ordered by timestamp.
        bucket_width_ms: Bucket width in milliseconds (> 0).
        method: "median" (median price and median timestamp, resists
            single-sample spikes) or "mean".

    Returns:
        One point per bucket, carrying the block of the bucket's last sample.
    """
    if bucket_width_ms <= 0:
        raise ValueError("bucket_width_ms must be positive")
    if not points:
        return []

    result: list[PricePoint] = []
    current: list[PricePoint] = []
    current_key: int | None = None

    for point in points:
        key = (point.timestamp_ms // bucket_width_ms) * bucket_width_ms
        if key != current_key and current:
            result.append(_collapse(current, method))
            current = []
        current_key = key
        current.append(point)

    if current:
        result.append(_collapse(current, method))

    return result
