"""Series length control: stride decimation and spline densification.

``resample`` shrinks an over-long series with deterministic fixed-stride
decimation that always keeps the final point. ``densify`` inserts
Catmull-Rom interpolated points between real samples for display, clamped
close to the bracketing real prices so the spline cannot invent spikes.
"""

import math

from qi_history.models import PricePoint, RangeConfig

#: Relative spread floor used when two bracketing prices are equal.
_FLAT_SPREAD_EPSILON = 1e-9


def resample(points: list[PricePoint], target_count: int) -> list[PricePoint]:
    """Decimate to at most ``target_count`` points, keeping the last one.

    Takes every ``ceil(n / target_count)``-th point starting at index 0. If
    that misses the final point, it is appended, or it replaces the last
    selected point when appending would exceed ``target_count``. Series
    already within the target are returned unchanged.
    """
    if target_count < 1:
        raise ValueError("target_count must be >= 1")

    n = len(points)
    if n <= target_count:
        return list(points)

    stride = math.ceil(n / target_count)
    selected = points[::stride]

    if (len(selected) - 1) * stride != n - 1:
        if len(selected) < target_count:
            selected.append(points[-1])
        else:
            selected[-1] = points[-1]

    return selected


def catmull_rom(p0: float, p1: float, p2: float, p3: float, t: float) -> float:
    """Uniform Catmull-Rom spline between ``p1`` (t=0) and ``p2`` (t=1)."""
    t2 = t * t
    t3 = t2 * t
    return 0.5 * (
        2 * p1
        + (-p0 + p2) * t
        + (2 * p0 - 5 * p1 + 4 * p2 - p3) * t2
        + (-p0 + 3 * p1 - 3 * p2 + p3) * t3
    )


def densify(
    points: list[PricePoint],
    factor: int,
    overshoot: float = 0.35,
) -> list[PricePoint]:
    """Insert ``factor - 1`` interpolated points between each real pair.

    Each segment uses the 4-point neighbourhood (previous, current, next,
    next-next), reusing the segment endpoint at the series boundaries.

    - Timestamps are linear fractions of the gap, rounded to integer ms.
      Any that would not be strictly between the last emitted point and the
      next real point are skipped, so short gaps get fewer insertions.
    - Prices are clamped to the two real prices widened by ``overshoot``
      times their spread (a tiny relative spread when they are equal). If
      the clamp still allows a non-positive price, linear interpolation is
      used instead.
    - Interpolated points carry the block of the real point before them.
    """
    if factor < 2 or len(points) < 2:
        return list(points)

    n = len(points)
    result = [points[0]]

    for i in range(n - 1):
        p1 = points[i]
        p2 = points[i + 1]
        p0 = points[i - 1] if i > 0 else p1
        p3 = points[i + 2] if i + 2 < n else p2

        lo = min(p1.price_usd, p2.price_usd)
        hi = max(p1.price_usd, p2.price_usd)
        spread = hi - lo
        if spread <= 0:
            spread = max(abs(hi), 1.0) * _FLAT_SPREAD_EPSILON
        margin = spread * overshoot

        gap = p2.timestamp_ms - p1.timestamp_ms
        for k in range(1, factor):
            t = k / factor
            timestamp = int(math.floor(p1.timestamp_ms + gap * t + 0.5))
            if timestamp <= result[-1].timestamp_ms or timestamp >= p2.timestamp_ms:
                continue

            price = catmull_rom(
                p0.price_usd, p1.price_usd, p2.price_usd, p3.price_usd, t
            )
            price = min(max(price, lo - margin), hi + margin)
            if price <= 0:
                price = p1.price_usd + (p2.price_usd - p1.price_usd) * t

            result.append(
                PricePoint(
                    timestamp_ms=timestamp,
                    price_usd=price,
                    block_height_hex=p1.block_height_hex,
                )
            )

        result.append(p2)

    return result


def densify_to_cap(
    config: RangeConfig,
    points: list[PricePoint],
    overshoot: float = 0.35,
) -> list[PricePoint]:
    """Densify by the range's factor, then decimate back under its output cap.

    Ranges without a densify factor are returned unchanged.
    """
    if config.densify_factor is None:
        return list(points)

    dense = densify(points, config.densify_factor, overshoot)
    if len(dense) > config.output_cap:
        dense = resample(dense, config.output_cap)
    return dense
