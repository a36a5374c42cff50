"""Price denoising: outlier suppression, moving average, exponential smoothing.

Every stage keeps the series length and timestamps; only ``price_usd``
changes. Which stages run, and with which constants, is decided by the
range's RangeConfig.
"""

from dataclasses import replace

from qi_history.models import PricePoint, RangeConfig

#: Floor for relative-deviation denominators.
_MIN_DENOMINATOR = 1e-9


def moving_average(points: list[PricePoint], window_size: int) -> list[PricePoint]:
    """Symmetric moving average with edge truncation.

    Index ``i`` averages the points in ``[i - w//2, i + w//2]`` that exist;
    no padding at the ends, so edge windows are smaller. Series not longer
    than the window are returned unchanged.
    """
    if window_size <= 1 or len(points) <= window_size:
        return list(points)

    half = window_size // 2
    n = len(points)
    prices = [p.price_usd for p in points]
    smoothed: list[PricePoint] = []

    for i, point in enumerate(points):
        lo = max(0, i - half)
        hi = min(n, i + half + 1)
        window = prices[lo:hi]
        smoothed.append(replace(point, price_usd=sum(window) / len(window)))

    return smoothed


def exponential_smoothing(points: list[PricePoint], alpha: float) -> list[PricePoint]:
    """Exponential smoothing.

        s[0] = x[0]
        s[i] = alpha * x[i] + (1 - alpha) * s[i-1]

    Args:
        points: Chronological price points.
        alpha: Smoothing factor in (0, 1); higher follows the raw series closer.

    Returns:
        Same-length list. Empty list if input is empty.
    """
    if not 0 < alpha < 1:
        raise ValueError("alpha must be in (0, 1)")
    if not points:
        return []

    previous = points[0].price_usd
    smoothed = [points[0]]
    for point in points[1:]:
        previous = alpha * point.price_usd + (1 - alpha) * previous
        smoothed.append(replace(point, price_usd=previous))

    return smoothed


def suppress_outliers(points: list[PricePoint], threshold: float) -> list[PricePoint]:
    """Replace isolated spikes with the average of their two neighbours.

    An interior point is replaced only when both hold:
    - its neighbours agree: ``(max - min) / avg < threshold / 2``
    - it deviates from them: ``|price - avg| / avg > threshold``

    A trend (neighbours far apart) is therefore never flattened. Decisions
    use the input prices, so a replacement never influences the next
    index. The first and last points are never replaced.
    """
    if len(points) < 3:
        return list(points)

    result = [points[0]]
    for i in range(1, len(points) - 1):
        current = points[i]
        prev_price = points[i - 1].price_usd
        next_price = points[i + 1].price_usd

        neighbor_avg = (prev_price + next_price) / 2
        denominator = max(_MIN_DENOMINATOR, neighbor_avg)
        spread = abs(next_price - prev_price)

        is_stable = spread / denominator < threshold / 2
        is_extreme = abs(current.price_usd - neighbor_avg) / denominator > threshold

        if is_stable and is_extreme:
            result.append(replace(current, price_usd=neighbor_avg))
        else:
            result.append(current)

    result.append(points[-1])
    return result


def denoise(config: RangeConfig, points: list[PricePoint]) -> list[PricePoint]:
    """Apply the configured denoising stages in order.

    outlier suppression -> moving average -> exponential smoothing.
    Ranges configuring none of them get their input back unchanged.
    """
    result = list(points)

    if config.outlier_threshold is not None:
        result = suppress_outliers(result, config.outlier_threshold)
    if config.smoothing_window_size is not None:
        result = moving_average(result, config.smoothing_window_size)
    if config.smoothing_alpha is not None:
        result = exponential_smoothing(result, config.smoothing_alpha)

    return result
