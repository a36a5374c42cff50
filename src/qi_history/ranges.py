"""Per-range pipeline constants.

Shorter ranges get narrower buckets, smaller smoothing windows, tighter
outlier thresholds and more concurrent fetches. Long ranges have sparse
real samples, so they are densified for display instead of smoothed.
"""

from typing import Literal

from qi_history.exceptions import InvalidRange
from qi_history.models import RangeConfig

RangeToken = Literal["1h", "24h", "7d", "30d", "6m"]

_SECOND_MS = 1_000
_MINUTE_MS = 60 * _SECOND_MS
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS

RANGE_CONFIGS: dict[str, RangeConfig] = {
    "1h": RangeConfig(
        window_duration_ms=_HOUR_MS,
        target_sample_count=240,
        bucket_width_ms=15 * _SECOND_MS,
        smoothing_window_size=3,
        outlier_threshold=0.20,
        fetch_concurrency=32,
        freshness_ms=5 * _MINUTE_MS,
    ),
    "24h": RangeConfig(
        window_duration_ms=_DAY_MS,
        target_sample_count=288,
        bucket_width_ms=90 * _SECOND_MS,
        smoothing_window_size=5,
        outlier_threshold=0.25,
        fetch_concurrency=28,
        freshness_ms=10 * _MINUTE_MS,
    ),
    "7d": RangeConfig(
        window_duration_ms=7 * _DAY_MS,
        target_sample_count=336,
        bucket_width_ms=30 * _MINUTE_MS,
        smoothing_window_size=9,
        smoothing_alpha=0.6,
        outlier_threshold=0.35,
        fetch_concurrency=20,
        freshness_ms=30 * _MINUTE_MS,
    ),
    "30d": RangeConfig(
        window_duration_ms=30 * _DAY_MS,
        target_sample_count=180,
        bucket_width_ms=6 * _HOUR_MS,
        smoothing_alpha=0.5,
        densify_factor=2,
        outlier_threshold=0.50,
        fetch_concurrency=16,
        freshness_ms=_HOUR_MS,
    ),
    "6m": RangeConfig(
        window_duration_ms=182 * _DAY_MS,
        target_sample_count=186,
        bucket_width_ms=_DAY_MS,
        densify_factor=3,
        outlier_threshold=0.70,
        fetch_concurrency=12,
        freshness_ms=6 * _HOUR_MS,
    ),
}

VALID_RANGES: tuple[str, ...] = tuple(RANGE_CONFIGS)
DEFAULT_RANGE: RangeToken = "24h"


def normalize_range(value: str | None) -> str:
    """Return ``value`` if it is a supported range token, else the default."""
    if value and value in RANGE_CONFIGS:
        return value
    return DEFAULT_RANGE


def get_range_config(
    range_token: str,
    configs: dict[str, RangeConfig] | None = None,
) -> RangeConfig:
    """Strict lookup of a range's constants. Raises InvalidRange."""
    table = RANGE_CONFIGS if configs is None else configs
    try:
        return table[range_token]
    except KeyError:
        raise InvalidRange(
            f"Unsupported range {range_token!r}. Supported: {sorted(table)}"
        ) from None
