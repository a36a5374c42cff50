"""Shared data models for the QI price history pipeline.

Block heights are plain Python ints (arbitrary precision), never floats.
Prices are float64 on the way out; the hex rate is scaled with Decimal in
the converter before it becomes a float.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

#: Bounds applied to every range's target sample count.
MIN_TARGET_SAMPLES = 2
MAX_TARGET_SAMPLES = 500


@dataclass(frozen=True)
class BlockInfo:
    """A mined block's height and timestamp. Immutable once fetched."""

    height: int
    timestamp_ms: int

    @property
    def height_hex(self) -> str:
        return hex(self.height)

    @property
    def height_key(self) -> str:
        return str(self.height)


@dataclass(frozen=True)
class Snapshot:
    """Exchange rate sampled at one block.

    ``rate_hex`` is a hex-encoded fixed-point integer with 18 implied
    decimals: QUAI received for the configured QI amount.
    """

    height: int
    height_hex: str
    timestamp_ms: int
    iso_timestamp: str
    rate_hex: str

    @classmethod
    def from_block(cls, block: BlockInfo, rate_hex: str) -> "Snapshot":
        iso = datetime.fromtimestamp(block.timestamp_ms / 1000, tz=timezone.utc)
        return cls(
            height=block.height,
            height_hex=block.height_hex,
            timestamp_ms=block.timestamp_ms,
            iso_timestamp=iso.isoformat(),
            rate_hex=rate_hex,
        )


@dataclass(frozen=True)
class PricePoint:
    """A single USD price observation. ``price_usd`` is finite and > 0."""

    timestamp_ms: int
    price_usd: float
    block_height_hex: str

    def to_dict(self) -> dict:
        return {
            "timestamp_ms": self.timestamp_ms,
            "price": self.price_usd,
            "block_number_hex": self.block_height_hex,
        }


@dataclass(frozen=True)
class RangeConfig:
    """Pipeline constants for one range token.

    Optional stages are disabled by leaving their parameter as None.
    ``target_sample_count`` is clamped into [2, 500] on construction.
    """

    window_duration_ms: int
    target_sample_count: int
    bucket_width_ms: int
    fetch_concurrency: int
    freshness_ms: int
    smoothing_window_size: int | None = None
    smoothing_alpha: float | None = None
    densify_factor: int | None = None
    outlier_threshold: float | None = None

    def __post_init__(self) -> None:
        clamped = max(MIN_TARGET_SAMPLES, min(self.target_sample_count, MAX_TARGET_SAMPLES))
        object.__setattr__(self, "target_sample_count", clamped)

        if self.window_duration_ms <= 0:
            raise ValueError("window_duration_ms must be positive")
        if self.bucket_width_ms <= 0:
            raise ValueError("bucket_width_ms must be positive")
        if self.fetch_concurrency < 1:
            raise ValueError("fetch_concurrency must be >= 1")
        if self.smoothing_window_size is not None and (
            self.smoothing_window_size < 1 or self.smoothing_window_size % 2 == 0
        ):
            raise ValueError("smoothing_window_size must be a positive odd number")
        if self.smoothing_alpha is not None and not 0 < self.smoothing_alpha < 1:
            raise ValueError("smoothing_alpha must be in (0, 1)")
        if self.densify_factor is not None and self.densify_factor < 2:
            raise ValueError("densify_factor must be >= 2")
        if self.outlier_threshold is not None and self.outlier_threshold <= 0:
            raise ValueError("outlier_threshold must be positive")

    @property
    def output_cap(self) -> int:
        """Maximum length of the final series for this range."""
        return self.target_sample_count * (self.densify_factor or 1)
