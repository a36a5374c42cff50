"""Signal processing stages for the price history series.

Pure, synchronous transforms over chronological PricePoint lists:
bucketing, denoising, decimation and densification.
"""

from qi_history.processing.aggregate import bucket_points, median
from qi_history.processing.denoise import (
    denoise,
    exponential_smoothing,
    moving_average,
    suppress_outliers,
)
from qi_history.processing.resample import (
    catmull_rom,
    densify,
    densify_to_cap,
    resample,
)

__all__ = [
    "bucket_points",
    "catmull_rom",
    "denoise",
    "densify",
    "densify_to_cap",
    "exponential_smoothing",
    "median",
    "moving_average",
    "resample",
    "suppress_outliers",
]
