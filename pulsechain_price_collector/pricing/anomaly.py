"""
Anomaly filtering for reconstructed price series.
"""

import math
from typing import List

from pulsechain_price_collector.models.core import PricePoint

# 10.0 == a 1000% move between consecutive accepted points
DEFAULT_SPIKE_THRESHOLD = 10.0


def is_valid_price(value: float) -> bool:
    """A price is usable when it is finite and strictly positive."""
    return not (math.isnan(value) or math.isinf(value)) and value > 0


def filter_anomalies(points: List[PricePoint], spike_threshold: float = DEFAULT_SPIKE_THRESHOLD) -> List[PricePoint]:
    """
    Drop invalid prices and single-step spikes from a time-ordered series.

    Series shorter than three points are returned unchanged. Otherwise a
    point is dropped when its price is non-positive, NaN or infinite, or when
    its relative change from the last accepted point exceeds
    ``spike_threshold``. Rejected points never become the reference for the
    next comparison.

    This also rejects genuine moves larger than the threshold, such as
    price discovery right after a pool launches with thin liquidity.
    """
    if len(points) < 3:
        return points

    filtered: List[PricePoint] = []
    last_accepted = None

    for point in points:
        if not is_valid_price(point.value):
            continue

        if last_accepted is not None:
            change = abs(point.value - last_accepted.value) / last_accepted.value
            if change > spike_threshold:
                continue

        filtered.append(point)
        last_accepted = point

    return filtered
