"""
Time-bucket aggregation of price series for charting.
"""

from typing import Dict, List, Union

from pulsechain_price_collector.models.core import PricePoint, TimeRange

_MINUTE_MS = 60 * 1000

BUCKET_SIZES_MS: Dict[str, int] = {
    TimeRange.ONE_HOUR.value: _MINUTE_MS,
    TimeRange.ONE_DAY.value: 5 * _MINUTE_MS,
    TimeRange.ONE_WEEK.value: 30 * _MINUTE_MS,
    TimeRange.ONE_MONTH.value: 60 * _MINUTE_MS,
    TimeRange.ONE_YEAR.value: 24 * 60 * _MINUTE_MS,
    TimeRange.ALL.value: 7 * 24 * 60 * _MINUTE_MS,
}

DEFAULT_BUCKET_SIZE_MS = BUCKET_SIZES_MS[TimeRange.ONE_MONTH.value]


def get_bucket_size(time_range: Union[str, TimeRange]) -> int:
    """Bucket width in ms for a time range; unknown keywords get the 1M width."""
    key = time_range.value if isinstance(time_range, TimeRange) else str(time_range)
    return BUCKET_SIZES_MS.get(key, DEFAULT_BUCKET_SIZE_MS)


def upper_median(values: List[float]) -> float:
    """Element at ``len // 2`` of the sorted values (no averaging for even counts)."""
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def aggregate_into_buckets(points: List[PricePoint], time_range: Union[str, TimeRange]) -> List[PricePoint]:
    """
    Group points into fixed-width buckets and reduce each to its upper median.

    Bucket keys are ``floor(timestamp / width) * width``. The result is
    ordered by bucket timestamp and every bucket has ``volume=0``.
    """
    if not points:
        return []

    bucket_size = get_bucket_size(time_range)
    buckets: Dict[int, List[float]] = {}

    for point in points:
        bucket_key = (point.timestamp // bucket_size) * bucket_size
        buckets.setdefault(bucket_key, []).append(point.value)

    return [
        PricePoint(timestamp=bucket_key, value=upper_median(values), volume=0.0)
        for bucket_key, values in sorted(buckets.items())
    ]
