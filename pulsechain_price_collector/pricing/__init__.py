"""
Price reconstruction stages: decode, timestamp, price, filter, bucket.
"""

from .aggregation import BUCKET_SIZES_MS, aggregate_into_buckets, get_bucket_size
from .anomaly import DEFAULT_SPIKE_THRESHOLD, filter_anomalies
from .decoder import SYNC_EVENT_TOPIC, decode_sync_log, is_sync_log, parse_sync_event
from .series import (
    TIME_RANGE_OFFSETS_MS,
    build_price_points,
    calculate_price,
    decode_sync_events,
    get_from_time,
    normalize_time_range,
)
from .timestamps import DEFAULT_BATCH_SIZE, parse_block_timestamp, resolve_block_timestamps

__all__ = [
    "BUCKET_SIZES_MS",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_SPIKE_THRESHOLD",
    "SYNC_EVENT_TOPIC",
    "TIME_RANGE_OFFSETS_MS",
    "aggregate_into_buckets",
    "build_price_points",
    "calculate_price",
    "decode_sync_events",
    "decode_sync_log",
    "filter_anomalies",
    "get_bucket_size",
    "get_from_time",
    "is_sync_log",
    "normalize_time_range",
    "parse_block_timestamp",
    "parse_sync_event",
    "resolve_block_timestamps",
]
