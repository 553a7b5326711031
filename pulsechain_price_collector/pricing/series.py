"""
Conversion of decoded Sync events into a decimal-adjusted price series.
"""

import logging
from decimal import Decimal, InvalidOperation, Overflow, localcontext
from typing import Dict, Iterable, List, Mapping, Tuple, Union

from pulsechain_price_collector.models.core import (
    LogRecord, PricePoint, ReserveSyncEvent, Skipped, TimeRange
)
from pulsechain_price_collector.pricing.decoder import decode_sync_log

logger = logging.getLogger(__name__)

_HOUR_MS = 60 * 60 * 1000
_DAY_MS = 24 * _HOUR_MS

# ALL is capped at two years rather than unbounded
TIME_RANGE_OFFSETS_MS: Dict[str, int] = {
    TimeRange.ONE_HOUR.value: _HOUR_MS,
    TimeRange.ONE_DAY.value: _DAY_MS,
    TimeRange.ONE_WEEK.value: 7 * _DAY_MS,
    TimeRange.ONE_MONTH.value: 30 * _DAY_MS,
    TimeRange.ONE_YEAR.value: 365 * _DAY_MS,
    TimeRange.ALL.value: 730 * _DAY_MS,
}

# 2**256 has 78 decimal digits
_PRICE_PRECISION = 90


def normalize_time_range(time_range: Union[str, TimeRange]) -> str:
    """
    Canonical keyword for a time range (case-insensitive).

    Raises:
        ValueError: If the keyword is not a supported time range
    """
    key = time_range.value if isinstance(time_range, TimeRange) else str(time_range).strip().upper()
    if key not in TIME_RANGE_OFFSETS_MS:
        raise ValueError(
            f"Unsupported time range '{time_range}'. Expected one of: {', '.join(TIME_RANGE_OFFSETS_MS)}"
        )
    return key


def get_from_time(time_range: Union[str, TimeRange], now_ms: int) -> int:
    """
    Lower bound (ms epoch) of the window for a time range keyword.

    Raises:
        ValueError: If the keyword is not a supported time range
    """
    return now_ms - TIME_RANGE_OFFSETS_MS[normalize_time_range(time_range)]


def calculate_price(reserve0: int, reserve1: int, token0_decimals: int, token1_decimals: int) -> float:
    """
    Price of token0 in token1: ``(reserve1 / 10**d1) / (reserve0 / 10**d0)``.

    Returns 0.0 when the adjusted reserve0 is zero or the decimals put the
    result outside the decimal exponent range.
    """
    with localcontext() as ctx:
        ctx.prec = _PRICE_PRECISION
        try:
            adjusted0 = Decimal(reserve0).scaleb(-token0_decimals)
            adjusted1 = Decimal(reserve1).scaleb(-token1_decimals)
            if adjusted0 <= 0:
                return 0.0
            return float(adjusted1 / adjusted0)
        except (InvalidOperation, Overflow) as e:
            logger.warning(f"Cannot price reserves with decimals {token0_decimals}/{token1_decimals}: {e!r}")
            return 0.0


def decode_sync_events(logs: Iterable[LogRecord]) -> Tuple[List[ReserveSyncEvent], List[Skipped]]:
    """Decode Sync logs into events, skipping undecodable logs and logs without a block number."""
    events: List[ReserveSyncEvent] = []
    skipped: List[Skipped] = []

    for log in logs:
        outcome = decode_sync_log(log)
        if not outcome.ok:
            skipped.append(outcome.skipped)
            continue

        if log.block_number is None:
            skipped.append(Skipped(item=log, reason="missing block number"))
            continue

        events.append(ReserveSyncEvent(
            block_number=log.block_number,
            transaction_hash=log.transaction_hash,
            reserve0=outcome.value.reserve0,
            reserve1=outcome.value.reserve1,
        ))

    return events, skipped


def build_price_points(
    events: Iterable[ReserveSyncEvent],
    block_timestamps: Mapping[int, int],
    token0_decimals: int,
    token1_decimals: int,
    from_time: int,
) -> Tuple[List[PricePoint], List[Skipped]]:
    """
    Timestamp events, keep those inside the window and convert them to prices.

    Events whose block has no resolved timestamp, or whose timestamp is
    before ``from_time``, are skipped. The surviving points are ordered by
    timestamp ascending and carry ``volume=0``.

    Returns:
        Tuple of (price points, skipped events)
    """
    in_range: List[ReserveSyncEvent] = []
    skipped: List[Skipped] = []

    for event in events:
        timestamp = block_timestamps.get(event.block_number)
        if timestamp is None:
            skipped.append(Skipped(item=event, reason="block timestamp unresolved"))
            continue
        if timestamp < from_time:
            skipped.append(Skipped(item=event, reason="outside time range"))
            continue
        event.timestamp = timestamp
        in_range.append(event)

    in_range.sort(key=lambda e: e.timestamp)

    points = [
        PricePoint(
            timestamp=event.timestamp,
            value=calculate_price(event.reserve0, event.reserve1, token0_decimals, token1_decimals),
            volume=0.0,
        )
        for event in in_range
    ]
    return points, skipped
