"""
Decoder for Uniswap V2 style ``Sync(uint112 reserve0, uint112 reserve1)`` logs.
"""

import logging
from typing import Any, Mapping, Optional, Union

from pulsechain_price_collector.models.core import LogRecord, Outcome, ReservePair
from pulsechain_price_collector.utils.parsing import parse_hex_word

logger = logging.getLogger(__name__)

# keccak256("Sync(uint112,uint112)")
SYNC_EVENT_TOPIC = "0x1c411e9a96e071241c2f21f7726b17ae89e3cab4c78be50e062b03a9fffbbad1"

LogLike = Union[LogRecord, Mapping[str, Any]]


def _topics(log: LogLike):
    if isinstance(log, LogRecord):
        return log.topics
    return log.get("topics")


def _data(log: LogLike):
    if isinstance(log, LogRecord):
        return log.data
    return log.get("data")


def is_sync_log(log: LogLike) -> bool:
    """Return True if the first topic is the Sync event signature (case-insensitive)."""
    topics = _topics(log)
    if not topics:
        return False
    topic0 = topics[0]
    return isinstance(topic0, str) and topic0.lower() == SYNC_EVENT_TOPIC


def decode_sync_log(log: LogLike) -> Outcome[ReservePair]:
    """
    Decode the two reserves from a Sync log.

    The data blob holds reserve0 and reserve1 as consecutive 32-byte
    big-endian words. Non-matching topics, empty data and malformed blobs
    all produce a skipped outcome rather than an exception.
    """
    if not is_sync_log(log):
        return Outcome.skip(log, "not a Sync event")

    data = _data(log)
    if not data or data == "0x":
        return Outcome.skip(log, "empty data")

    try:
        reserve0 = parse_hex_word(data, 0)
        reserve1 = parse_hex_word(data, 1)
    except (TypeError, ValueError) as e:
        logger.debug(f"Error parsing Sync event: {e}")
        return Outcome.skip(log, f"malformed data: {e}")

    return Outcome.success(ReservePair(reserve0=reserve0, reserve1=reserve1))


def parse_sync_event(log: LogLike) -> Optional[ReservePair]:
    """Decode a Sync log, returning None when the log yields no event."""
    return decode_sync_log(log).value
