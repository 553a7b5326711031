"""
Block timestamp resolution in bounded concurrent batches.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pulsechain_price_collector.models.core import Outcome, Skipped
from pulsechain_price_collector.utils.parsing import parse_int

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_block_timestamp(value: Any) -> Optional[int]:
    """
    Convert a block timestamp to milliseconds since the epoch.

    Accepts ISO-8601 strings (``Z`` suffix and any fraction length) as
    returned by the explorer, or integer/hex seconds as returned by RPC.
    """
    if value is None or value == "":
        return None

    if isinstance(value, str) and ("T" in value or "-" in value[1:]):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # fromisoformat only accepts 3 or 6 fractional digits
        text = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)

    seconds = parse_int(value)
    if seconds is None:
        return None
    return seconds * 1000


async def _lookup(get_block: Callable, block_number: int) -> Outcome[Tuple[int, int]]:
    try:
        block = await get_block(str(block_number))
    except Exception as e:
        logger.warning(f"Failed to fetch block {block_number}: {e}")
        return Outcome.skip(block_number, f"lookup failed: {e}")

    if not isinstance(block, dict):
        logger.warning(f"Block {block_number} lookup returned {type(block).__name__}")
        return Outcome.skip(block_number, "malformed block")

    timestamp = parse_block_timestamp(block.get("timestamp"))
    if timestamp is None:
        logger.warning(f"Block {block_number} has no usable timestamp")
        return Outcome.skip(block_number, "missing timestamp")

    return Outcome.success((block_number, timestamp))


async def resolve_block_timestamps(
    get_block: Callable,
    block_numbers: Iterable[int],
    batch_size: int = DEFAULT_BATCH_SIZE,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Tuple[Dict[int, int], List[Skipped]]:
    """
    Resolve block numbers to ms-epoch timestamps.

    Unique block numbers are looked up in batches of ``batch_size``; lookups
    within a batch run concurrently and batches run one after another. A
    failed lookup only omits that block. ``should_stop`` is checked before
    each batch; blocks of batches that were never started are reported as
    skipped.

    Args:
        get_block: Coroutine function taking a block number string and
            returning a dict with a ``timestamp`` field
        block_numbers: Block numbers to resolve (duplicates are ignored)
        batch_size: Maximum number of lookups in flight
        should_stop: Optional callable that ends resolution early

    Returns:
        Tuple of (block number -> timestamp ms, skipped blocks)
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    unique_blocks = list(dict.fromkeys(block_numbers))
    timestamps: Dict[int, int] = {}
    skipped: List[Skipped] = []

    for start in range(0, len(unique_blocks), batch_size):
        if should_stop is not None and should_stop():
            remaining = unique_blocks[start:]
            logger.warning(f"Stopping timestamp resolution with {len(remaining)} blocks unresolved")
            skipped.extend(Skipped(item=block, reason="deadline exceeded") for block in remaining)
            break

        batch = unique_blocks[start:start + batch_size]
        outcomes = await asyncio.gather(*(_lookup(get_block, block) for block in batch))

        for outcome in outcomes:
            if outcome.ok:
                block_number, timestamp = outcome.value
                timestamps[block_number] = timestamp
            else:
                skipped.append(outcome.skipped)

        logger.debug(f"Fetched {start + len(batch)}/{len(unique_blocks)} blocks")

    return timestamps, skipped
