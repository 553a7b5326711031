"""
On-chain price history reconstruction from AMM Sync events.
"""

import asyncio
import time
from typing import Callable, List, Optional, Union

from pulsechain_price_collector.clients.pulsechain_client import BasePulseChainClient
from pulsechain_price_collector.config.models import ReconstructionConfig
from pulsechain_price_collector.models.core import (
    LogRecord, PairMetadata, PricePoint, ReconstructionResult, Skipped, TimeRange
)
from pulsechain_price_collector.pricing.aggregation import aggregate_into_buckets
from pulsechain_price_collector.pricing.anomaly import filter_anomalies
from pulsechain_price_collector.pricing.decoder import is_sync_log
from pulsechain_price_collector.pricing.series import (
    build_price_points, calculate_price, decode_sync_events, get_from_time, normalize_time_range
)
from pulsechain_price_collector.pricing.timestamps import resolve_block_timestamps
from pulsechain_price_collector.utils.error_handling import PairMetadataError
from pulsechain_price_collector.utils.structured_logging import (
    ContextualLogger, LogContext, get_logger, with_correlation_id
)


class OnChainPriceCollector:
    """
    Rebuilds a pair's price history from its Sync events.

    The collector holds no per-call state, so one instance can serve
    concurrent reconstructions as long as the client can. Each call:

    1. resolves token addresses and decimals of the pair (fatal on failure),
    2. scans log pages sequentially up to ``max_pages``,
    3. resolves timestamps of the referenced blocks in concurrent batches,
    4. converts events inside the window to prices,
    5. drops invalid prices and spikes,
    6. reduces the series to median prices per time bucket.

    Everything after step 1 degrades to partial or empty data instead of
    raising.
    """

    def __init__(
        self,
        client: BasePulseChainClient,
        config: Optional[ReconstructionConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            client: Explorer/RPC client used for all chain reads
            config: Reconstruction tuning, defaults when omitted
            clock: Returns the current time in seconds since the epoch
        """
        self.client = client
        self.config = config or ReconstructionConfig()
        self._clock = clock

    def _get_logger(self, operation: str, pair_address: str, time_range: Optional[str] = None) -> ContextualLogger:
        return get_logger(
            f"{__name__}.{self.__class__.__name__}",
            LogContext(operation=operation, pair_address=pair_address, time_range=time_range)
        )

    async def get_pair_metadata(self, pair_address: str) -> PairMetadata:
        """
        Resolve token addresses and decimals of a pair.

        Decimals fall back to the configured default when the token call
        fails; address lookups have no fallback.

        Raises:
            PairMetadataError: If either token address cannot be read
        """
        try:
            token0_address, token1_address = await asyncio.gather(
                self.client.get_token0_from_pair(pair_address),
                self.client.get_token1_from_pair(pair_address),
            )
        except Exception as e:
            raise PairMetadataError(pair_address, e) from e

        token0_decimals, token1_decimals = await asyncio.gather(
            self.client.get_token_decimals(token0_address, default=self.config.default_decimals),
            self.client.get_token_decimals(token1_address, default=self.config.default_decimals),
        )

        return PairMetadata(
            pair_address=pair_address,
            token0_address=token0_address,
            token1_address=token1_address,
            token0_decimals=token0_decimals,
            token1_decimals=token1_decimals,
        )

    async def _fetch_sync_logs(
        self,
        pair_address: str,
        result: ReconstructionResult,
        should_stop: Callable[[], bool],
        log: ContextualLogger,
    ) -> List[LogRecord]:
        """Scan log pages in order and keep the Sync logs."""
        page_size = self.config.page_size
        sync_logs: List[LogRecord] = []
        cursor = None

        for page in range(1, self.config.max_pages + 1):
            if should_stop():
                log.warning(f"Deadline reached before page {page}, stopping log scan")
                result.deadline_exceeded = True
                break

            try:
                log_page = await self.client.get_logs(pair_address, page, page_size, cursor=cursor)
            except Exception as e:
                log.warning(f"Error fetching page {page}, treating as end of data: {e}")
                result.add_skipped("pages", [Skipped(item=page, reason=str(e))])
                break

            items = log_page.items
            matched = [item for item in items if is_sync_log(item)]
            sync_logs.extend(matched)
            result.pages_fetched += 1
            result.logs_scanned += len(items)

            log.info(f"Page {page}: found {len(matched)} Sync events ({len(items)} total logs)")

            if len(items) < page_size or not log_page.has_next_page:
                break
            cursor = log_page.next_page_params
        else:
            result.truncated = True
            log.warning(
                f"Stopped after {self.config.max_pages} pages; older Sync events were not scanned"
            )

        return sync_logs

    def _finish(self, result: ReconstructionResult, started: float, log: ContextualLogger) -> ReconstructionResult:
        result.elapsed_seconds = time.monotonic() - started
        log.info(
            f"Price reconstruction complete in {result.elapsed_seconds:.2f}s",
            extra_context=result.summary()
        )
        return result

    @with_correlation_id()
    async def reconstruct(self, pair_address: str, time_range: Union[str, TimeRange]) -> ReconstructionResult:
        """
        Reconstruct the bucketed price history of a pair with diagnostics.

        An unsupported keyword is reconstructed over the ``ALL`` window with
        the default bucket width.

        Args:
            pair_address: Uniswap V2 style pair contract address
            time_range: One of 1H, 1D, 1W, 1M, 1Y, ALL

        Returns:
            ReconstructionResult whose ``points`` is the bucketed series

        Raises:
            PairMetadataError: If the pair's token addresses cannot be read
        """
        try:
            range_key = normalize_time_range(time_range)
            window = range_key
        except ValueError:
            range_key = str(time_range).strip().upper()
            window = TimeRange.ALL.value

        log = self._get_logger("reconstruct", pair_address, range_key)
        if window != range_key:
            log.warning(f"Unsupported time range '{range_key}', using the ALL window and default buckets")
        started = time.monotonic()
        deadline = None
        if self.config.max_duration_seconds is not None:
            deadline = started + self.config.max_duration_seconds

        def should_stop() -> bool:
            return deadline is not None and time.monotonic() >= deadline

        result = ReconstructionResult(pair_address=pair_address, time_range=range_key)
        log.info("Starting on-chain price reconstruction")

        try:
            metadata = await self.get_pair_metadata(pair_address)
        except PairMetadataError as e:
            log.error(str(e))
            raise
        result.metadata = metadata
        log.info(
            f"Token0: {metadata.token0_address} ({metadata.token0_decimals} decimals), "
            f"Token1: {metadata.token1_address} ({metadata.token1_decimals} decimals)"
        )

        result.from_time = get_from_time(window, int(self._clock() * 1000))

        sync_logs = await self._fetch_sync_logs(pair_address, result, should_stop, log)
        result.sync_logs = len(sync_logs)
        if not sync_logs:
            log.warning("No Sync events found")
            return self._finish(result, started, log)

        block_numbers = [item.block_number for item in sync_logs if item.block_number is not None]
        result.unique_blocks = len(set(block_numbers))
        log.info(f"Resolving timestamps for {result.unique_blocks} unique blocks")

        timestamps, skipped_blocks = await resolve_block_timestamps(
            self.client.get_block,
            block_numbers,
            batch_size=self.config.block_batch_size,
            should_stop=should_stop,
        )
        result.resolved_blocks = len(timestamps)
        result.add_skipped("blocks", skipped_blocks)
        if any(item.reason == "deadline exceeded" for item in skipped_blocks):
            result.deadline_exceeded = True
        log.info(f"Resolved {result.resolved_blocks}/{result.unique_blocks} block timestamps")

        events, skipped_logs = decode_sync_events(sync_logs)
        result.add_skipped("decode", skipped_logs)

        points, skipped_events = build_price_points(
            events,
            timestamps,
            metadata.token0_decimals,
            metadata.token1_decimals,
            result.from_time,
        )
        result.add_skipped("events", skipped_events)
        result.raw_points = len(points)
        log.info(f"Parsed {len(points)} valid Sync events in time range")

        if not points:
            log.warning("No Sync events found in the requested time range")
            return self._finish(result, started, log)

        filtered = filter_anomalies(points, self.config.spike_threshold)
        result.filtered_points = len(filtered)
        log.info(f"Filtered to {len(filtered)} price points (removed {len(points) - len(filtered)} anomalies)")

        result.points = aggregate_into_buckets(filtered, range_key)
        log.info(f"Aggregated to {len(result.points)} final data points")

        return self._finish(result, started, log)

    async def get_price_history(self, pair_address: str, time_range: Union[str, TimeRange]) -> List[PricePoint]:
        """Reconstruct the bucketed price history of a pair."""
        result = await self.reconstruct(pair_address, time_range)
        return result.points

    async def get_spot_price(self, pair_address: str) -> PricePoint:
        """
        Current token1-per-token0 price from the pair's reserves.

        The point is stamped with the reserves' last update time.
        """
        metadata = await self.get_pair_metadata(pair_address)
        reserves = await self.client.get_reserves_from_pair(pair_address)

        return PricePoint(
            timestamp=reserves.block_timestamp_last * 1000,
            value=calculate_price(
                reserves.reserve0, reserves.reserve1,
                metadata.token0_decimals, metadata.token1_decimals
            ),
            volume=0.0,
        )
