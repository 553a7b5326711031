"""
Core data models for the on-chain price reconstruction pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pulsechain_price_collector.utils.parsing import parse_int

T = TypeVar("T")


class TimeRange(str, Enum):
    """Supported chart time ranges."""
    ONE_HOUR = "1H"
    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    ONE_YEAR = "1Y"
    ALL = "ALL"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


@dataclass
class LogRecord:
    """A raw event log as returned by the explorer API."""
    topics: List[Optional[str]]
    data: Optional[str]
    block_number: Optional[int]
    transaction_hash: str = ""

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "LogRecord":
        """
        Build a LogRecord from an explorer response item.

        ``block_number`` arrives as a JSON number or as a decimal/hex string
        depending on the endpoint; anything unparseable becomes None.
        """
        topics = item.get("topics") or []
        if not isinstance(topics, list):
            topics = []

        tx_hash = item.get("transaction_hash") or item.get("tx_hash") or ""
        if isinstance(tx_hash, dict):
            tx_hash = tx_hash.get("hash", "")

        return cls(
            topics=topics,
            data=item.get("data"),
            block_number=parse_int(item.get("block_number", item.get("blockNumber"))),
            transaction_hash=str(tx_hash),
        )


@dataclass
class LogPage:
    """One page of logs for an address."""
    items: List[LogRecord]
    has_next_page: bool
    # explorer cursor for requesting the following page
    next_page_params: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ReservePair:
    """Raw reserves decoded from a Sync event."""
    reserve0: int
    reserve1: int


@dataclass
class ReserveSyncEvent:
    """A decoded Sync event, enriched with its block timestamp (ms epoch)."""
    block_number: int
    transaction_hash: str
    reserve0: int
    reserve1: int
    timestamp: Optional[int] = None


@dataclass
class PricePoint:
    """Price of token0 denominated in token1 at a point in time (ms epoch)."""
    timestamp: int
    value: float
    volume: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "value": self.value, "volume": self.volume}


@dataclass(frozen=True)
class PairMetadata:
    """Token addresses and decimals of an AMM pair, fixed for one reconstruction."""
    pair_address: str
    token0_address: str
    token1_address: str
    token0_decimals: int
    token1_decimals: int


@dataclass(frozen=True)
class PairReserves:
    """Current reserves returned by ``getReserves()``."""
    reserve0: int
    reserve1: int
    block_timestamp_last: int


@dataclass(frozen=True)
class Skipped:
    """An input item that contributed nothing, and why."""
    item: Any
    reason: str


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Per-item result: either a value or a Skipped record."""
    value: Optional[T] = None
    skipped: Optional[Skipped] = None

    @property
    def ok(self) -> bool:
        return self.skipped is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def skip(cls, item: Any, reason: str) -> "Outcome[T]":
        return cls(skipped=Skipped(item=item, reason=reason))


@dataclass
class ReconstructionResult:
    """Bucketed price series plus diagnostics for one reconstruction run."""
    pair_address: str
    time_range: str
    points: List[PricePoint] = field(default_factory=list)
    metadata: Optional[PairMetadata] = None
    from_time: int = 0
    pages_fetched: int = 0
    logs_scanned: int = 0
    sync_logs: int = 0
    unique_blocks: int = 0
    resolved_blocks: int = 0
    raw_points: int = 0
    filtered_points: int = 0
    truncated: bool = False
    deadline_exceeded: bool = False
    elapsed_seconds: float = 0.0
    skipped: Dict[str, List[Skipped]] = field(default_factory=dict)

    def add_skipped(self, stage: str, skipped: List[Skipped]) -> None:
        if skipped:
            self.skipped.setdefault(stage, []).extend(skipped)

    def skipped_count(self, stage: Optional[str] = None) -> int:
        if stage is not None:
            return len(self.skipped.get(stage, []))
        return sum(len(items) for items in self.skipped.values())

    def summary(self) -> Dict[str, Any]:
        """Diagnostics as a JSON-serializable dict."""
        return {
            "pair_address": self.pair_address,
            "time_range": self.time_range,
            "from_time": self.from_time,
            "pages_fetched": self.pages_fetched,
            "logs_scanned": self.logs_scanned,
            "sync_logs": self.sync_logs,
            "unique_blocks": self.unique_blocks,
            "resolved_blocks": self.resolved_blocks,
            "raw_points": self.raw_points,
            "filtered_points": self.filtered_points,
            "aggregated_points": len(self.points),
            "truncated": self.truncated,
            "deadline_exceeded": self.deadline_exceeded,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "skipped": {stage: len(items) for stage, items in self.skipped.items()},
        }
