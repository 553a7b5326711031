"""
Data models for the price reconstruction pipeline.
"""

from .core import (
    LogPage,
    LogRecord,
    Outcome,
    PairMetadata,
    PairReserves,
    PricePoint,
    ReconstructionResult,
    ReservePair,
    ReserveSyncEvent,
    Skipped,
    TimeRange,
)

__all__ = [
    "LogPage",
    "LogRecord",
    "Outcome",
    "PairMetadata",
    "PairReserves",
    "PricePoint",
    "ReconstructionResult",
    "ReservePair",
    "ReserveSyncEvent",
    "Skipped",
    "TimeRange",
]
