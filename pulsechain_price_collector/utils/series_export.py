"""
Export of price series to pandas DataFrames, CSV and JSON.
"""

import logging
from pathlib import Path
from typing import List, Union

import pandas as pd

from pulsechain_price_collector.models.core import PricePoint

logger = logging.getLogger(__name__)

SERIES_COLUMNS = ["timestamp", "datetime", "value", "volume"]
SUPPORTED_FORMATS = ("csv", "json")


def series_to_dataframe(points: List[PricePoint]) -> pd.DataFrame:
    """
    Convert a price series to a DataFrame.

    Columns: ``timestamp`` (ms epoch), ``datetime`` (UTC), ``value``, ``volume``.
    An empty series gives an empty frame with the same columns.
    """
    if not points:
        return pd.DataFrame(columns=SERIES_COLUMNS)

    df = pd.DataFrame([point.to_dict() for point in points])
    df["datetime"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df[SERIES_COLUMNS]


def export_series(points: List[PricePoint], output_path: Union[str, Path], fmt: str = "csv") -> Path:
    """
    Write a price series to disk.

    Args:
        points: Series to write
        output_path: Destination file; parent directories are created
        fmt: ``csv`` or ``json`` (list of records, ISO datetimes)

    Returns:
        Path that was written

    Raises:
        ValueError: If the format is not supported
    """
    fmt = fmt.lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}. Expected one of {SUPPORTED_FORMATS}")

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = series_to_dataframe(points)
    if fmt == "csv":
        df.to_csv(path, index=False)
    else:
        df.to_json(path, orient="records", date_format="iso", indent=2)

    logger.info(f"Exported {len(df)} price points to {path}")
    return path
