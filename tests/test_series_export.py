"""
Tests for price series export.
"""

import json

import pandas as pd
import pytest

from pulsechain_price_collector.models.core import PricePoint
from pulsechain_price_collector.utils.series_export import (
    SERIES_COLUMNS,
    export_series,
    series_to_dataframe,
)


@pytest.fixture
def points():
    return [
        PricePoint(timestamp=1704067200000, value=1.5),
        PricePoint(timestamp=1704067500000, value=1.75),
    ]


class TestSeriesToDataFrame:

    def test_columns_and_values(self, points):
        df = series_to_dataframe(points)

        assert list(df.columns) == SERIES_COLUMNS
        assert df["value"].tolist() == [1.5, 1.75]
        assert df["volume"].tolist() == [0.0, 0.0]
        assert df["datetime"].iloc[0] == pd.Timestamp("2024-01-01T00:00:00", tz="UTC")

    def test_empty_series(self):
        df = series_to_dataframe([])

        assert df.empty
        assert list(df.columns) == SERIES_COLUMNS


class TestExportSeries:

    def test_csv(self, points, tmp_path):
        path = export_series(points, tmp_path / "out" / "prices.csv")

        df = pd.read_csv(path)
        assert df["timestamp"].tolist() == [1704067200000, 1704067500000]
        assert df["value"].tolist() == [1.5, 1.75]

    def test_json(self, points, tmp_path):
        path = export_series(points, tmp_path / "prices.json", fmt="JSON")

        records = json.loads(path.read_text())
        assert [r["timestamp"] for r in records] == [1704067200000, 1704067500000]
        assert records[0]["datetime"].startswith("2024-01-01T00:00:00")

    def test_unsupported_format(self, points, tmp_path):
        with pytest.raises(ValueError, match="Unsupported export format"):
            export_series(points, tmp_path / "prices.xlsx", fmt="xlsx")
