"""Tests for price bars, snapshots and the price refresh."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import write_json

from fundsheet.core.exceptions import ExternalServiceError
from fundsheet.database import schema
from fundsheet.database.tables import MemoryWorkbook
from fundsheet.domain.price import PriceBar
from fundsheet.services.prices import (
    MockPriceSource,
    PriceConfig,
    compute_price_snapshot,
    parse_bars,
    refresh_prices,
)


UPDATED = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def bar(day: int, close: float, volume: int = 100) -> PriceBar:
    return PriceBar(date=date(2024, 1, 1) + timedelta(days=day), close=close, volume=volume)


def bar_dicts(count: int, start: date = date(2024, 1, 1)) -> list[dict]:
    return [
        {"date": (start + timedelta(days=i)).isoformat(), "close": 10 + i, "volume": 100}
        for i in range(count)
    ]


class TestParseBars:
    def test_accepts_both_key_styles_and_sorts(self):
        bars = parse_bars([
            {"Date": "2024-01-03", "Close": "12.5", "Volume": 10},
            {"date": "2024-01-02", "close": 11, "volume": None},
        ])

        assert [b.date for b in bars] == [date(2024, 1, 2), date(2024, 1, 3)]
        assert bars[0].volume == 0
        assert bars[1].close == 12.5

    def test_drops_invalid_bars(self):
        bars = parse_bars([
            {"date": "not a date", "close": 1},
            {"date": "2024-01-02", "close": -1},
            {"date": "2024-01-02"},
            "junk",
            {"date": "2024-01-03", "close": 2, "volume": 5},
        ])

        assert len(bars) == 1
        assert bars[0].traded_value == 10


class TestSnapshot:
    """Last close and Avg30Value."""

    def test_average_skips_zero_volume(self):
        bars = [bar(0, 10, 100), bar(1, 11, 0), bar(2, 12, 200)]

        snapshot = compute_price_snapshot("AAA.PSE", bars, "mock", UPDATED)

        assert snapshot.last_close == 12.0
        assert snapshot.volume == 200
        assert snapshot.price_date == date(2024, 1, 3)
        assert snapshot.avg30_value == pytest.approx(1700.0)
        assert snapshot.bars_used == 2
        assert snapshot.stats_row() == ["AAA.PSE", 12.0, pytest.approx(1700.0), 2, UPDATED]
        assert snapshot.latest_row() == ["AAA.PSE", 12.0, 200, date(2024, 1, 3), "mock", UPDATED]

    def test_only_last_thirty_bars(self):
        bars = [bar(i, i + 1, 1) for i in range(40)]

        snapshot = compute_price_snapshot("AAA.PSE", bars, updated_at=UPDATED)

        assert snapshot.avg30_value == pytest.approx(25.5)
        assert snapshot.bars_used == 30
        assert snapshot.last_close == 40.0

    def test_no_traded_bars(self):
        snapshot = compute_price_snapshot("AAA.PSE", [bar(0, 5, 0)], updated_at=UPDATED)

        assert snapshot.last_close == 5.0
        assert snapshot.avg30_value is None
        assert snapshot.bars_used == 0

    def test_no_bars(self):
        snapshot = compute_price_snapshot("AAA.PSE", [], updated_at=UPDATED)
        assert snapshot.last_close is None
        assert snapshot.avg30_value is None


class TestMockPriceSource:
    def test_symbol_and_base_file_names(self, tmp_path):
        write_json(tmp_path / "JFC.PSE.json", bar_dicts(3))
        write_json(tmp_path / "AC.json", bar_dicts(2))
        source = MockPriceSource(tmp_path)

        assert len(source.fetch_bars("JFC", 60)) == 3
        assert len(source.fetch_bars("AC.PSE", 60)) == 2
        assert source.fetch_bars("XYZ", 60) == []

    def test_keeps_lookback_tail(self, tmp_path):
        write_json(tmp_path / "JFC.PSE.json", bar_dicts(100))

        bars = MockPriceSource(tmp_path).fetch_bars("JFC.PSE", 40)

        assert len(bars) == 40
        assert bars[-1].close == 109


class TestRefreshPrices:
    def test_rebuilds_price_tables(self, tmp_path):
        write_json(tmp_path / "JFC.PSE.json", bar_dicts(3))
        write_json(tmp_path / "AC.json", bar_dicts(2))
        store = MemoryWorkbook()

        snapshots = refresh_prices(
            store, MockPriceSource(tmp_path), ["JFC", "AC", "XYZ"], PriceConfig(), UPDATED
        )

        assert [s.ticker for s in snapshots] == ["JFC.PSE", "AC.PSE"]
        latest = store.read_table(schema.PRICES_LATEST)
        stats = store.read_table(schema.PRICES_STATS)
        assert latest.header == schema.PRICES_LATEST_HEADER
        assert [r[0] for r in latest.rows] == ["JFC.PSE", "AC.PSE"]
        assert stats.rows[0] == ["JFC.PSE", 12.0, pytest.approx(1100.0), 3, UPDATED]
        assert len(store.read_table(schema.RAW_PRICES).rows) == 5

    def test_history_is_upserted_by_date(self, tmp_path):
        write_json(tmp_path / "JFC.PSE.json", bar_dicts(3))
        store = MemoryWorkbook()
        source = MockPriceSource(tmp_path)

        refresh_prices(store, source, ["JFC"], PriceConfig(), UPDATED)
        write_json(tmp_path / "JFC.PSE.json", bar_dicts(3, start=date(2024, 1, 2)))
        refresh_prices(store, source, ["JFC"], PriceConfig(), UPDATED)

        assert len(store.read_table(schema.RAW_PRICES).rows) == 4

    def test_failed_source_skips_ticker(self):
        class FailingSource:
            name = "api"

            def fetch_bars(self, ticker, lookback_days):
                raise ExternalServiceError("down")

        store = MemoryWorkbook()

        assert refresh_prices(store, FailingSource(), ["JFC"], PriceConfig(), UPDATED) == []
        assert store.read_table(schema.PRICES_STATS).rows == []
