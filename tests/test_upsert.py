"""Tests for the composite-key upsert engine."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from fundsheet.core.exceptions import MissingColumnError, StaleKeyIndexError
from fundsheet.database.tables import MemoryWorkbook, Table
from fundsheet.services.upsert import (
    TableArena,
    build_key_index,
    make_key,
    normalize_key_part,
    upsert_records,
    upsert_rows,
    upsert_table,
)


class CountingStore(MemoryWorkbook):
    """MemoryWorkbook that counts table writes."""

    def __init__(self, *args, **kwargs):
        self.writes = 0
        super().__init__(*args, **kwargs)

    def write_table(self, name, header, rows):
        self.writes += 1
        super().write_table(name, header, rows)


@pytest.fixture
def metrics_store() -> CountingStore:
    store = CountingStore({
        "Calculated_Metrics": Table(
            ["Ticker", "OpPS_5Y_CAGR", "Notes"],
            [["MSFT", 0.12, "core holding"]],
        )
    })
    store.writes = 0
    return store


class TestKeyNormalization:
    def test_parts(self):
        assert normalize_key_part(None) == ""
        assert normalize_key_part("  AAA ") == "AAA"
        assert normalize_key_part(2020.0) == "2020"
        assert normalize_key_part(2020) == "2020"
        assert normalize_key_part(1.5) == "1.5"
        assert normalize_key_part(date(2023, 12, 31)) == "2023-12-31"
        assert normalize_key_part(datetime(2023, 12, 31)) == "2023-12-31"
        assert normalize_key_part(datetime(2023, 12, 31, 9, 30)) == "2023-12-31T09:30:00"

    def test_keys_are_structural(self):
        # Joining with a separator would make these collide
        assert make_key(["A|B", "C"]) != make_key(["A", "B|C"])

    def test_year_read_back_as_float_still_matches(self):
        assert make_key(["AAA", 2020.0]) == make_key(["AAA", "2020"])


class TestUpsertRecords:
    """Merging records into an existing table."""

    def test_updates_existing_and_appends_new(self, metrics_store):
        result = upsert_records(
            metrics_store,
            "Calculated_Metrics",
            ["Ticker"],
            [
                {"Ticker": "MSFT", "OpPS_5Y_CAGR": 0.15},
                {"Ticker": "AAPL", "OpPS_5Y_CAGR": 0.10},
            ],
        )

        assert (result.updated, result.appended, result.skipped) == (1, 1, 0)
        assert result.written == 2
        table = metrics_store.read_table("Calculated_Metrics")
        assert table.header == ["Ticker", "OpPS_5Y_CAGR", "Notes"]
        assert table.rows == [
            ["MSFT", 0.15, "core holding"],
            ["AAPL", 0.10, None],
        ]
        assert metrics_store.writes == 1

    def test_idempotent(self, metrics_store):
        records = [{"Ticker": "MSFT", "OpPS_5Y_CAGR": 0.15}, {"Ticker": "AAPL", "OpPS_5Y_CAGR": 0.1}]
        upsert_records(metrics_store, "Calculated_Metrics", ["Ticker"], records)
        first = metrics_store.read_table("Calculated_Metrics")

        result = upsert_records(metrics_store, "Calculated_Metrics", ["Ticker"], records)

        assert (result.updated, result.appended) == (2, 0)
        assert metrics_store.read_table("Calculated_Metrics") == first

    def test_new_columns_are_appended_to_header(self, metrics_store):
        upsert_records(
            metrics_store,
            "Calculated_Metrics",
            ["Ticker"],
            [{"Ticker": "MSFT", "EPS_5Y_CAGR": 0.2}],
        )

        table = metrics_store.read_table("Calculated_Metrics")
        assert table.header == ["Ticker", "OpPS_5Y_CAGR", "Notes", "EPS_5Y_CAGR"]
        assert table.rows == [["MSFT", 0.12, "core holding", 0.2]]

    def test_explicit_columns_limit_what_is_written(self, metrics_store):
        upsert_records(
            metrics_store,
            "Calculated_Metrics",
            ["Ticker"],
            [{"Ticker": "MSFT", "OpPS_5Y_CAGR": 0.3, "Notes": "overwritten?"}],
            columns=["OpPS_5Y_CAGR"],
        )

        assert metrics_store.read_table("Calculated_Metrics").rows == [["MSFT", 0.3, "core holding"]]

    def test_creates_missing_table(self):
        store = MemoryWorkbook()
        result = upsert_records(store, "New", ["Ticker"], [{"Ticker": "AAA", "X": 1}])

        assert result.appended == 1
        assert store.read_table("New").header == ["Ticker", "X"]
        assert store.read_table("New").rows == [["AAA", 1]]


class TestUpsertTable:
    def test_empty_batch_does_not_write(self, metrics_store):
        result = upsert_table(metrics_store, "Calculated_Metrics", ["Ticker"], ["Ticker"], [])

        assert result.written == 0
        assert metrics_store.writes == 0

    def test_composite_key(self):
        store = MemoryWorkbook({
            "Raw": Table(
                ["Ticker", "FiscalYear", "Field", "Value"],
                [["AAA.PSE", 2022, "Revenue", 100.0], ["AAA.PSE", 2023, "Revenue", 110.0]],
            )
        })

        result = upsert_table(
            store,
            "Raw",
            ["Ticker", "FiscalYear", "Field"],
            ["Ticker", "FiscalYear", "Field", "Value"],
            [["AAA.PSE", 2023.0, "Revenue", 120.0], ["AAA.PSE", 2023, "NetIncome", 10.0]],
        )

        assert (result.updated, result.appended) == (1, 1)
        assert store.read_table("Raw").rows == [
            ["AAA.PSE", 2022, "Revenue", 100.0],
            ["AAA.PSE", 2023, "Revenue", 120.0],
            ["AAA.PSE", 2023, "NetIncome", 10.0],
        ]

    def test_duplicate_keys_in_batch_collapse_to_one_row(self):
        store = MemoryWorkbook()

        result = upsert_table(
            store,
            "T",
            ["Ticker"],
            ["Ticker", "Value"],
            [["AAA", 1], ["BBB", 2], ["AAA", 3]],
        )

        assert (result.updated, result.appended) == (1, 2)
        assert store.read_table("T").rows == [["AAA", 3], ["BBB", 2]]

    def test_blank_keys_are_skipped(self):
        store = MemoryWorkbook()

        result = upsert_table(
            store, "T", ["Ticker", "Year"], ["Ticker", "Year", "Value"],
            [["", None, 1], ["AAA", 2020, 2]],
        )

        assert result.skipped == 1
        assert store.read_table("T").rows == [["AAA", 2020, 2]]

    def test_existing_duplicate_keys_last_row_wins(self):
        """When the stored table already repeats a key, updates go to the last occurrence."""
        store = MemoryWorkbook({
            "T": Table(["Ticker", "Value"], [["AAA", 1], ["BBB", 2], ["AAA", 3]])
        })

        upsert_table(store, "T", ["Ticker"], ["Ticker", "Value"], [["AAA", 9]])

        assert store.read_table("T").rows == [["AAA", 1], ["BBB", 2], ["AAA", 9]]

    def test_table_without_key_columns_is_treated_as_new(self):
        store = MemoryWorkbook({"T": Table(["Name", "Value"], [["x", 1]])})

        result = upsert_table(store, "T", ["Ticker"], ["Ticker", "Value"], [["AAA", 5]])

        assert result.appended == 1
        table = store.read_table("T")
        assert table.header == ["Name", "Value", "Ticker"]
        assert table.rows == [["x", 1, None], [None, 5, "AAA"]]

    def test_key_column_missing_from_batch_header(self):
        store = MemoryWorkbook()

        with pytest.raises(MissingColumnError):
            upsert_table(store, "T", ["Ticker", "Year"], ["Ticker", "Value"], [["AAA", 1]])


class TestArenaAndIndex:
    def test_row_ids_are_stable_across_appends(self):
        arena = TableArena(["Ticker"], [["AAA"], ["BBB"]])
        first_ids = arena.row_ids()

        new_id = arena.append(["CCC"])

        assert arena.row_ids() == first_ids + [new_id]
        assert arena.row(first_ids[1]) == ["BBB"]

    def test_ensure_columns_pads_existing_rows(self):
        arena = TableArena(["Ticker"], [["AAA"]])

        added = arena.ensure_columns(["Ticker", "Value"])

        assert added == ["Value"]
        assert arena.to_rows() == [["AAA", None]]

    def test_index_counts_duplicates(self):
        arena = TableArena(["Ticker"], [["AAA"], ["AAA"], [""]])
        index = build_key_index(arena, ["Ticker"])

        assert len(index) == 1
        assert index.duplicate_keys == 1
        assert index.lookup(("AAA",)) == arena.row_ids()[1]

    def test_index_from_other_table_is_rejected(self):
        arena = TableArena(["Ticker"], [["AAA"]])
        other = TableArena(["Ticker"], [["AAA"]])
        index = build_key_index(other, ["Ticker"])

        with pytest.raises(StaleKeyIndexError):
            upsert_rows(arena, index, ["Ticker"], [["BBB"]])

    def test_index_is_stale_after_outside_append(self):
        arena = TableArena(["Ticker"], [["AAA"]])
        index = build_key_index(arena, ["Ticker"])
        arena.append(["ZZZ"])

        with pytest.raises(StaleKeyIndexError):
            upsert_rows(arena, index, ["Ticker"], [["BBB"]])

    def test_index_stays_valid_across_its_own_appends(self):
        arena = TableArena(["Ticker", "V"], [["AAA", 1]])
        index = build_key_index(arena, ["Ticker"])

        upsert_rows(arena, index, ["Ticker", "V"], [["BBB", 2]])
        result = upsert_rows(arena, index, ["Ticker", "V"], [["BBB", 3]])

        assert result.updated == 1
        assert arena.to_rows() == [["AAA", 1], ["BBB", 3]]
