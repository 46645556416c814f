"""Tests for domain models, ticker helpers and Control Center field config."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from fundsheet.core.exceptions import MissingColumnError
from fundsheet.database import schema
from fundsheet.database.tables import MemoryWorkbook, Table
from fundsheet.domain import FinancialSection, PriceBar, RawFinancialFact, base_ticker, normalize_ticker_symbol
from fundsheet.domain.ticker import unique_symbols
from fundsheet.services.field_config import (
    ANNUAL,
    QUARTERLY,
    active_fields,
    default_field_specs,
    load_field_specs,
    seed_control_center,
)
from fundsheet.services.universe import load_price_universe, load_ticker_universe


class TestTickers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("jfc", "JFC.PSE"),
            (" JFC ", "JFC.PSE"),
            ("JFC.PSE", "JFC.PSE"),
            ("aapl.us", "AAPL.US"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_ticker_symbol(value) == expected

    def test_custom_suffix(self):
        assert normalize_ticker_symbol("AAPL", ".us") == "AAPL.US"
        assert normalize_ticker_symbol("AAPL", "") == "AAPL"

    def test_base_and_unique(self):
        assert base_ticker("JFC.PSE") == "JFC"
        assert unique_symbols(["jfc", "JFC.PSE", "", None, "ac"]) == ["JFC.PSE", "AC.PSE"]


class TestFinancialSection:
    @pytest.mark.parametrize(
        "label", ["Income_Statement", "IncomeStatement", "income statement", " INCOME_STATEMENT"]
    )
    def test_loose_parse(self, label):
        assert FinancialSection.parse(label.strip()) is FinancialSection.INCOME_STATEMENT

    def test_unknown(self):
        assert FinancialSection.parse("Earnings") is None
        assert FinancialSection.parse(None) is None


class TestModels:
    def test_raw_fact_key_and_immutability(self):
        fact = RawFinancialFact(
            ticker="JFC.PSE",
            fiscal_year=2023,
            section=FinancialSection.BALANCE_SHEET,
            field="TotalDebt",
            value=5.0,
            source_date=date(2023, 12, 31),
        )

        assert fact.key == ("JFC.PSE", 2023, "Balance_Sheet", "TotalDebt")
        with pytest.raises(ValidationError):
            fact.value = 6.0

    def test_quarter_bounds(self):
        with pytest.raises(ValidationError):
            RawFinancialFact(
                ticker="JFC.PSE",
                fiscal_year=2023,
                fiscal_quarter=5,
                section=FinancialSection.INCOME_STATEMENT,
                field="Revenue",
            )

    def test_price_bar(self):
        bar = PriceBar.model_validate({"date": "2024-01-02", "close": "10.5", "volume": 3, "open": 9})
        assert bar.date == date(2024, 1, 2)
        assert bar.traded_value == 31.5


class TestFieldConfig:
    """Control Center field selection."""

    def test_defaults(self):
        specs = default_field_specs()

        annual = active_fields(specs, ANNUAL)
        assert set(annual) == set(FinancialSection)
        assert [s.field_name for s in annual[FinancialSection.INCOME_STATEMENT]] == [
            "Revenue", "GrossProfit", "OperatingIncome", "NetIncome", "SharesDiluted",
        ]
        assert active_fields(specs, QUARTERLY) == {}

    def test_seed_and_load_round_trip(self):
        store = MemoryWorkbook()

        assert seed_control_center(store) is True
        assert seed_control_center(store) is False
        assert load_field_specs(store) == default_field_specs()

    def test_missing_table_uses_defaults(self):
        assert load_field_specs(MemoryWorkbook()) == default_field_specs()

    def test_user_rows(self):
        store = MemoryWorkbook({
            schema.CONTROL_CENTER: Table(
                ["Section", "Field Name", "Period Type", "Active?"],
                [
                    ["Income Statement", "totalRevenue", "Quarterly", "Yes"],
                    ["Cash_Flow", "freeCashFlow", "annual", "no"],
                    ["Bogus", "x", "Annual", "Yes"],
                    ["Balance_Sheet", "", "Annual", "Yes"],
                    ["Balance_Sheet", "cash", "Monthly", "Yes"],
                ],
            )
        })

        specs = load_field_specs(store)

        assert len(specs) == 2
        quarterly = active_fields(specs, QUARTERLY)[FinancialSection.INCOME_STATEMENT]
        # Without a JSON Path column the field name doubles as the path
        assert quarterly[0].json_path == "totalRevenue"
        assert active_fields(specs, ANNUAL) == {}

    def test_requires_field_name_column(self):
        store = MemoryWorkbook({schema.CONTROL_CENTER: Table(["Section"], [])})

        with pytest.raises(MissingColumnError):
            load_field_specs(store)


class TestUniverse:
    def test_ticker_universe(self):
        store = MemoryWorkbook({
            schema.TICKERS: Table(["Symbol", "Name"], [["jfc", "Jollibee"], ["", ""], ["JFC", "dup"], ["ac", ""]])
        })

        assert load_ticker_universe(store) == ["JFC.PSE", "AC.PSE"]

    def test_price_universe_prefers_calculated_metrics(self):
        store = MemoryWorkbook({
            schema.TICKERS: Table(["Ticker"], [["JFC"], ["AC"]]),
            schema.CALCULATED_METRICS: Table(["Ticker", "OpPS_Latest"], [["AC.PSE", 1.0]]),
        })

        assert load_price_universe(store) == ["AC.PSE"]
        assert load_price_universe(MemoryWorkbook({schema.TICKERS: Table(["Ticker"], [["JFC"]])})) == ["JFC.PSE"]
        assert load_ticker_universe(MemoryWorkbook()) == []
