"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

import pytest

from fundsheet.core.config import Settings
from fundsheet.database import schema
from fundsheet.database.tables import MemoryWorkbook, Table


def make_settings(**overrides: Any) -> Settings:
    """Settings that ignore any local .env file."""
    values: dict[str, Any] = {
        "store_backend": "memory",
        "data_mode": "mock",
        "request_throttle_ms": 0,
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def raw_annual_table(facts: Sequence[tuple]) -> Table:
    """Raw_Fundamentals_Annual from (ticker, year, section, field, value) tuples."""
    rows = [
        [ticker, f"{year}-12-31", year, section, name, value, "EODHD"]
        for ticker, year, section, name, value in facts
    ]
    return Table(list(schema.RAW_ANNUAL_HEADER), rows)


def yearly_payload(
    operating_income: Sequence[float],
    first_year: int = 2015,
    shares: float = 1,
    equity: float | None = 10,
    liabilities: float | None = 5,
) -> dict[str, Any]:
    """Vendor fundamentals payload with one income entry per year."""
    income = {}
    for i, op in enumerate(operating_income):
        day = f"{first_year + i}-12-31"
        income[day] = {
            "date": day,
            "totalRevenue": "10.00",
            "operatingIncome": str(op),
            "netIncome": "1",
            "weightedAverageShsOutDil": str(shares),
        }
    last_day = f"{first_year + len(operating_income) - 1}-12-31"
    balance = {last_day: {"date": last_day}}
    if equity is not None:
        balance[last_day]["totalStockholderEquity"] = str(equity)
    if liabilities is not None:
        balance[last_day]["totalLiab"] = str(liabilities)
    return {
        "General": {"Code": "ACME"},
        "Financials": {
            "Income_Statement": {"currency_symbol": "PHP", "yearly": income},
            "Balance_Sheet": {"currency_symbol": "PHP", "yearly": balance},
        },
    }


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """setup_logging() replaces root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def memory_store() -> MemoryWorkbook:
    """Empty in-memory table store."""
    return MemoryWorkbook()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def workbook_path(tmp_path: Path) -> Path:
    return tmp_path / "fundsheet.xlsx"


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'fundsheet.db'}"
