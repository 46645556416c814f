"""Per-share builder.

Turns the long Raw_Fundamentals_Annual table into Per_Share: one row per
ticker and fiscal year holding revenue, gross profit, operating income, net
income and equity divided by diluted shares, plus debt-to-equity.

Years without a positive diluted share count are dropped, not zero-filled.
Only the most recent ``max_years`` qualifying years are kept per ticker.
The output table is rebuilt from scratch on every run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fundsheet.core.data_helpers import (
    first_non_null,
    round_to,
    safe_divide,
    to_number,
    to_year,
)
from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import Table, TabularStore, require_table, resolve_columns
from fundsheet.domain.fundamentals import FinancialSection, PerShareRecord
from fundsheet.domain.ticker import normalize_ticker_symbol


if TYPE_CHECKING:
    from fundsheet.core.config import Settings

logger = get_logger("services.per_share")


RAW_COLUMNS = {
    "Ticker": ["Ticker", "Symbol"],
    "FiscalYear": ["FiscalYear", "FY", "Year"],
    "Section": ["Section"],
    "Field": ["Field"],
    "Value": ["Value"],
    "Date": ["Date"],
}

INCOME_FIELDS = ("Revenue", "GrossProfit", "OperatingIncome", "NetIncome", "SharesDiluted")

# Primary name first, then vendor alternates in priority order
EQUITY_FIELDS = (
    "TotalStockholdersEquity",
    "TotalStockholderEquity",
    "TotalEquity",
    "StockholdersEquity",
)
DEBT_FIELDS = ("TotalDebt", "TotalLiab", "TotalLiabilities")
BALANCE_FIELDS = EQUITY_FIELDS + DEBT_FIELDS + ("SharesDiluted",)

DECIMALS = 3


@dataclass(frozen=True)
class PerShareConfig:
    """Per-share builder settings."""

    max_years: int = 10
    exchange_suffix: str = ".PSE"
    source_table: str = schema.RAW_FUNDAMENTALS_ANNUAL
    output_table: str = schema.PER_SHARE

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PerShareConfig":
        return cls(
            max_years=settings.per_share_max_years,
            exchange_suffix=settings.default_exchange_suffix,
        )


@dataclass
class YearFacts:
    """Raw aggregates for one ticker/fiscal year, bucketed by statement."""

    income: dict[str, float | None] = field(default_factory=dict)
    balance: dict[str, float | None] = field(default_factory=dict)


def group_facts(table: Table, suffix: str = ".PSE") -> dict[str, dict[int, YearFacts]]:
    """Bucket raw facts by normalized ticker and fiscal year.

    Rows without a ticker or year are skipped. When the same fact appears
    twice, the later row wins.
    """
    cols = resolve_columns(
        table.header,
        RAW_COLUMNS,
        optional=("Date",),
        table=schema.RAW_FUNDAMENTALS_ANNUAL,
    )
    grouped: dict[str, dict[int, YearFacts]] = {}

    for row in table.rows:
        ticker = normalize_ticker_symbol(cols.value(row, "Ticker"), suffix)
        year = to_year(cols.value(row, "FiscalYear")) or to_year(cols.value(row, "Date"))
        if not ticker or not year:
            continue

        section = FinancialSection.parse(cols.value(row, "Section"))
        name = str(cols.value(row, "Field") or "").strip()
        value = to_number(cols.value(row, "Value"))

        facts = grouped.setdefault(ticker, {}).setdefault(year, YearFacts())
        if section is FinancialSection.INCOME_STATEMENT and name in INCOME_FIELDS:
            facts.income[name] = value
        elif section is FinancialSection.BALANCE_SHEET and name in BALANCE_FIELDS:
            facts.balance[name] = value

    return grouped


def valid_shares(facts: YearFacts) -> float | None:
    """Diluted shares: income statement if positive, else balance sheet, else None."""
    for shares in (facts.income.get("SharesDiluted"), facts.balance.get("SharesDiluted")):
        n = to_number(shares)
        if n is not None and n > 0:
            return n
    return None


def select_years(
    years: dict[int, YearFacts], max_years: int
) -> list[tuple[int, float, YearFacts]]:
    """Latest ``max_years`` years with valid shares, returned oldest first."""
    kept: list[tuple[int, float, YearFacts]] = []
    for year in sorted(years, reverse=True):
        shares = valid_shares(years[year])
        if shares is None:
            continue
        kept.append((year, shares, years[year]))
        if len(kept) >= max_years:
            break
    kept.reverse()
    return kept


def per_share_record(ticker: str, year: int, shares: float, facts: YearFacts) -> PerShareRecord:
    equity = to_number(first_non_null(facts.balance.get(f) for f in EQUITY_FIELDS))
    debt = to_number(first_non_null(facts.balance.get(f) for f in DEBT_FIELDS))

    def per_share(name: str) -> float | None:
        return round_to(safe_divide(facts.income.get(name), shares), DECIMALS)

    return PerShareRecord(
        ticker=ticker,
        fiscal_year=year,
        revenue_per_share=per_share("Revenue"),
        gross_profit_per_share=per_share("GrossProfit"),
        operating_income_per_share=per_share("OperatingIncome"),
        net_income_per_share=per_share("NetIncome"),
        equity_per_share=round_to(safe_divide(equity, shares), DECIMALS),
        # A ratio, not a per-share value
        debt_to_equity=round_to(safe_divide(debt, equity), DECIMALS),
    )


def build_per_share(table: Table, config: PerShareConfig) -> list[PerShareRecord]:
    """Derive Per_Share records from a raw annual table (tickers sorted)."""
    grouped = group_facts(table, config.exchange_suffix)
    records: list[PerShareRecord] = []
    for ticker in sorted(grouped):
        for year, shares, facts in select_years(grouped[ticker], config.max_years):
            records.append(per_share_record(ticker, year, shares, facts))
    return records


def run_per_share_builder(store: TabularStore, config: PerShareConfig) -> list[PerShareRecord]:
    """Read the raw annual table, rebuild Per_Share, return the records written."""
    source = require_table(store, config.source_table)
    records = build_per_share(source, config)
    store.write_table(config.output_table, schema.PER_SHARE_HEADER, [r.to_row() for r in records])

    tickers = len({r.ticker for r in records})
    logger.info(f"Per_Share rebuilt: {tickers} tickers, {len(records)} rows")
    return records
