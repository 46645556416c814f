"""Mock EODHD data for offline runs.

Writes EODHD-shaped fundamentals payloads and daily price bars for a handful
of PSE companies into the mock directories, so ``data_mode=mock`` works
without hand-written JSON. Every number is derived deterministically from
the company profile below.

Profiles cover the cases the pipeline cares about:
- ALI: steady growth
- BDO: accelerating growth on a highly leveraged balance sheet
- SM: decelerating growth
- JFC: accelerating growth, moderate leverage
- MEG: turnaround (operating losses in the first two years)

Scenarios mirror a vendor's later updates:
- initial: fiscal years start_year..end_year, quarters for the last three years
- new_year: one more fiscal year
- new_quarter: Q1 of the following year
- revision: Q3 of the last year restated upward
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Sequence

from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import TabularStore, ensure_table
from fundsheet.domain.ticker import base_ticker, normalize_ticker_symbol
from fundsheet.services.upsert import UpsertResult, upsert_records


logger = get_logger("services.mock_data")

SCENARIOS = ("initial", "new_year", "new_quarter", "revision")
QUARTER_ENDS = ("03-31", "06-30", "09-30", "12-31")
PRICE_BARS = 60


@dataclass(frozen=True)
class MockCompany:
    """Profile the generated statements are derived from."""

    name: str
    sector: str
    industry: str
    revenue: float          # first fiscal year
    early_growth: float
    late_growth: float      # applies to the last five year-on-year steps
    margin: float           # operating margin
    shares: float
    leverage: float         # total liabilities / equity
    loss_years: int = 0     # leading years with an operating loss
    pe: float = 12.0


COMPANIES: dict[str, MockCompany] = {
    "ALI": MockCompany(
        "Ayala Land Inc", "Real Estate", "Real Estate Development",
        1.2e11, 0.08, 0.08, 0.30, 1.47e10, 1.1,
    ),
    "BDO": MockCompany(
        "BDO Unibank Inc", "Financial", "Banking",
        1.5e11, 0.06, 0.11, 0.35, 5.3e9, 7.5, pe=10.0,
    ),
    "SM": MockCompany(
        "SM Investments Corp", "Consumer Cyclical", "Retail - Defensive",
        3.0e11, 0.10, 0.05, 0.18, 1.2e9, 0.9, pe=18.0,
    ),
    "JFC": MockCompany(
        "Jollibee Foods Corp", "Consumer Cyclical", "Restaurants",
        1.1e11, 0.05, 0.13, 0.08, 1.1e9, 1.2, pe=25.0,
    ),
    "MEG": MockCompany(
        "Megaworld Corp", "Real Estate", "Real Estate Development",
        4.5e10, 0.04, 0.09, 0.25, 3.2e10, 0.8, loss_years=2, pe=8.0,
    ),
}

MOCK_TICKERS = tuple(COMPANIES)


def _company(ticker: str) -> MockCompany:
    code = base_ticker(normalize_ticker_symbol(ticker))
    return COMPANIES.get(code) or MockCompany(
        f"{code} Corporation", "Diversified", "Conglomerate", 5e10, 0.08, 0.08, 0.20, 1e10, 1.0
    )


def revenue_path(company: MockCompany, years: int) -> list[float]:
    """Revenue per fiscal year; the last five year-on-year steps use late growth."""
    out = [company.revenue]
    for i in range(1, years):
        growth = company.late_growth if i > years - 6 else company.early_growth
        out.append(out[-1] * (1 + growth))
    return out


def _operating_income(company: MockCompany, revenue: float, index: int) -> float:
    if index < company.loss_years:
        return -revenue * company.margin * 0.5
    return revenue * company.margin


def _income_entry(day: str, revenue: float, operating: float, shares: float) -> dict[str, Any]:
    return {
        "date": day,
        "filing_date": day,
        "currency_symbol": "PHP",
        "totalRevenue": str(round(revenue)),
        "grossProfit": str(round(revenue * 0.40)),
        "operatingIncome": str(round(operating)),
        "netIncome": str(round(operating * 0.75)),
        "weightedAverageShsOutDil": str(round(shares)),
    }


def _balance_entry(day: str, equity: float, leverage: float, shares: float) -> dict[str, Any]:
    liabilities = equity * leverage
    return {
        "date": day,
        "filing_date": day,
        "currency_symbol": "PHP",
        "totalAssets": str(round(equity + liabilities)),
        "totalLiab": str(round(liabilities)),
        "totalStockholderEquity": str(round(equity)),
        "cash": str(round((equity + liabilities) * 0.10)),
        "commonStockSharesOutstanding": str(round(shares)),
    }


def generate_fundamentals(
    ticker: str,
    scenario: str = "initial",
    start_year: int = 2015,
    end_year: int = 2024,
) -> dict[str, Any]:
    """EODHD fundamentals payload for one ticker."""
    if scenario not in SCENARIOS:
        raise ValueError(f"Unknown mock scenario: {scenario}")
    company = _company(ticker)
    last_year = end_year + 1 if scenario == "new_year" else end_year
    years = list(range(start_year, last_year + 1))
    revenues = revenue_path(company, len(years))

    income_yearly: dict[str, Any] = {}
    balance_yearly: dict[str, Any] = {}
    for i, (year, revenue) in enumerate(zip(years, revenues)):
        day = f"{year}-12-31"
        operating = _operating_income(company, revenue, i)
        income_yearly[day] = _income_entry(day, revenue, operating, company.shares)
        balance_yearly[day] = _balance_entry(day, revenue * 0.9, company.leverage, company.shares)

    # Quarters for the last three fiscal years, 2% quarter-on-quarter growth
    income_quarterly: dict[str, Any] = {}
    balance_quarterly: dict[str, Any] = {}
    quarter_years = years[-3:] if scenario != "new_year" else years[-4:-1]
    base_quarter = revenues[years.index(quarter_years[0])] / 4
    periods = [(y, q) for y in quarter_years for q in QUARTER_ENDS]
    if scenario == "new_quarter":
        periods.append((quarter_years[-1] + 1, QUARTER_ENDS[0]))
    for n, (year, suffix) in enumerate(periods):
        day = f"{year}-{suffix}"
        revenue = base_quarter * 1.02 ** n
        operating = _operating_income(company, revenue, years.index(year) if year in years else len(years))
        income_quarterly[day] = _income_entry(day, revenue, operating, company.shares)
        balance_quarterly[day] = _balance_entry(day, revenue * 3.6, company.leverage, company.shares)

    if scenario == "revision":
        entry = income_quarterly.get(f"{end_year}-09-30")
        if entry:
            revised = round(float(entry["totalRevenue"]) * 1.05)
            entry["totalRevenue"] = str(revised)
            entry["operatingIncome"] = str(round(revised * 0.22))

    return {
        "General": {
            "Code": base_ticker(normalize_ticker_symbol(ticker)),
            "Type": "Common Stock",
            "Name": company.name,
            "Exchange": "PSE",
            "CurrencyCode": "PHP",
            "CountryISO": "PH",
            "Sector": company.sector,
            "Industry": company.industry,
            "FiscalYearEnd": "December",
        },
        "Highlights": {"MarketCapitalization": round(_last_close(company, revenues, years) * company.shares)},
        "SharesStats": {
            "SharesOutstanding": company.shares,
            "SharesOutstandingDiluted": round(company.shares * 1.02),
        },
        "SplitsDividends": {
            "Dividends": [
                {
                    "date": f"{year}-05-15",
                    "declarationDate": f"{year}-04-20",
                    "recordDate": f"{year}-05-16",
                    "paymentDate": f"{year}-06-01",
                    "dividend": round(0.2 + 0.02 * i, 2),
                    "adjDividend": round(0.2 + 0.02 * i, 2),
                }
                for i, year in enumerate(years[-3:])
            ],
            "Splits": [],
        },
        "Financials": {
            "Income_Statement": {
                "currency_symbol": "PHP",
                "yearly": income_yearly,
                "quarterly": income_quarterly,
            },
            "Balance_Sheet": {
                "currency_symbol": "PHP",
                "yearly": balance_yearly,
                "quarterly": balance_quarterly,
            },
            "Cash_Flow": {"currency_symbol": "PHP", "yearly": {}, "quarterly": {}},
        },
    }


def _last_close(company: MockCompany, revenues: Sequence[float], years: Sequence[int]) -> float:
    eps = _operating_income(company, revenues[-1], len(years) - 1) * 0.75 / company.shares
    return round(max(eps * company.pe, 1.0), 2)


def generate_price_bars(
    ticker: str,
    as_of: date,
    count: int = PRICE_BARS,
    end_year: int = 2024,
) -> list[dict[str, Any]]:
    """Weekday bars ending at ``as_of``, oldest first, around a P/E-derived price."""
    company = _company(ticker)
    years = list(range(2015, end_year + 1))
    anchor = _last_close(company, revenue_path(company, len(years)), years)

    days: list[date] = []
    day = as_of
    while len(days) < count:
        if day.weekday() < 5:
            days.append(day)
        day -= timedelta(days=1)
    days.reverse()

    bars = []
    for i, d in enumerate(days):
        close = round(anchor * (1 + 0.02 * math.sin(i / 3)), 2)
        bars.append({
            "date": d.isoformat(),
            "open": round(close * 0.995, 2),
            "high": round(close * 1.01, 2),
            "low": round(close * 0.99, 2),
            "close": close,
            "adjusted_close": close,
            "volume": int(company.shares * 0.0002 * (1 + 0.3 * math.cos(i / 2))),
        })
    return bars


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(tmp, path)


@dataclass
class MockSeedSummary:
    tickers: list[str]
    fundamentals_files: int = 0
    price_files: int = 0
    registered: UpsertResult | None = None


def write_mock_files(
    fundamentals_dir: str | os.PathLike[str],
    prices_dir: str | os.PathLike[str],
    tickers: Sequence[str] = MOCK_TICKERS,
    suffix: str = ".PSE",
    scenario: str = "initial",
    as_of: date | None = None,
) -> MockSeedSummary:
    """Write ``<TICKER.SUFFIX>.json`` fundamentals and price files."""
    as_of = as_of or date.today()
    symbols = [normalize_ticker_symbol(t, suffix) for t in tickers]
    summary = MockSeedSummary(tickers=symbols)
    for symbol in symbols:
        _write_json(Path(fundamentals_dir) / f"{symbol}.json", generate_fundamentals(symbol, scenario))
        summary.fundamentals_files += 1
        _write_json(Path(prices_dir) / f"{symbol}.json", generate_price_bars(symbol, as_of))
        summary.price_files += 1
    logger.info(
        f"Wrote mock data for {len(symbols)} tickers ({scenario}) to "
        f"{fundamentals_dir} and {prices_dir}"
    )
    return summary


def register_mock_tickers(store: TabularStore, tickers: Sequence[str], suffix: str = ".PSE") -> UpsertResult:
    """Add the mock tickers to the Tickers table, keeping user rows."""
    ensure_table(store, schema.TICKERS, schema.TICKERS_HEADER)
    records = [
        {"Ticker": normalize_ticker_symbol(t, suffix), "Name": _company(t).name}
        for t in tickers
    ]
    return upsert_records(store, schema.TICKERS, ["Ticker"], records)


def seed_mock_data(
    store: TabularStore,
    fundamentals_dir: str | os.PathLike[str],
    prices_dir: str | os.PathLike[str],
    suffix: str = ".PSE",
    scenario: str = "initial",
    as_of: date | None = None,
) -> MockSeedSummary:
    """Write the mock files and register their tickers."""
    summary = write_mock_files(fundamentals_dir, prices_dir, MOCK_TICKERS, suffix, scenario, as_of)
    summary.registered = register_mock_tickers(store, summary.tickers, suffix)
    return summary
