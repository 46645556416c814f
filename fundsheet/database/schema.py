"""Table names and headers of the workbook.

The Calculated_Metrics and Per_Share headers are a contract with downstream
consumers; do not rename their columns.
"""

from __future__ import annotations

from fundsheet.domain.fundamentals import TRACKED_METRICS


TICKERS = "Tickers"
CONTROL_CENTER = "Control Center"
RAW_FUNDAMENTALS_ANNUAL = "Raw_Fundamentals_Annual"
RAW_FUNDAMENTALS_QUARTERLY = "Raw_Fundamentals_Quarterly"
RAW_SPLITS_DIVIDENDS = "Raw_Splits_Dividends"
RAW_PRICES = "Raw_Prices"
PRICES_LATEST = "Prices_Latest"
PRICES_STATS = "Prices_Stats"
PER_SHARE = "Per_Share"
CALCULATED_METRICS = "Calculated_Metrics"
SCREENER = "Screener"
DATA_DICTIONARY = "Data_Dictionary"


TICKERS_HEADER = ["Ticker", "Name", "Notes"]

CONTROL_CENTER_HEADER = ["Section", "JSON Path", "Field Name", "Period Type", "Active?", "Notes"]

RAW_ANNUAL_HEADER = ["Ticker", "Date", "FiscalYear", "Section", "Field", "Value", "Source"]
RAW_ANNUAL_KEY = ["Ticker", "FiscalYear", "Section", "Field"]

RAW_QUARTERLY_HEADER = [
    "Ticker", "Date", "FiscalYear", "FiscalQuarter", "Section", "Field", "Value", "Source",
]
RAW_QUARTERLY_KEY = ["Ticker", "FiscalYear", "FiscalQuarter", "Section", "Field"]

SPLITS_DIVIDENDS_HEADER = [
    "Ticker", "Kind", "Date", "DeclarationDate", "RecordDate", "PaymentDate",
    "Dividend", "AdjDividend", "ForFactor", "ToFactor", "Ratio", "Notes",
]
SPLITS_DIVIDENDS_KEY = ["Ticker", "Kind", "Date"]

RAW_PRICES_HEADER = ["Ticker", "Date", "Close", "Volume"]
RAW_PRICES_KEY = ["Ticker", "Date"]

PRICES_LATEST_HEADER = ["Ticker", "Close", "Volume", "Price_Date", "Source", "Updated_At"]
PRICES_STATS_HEADER = ["Ticker", "LastClose", "Avg30Value_30d", "BarsThrough", "Updated_At"]

PER_SHARE_HEADER = [
    "Ticker", "FiscalYear",
    "RevenuePerShare", "GrossProfitPerShare", "OperatingIncomePerShare", "NetIncomePerShare",
    "EquityPerShare", "DebtToEquity",
]


def _metrics_header() -> list[str]:
    header = ["Ticker"]
    for metric in TRACKED_METRICS:
        header.extend([
            f"{metric}_Latest",
            f"{metric}_5Y_CAGR",
            f"{metric}_9Y_CAGR",
            f"{metric}_10Y_CAGR",
            f"{metric}_AdjustedFlag",
        ])
    header.append("Calc_Timestamp")
    return header


# Columns owned by the CAGR engine; anything else in the table is user data
CALCULATED_METRICS_HEADER = _metrics_header()
CALCULATED_METRICS_KEY = ["Ticker"]

SCREENER_HEADER = [
    "Rank", "Ticker", "Operating Income/Share", "OpInc 5yr CAGR", "OpInc 9yr CAGR",
    "YoY Growth", "Debt/Equity", "Last Closed Price", "Payback Period", "Avg30Value",
]

DATA_DICTIONARY_HEADER = ["Section", "Period", "Field", "Example Ticker", "Example Value"]


# Tables created empty by the setup job
DEFAULT_TABLES: dict[str, list[str]] = {
    TICKERS: TICKERS_HEADER,
    CONTROL_CENTER: CONTROL_CENTER_HEADER,
    RAW_FUNDAMENTALS_ANNUAL: RAW_ANNUAL_HEADER,
    RAW_FUNDAMENTALS_QUARTERLY: RAW_QUARTERLY_HEADER,
    RAW_SPLITS_DIVIDENDS: SPLITS_DIVIDENDS_HEADER,
    RAW_PRICES: RAW_PRICES_HEADER,
    PRICES_LATEST: PRICES_LATEST_HEADER,
    PRICES_STATS: PRICES_STATS_HEADER,
    PER_SHARE: PER_SHARE_HEADER,
    CALCULATED_METRICS: CALCULATED_METRICS_HEADER,
    SCREENER: SCREENER_HEADER,
}
