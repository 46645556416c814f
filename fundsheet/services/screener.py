"""Screener filter.

Reads Calculated_Metrics plus the price tables and writes a ranked Screener
table (full rebuild). Filters, in order:

1. acceleration: 5Y CAGR > long-window CAGR (9Y, else 10Y; blanks count as 0)
2. optional minimum 5Y CAGR
3. optional maximum debt-to-equity (unknown D/E passes)
4. optional minimum long-window CAGR

Payback period heuristic, with g = 5Y CAGR, p = last close and
o = floor_to_positive(latest OpPS):

    payback = ln(p * g / o + (1 + g)) / ln(1 + g) - 1

left blank when an input is missing, g == -1, or the logs are undefined.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fundsheet.core.data_helpers import floor_to_positive, pct_change, to_bool, to_number, to_year
from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import (
    Table,
    TabularStore,
    read_or_empty,
    require_table,
    resolve_columns,
)


if TYPE_CHECKING:
    from fundsheet.core.config import Settings

logger = get_logger("services.screener")


METRICS_COLUMNS = {
    "Ticker": ["Ticker", "Symbol"],
    "OpPS_Latest": ["OpPS_Latest"],
    "OpPS_5Y_CAGR": ["OpPS_5Y_CAGR"],
    "OpPS_9Y_CAGR": ["OpPS_9Y_CAGR"],
    "OpPS_10Y_CAGR": ["OpPS_10Y_CAGR"],
    "OpPS_AdjustedFlag": ["OpPS_AdjustedFlag"],
    "DebtToEquity": ["Debt_to_Equity", "DebtToEquity", "Debt/Equity"],
}
METRICS_REQUIRED = ("Ticker", "OpPS_Latest", "OpPS_5Y_CAGR")

PER_SHARE_COLUMNS = {
    "Ticker": ["Ticker", "Symbol"],
    "FiscalYear": ["FiscalYear", "FY", "Year"],
    "OpPS": ["OperatingIncomePerShare", "OpPS"],
    "DebtToEquity": ["DebtToEquity", "Debt_to_Equity"],
}

STATS_COLUMNS = {
    "Ticker": ["Ticker"],
    "LastClose": ["LastClose"],
    "Avg30Value": ["Avg30Value_30d", "Avg30Value"],
}
LATEST_COLUMNS = {"Ticker": ["Ticker"], "Close": ["Close"]}


@dataclass(frozen=True)
class ScreenerCriteria:
    """Optional thresholds; None disables a filter."""

    min_5y_cagr: float | None = None
    max_debt_to_equity: float | None = 1.5
    min_long_cagr: float | None = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ScreenerCriteria":
        return cls(
            min_5y_cagr=settings.screener_min_5y_cagr,
            max_debt_to_equity=settings.screener_max_debt_to_equity,
            min_long_cagr=settings.screener_min_long_cagr,
        )


@dataclass
class ScreenerRow:
    ticker: str
    op_ps: float | None
    adjusted: bool
    cagr_5y: float
    cagr_long: float | None
    yoy_growth: float | None
    debt_to_equity: float | None
    last_close: float | None
    payback: float | None
    avg30_value: float | None

    def to_row(self, rank: int) -> list[Any]:
        op_display: Any = self.op_ps
        if self.op_ps is not None and self.adjusted:
            op_display = f"{self.op_ps}*"
        return [
            rank,
            self.ticker,
            op_display,
            self.cagr_5y,
            self.cagr_long,
            self.yoy_growth,
            self.debt_to_equity,
            self.last_close,
            self.payback,
            self.avg30_value,
        ]


def _or_zero(value: float | None) -> float:
    return 0.0 if value is None else value


def payback_period(last_close: Any, cagr_5y: Any, op_ps: Any) -> float | None:
    """Years for cumulative growing earnings to repay the price, or None."""
    price = to_number(last_close)
    g = to_number(cagr_5y)
    op_adj = floor_to_positive(op_ps)
    if price is None or g is None or op_adj is None or g == -1:
        return None

    arg = price * g / op_adj + (1 + g)
    if arg <= 0 or 1 + g <= 0:
        return None
    den = math.log(1 + g)
    if den == 0:
        return None
    result = math.log(arg) / den - 1
    return result if math.isfinite(result) else None


def passes_filters(
    cagr_5y: float | None,
    cagr_long: float | None,
    debt_to_equity: float | None,
    criteria: ScreenerCriteria,
) -> bool:
    if cagr_5y is None:
        return False
    if not _or_zero(cagr_5y) > _or_zero(cagr_long):
        return False
    if criteria.min_5y_cagr is not None and not cagr_5y >= criteria.min_5y_cagr:
        return False
    if (
        criteria.max_debt_to_equity is not None
        and debt_to_equity is not None
        and not debt_to_equity <= criteria.max_debt_to_equity
    ):
        return False
    if criteria.min_long_cagr is not None and not _or_zero(cagr_long) >= criteria.min_long_cagr:
        return False
    return True


def _per_share_context(table: Table) -> dict[str, tuple[float | None, float | None]]:
    """Ticker -> (latest D/E, YoY growth of OpPS) from Per_Share."""
    if not table.header:
        return {}
    cols = resolve_columns(table.header, PER_SHARE_COLUMNS, strict=False)
    if not (cols.has("Ticker") and cols.has("FiscalYear")):
        return {}

    by_ticker: dict[str, dict[int, list[Any]]] = {}
    for row in table.rows:
        ticker = str(cols.value(row, "Ticker") or "").strip()
        year = to_year(cols.value(row, "FiscalYear"))
        if ticker and year:
            by_ticker.setdefault(ticker, {})[year] = row

    context = {}
    for ticker, years in by_ticker.items():
        ordered = [years[y] for y in sorted(years)]
        de = to_number(cols.value(ordered[-1], "DebtToEquity"))
        yoy = None
        if len(ordered) >= 2:
            yoy = pct_change(cols.value(ordered[-1], "OpPS"), cols.value(ordered[-2], "OpPS"))
        context[ticker] = (de, yoy)
    return context


def read_price_map(stats: Table, latest: Table) -> dict[str, tuple[float | None, float | None]]:
    """Ticker -> (last close, avg30 value); Prices_Latest fills missing closes."""
    prices: dict[str, tuple[float | None, float | None]] = {}
    if stats.header:
        cols = resolve_columns(stats.header, STATS_COLUMNS, strict=False)
        for row in stats.rows:
            ticker = str(cols.value(row, "Ticker") or "").strip()
            if ticker:
                prices[ticker] = (
                    to_number(cols.value(row, "LastClose")),
                    to_number(cols.value(row, "Avg30Value")),
                )
    if latest.header:
        cols = resolve_columns(latest.header, LATEST_COLUMNS, strict=False)
        for row in latest.rows:
            ticker = str(cols.value(row, "Ticker") or "").strip()
            if not ticker:
                continue
            close, avg30 = prices.get(ticker, (None, None))
            if close is None:
                prices[ticker] = (to_number(cols.value(row, "Close")), avg30)
    return prices


def _sort_key(row: ScreenerRow) -> tuple:
    return (row.payback is None, row.payback or 0.0, -row.cagr_5y, row.ticker)


def screen(
    metrics: Table,
    per_share: Table,
    prices: dict[str, tuple[float | None, float | None]],
    criteria: ScreenerCriteria,
) -> list[ScreenerRow]:
    """Filter and rank Calculated_Metrics rows."""
    cols = resolve_columns(
        metrics.header,
        METRICS_COLUMNS,
        optional=[c for c in METRICS_COLUMNS if c not in METRICS_REQUIRED],
        table=schema.CALCULATED_METRICS,
    )
    context = _per_share_context(per_share)

    rows: list[ScreenerRow] = []
    for row in metrics.rows:
        ticker = str(cols.value(row, "Ticker") or "").strip()
        if not ticker:
            continue
        g5 = to_number(cols.value(row, "OpPS_5Y_CAGR"))
        g_long = to_number(cols.value(row, "OpPS_9Y_CAGR"))
        if g_long is None:
            g_long = to_number(cols.value(row, "OpPS_10Y_CAGR"))

        ps_de, yoy = context.get(ticker, (None, None))
        de = to_number(cols.value(row, "DebtToEquity"))
        if de is None:
            de = ps_de

        if not passes_filters(g5, g_long, de, criteria):
            continue

        op = to_number(cols.value(row, "OpPS_Latest"))
        last, avg30 = prices.get(ticker, (None, None))
        rows.append(
            ScreenerRow(
                ticker=ticker,
                op_ps=op,
                adjusted=to_bool(cols.value(row, "OpPS_AdjustedFlag")),
                cagr_5y=g5,
                cagr_long=g_long,
                yoy_growth=yoy,
                debt_to_equity=de,
                last_close=last,
                payback=payback_period(last, g5, op),
                avg30_value=avg30,
            )
        )

    rows.sort(key=_sort_key)
    return rows


def run_screener(store: TabularStore, criteria: ScreenerCriteria) -> list[ScreenerRow]:
    """Rebuild the Screener table from the stored metrics and prices."""
    metrics = require_table(store, schema.CALCULATED_METRICS)
    per_share = read_or_empty(store, schema.PER_SHARE)
    prices = read_price_map(
        read_or_empty(store, schema.PRICES_STATS),
        read_or_empty(store, schema.PRICES_LATEST),
    )

    rows = screen(metrics, per_share, prices, criteria)
    store.write_table(
        schema.SCREENER,
        schema.SCREENER_HEADER,
        [r.to_row(rank) for rank, r in enumerate(rows, 1)],
    )
    logger.info(f"Screener: {len(rows)} of {len(metrics.rows)} tickers passed")
    return rows
