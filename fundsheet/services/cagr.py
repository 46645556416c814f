"""CAGR engine with turnaround handling.

For each ticker in Per_Share, and for each tracked metric (operating income,
earnings and free cash flow per share), computes:

    Latest      floor_to_positive(last value)
    5Y_CAGR     needs >= 6 fiscal years
    9Y_CAGR     needs >= 10 fiscal years
    10Y_CAGR    needs >= 11 fiscal years
    AdjustedFlag

CAGR = (end / start) ** (1 / years) - 1, with both endpoints passed through the
floor rule first (values <= 0 become 0.01) so the ratio is always taken
between two positive numbers. The flag, however, looks at the raw endpoint
values: it is set when the latest value or either endpoint of any computable
window was <= 0 before flooring. A genuine 0.01 never sets it.

Results are merged into Calculated_Metrics keyed by Ticker, touching only
the columns listed in schema.CALCULATED_METRICS_HEADER.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Sequence

from fundsheet.core.data_helpers import floor_to_positive, round_to, to_number, to_year, was_floored
from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import (
    Table,
    TabularStore,
    ensure_table,
    require_table,
    resolve_columns,
)
from fundsheet.domain.fundamentals import TRACKED_METRICS, CalculatedMetricsRecord, MetricGrowth
from fundsheet.services.upsert import UpsertResult, upsert_records


if TYPE_CHECKING:
    from fundsheet.core.config import Settings

logger = get_logger("services.cagr")


COLUMN_ALIASES = {
    "Ticker": ["Ticker", "Symbol"],
    "FiscalYear": ["FiscalYear", "FY", "Year"],
    "OpPS": [
        "OpPS", "OpIncPS", "OperatingIncomePS", "OperatingIncomePerShare",
        "Operating Income/Share", "OpInc/Share", "OpIncomePS",
    ],
    "EPS": ["EPS", "EarningsPS", "EarningsPerShare", "NetIncomePerShare"],
    "FCFPS": ["FCFPS", "FCF Per Share", "FreeCashFlowPS", "FCF/Share", "FCF_PS"],
}

# Per_Share as built here has no free-cash-flow column
OPTIONAL_METRICS = ("EPS", "FCFPS")

# Window length in years; a window needs years + 1 fiscal years of history
WINDOWS = (5, 9, 10)
DECIMALS = 4


@dataclass(frozen=True)
class CagrConfig:
    """CAGR engine settings."""

    source_table: str = schema.PER_SHARE
    output_table: str = schema.CALCULATED_METRICS

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CagrConfig":
        return cls()


@dataclass(frozen=True)
class WindowResult:
    """Growth over one trailing window."""

    years: int
    cagr: float | None
    adjusted: bool


def compute_window_cagr(series: Sequence[float | None], years: int) -> WindowResult:
    """
    Trailing CAGR over ``years`` for a series sorted oldest first.

    Returns a null, unadjusted result when the series is shorter than
    years + 1. Otherwise the flag reflects the raw endpoint signs whether or
    not the rate itself could be computed.
    """
    if len(series) < years + 1:
        return WindowResult(years, None, False)

    end_raw = series[-1]
    start_raw = series[-(years + 1)]
    end_adj = floor_to_positive(end_raw)
    start_adj = floor_to_positive(start_raw)

    cagr = None
    if end_adj is not None and start_adj is not None and start_adj > 0:
        cagr = round_to((end_adj / start_adj) ** (1 / years) - 1, DECIMALS)

    return WindowResult(years, cagr, was_floored(end_raw) or was_floored(start_raw))


def compute_metric_growth(series: Sequence[float | None]) -> MetricGrowth:
    """Latest value, 5/9/10-year CAGRs and the adjusted flag for one metric."""
    if not series:
        return MetricGrowth()

    windows = {years: compute_window_cagr(series, years) for years in WINDOWS}
    latest_raw = series[-1]
    adjusted = was_floored(latest_raw) or any(w.adjusted for w in windows.values())

    return MetricGrowth(
        latest=round_to(floor_to_positive(latest_raw), DECIMALS),
        cagr_5y=windows[5].cagr,
        cagr_9y=windows[9].cagr,
        cagr_10y=windows[10].cagr,
        adjusted=adjusted,
    )


def series_by_ticker(table: Table) -> dict[str, list[dict[str, float | None]]]:
    """Per ticker, metric values per fiscal year in ascending year order.

    Rows lacking a ticker or fiscal year are skipped; a repeated year for the
    same ticker keeps the later row.
    """
    cols = resolve_columns(
        table.header,
        COLUMN_ALIASES,
        optional=OPTIONAL_METRICS,
        table=schema.PER_SHARE,
    )
    by_ticker: dict[str, dict[int, dict[str, float | None]]] = {}

    for row in table.rows:
        ticker = str(cols.value(row, "Ticker") or "").strip()
        if not ticker:
            continue
        year = to_year(cols.value(row, "FiscalYear"))
        if not year:
            continue
        by_ticker.setdefault(ticker, {})[year] = {
            metric: to_number(cols.value(row, metric)) for metric in TRACKED_METRICS
        }

    return {
        ticker: [years[y] for y in sorted(years)]
        for ticker, years in by_ticker.items()
    }


def compute_cagr_records(
    table: Table, calculated_at: datetime | None = None
) -> list[CalculatedMetricsRecord]:
    """Growth profile for every ticker in a Per_Share table."""
    calculated_at = calculated_at or datetime.now(timezone.utc)
    records = []
    for ticker, points in series_by_ticker(table).items():
        records.append(
            CalculatedMetricsRecord(
                ticker=ticker,
                metrics={
                    metric: compute_metric_growth([p[metric] for p in points])
                    for metric in TRACKED_METRICS
                },
                calculated_at=calculated_at,
            )
        )
    return records


def run_cagr_engine(
    store: TabularStore,
    config: CagrConfig,
    calculated_at: datetime | None = None,
) -> tuple[list[CalculatedMetricsRecord], UpsertResult]:
    """Compute growth profiles from Per_Share and merge them into Calculated_Metrics."""
    source = require_table(store, config.source_table)
    records = compute_cagr_records(source, calculated_at)
    ensure_table(store, config.output_table, schema.CALCULATED_METRICS_HEADER)
    result = upsert_records(
        store,
        config.output_table,
        schema.CALCULATED_METRICS_KEY,
        [r.to_record() for r in records],
        columns=schema.CALCULATED_METRICS_HEADER,
    )
    flagged = sum(1 for r in records if any(r.growth(m).adjusted for m in TRACKED_METRICS))
    logger.info(
        f"CAGR computed for {len(records)} tickers ({flagged} with floor adjustments): "
        f"{result.updated} updated, {result.appended} appended"
    )
    return records, result
