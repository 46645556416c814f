"""Built-in job definitions.

Jobs:
- setup: create empty tables and seed the Control Center
- seed_mock_data: write mock fundamentals and prices, register their tickers
- extract_annual / extract_quarterly: raw fundamentals
- extract_splits_dividends: dividends, splits, last split
- data_dictionary: list vendor fields for the Control Center
- prices: latest close, Avg30Value, price history
- per_share: rebuild Per_Share
- cagr: merge growth profiles into Calculated_Metrics
- screener: rebuild the ranked Screener
"""

from __future__ import annotations

from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import ensure_table
from fundsheet.services import field_config
from fundsheet.services.cagr import CagrConfig, run_cagr_engine
from fundsheet.services.dictionary import run_data_dictionary
from fundsheet.services.fundamentals import (
    ExtractConfig,
    run_fundamentals_extraction,
    run_splits_dividends_extraction,
)
from fundsheet.services.mock_data import seed_mock_data
from fundsheet.services.per_share import PerShareConfig, run_per_share_builder
from fundsheet.services.prices import PriceConfig, refresh_prices
from fundsheet.services.screener import ScreenerCriteria, run_screener
from fundsheet.services.universe import load_price_universe, load_ticker_universe

from .context import JobContext
from .registry import register_job
from .utils import elapsed_ms, job_timer, log_job_success


logger = get_logger("jobs.definitions")


# =============================================================================
# SETUP
# =============================================================================


@register_job("setup")
def setup_job(ctx: JobContext) -> str:
    """Create every missing table with its header and seed the Control Center."""
    created = [
        name for name, header in schema.DEFAULT_TABLES.items()
        if ensure_table(ctx.store, name, header)
    ]
    seeded = field_config.seed_control_center(ctx.store)
    message = f"Created {len(created)} tables" + (", seeded Control Center" if seeded else "")
    log_job_success("setup", message, tables_created=len(created), seeded=seeded)
    return message


@register_job("seed_mock_data")
def seed_mock_data_job(ctx: JobContext) -> str:
    """Write mock vendor files into the mock directories for offline runs."""
    summary = seed_mock_data(
        ctx.store,
        ctx.settings.mock_fundamentals_dir,
        ctx.settings.mock_prices_dir,
        ctx.suffix,
    )
    registered = summary.registered
    message = (
        f"Wrote mock data for {len(summary.tickers)} tickers"
        f" ({registered.appended if registered else 0} added to {schema.TICKERS})"
    )
    log_job_success(
        "seed_mock_data",
        message,
        tickers=len(summary.tickers),
        fundamentals_files=summary.fundamentals_files,
        price_files=summary.price_files,
    )
    return message


# =============================================================================
# EXTRACTION
# =============================================================================


def _extract_period(ctx: JobContext, period: str) -> str:
    job_start = job_timer()
    tickers = load_ticker_universe(ctx.store, ctx.suffix)
    fields = field_config.active_fields(field_config.load_field_specs(ctx.store), period)
    summary = run_fundamentals_extraction(
        ctx.store,
        ctx.fundamentals,
        tickers,
        fields,
        period,
        ExtractConfig.from_settings(ctx.settings),
    )
    job_name = f"extract_{period}"
    message = f"{summary.rows} rows for {summary.tickers} tickers"
    log_job_success(
        job_name,
        message,
        tickers=summary.tickers,
        rows=summary.rows,
        updated=summary.updated,
        appended=summary.appended,
        failed=len(summary.failed),
        duration_ms=elapsed_ms(job_start),
    )
    return message


@register_job("extract_annual")
def extract_annual_job(ctx: JobContext) -> str:
    return _extract_period(ctx, field_config.ANNUAL)


@register_job("extract_quarterly")
def extract_quarterly_job(ctx: JobContext) -> str:
    return _extract_period(ctx, field_config.QUARTERLY)


@register_job("extract_splits_dividends")
def extract_splits_dividends_job(ctx: JobContext) -> str:
    job_start = job_timer()
    tickers = load_ticker_universe(ctx.store, ctx.suffix)
    summary = run_splits_dividends_extraction(
        ctx.store, ctx.fundamentals, tickers, ExtractConfig.from_settings(ctx.settings)
    )
    message = f"{summary.rows} rows for {summary.tickers} tickers"
    log_job_success(
        "extract_splits_dividends",
        message,
        rows=summary.rows,
        failed=len(summary.failed),
        duration_ms=elapsed_ms(job_start),
    )
    return message


@register_job("data_dictionary")
def data_dictionary_job(ctx: JobContext) -> str:
    tickers = load_ticker_universe(ctx.store, ctx.suffix)
    count = run_data_dictionary(ctx.store, ctx.fundamentals, tickers, ctx.suffix)
    return f"{count} fields listed"


# =============================================================================
# PRICES
# =============================================================================


@register_job("prices")
def prices_job(ctx: JobContext) -> str:
    job_start = job_timer()
    tickers = load_price_universe(ctx.store, ctx.suffix)
    snapshots = refresh_prices(
        ctx.store, ctx.prices, tickers, PriceConfig.from_settings(ctx.settings)
    )
    message = f"Prices for {len(snapshots)} of {len(tickers)} tickers"
    log_job_success(
        "prices",
        message,
        tickers=len(tickers),
        priced=len(snapshots),
        duration_ms=elapsed_ms(job_start),
    )
    return message


# =============================================================================
# METRICS
# =============================================================================


@register_job("per_share")
def per_share_job(ctx: JobContext) -> str:
    job_start = job_timer()
    records = run_per_share_builder(ctx.store, PerShareConfig.from_settings(ctx.settings))
    tickers = len({r.ticker for r in records})
    message = f"Rebuilt {len(records)} rows for {tickers} tickers"
    log_job_success(
        "per_share", message, tickers=tickers, rows=len(records), duration_ms=elapsed_ms(job_start)
    )
    return message


@register_job("cagr")
def cagr_job(ctx: JobContext) -> str:
    job_start = job_timer()
    records, result = run_cagr_engine(ctx.store, CagrConfig.from_settings(ctx.settings))
    message = f"{len(records)} tickers ({result.updated} updated, {result.appended} appended)"
    log_job_success(
        "cagr",
        message,
        tickers=len(records),
        updated=result.updated,
        appended=result.appended,
        duration_ms=elapsed_ms(job_start),
    )
    return message


@register_job("screener")
def screener_job(ctx: JobContext) -> str:
    job_start = job_timer()
    rows = run_screener(ctx.store, ScreenerCriteria.from_settings(ctx.settings))
    message = f"{len(rows)} candidates"
    log_job_success("screener", message, candidates=len(rows), duration_ms=elapsed_ms(job_start))
    return message
