"""Ticker universe."""

from __future__ import annotations

from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import TabularStore, read_or_empty, resolve_columns
from fundsheet.domain.ticker import unique_symbols


logger = get_logger("services.universe")

TICKER_COLUMNS = {"Ticker": ["Ticker", "Symbol"]}


def _tickers_in(store: TabularStore, table_name: str, suffix: str) -> list[str]:
    table = read_or_empty(store, table_name)
    cols = resolve_columns(table.header, TICKER_COLUMNS, strict=False)
    if not cols.has("Ticker"):
        return []
    return unique_symbols((cols.value(row, "Ticker") for row in table.rows), suffix)


def load_ticker_universe(store: TabularStore, suffix: str = ".PSE") -> list[str]:
    """Tickers from the Tickers table, suffixed, de-duplicated, in sheet order."""
    tickers = _tickers_in(store, schema.TICKERS, suffix)
    logger.debug(f"Ticker universe: {len(tickers)} symbols")
    return tickers


def load_price_universe(store: TabularStore, suffix: str = ".PSE") -> list[str]:
    """Tickers with computed metrics, else the whole ticker universe."""
    tickers = _tickers_in(store, schema.CALCULATED_METRICS, suffix)
    return tickers or load_ticker_universe(store, suffix)
