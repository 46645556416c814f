"""Data dictionary of vendor fields.

Lists every field key found in the statement periods of a few payloads so
users can pick JSON paths for the Control Center.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from fundsheet.core.exceptions import AppException
from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import TabularStore
from fundsheet.domain.fundamentals import FinancialSection
from fundsheet.domain.ticker import normalize_ticker_symbol
from fundsheet.services.fundamentals import FundamentalsSource, iter_period_entries


logger = get_logger("services.dictionary")

# Period metadata, not line items
SKIP_KEYS = {"date", "filing_date", "currency_symbol"}
PERIODS = (("yearly", "Annual"), ("quarterly", "Quarterly"))


def build_data_dictionary(payloads: Mapping[str, Mapping[str, Any]]) -> list[list[Any]]:
    """One row per (section, period, field) with the first example seen."""
    seen: dict[tuple[str, str, str], tuple[str, Any]] = {}
    for ticker, payload in payloads.items():
        financials = payload.get("Financials") or {}
        for section in FinancialSection:
            for period_key, label in PERIODS:
                for entry in reversed(iter_period_entries(financials.get(section.value), period_key)):
                    for name, value in entry.items():
                        if name in SKIP_KEYS or isinstance(value, (dict, list)):
                            continue
                        key = (section.value, label, name)
                        if key not in seen or (seen[key][1] is None and value is not None):
                            seen[key] = (ticker, value)
    return [
        [section, period, name, example[0], example[1]]
        for (section, period, name), example in sorted(seen.items())
    ]


def run_data_dictionary(
    store: TabularStore,
    source: FundamentalsSource,
    tickers: Sequence[str],
    suffix: str = ".PSE",
    sample_size: int = 5,
) -> int:
    """Sample up to ``sample_size`` tickers and rebuild Data_Dictionary."""
    payloads: dict[str, Mapping[str, Any]] = {}
    for raw in tickers:
        if len(payloads) >= sample_size:
            break
        ticker = normalize_ticker_symbol(raw, suffix)
        try:
            payloads[ticker] = source.fetch_fundamentals(ticker)
        except AppException as exc:
            logger.warning(f"Skipping {ticker} for dictionary: {exc}")

    rows = build_data_dictionary(payloads)
    store.write_table(schema.DATA_DICTIONARY, schema.DATA_DICTIONARY_HEADER, rows)
    logger.info(f"{schema.DATA_DICTIONARY}: {len(rows)} fields from {len(payloads)} tickers")
    return len(rows)
