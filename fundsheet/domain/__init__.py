"""Domain models for fundsheet.

Type-safe pydantic models for the rows that flow between pipeline stages.

Usage:
    from fundsheet.domain import PerShareRecord, CalculatedMetricsRecord
"""

from fundsheet.domain.fundamentals import (
    TRACKED_METRICS,
    CalculatedMetricsRecord,
    FinancialSection,
    MetricGrowth,
    PerShareRecord,
    RawFinancialFact,
)
from fundsheet.domain.price import PriceBar, PriceSnapshot
from fundsheet.domain.ticker import base_ticker, normalize_ticker_symbol


__all__ = [
    "TRACKED_METRICS",
    "CalculatedMetricsRecord",
    "FinancialSection",
    "MetricGrowth",
    "PerShareRecord",
    "RawFinancialFact",
    "PriceBar",
    "PriceSnapshot",
    "base_ticker",
    "normalize_ticker_symbol",
]
