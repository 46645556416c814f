"""Fundamentals domain models.

Type-safe representations of raw facts, per-share rows and growth profiles.
The to_row() helpers emit cells in the column order of the workbook tables.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class FinancialSection(str, Enum):
    """Statement a raw fact belongs to (values are the workbook labels)."""

    INCOME_STATEMENT = "Income_Statement"
    BALANCE_SHEET = "Balance_Sheet"
    CASH_FLOW = "Cash_Flow"

    @classmethod
    def parse(cls, value: object) -> "FinancialSection | None":
        """Match a label loosely: "Income_Statement", "IncomeStatement", "income statement"."""
        key = str(value or "").replace("_", "").replace(" ", "").lower()
        for member in cls:
            if member.value.replace("_", "").lower() == key:
                return member
        return None


# Metric prefixes of the Calculated_Metrics contract, in column order
TRACKED_METRICS: tuple[str, ...] = ("OpPS", "EPS", "FCFPS")


class RawFinancialFact(BaseModel):
    """One observed value for one ticker/period/field."""

    ticker: str = Field(..., description="Ticker with exchange suffix")
    fiscal_year: int = Field(..., description="Fiscal year")
    fiscal_quarter: int | None = Field(None, ge=1, le=4, description="Quarter for quarterly facts")
    section: FinancialSection
    field: str = Field(..., description="Canonical line-item name")
    value: float | None = Field(None, description="Reported value")
    source_date: date | None = Field(None, description="Period end date")
    source_tag: str = Field(default="EODHD", description="Vendor tag")

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple:
        """Identity of the fact in its long table."""
        base = (self.ticker, self.fiscal_year, self.section.value, self.field)
        if self.fiscal_quarter is not None:
            return base + (self.fiscal_quarter,)
        return base

    def to_row(self) -> list:
        row: list = [
            self.ticker,
            self.source_date.isoformat() if self.source_date else "",
            self.fiscal_year,
        ]
        if self.fiscal_quarter is not None:
            row.append(self.fiscal_quarter)
        row.extend([self.section.value, self.field, self.value, self.source_tag])
        return row


class PerShareRecord(BaseModel):
    """One ticker/fiscal-year row of derived ratios (3-decimal rounding)."""

    ticker: str
    fiscal_year: int
    revenue_per_share: float | None = None
    gross_profit_per_share: float | None = None
    operating_income_per_share: float | None = None
    net_income_per_share: float | None = None
    equity_per_share: float | None = None
    debt_to_equity: float | None = None

    def to_row(self) -> list:
        return [
            self.ticker,
            self.fiscal_year,
            self.revenue_per_share,
            self.gross_profit_per_share,
            self.operating_income_per_share,
            self.net_income_per_share,
            self.equity_per_share,
            self.debt_to_equity,
        ]


class MetricGrowth(BaseModel):
    """Latest value and trailing growth rates for one tracked metric."""

    latest: float | None = Field(None, description="Floored latest value")
    cagr_5y: float | None = None
    cagr_9y: float | None = None
    cagr_10y: float | None = None
    adjusted: bool = Field(
        default=False,
        description="Floor rule fired on the latest value or any window endpoint",
    )


class CalculatedMetricsRecord(BaseModel):
    """One ticker's growth profile, as merged into Calculated_Metrics."""

    ticker: str
    metrics: dict[str, MetricGrowth] = Field(default_factory=dict)
    calculated_at: datetime

    def growth(self, metric: str) -> MetricGrowth:
        return self.metrics.get(metric) or MetricGrowth()

    def to_record(self) -> dict[str, object]:
        """Cells keyed by their Calculated_Metrics column name."""
        record: dict[str, object] = {"Ticker": self.ticker}
        for metric in TRACKED_METRICS:
            g = self.growth(metric)
            record[f"{metric}_Latest"] = g.latest
            record[f"{metric}_5Y_CAGR"] = g.cagr_5y
            record[f"{metric}_9Y_CAGR"] = g.cagr_9y
            record[f"{metric}_10Y_CAGR"] = g.cagr_10y
            record[f"{metric}_AdjustedFlag"] = g.adjusted
        record["Calc_Timestamp"] = self.calculated_at
        return record
