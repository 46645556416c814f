"""Price domain models."""

from __future__ import annotations

from datetime import date as DateType
from datetime import datetime

from pydantic import BaseModel, Field


class PriceBar(BaseModel):
    """Single end-of-day bar (only the fields the pipeline uses)."""

    date: DateType = Field(..., description="Trading date")
    close: float = Field(..., ge=0, description="Closing price")
    volume: int = Field(default=0, ge=0, description="Trading volume")

    model_config = {
        "from_attributes": True,
        "extra": "ignore",
    }

    @property
    def traded_value(self) -> float:
        """Close times volume."""
        return self.close * self.volume


class PriceSnapshot(BaseModel):
    """Latest price and liquidity stats for one ticker."""

    ticker: str
    last_close: float | None = None
    volume: int | None = None
    price_date: DateType | None = Field(None, description="Date of the last bar")
    avg30_value: float | None = Field(
        None, description="Mean close*volume over the last 30 bars with volume"
    )
    bars_used: int | None = Field(None, description="Bars that went into avg30_value")
    source: str = "EODHD"
    updated_at: datetime | None = None

    def latest_row(self) -> list:
        return [
            self.ticker,
            self.last_close,
            self.volume,
            self.price_date,
            self.source,
            self.updated_at,
        ]

    def stats_row(self) -> list:
        return [
            self.ticker,
            self.last_close,
            self.avg30_value,
            self.bars_used,
            self.updated_at,
        ]
