"""Price snapshot refresh.

Fetches recent daily bars per ticker and rebuilds Prices_Latest (last close)
and Prices_Stats (last close plus Avg30Value: the mean of close * volume over
the last 30 bars that traded). Bars are also upserted into Raw_Prices keyed
by (Ticker, Date).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Protocol, Sequence

import pandas as pd
from pydantic import ValidationError

from fundsheet.core.exceptions import AppException
from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import TabularStore
from fundsheet.domain.price import PriceBar, PriceSnapshot
from fundsheet.domain.ticker import base_ticker, normalize_ticker_symbol
from fundsheet.services.fundamentals import EodhdClient, read_json_file
from fundsheet.services.upsert import upsert_table


if TYPE_CHECKING:
    from fundsheet.core.config import Settings

logger = get_logger("services.prices")

AVG_WINDOW_BARS = 30
MIN_MOCK_BARS = 5


class PriceSource(Protocol):
    name: str

    def fetch_bars(self, ticker: str, lookback_days: int) -> list[PriceBar]: ...


def parse_bars(raw: Iterable[Any]) -> list[PriceBar]:
    """Validate vendor bar dicts, dropping unusable ones; oldest first."""
    bars = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        data = {
            "date": item.get("date") or item.get("Date"),
            "close": item.get("close", item.get("Close")),
            "volume": item.get("volume", item.get("Volume")) or 0,
        }
        try:
            bars.append(PriceBar.model_validate(data))
        except ValidationError:
            continue
    return sorted(bars, key=lambda b: b.date)


class EodhdPriceSource:
    """Daily bars from the EODHD ``eod`` endpoint."""

    name = "api"

    def __init__(self, client: EodhdClient, today: date | None = None):
        self.client = client
        self.today = today

    def fetch_bars(self, ticker: str, lookback_days: int) -> list[PriceBar]:
        end = self.today or date.today()
        start = end - timedelta(days=lookback_days)
        return parse_bars(self.client.fetch_eod(ticker, start, end))


class MockPriceSource:
    """Bars from ``<directory>/<TICKER.SUFFIX>.json`` (or ``<BASE>.json``)."""

    name = "mock"

    def __init__(self, directory: str | os.PathLike[str], suffix: str = ".PSE"):
        self.directory = Path(directory)
        self.suffix = suffix

    def fetch_bars(self, ticker: str, lookback_days: int) -> list[PriceBar]:
        symbol = normalize_ticker_symbol(ticker, self.suffix)
        for name in (symbol, base_ticker(symbol)):
            path = self.directory / f"{name}.json"
            if path.is_file():
                raw = read_json_file(path)
                bars = parse_bars(raw if isinstance(raw, list) else [])
                return bars[-max(MIN_MOCK_BARS, lookback_days):]
        logger.warning(f"Mock price file not found for {symbol}")
        return []


def build_price_source(settings: "Settings") -> PriceSource:
    if settings.data_mode == "mock":
        return MockPriceSource(settings.mock_prices_dir, settings.default_exchange_suffix)
    return EodhdPriceSource(EodhdClient.from_settings(settings))


@dataclass(frozen=True)
class PriceConfig:
    lookback_days: int = 60
    exchange_suffix: str = ".PSE"

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PriceConfig":
        return cls(
            lookback_days=settings.price_lookback_days,
            exchange_suffix=settings.default_exchange_suffix,
        )


def compute_price_snapshot(
    ticker: str,
    bars: Sequence[PriceBar],
    source: str = "api",
    updated_at: datetime | None = None,
) -> PriceSnapshot:
    """Last close and Avg30Value for a ticker's bars (oldest first)."""
    snapshot = PriceSnapshot(
        ticker=ticker,
        source=source,
        updated_at=updated_at or datetime.now(timezone.utc),
    )
    if not bars:
        return snapshot

    df = pd.DataFrame([b.model_dump() for b in bars]).sort_values("date")
    last = df.iloc[-1]
    recent = df.tail(AVG_WINDOW_BARS)
    recent = recent[recent["volume"] > 0]

    snapshot.last_close = float(last["close"])
    snapshot.volume = int(last["volume"])
    snapshot.price_date = last["date"]
    snapshot.bars_used = int(len(recent))
    if len(recent):
        snapshot.avg30_value = float((recent["close"] * recent["volume"]).mean())
    return snapshot


def refresh_prices(
    store: TabularStore,
    source: PriceSource,
    tickers: Sequence[str],
    config: PriceConfig,
    updated_at: datetime | None = None,
) -> list[PriceSnapshot]:
    """Fetch bars for every ticker and rebuild the price tables."""
    updated_at = updated_at or datetime.now(timezone.utc)
    snapshots: list[PriceSnapshot] = []
    history: list[list[Any]] = []

    for raw in tickers:
        ticker = normalize_ticker_symbol(raw, config.exchange_suffix)
        try:
            bars = source.fetch_bars(ticker, config.lookback_days)
        except AppException as exc:
            logger.warning(f"Price fetch failed for {ticker}: {exc}")
            continue
        if not bars:
            continue
        snapshots.append(compute_price_snapshot(ticker, bars, source.name, updated_at))
        history.extend([ticker, b.date.isoformat(), b.close, b.volume] for b in bars)

    store.write_table(
        schema.PRICES_LATEST, schema.PRICES_LATEST_HEADER, [s.latest_row() for s in snapshots]
    )
    store.write_table(
        schema.PRICES_STATS, schema.PRICES_STATS_HEADER, [s.stats_row() for s in snapshots]
    )
    upsert_table(store, schema.RAW_PRICES, schema.RAW_PRICES_KEY, schema.RAW_PRICES_HEADER, history)

    logger.info(f"Prices refreshed for {len(snapshots)} of {len(tickers)} tickers")
    return snapshots
