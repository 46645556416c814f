"""Fundamentals extraction.

Fetches vendor fundamentals JSON (EODHD API or a local mock directory),
flattens the statement periods into long rows and upserts them into
Raw_Fundamentals_Annual / Raw_Fundamentals_Quarterly. Splits and dividends
from the same payload go to Raw_Splits_Dividends.

Payload shape (only the parts read here):

    {
      "Financials": {
        "Income_Statement": {"yearly": {"2023-12-31": {...}}, "quarterly": {...}},
        "Balance_Sheet": {...},
        "Cash_Flow": {...}
      },
      "SplitsDividends": {"Dividends": [...], "Splits": [...],
                          "LastSplitFactor": "2:1", "LastSplitDate": "2019-06-01"}
    }
"""

from __future__ import annotations

import json
import os
import tempfile
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Protocol, Sequence

import httpx

from fundsheet.core.data_helpers import to_int, to_number, to_year
from fundsheet.core.exceptions import (
    AppException,
    ConfigurationError,
    DataSourceError,
    ExternalServiceError,
)
from fundsheet.core.logging import get_logger
from fundsheet.database import schema
from fundsheet.database.tables import TabularStore, ensure_table
from fundsheet.domain.fundamentals import FinancialSection, RawFinancialFact
from fundsheet.domain.ticker import normalize_ticker_symbol
from fundsheet.services.field_config import ANNUAL, QUARTERLY, FieldSpec
from fundsheet.services.upsert import upsert_table


if TYPE_CHECKING:
    from fundsheet.core.config import Settings

logger = get_logger("services.fundamentals")

SOURCE_TAG = "EODHD"
PERIOD_KEYS = {ANNUAL: "yearly", QUARTERLY: "quarterly"}
ERROR_BODY_CHARS = 200


class FundamentalsSource(Protocol):
    """Anything that returns the fundamentals payload for a ticker."""

    name: str

    def fetch_fundamentals(self, ticker: str) -> dict[str, Any]: ...


# =============================================================================
# SOURCES
# =============================================================================


class EodhdClient:
    """Synchronous EODHD REST client.

    Retries transport errors and 5xx responses with linear backoff and keeps
    at least ``throttle_ms`` between consecutive requests.
    """

    name = "api"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://eodhd.com/api",
        timeout: float = 30,
        retries: int = 3,
        throttle_ms: int = 250,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ConfigurationError("EODHD_API_KEY is not set (or switch DATA_MODE to mock)")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.throttle_s = throttle_ms / 1000
        self._client = client or httpx.Client(timeout=timeout)
        self._sleep = sleep
        self._last_request: float | None = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "EodhdClient":
        return cls(
            api_key=settings.eodhd_api_key,
            base_url=settings.eodhd_base_url,
            timeout=settings.external_api_timeout,
            retries=settings.external_api_retries,
            throttle_ms=settings.request_throttle_ms,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "EodhdClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _throttle(self) -> None:
        if self._last_request is not None and self.throttle_s > 0:
            wait = self.throttle_s - (time.monotonic() - self._last_request)
            if wait > 0:
                self._sleep(wait)
        self._last_request = time.monotonic()

    def get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET {base_url}/{path} with the API token; returns decoded JSON."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        query = {**(params or {}), "api_token": self.api_key, "fmt": "json"}

        attempt = 0
        while True:
            self._throttle()
            try:
                response = self._client.get(url, params=query)
            except httpx.RequestError as exc:
                if attempt < self.retries:
                    attempt += 1
                    logger.warning(f"EODHD request failed for {path} ({exc}); retry {attempt}")
                    self._sleep(attempt)
                    continue
                raise ExternalServiceError(
                    message=f"EODHD unavailable for {path}",
                    details={"path": path},
                ) from exc

            if response.status_code >= 500 and attempt < self.retries:
                attempt += 1
                logger.warning(f"EODHD {response.status_code} for {path}; retry {attempt}")
                self._sleep(attempt)
                continue
            break

        if response.status_code != 200:
            raise ExternalServiceError(
                message=(
                    f"API error {response.status_code} for {path}: "
                    f"{response.text[:ERROR_BODY_CHARS]}"
                ),
                details={"status_code": response.status_code, "path": path},
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                message=f"JSON parse error for {path}: {exc}",
                details={"path": path},
            ) from exc

    def fetch_fundamentals(self, ticker: str) -> dict[str, Any]:
        return self.get_json(f"fundamentals/{ticker}")

    def fetch_eod(self, ticker: str, start: date, end: date) -> list[dict[str, Any]]:
        data = self.get_json(
            f"eod/{ticker}",
            {"from": start.isoformat(), "to": end.isoformat(), "period": "d"},
        )
        return data if isinstance(data, list) else []


def read_json_file(path: Path) -> Any:
    """Load a JSON file, mapping I/O and parse failures to DataSourceError."""
    if not path.is_file():
        raise DataSourceError(f"Mock JSON not found: {path.name}", details={"path": str(path)})
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise DataSourceError(
            f"Could not read {path.name}: {exc}", details={"path": str(path)}
        ) from exc


class MockDirectorySource:
    """Reads ``<directory>/<TICKER.SUFFIX>.json``."""

    name = "mock"

    def __init__(self, directory: str | os.PathLike[str], suffix: str = ".PSE"):
        self.directory = Path(directory)
        self.suffix = suffix

    def fetch_fundamentals(self, ticker: str) -> dict[str, Any]:
        symbol = normalize_ticker_symbol(ticker, self.suffix)
        return read_json_file(self.directory / f"{symbol}.json")


class CachingSource:
    """Serve payloads from a per-ticker JSON cache, filling it on a miss."""

    def __init__(self, inner: FundamentalsSource, cache_dir: str | os.PathLike[str]):
        self.inner = inner
        self.name = inner.name
        self.cache_dir = Path(cache_dir)

    def _path(self, ticker: str) -> Path:
        return self.cache_dir / f"{ticker.upper()}.json"

    def fetch_fundamentals(self, ticker: str) -> dict[str, Any]:
        path = self._path(ticker)
        if path.is_file():
            logger.debug(f"Cache hit for {ticker}")
            return read_json_file(path)

        payload = self.inner.fetch_fundamentals(ticker)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.cache_dir, suffix=".json.tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh)
        os.replace(tmp, path)
        return payload


def build_fundamentals_source(settings: "Settings") -> FundamentalsSource:
    """Source selected by ``data_mode``, wrapped in the cache when configured."""
    source: FundamentalsSource
    if settings.data_mode == "mock":
        source = MockDirectorySource(settings.mock_fundamentals_dir, settings.default_exchange_suffix)
    else:
        source = EodhdClient.from_settings(settings)
    if settings.cache_dir:
        source = CachingSource(source, settings.cache_dir)
    return source


# =============================================================================
# FLATTENING
# =============================================================================


def _parse_date(value: Any) -> date | None:
    text = str(value or "").strip()[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _lookup(entry: Mapping[str, Any], path: str) -> tuple[bool, Any]:
    """Follow a dotted path; returns (found, value)."""
    current: Any = entry
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return False, None
        current = current[part]
    return True, current


def iter_period_entries(section_data: Any, period_key: str) -> list[Mapping[str, Any]]:
    """Period entries for one statement, oldest first.

    EODHD returns a mapping keyed by period date; older dumps use a list of
    entries carrying their own ``date``. Both are accepted.
    """
    if not isinstance(section_data, Mapping):
        return []
    periods = section_data.get(period_key)
    entries: list[Mapping[str, Any]] = []
    if isinstance(periods, Mapping):
        for key, entry in periods.items():
            if isinstance(entry, Mapping):
                entries.append({**entry, "date": entry.get("date") or key})
    elif isinstance(periods, list):
        entries = [e for e in periods if isinstance(e, Mapping)]
    return sorted(entries, key=lambda e: str(e.get("date") or ""))


def extract_fundamental_facts(
    ticker: str,
    payload: Mapping[str, Any],
    fields: Mapping[FinancialSection, Sequence[FieldSpec]],
    period: str = ANNUAL,
) -> list[RawFinancialFact]:
    """Flatten the wanted fields of one payload into raw facts.

    A field is emitted only when its key is present in the period entry;
    a present but non-numeric value becomes a null Value.
    """
    financials = payload.get("Financials") if isinstance(payload, Mapping) else None
    if not isinstance(financials, Mapping):
        return []

    quarterly = period == QUARTERLY
    facts: list[RawFinancialFact] = []
    for section, specs in fields.items():
        for entry in iter_period_entries(financials.get(section.value), PERIOD_KEYS[period]):
            period_date = _parse_date(entry.get("date"))
            year = to_year(entry.get("fiscalYear")) or (period_date.year if period_date else None)
            if not year:
                continue
            quarter = None
            if quarterly:
                quarter = to_int(entry.get("fiscalQuarter"))
                if quarter is None and period_date is not None:
                    quarter = (period_date.month - 1) // 3 + 1
                if quarter is None or not 1 <= quarter <= 4:
                    continue

            for spec in specs:
                found, value = _lookup(entry, spec.json_path)
                if not found:
                    continue
                facts.append(
                    RawFinancialFact(
                        ticker=ticker,
                        fiscal_year=year,
                        fiscal_quarter=quarter,
                        section=section,
                        field=spec.field_name,
                        value=to_number(value),
                        source_date=period_date,
                        source_tag=SOURCE_TAG,
                    )
                )
    return facts


def extract_splits_dividends_rows(ticker: str, payload: Mapping[str, Any]) -> list[list[Any]]:
    """Rows for Raw_Splits_Dividends (see schema.SPLITS_DIVIDENDS_HEADER)."""
    sd = payload.get("SplitsDividends") if isinstance(payload, Mapping) else None
    if not isinstance(sd, Mapping):
        return []

    def text(value: Any) -> str:
        return "" if value is None else str(value)

    rows: list[list[Any]] = []
    for d in sd.get("Dividends") or []:
        if not isinstance(d, Mapping):
            continue
        rows.append([
            ticker, "Dividend", text(d.get("date")),
            text(d.get("declarationDate")), text(d.get("recordDate")), text(d.get("paymentDate")),
            to_number(d.get("dividend")), to_number(d.get("adjDividend")),
            None, None, None,
            f"decl={text(d.get('declarationDate'))}",
        ])

    for s in sd.get("Splits") or []:
        if not isinstance(s, Mapping):
            continue
        rows.append([
            ticker, "Split", text(s.get("date")),
            "", "", "",
            None, None,
            to_number(s.get("forFactor")), to_number(s.get("toFactor")), text(s.get("ratio")),
            "",
        ])

    if sd.get("LastSplitDate") and sd.get("LastSplitFactor"):
        rows.append([
            ticker, "LastSplitMeta", text(sd.get("LastSplitDate")),
            "", "", "",
            None, None, None, None,
            text(sd.get("LastSplitFactor")),
            "from LastSplit*",
        ])
    return rows


# =============================================================================
# JOBS
# =============================================================================


@dataclass(frozen=True)
class ExtractConfig:
    """Extraction settings."""

    batch_size: int = 10
    exchange_suffix: str = ".PSE"

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ExtractConfig":
        return cls(
            batch_size=settings.extract_batch_size,
            exchange_suffix=settings.default_exchange_suffix,
        )


@dataclass
class ExtractionSummary:
    """Outcome of one extraction run."""

    tickers: int = 0
    rows: int = 0
    updated: int = 0
    appended: int = 0
    failed: list[str] = field(default_factory=list)


def _batches(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _run_batched(
    store: TabularStore,
    source: FundamentalsSource,
    tickers: Sequence[str],
    config: ExtractConfig,
    table: str,
    header: list[str],
    key: list[str],
    to_rows: Callable[[str, Mapping[str, Any]], list[list[Any]]],
) -> ExtractionSummary:
    ensure_table(store, table, header)
    summary = ExtractionSummary(tickers=len(tickers))

    for batch_num, batch in enumerate(_batches(tickers, config.batch_size), 1):
        rows: list[list[Any]] = []
        for raw in batch:
            ticker = normalize_ticker_symbol(raw, config.exchange_suffix)
            try:
                payload = source.fetch_fundamentals(ticker)
                rows.extend(to_rows(ticker, payload))
            except (AppException, ValueError) as exc:
                logger.warning(f"Error extracting {ticker}: {exc}")
                summary.failed.append(ticker)

        if rows:
            result = upsert_table(store, table, key, header, rows)
            summary.rows += len(rows)
            summary.updated += result.updated
            summary.appended += result.appended
            logger.info(f"{table} batch {batch_num}: upserted {len(rows)} rows")

    return summary


def run_fundamentals_extraction(
    store: TabularStore,
    source: FundamentalsSource,
    tickers: Sequence[str],
    fields: Mapping[FinancialSection, Sequence[FieldSpec]],
    period: str,
    config: ExtractConfig,
) -> ExtractionSummary:
    """Extract one period type for every ticker into its raw table."""
    if period == QUARTERLY:
        table, header, key = (
            schema.RAW_FUNDAMENTALS_QUARTERLY, schema.RAW_QUARTERLY_HEADER, schema.RAW_QUARTERLY_KEY,
        )
    else:
        table, header, key = (
            schema.RAW_FUNDAMENTALS_ANNUAL, schema.RAW_ANNUAL_HEADER, schema.RAW_ANNUAL_KEY,
        )

    if not any(fields.values()):
        logger.info(f"No {period} fields marked Active; skipping {table}")
        return ExtractionSummary(tickers=len(tickers))

    def to_rows(ticker: str, payload: Mapping[str, Any]) -> list[list[Any]]:
        return [f.to_row() for f in extract_fundamental_facts(ticker, payload, fields, period)]

    summary = _run_batched(store, source, tickers, config, table, header, key, to_rows)
    logger.info(
        f"{table}: {summary.rows} rows for {summary.tickers} tickers "
        f"({len(summary.failed)} failed)"
    )
    return summary


def run_splits_dividends_extraction(
    store: TabularStore,
    source: FundamentalsSource,
    tickers: Sequence[str],
    config: ExtractConfig,
) -> ExtractionSummary:
    """Extract dividends, splits and last-split metadata for every ticker."""
    summary = _run_batched(
        store,
        source,
        tickers,
        config,
        schema.RAW_SPLITS_DIVIDENDS,
        schema.SPLITS_DIVIDENDS_HEADER,
        schema.SPLITS_DIVIDENDS_KEY,
        extract_splits_dividends_rows,
    )
    logger.info(
        f"{schema.RAW_SPLITS_DIVIDENDS}: {summary.rows} rows for {summary.tickers} tickers"
    )
    return summary
