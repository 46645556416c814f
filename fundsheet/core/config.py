"""Application settings with Pydantic validation and environment loading."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "fundsheet"
    debug: bool = Field(default=False, description="Enable debug output")
    environment: str = Field(
        default="production",
        description="Environment: development, test, production",
    )

    # Storage
    store_backend: str = Field(
        default="excel", description="Table store backend: excel, sql or memory"
    )
    workbook_path: str = Field(
        default="fundsheet.xlsx", description="Workbook file for the excel backend"
    )
    database_url: str = Field(
        default="sqlite:///fundsheet.db",
        description="SQLAlchemy URL for the sql backend",
    )

    # Data sources
    data_mode: str = Field(
        default="api", description="Fundamentals source: api (EODHD) or mock (local JSON)"
    )
    eodhd_api_key: str = Field(default="", alias="EODHD_API_KEY")
    eodhd_base_url: str = Field(default="https://eodhd.com/api")
    mock_fundamentals_dir: str = Field(
        default="mock_data/fundamentals",
        description="Directory holding <TICKER.SUFFIX>.json fundamentals files",
    )
    mock_prices_dir: str = Field(
        default="mock_data/prices",
        description="Directory holding <TICKER.SUFFIX>.json price bar files",
    )
    cache_dir: Optional[str] = Field(
        default=None, description="Raw API response cache directory (disabled if unset)"
    )

    # Extraction
    default_exchange_suffix: str = Field(
        default=".PSE", description="Suffix appended to tickers without an exchange"
    )
    request_throttle_ms: int = Field(
        default=250, ge=0, le=10_000, description="Pause between API calls (ms)"
    )
    extract_batch_size: int = Field(
        default=10, ge=1, le=500, description="Tickers processed per extraction batch"
    )
    external_api_timeout: int = Field(
        default=30, ge=5, le=120, description="External API timeout in seconds"
    )
    external_api_retries: int = Field(
        default=3, ge=0, le=5, description="External API retry count"
    )
    price_lookback_days: int = Field(
        default=60, ge=30, le=3650, description="Days of price bars to fetch"
    )

    # Per-share builder
    per_share_max_years: int = Field(
        default=10, ge=1, le=50, description="Fiscal years kept per ticker"
    )

    # Screener (unset thresholds are not applied)
    screener_min_5y_cagr: Optional[float] = Field(default=None)
    screener_max_debt_to_equity: Optional[float] = Field(default=1.5)
    screener_min_long_cagr: Optional[float] = Field(default=None)

    # Logging
    log_level: str = Field(
        default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(default="text", description="Log format: json or text")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"json", "text"}:
            raise ValueError("log_format must be json or text")
        return lower

    @field_validator("data_mode")
    @classmethod
    def validate_data_mode(cls, v: str) -> str:
        lower = v.strip().lower()
        if lower not in {"api", "mock"}:
            raise ValueError("data_mode must be api or mock")
        return lower

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        lower = v.strip().lower()
        if lower not in {"excel", "sql", "memory"}:
            raise ValueError("store_backend must be excel, sql or memory")
        return lower

    @field_validator("default_exchange_suffix")
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        v = v.strip().upper()
        if v and not v.startswith("."):
            v = f".{v}"
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Cached settings factory."""
    return Settings()
