"""Tests for settings validation, logging helpers and exceptions."""

from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from fundsheet.core.config import Settings
from fundsheet.core.exceptions import AppException, MissingColumnError
from fundsheet.core.logging import (
    SensitiveDataFilter,
    StructuredFormatter,
    get_logger,
    new_run_id,
    run_id_var,
)
from fundsheet.services.cagr import CagrConfig
from fundsheet.services.fundamentals import ExtractConfig
from fundsheet.services.per_share import PerShareConfig
from fundsheet.services.screener import ScreenerCriteria

from conftest import make_settings


class TestSettingsDefaults:
    """Default values and validators."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("EODHD_API_KEY", raising=False)
        settings = Settings(_env_file=None)

        assert settings.store_backend == "excel"
        assert settings.data_mode == "api"
        assert settings.default_exchange_suffix == ".PSE"
        assert settings.per_share_max_years == 10
        assert settings.screener_max_debt_to_equity == 1.5
        assert settings.screener_min_5y_cagr is None
        assert settings.eodhd_api_key == ""
        assert settings.is_production

    def test_normalizes_values(self):
        settings = make_settings(
            log_level="debug", log_format="JSON", data_mode=" Mock ", default_exchange_suffix="us"
        )

        assert settings.log_level == "DEBUG"
        assert settings.log_format == "json"
        assert settings.data_mode == "mock"
        assert settings.default_exchange_suffix == ".US"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("log_level", "LOUD"),
            ("log_format", "xml"),
            ("data_mode", "scrape"),
            ("store_backend", "csv"),
            ("extract_batch_size", 0),
            ("price_lookback_days", 5),
        ],
    )
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            make_settings(**{field: value})

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("EODHD_API_KEY", "from-env")
        monkeypatch.setenv("SCREENER_MIN_5Y_CAGR", "0.15")
        monkeypatch.setenv("STORE_BACKEND", "sql")

        settings = Settings(_env_file=None)

        assert settings.eodhd_api_key == "from-env"
        assert settings.screener_min_5y_cagr == 0.15
        assert settings.store_backend == "sql"


class TestConfigInjection:
    """Engine configs are derived from settings explicitly."""

    def test_from_settings(self):
        settings = make_settings(
            per_share_max_years=7,
            default_exchange_suffix=".US",
            extract_batch_size=3,
            screener_min_5y_cagr=0.1,
            screener_max_debt_to_equity=None,
            screener_min_long_cagr=0.05,
        )

        assert PerShareConfig.from_settings(settings) == PerShareConfig(
            max_years=7, exchange_suffix=".US"
        )
        assert ExtractConfig.from_settings(settings) == ExtractConfig(
            batch_size=3, exchange_suffix=".US"
        )
        assert ScreenerCriteria.from_settings(settings) == ScreenerCriteria(0.1, None, 0.05)
        assert CagrConfig.from_settings(settings) == CagrConfig()


class TestLogging:
    def test_sensitive_values_are_redacted(self):
        record = logging.LogRecord(
            "fundsheet.test", logging.INFO, __file__, 1,
            "GET /api/eod?api_token=%s&fmt=json", ("SECRET123",), None,
        )

        assert SensitiveDataFilter().filter(record) is True

        message = record.getMessage()
        assert "SECRET123" not in message
        assert message == "GET /api/eod?api_token=[REDACTED]&fmt=json"

    def test_plain_messages_untouched(self):
        record = logging.LogRecord(
            "fundsheet.test", logging.INFO, __file__, 1, "Upserted %d rows", (5,), None
        )

        SensitiveDataFilter().filter(record)

        assert record.getMessage() == "Upserted 5 rows"

    def test_structured_formatter_includes_run_id(self):
        run_id = new_run_id()
        record = logging.LogRecord(
            "fundsheet.test", logging.WARNING, __file__, 1, "hello", None, None
        )
        record.extra_fields = {"job": "cagr"}

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "hello"
        assert data["level"] == "WARNING"
        assert data["run_id"] == run_id == run_id_var.get()
        assert data["job"] == "cagr"

    def test_logger_namespace(self):
        assert get_logger("services.cagr").name == "fundsheet.services.cagr"


class TestExceptions:
    def test_to_dict(self):
        err = MissingColumnError("OpPS", ["OpPS", "OpIncPS"], table="Per_Share")

        assert isinstance(err, AppException)
        assert err.to_dict() == {
            "error": "MISSING_COLUMN",
            "message": "Missing column 'OpPS' in table 'Per_Share'; tried: OpPS, OpIncPS",
            "details": {"column": "OpPS", "aliases": ["OpPS", "OpIncPS"], "table": "Per_Share"},
        }

    def test_defaults(self):
        err = AppException()
        assert err.to_dict() == {"error": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
