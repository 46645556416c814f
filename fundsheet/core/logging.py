"""Structured logging configuration with run ID tracking."""

from __future__ import annotations

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional


if TYPE_CHECKING:
    from .config import Settings


# Context variable tagging every line of one CLI run / pipeline
run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def new_run_id() -> str:
    """Start a new run and return its id."""
    run_id = uuid.uuid4().hex
    run_id_var.set(run_id)
    return run_id


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def __init__(self, include_location: bool = False):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = run_id_var.get()
        if run_id:
            log_data["run_id"] = run_id

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_location:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for terminal runs."""

    def format(self, record: logging.LogRecord) -> str:
        run_id = run_id_var.get()
        rid = f"[{run_id[:8]}] " if run_id else ""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base = f"{timestamp} {record.levelname:8} {rid}{record.name}: {record.getMessage()}"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


class SensitiveDataFilter(logging.Filter):
    """Filter API credentials out of log lines (EODHD puts the key in the URL)."""

    SENSITIVE_KEYS = {
        "api_token",
        "api_key",
        "eodhd_api_key",
        "token",
        "secret",
        "password",
        "authorization",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        lowered = message.lower()
        redacted = message
        for key in self.SENSITIVE_KEYS:
            if key in lowered:
                redacted = self._redact_value(redacted, key)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True

    def _redact_value(self, text: str, key: str) -> str:
        """Redact values after sensitive keys."""
        # Match patterns like "key=value" or "key: value" or "'key': 'value'"
        patterns = [
            rf"({key}\s*[=:]\s*)(?!\[REDACTED\])[^\s,&}}\]]+",
            rf"('{key}'\s*:\s*)(?!\[REDACTED\])[^\s,}}\]]+",
            rf'("{key}"\s*:\s*)(?!\[REDACTED\])[^\s,}}\]]+',
        ]
        for pattern in patterns:
            text = re.sub(pattern, r"\1[REDACTED]", text, flags=re.IGNORECASE)
        return text


def setup_logging(settings: "Settings") -> None:
    """Configure application logging."""
    level = getattr(logging, settings.log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if settings.log_format == "json":
        handler.setFormatter(StructuredFormatter(include_location=settings.debug))
    else:
        handler.setFormatter(TextFormatter())

    handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openpyxl").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the fundsheet prefix."""
    return logging.getLogger(f"fundsheet.{name}")
